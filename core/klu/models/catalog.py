"""
Static catalog of the models Klu knows how to run.
One ordered list and one default per capability.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

GB = 1024**3


class Capability(str, Enum):
    """Modality a model is specialized for."""

    CORE = "core"
    REASONING = "reasoning"
    VISION = "vision"
    AUDIO = "audio"
    EMBEDDING = "embedding"
    SPEECH = "speech"


class Backend(str, Enum):
    """Inference runtime that executes a model's weights."""

    LLAMA_CPP = "llama_cpp"
    WHISPER = "whisper"
    KOKORO = "kokoro"


class DownloadLocators(BaseModel):
    """Where the loader can fetch weights from. Opaque to the runtime."""

    model_config = ConfigDict(frozen=True)

    primary: str
    alternate: Optional[str] = None
    projector: Optional[str] = None  # mmproj weights of a vision model


class ModelDescriptor(BaseModel):
    """Immutable metadata for one loadable model."""

    model_config = ConfigDict(frozen=True)

    id: str  # "gemma-3-12b-it-4bit"
    display_name: str  # "Gemma 3 12B IT (4-bit)"
    provider: str  # "Google"
    size_bytes: int
    description: Optional[str] = None
    download_locators: DownloadLocators
    backend: Backend = Backend.LLAMA_CPP
    chat_handler: Optional[str] = None  # llama_cpp.llama_chat_format class name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModelDescriptor):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def size_gb(self) -> float:
        return self.size_bytes / GB


def _model(
    id: str,
    display_name: str,
    provider: str,
    size_gb: float,
    description: str,
    weights: str = "",
    alternate: str = "",
    mmproj: Optional[str] = None,
    chat_handler: Optional[str] = None,
    backend: Backend = Backend.LLAMA_CPP,
) -> ModelDescriptor:
    primary, fallback = (weights, alternate or None) if weights else (alternate, None)
    return ModelDescriptor(
        id=id,
        display_name=display_name,
        provider=provider,
        size_bytes=int(size_gb * GB),
        description=description,
        download_locators=DownloadLocators(
            primary=primary, alternate=fallback, projector=mmproj
        ),
        backend=backend,
        chat_handler=chat_handler,
    )


# ─────────────────────────────────────────────────────────
# CORE
# ─────────────────────────────────────────────────────────

CORE_MODELS = [
    _model("Llama-3.2-1B-Instruct-4bit", "Llama 3.2 1B Instruct (4-bit)", "Meta", 0.7,
           "Smallest, lightweight Llama model",
           weights="bartowski/Llama-3.2-1B-Instruct-GGUF:*Q4_K_M.gguf",
           alternate="mlx-community/Llama-3.2-1B-Instruct-4bit"),
    _model("Llama-3.2-3B-Instruct-4bit", "Llama 3.2 3B Instruct (4-bit)", "Meta", 1.8,
           "Lightweight Llama model",
           weights="bartowski/Llama-3.2-3B-Instruct-GGUF:*Q4_K_M.gguf",
           alternate="mlx-community/Llama-3.2-3B-Instruct-4bit"),
    _model("Hermes-3-Llama-3.2-3B-bf16", "Hermes 3 Llama 3.2 3B (bf16)", "Nous Research", 6.43,
           "Hermes-3 improved instruction following",
           weights="bartowski/Hermes-3-Llama-3.2-3B-GGUF:*f16.gguf",
           alternate="mlx-community/Hermes-3-Llama-3.2-3B-bf16"),
    _model("Llama-3.3-70B-Instruct-4bit", "Llama 3.3 70B Instruct (4-bit)", "Meta", 39.7,
           "Medium-sized Llama model for advanced reasoning",
           weights="bartowski/Llama-3.3-70B-Instruct-GGUF:*Q4_K_M.gguf",
           alternate="mlx-community/Llama-3.3-70B-Instruct-4bit"),
    _model("gemma-2-27b-it-4bit", "Gemma 2 27B IT (4-bit)", "Google", 15.32,
           "Instruction-tuned model optimized for conversational AI",
           weights="bartowski/gemma-2-27b-it-GGUF:*Q4_K_M.gguf",
           alternate="mlx-community/gemma-2-27b-it-4bit"),
    _model("phi-4-4bit", "Phi 4 (4-bit)", "Microsoft", 8.25,
           "Optimized for code, math, and conversational tasks",
           weights="bartowski/phi-4-GGUF:*Q4_K_M.gguf",
           alternate="mlx-community/phi-4-4bit"),
    _model("phi-4-8bit", "Phi 4 (8-bit)", "Microsoft", 15.57,
           "Higher precision Phi-4 model for code, math, and conversational tasks",
           weights="bartowski/phi-4-GGUF:*Q8_0.gguf",
           alternate="mlx-community/phi-4-8bit"),
    _model("mistral-small-24b-instruct-2501-4bit", "Mistral Small 24B Instruct (4-bit)", "Mistral AI", 13.3,
           "Mistral model optimized for instruction-following",
           weights="bartowski/Mistral-Small-24B-Instruct-2501-GGUF:*Q4_K_M.gguf",
           alternate="mlx-community/Mistral-Small-24B-Instruct-2501-4bit"),
    _model("mistral-small-24b-instruct-2501-8bit", "Mistral Small 24B Instruct (8-bit)", "Mistral AI", 25.03,
           "Higher precision Mistral model for improved instruction-following",
           weights="bartowski/Mistral-Small-24B-Instruct-2501-GGUF:*Q8_0.gguf",
           alternate="mlx-community/Mistral-Small-24B-Instruct-2501-8bit"),
    _model("DeepSeek-R1-Distill-Qwen-32B-4bit", "DeepSeek R1 Distill Qwen 32B (4-bit)", "DeepSeek", 18.44,
           "Large-scale reasoning model with advanced capabilities",
           weights="lmstudio-community/DeepSeek-R1-Distill-Qwen-32B-GGUF:*Q4_K_M.gguf",
           alternate="mlx-community/DeepSeek-R1-Distill-Qwen-32B-4bit"),
    _model("Qwen2.5-32B-Instruct-4bit", "Qwen 2.5 32B Instruct (4-bit)", "Qwen", 18.44,
           "Powerful conversational model with strong chat capabilities",
           weights="bartowski/Qwen2.5-32B-Instruct-GGUF:*Q4_K_M.gguf",
           alternate="mlx-community/Qwen2.5-32B-Instruct-4bit"),
    _model("QwQ-32B-4bit", "QwQ 32B (4-bit)", "Qwen", 18.44,
           "Conversational model with strong chat capabilities in 4-bit precision",
           weights="bartowski/Qwen_QwQ-32B-GGUF:*Q4_K_M.gguf",
           alternate="mlx-community/QwQ-32B-4bit"),
    _model("Qwen2.5-QwQ-35B-Eureka-Cubed-abliterated-uncensored-4bit",
           "Qwen 2.5 QwQ 35B Eureka Cubed (4-bit)", "Qwen", 19.54,
           "Uncensored model with enhanced reasoning and thinking capabilities",
           weights="mradermacher/Qwen2.5-QwQ-35B-Eureka-Cubed-abliterated-uncensored-GGUF:*Q4_K_M.gguf",
           alternate="mlx-community/Qwen2.5-QwQ-35B-Eureka-Cubed-abliterated-uncensored-4bit"),
    _model("watt-tool-8B", "Watt Tool 8B", "Watt", 4.52,
           "Specialized for function-calling and tool-use capabilities",
           weights="bartowski/watt-ai_watt-tool-8B-GGUF:*Q4_K_M.gguf",
           alternate="mlx-community/watt-tool-8B"),
]

# ─────────────────────────────────────────────────────────
# REASONING
# ─────────────────────────────────────────────────────────

REASONING_MODELS = [
    _model("deepseek-r1-distill-qwen-1.5b-4bit", "DeepSeek R1 Distill Qwen 1.5B (4-bit)", "DeepSeek", 1.0,
           "Efficient reasoning model from DeepSeek",
           weights="bartowski/DeepSeek-R1-Distill-Qwen-1.5B-GGUF:*Q4_K_M.gguf",
           alternate="mlx-community/DeepSeek-R1-Distill-Qwen-1.5B-4bit"),
    _model("deepseek-r1-distill-qwen-1.5b-8bit", "DeepSeek R1 Distill Qwen 1.5B (8-bit)", "DeepSeek", 1.9,
           "Higher precision DeepSeek reasoning model",
           weights="bartowski/DeepSeek-R1-Distill-Qwen-1.5B-GGUF:*Q8_0.gguf",
           alternate="mlx-community/DeepSeek-R1-Distill-Qwen-1.5B-8bit"),
    _model("DeepHermes-3-Llama-3-8B-Preview-4Bit", "Deep Hermes 3 Llama 3 8B Preview (4-bit)", "Nous Research", 4.52,
           "Reasoning with function calling and JSON capabilities",
           weights="bartowski/NousResearch_DeepHermes-3-Llama-3-8B-Preview-GGUF:*Q4_K_M.gguf",
           alternate="mlx-community/DeepHermes-3-Llama-3-8B-Preview-4Bit"),
    _model("Dolphin3.0-R1-Mistral-24B-6bit", "Dolphin 3.0 R1 Mistral 24B (6-bit)", "Cognitive Computations", 19.15,
           "Advanced conversational reasoning model based on Mistral architecture",
           weights="bartowski/cognitivecomputations_Dolphin3.0-R1-Mistral-24B-GGUF:*Q6_K.gguf",
           alternate="mlx-community/Dolphin3.0-R1-Mistral-24B-6bit"),
    _model("DeepSeek-R1-Distill-Qwen-32B-4bit", "DeepSeek R1 Distill Qwen 32B (4-bit)", "DeepSeek", 18.44,
           "Large-scale reasoning model with advanced capabilities",
           weights="lmstudio-community/DeepSeek-R1-Distill-Qwen-32B-GGUF:*Q4_K_M.gguf",
           alternate="mlx-community/DeepSeek-R1-Distill-Qwen-32B-4bit"),
    _model("DeepSeek-R1-Distill-Qwen-32B-MLX-8Bit", "DeepSeek R1 Distill Qwen 32B (8-bit)", "DeepSeek", 35.0,
           "High-precision large-scale reasoning model with enhanced capabilities",
           weights="lmstudio-community/DeepSeek-R1-Distill-Qwen-32B-GGUF:*Q8_0.gguf",
           alternate="mlx-community/DeepSeek-R1-Distill-Qwen-32B-MLX-8Bit"),
]

# ─────────────────────────────────────────────────────────
# VISION
# ─────────────────────────────────────────────────────────

VISION_MODELS = [
    _model("pixtral-12b-4bit", "Pixtral 12B (4-bit)", "Mistral AI", 7.14,
           "Vision language model from Mistral",
           weights="ggml-org/pixtral-12b-GGUF:*Q4_K_M.gguf",
           mmproj="ggml-org/pixtral-12b-GGUF:mmproj-*.gguf",
           alternate="mlx-community/pixtral-12b-4bit"),
    _model("UI-TARS-7B-DPO-8bit", "UI-TARS 7B DPO (8-bit)", "Universal Intellect", 9.45,
           "Image-Text-to-Text multimodal conversational model",
           weights="mradermacher/UI-TARS-7B-DPO-GGUF:*Q8_0.gguf",
           mmproj="mradermacher/UI-TARS-7B-DPO-GGUF:*mmproj-f16.gguf",
           chat_handler="Qwen25VLChatHandler",
           alternate="mlx-community/UI-TARS-7B-DPO-8bit"),
    _model("Qwen2.5-VL-7B-Instruct-8bit", "Qwen 2.5 VL 7B Instruct (8-bit)", "Alibaba Cloud", 8.94,
           "Multimodal conversational model with strong image understanding capabilities",
           weights="ggml-org/Qwen2.5-VL-7B-Instruct-GGUF:*Q8_0.gguf",
           mmproj="ggml-org/Qwen2.5-VL-7B-Instruct-GGUF:mmproj-*.gguf",
           chat_handler="Qwen25VLChatHandler",
           alternate="mlx-community/Qwen2.5-VL-7B-Instruct-8bit"),
    _model("gemma-3-12b-it-4bit", "Gemma 3 12B IT (4-bit)", "Google", 5.37,
           "Conversational model optimized for image-text tasks",
           weights="ggml-org/gemma-3-12b-it-GGUF:*Q4_K_M.gguf",
           mmproj="ggml-org/gemma-3-12b-it-GGUF:mmproj-*.gguf",
           alternate="mlx-community/gemma-3-12b-it-4bit"),
    _model("gemma-3-4b-it-8bit", "Gemma 3 4B IT (8-bit)", "Google", 4.96,
           "Conversational model optimized for image-text tasks",
           weights="ggml-org/gemma-3-4b-it-GGUF:*Q8_0.gguf",
           mmproj="ggml-org/gemma-3-4b-it-GGUF:mmproj-*.gguf",
           alternate="mlx-community/gemma-3-4b-it-8bit"),
    _model("Qwen2.5-VL-7B-Instruct-bf16", "Qwen 2.5 VL 7B Instruct (bf16)", "Alibaba Cloud", 16.58,
           "Advanced multimodal conversational model with strong image understanding capabilities",
           weights="ggml-org/Qwen2.5-VL-7B-Instruct-GGUF:*Instruct-f16.gguf",
           mmproj="ggml-org/Qwen2.5-VL-7B-Instruct-GGUF:mmproj-*.gguf",
           chat_handler="Qwen25VLChatHandler",
           alternate="mlx-community/Qwen2.5-VL-7B-Instruct-bf16"),
]

# ─────────────────────────────────────────────────────────
# AUDIO
# ─────────────────────────────────────────────────────────

AUDIO_MODELS = [
    _model("openai_whisper-large-v3-v20240930_turbo", "Whisper Large V3 Turbo", "OpenAI", 1.61,
           "Efficient Whisper model for speech processing",
           weights="mobiuslabsgmbh/faster-whisper-large-v3-turbo",
           backend=Backend.WHISPER,
           alternate="deepdml/faster-whisper-large-v3-turbo-ct2"),
]

# ─────────────────────────────────────────────────────────
# EMBEDDING
# ─────────────────────────────────────────────────────────

EMBEDDING_MODELS = [
    _model("snowflake-arctic-embed2", "Snowflake Arctic Embed 2", "Snowflake", 0.6,
           "Latest Snowflake model with multilingual support",
           weights="https://huggingface.co/lmstudiocommunity/snowflake-arctic-embed2-gguf",
           alternate="https://ollama.com/directory/snowflake-arctic-embed2-mlx"),
    _model("bge-m3", "BGE M3", "BAAI", 0.3,
           "BAAI's versatile multilingual model",
           weights="https://huggingface.co/lmstudiocommunity/bge-m3-gguf",
           alternate="https://ollama.com/directory/bge-m3-mlx"),
    _model("mxbai-embed-large", "MxBai Embed Large", "MixedBread.ai", 0.17,
           "MixedBread.ai's large model",
           weights="https://huggingface.co/lmstudiocommunity/mxbai-embed-large-gguf",
           alternate="https://ollama.com/directory/mxbai-embed-large-mlx"),
    _model("granite-embedding-278m", "Granite Embedding 278M", "IBM", 0.14,
           "IBM's multilingual model",
           weights="https://huggingface.co/lmstudiocommunity/granite-embedding-278m-gguf",
           alternate="https://ollama.com/directory/granite-embedding-278m-mlx"),
    _model("bge-large", "BGE Large", "BAAI", 0.17,
           "BAAI's English model",
           weights="https://huggingface.co/lmstudiocommunity/bge-large-gguf",
           alternate="https://ollama.com/directory/bge-large-mlx"),
    _model("snowflake-arctic-embed-335m", "Snowflake Arctic Embed 335M", "Snowflake", 0.17,
           "Snowflake's medium model",
           weights="https://huggingface.co/lmstudiocommunity/snowflake-arctic-embed-335m-gguf",
           alternate="https://ollama.com/directory/snowflake-arctic-embed-335m-mlx"),
    _model("paraphrase-multilingual", "Paraphrase Multilingual", "Sentence Transformers", 0.14,
           "Sentence transformers model",
           weights="https://huggingface.co/lmstudiocommunity/paraphrase-multilingual-gguf",
           alternate="https://ollama.com/directory/paraphrase-multilingual-mlx"),
    _model("nomic-embed-text", "Nomic Embed Text", "Nomic", 0.008,
           "High-performing with large context",
           weights="https://huggingface.co/lmstudiocommunity/nomic-embed-text-gguf",
           alternate="https://ollama.com/directory/nomic-embed-text-mlx"),
    _model("granite-embedding-30m", "Granite Embedding 30M", "IBM", 0.015,
           "IBM's English-only model",
           weights="https://huggingface.co/lmstudiocommunity/granite-embedding-30m-gguf",
           alternate="https://ollama.com/directory/granite-embedding-30m-mlx"),
    _model("all-minilm-33m", "All-MiniLM 33M", "Microsoft", 0.017,
           "Efficient small model",
           weights="https://huggingface.co/lmstudiocommunity/all-minilm-33m-gguf",
           alternate="https://ollama.com/directory/all-minilm-33m-mlx"),
]

# ─────────────────────────────────────────────────────────
# SPEECH
# ─────────────────────────────────────────────────────────

SPEECH_MODELS = [
    _model("Kokoro-82M-4bit", "Kokoro 82M (4-bit)", "Hexgrad", 0.08,
           "Small text-to-speech model, 4-bit weights",
           backend=Backend.KOKORO,
           alternate="mlx-community/Kokoro-82M-4bit"),
    _model("Kokoro-82M-6bit", "Kokoro 82M (6-bit)", "Hexgrad", 0.1,
           "Small text-to-speech model, 6-bit weights",
           backend=Backend.KOKORO,
           alternate="mlx-community/Kokoro-82M-6bit"),
    _model("Kokoro-82M-8bit", "Kokoro 82M (8-bit)", "Hexgrad", 0.12,
           "Small text-to-speech model, 8-bit weights",
           backend=Backend.KOKORO,
           alternate="mlx-community/Kokoro-82M-8bit"),
    _model("Kokoro-82M-bf16", "Kokoro 82M (bf16)", "Hexgrad", 0.33,
           "Small text-to-speech model, full precision",
           backend=Backend.KOKORO,
           alternate="mlx-community/Kokoro-82M-bf16"),
]


DEFAULT_CATALOG: dict[Capability, list[ModelDescriptor]] = {
    Capability.CORE: CORE_MODELS,
    Capability.REASONING: REASONING_MODELS,
    Capability.VISION: VISION_MODELS,
    Capability.AUDIO: AUDIO_MODELS,
    Capability.EMBEDDING: EMBEDDING_MODELS,
    Capability.SPEECH: SPEECH_MODELS,
}

DEFAULT_MODELS: dict[Capability, str] = {
    Capability.CORE: "mistral-small-24b-instruct-2501-4bit",
    Capability.REASONING: "DeepHermes-3-Llama-3-8B-Preview-4Bit",
    Capability.VISION: "gemma-3-12b-it-4bit",
    Capability.AUDIO: "openai_whisper-large-v3-v20240930_turbo",
    Capability.EMBEDDING: "nomic-embed-text",
    Capability.SPEECH: "Kokoro-82M-4bit",
}
