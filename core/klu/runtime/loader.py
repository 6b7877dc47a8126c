"""
Model loaders turn a descriptor into a ready handle.
"""

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from klu.errors import LoadFailed
from klu.models.catalog import Backend, ModelDescriptor
from klu.models.downloader import ModelDownloader
from klu.runtime.handles import LlamaModelHandle, ModelHandle, WhisperModelHandle
from klu.utils.logging import logger

# llama_cpp.llama_chat_format handler used when a vision model names none
DEFAULT_CHAT_HANDLER = "Llava15ChatHandler"


class ModelLoader(ABC):
    """Produces handles. Any exception it raises surfaces as LoadFailed."""

    @abstractmethod
    async def load(self, descriptor: ModelDescriptor) -> ModelHandle:
        """Load a model into memory."""


class LlamaCppLoader(ModelLoader):
    """
    Loads GGUF weights with llama-cpp-python.
    Supports Metal GPU acceleration on macOS.

    Vision models also get their mmproj weights wired in through a
    multimodal chat handler.
    """

    def __init__(
        self,
        downloader: ModelDownloader | None = None,
        n_ctx: int = 8192,
        n_gpu_layers: int = -1,  # -1 = all layers on GPU
    ):
        self.downloader = downloader or ModelDownloader()
        self.n_ctx = n_ctx
        self.n_gpu_layers = n_gpu_layers

    async def load(self, descriptor: ModelDescriptor) -> ModelHandle:
        model_path = await self.downloader.resolve(descriptor)
        projector_path = await self.downloader.resolve_projector(descriptor)

        logger.info(f"Loading {descriptor.id} from {model_path}...")
        llm = await self._load_model(model_path, projector_path, descriptor.chat_handler)
        logger.info(f"Model {descriptor.id} loaded successfully")

        return LlamaModelHandle(descriptor, llm, model_path)

    async def _load_model(
        self,
        model_path: Path,
        projector_path: Optional[Path] = None,
        chat_handler: Optional[str] = None,
    ):
        """Load model in thread pool."""
        from llama_cpp import Llama, llama_chat_format

        loop = asyncio.get_event_loop()

        def do_load():
            try:
                handler = None
                if projector_path is not None:
                    name = chat_handler or DEFAULT_CHAT_HANDLER
                    handler_cls = getattr(llama_chat_format, name, None)
                    if handler_cls is None:
                        raise RuntimeError(f"llama-cpp-python has no chat handler {name}")
                    handler = handler_cls(clip_model_path=str(projector_path), verbose=False)

                return Llama(
                    model_path=str(model_path),
                    chat_handler=handler,
                    n_ctx=self.n_ctx,
                    n_gpu_layers=self.n_gpu_layers,
                    verbose=False,
                )
            except Exception as e:
                logger.error(f"Failed to load model {model_path}: {e}")
                raise RuntimeError(f"Model loading failed: {e}") from e

        return await loop.run_in_executor(None, do_load)


class WhisperLoader(ModelLoader):
    """Loads CTranslate2 Whisper weights with faster-whisper."""

    def __init__(
        self,
        downloader: ModelDownloader | None = None,
        device: str = "auto",
        compute_type: str = "default",
    ):
        self.downloader = downloader or ModelDownloader()
        self.device = device
        self.compute_type = compute_type

    async def load(self, descriptor: ModelDescriptor) -> ModelHandle:
        model_path = await self.downloader.resolve(descriptor)

        logger.info(f"Loading {descriptor.id} from {model_path}...")
        model = await self._load_model(model_path)
        logger.info(f"Model {descriptor.id} loaded successfully")

        return WhisperModelHandle(descriptor, model, model_path)

    async def _load_model(self, model_path: Path):
        from faster_whisper import WhisperModel

        loop = asyncio.get_event_loop()

        def do_load():
            try:
                return WhisperModel(
                    str(model_path), device=self.device, compute_type=self.compute_type
                )
            except Exception as e:
                logger.error(f"Failed to load model {model_path}: {e}")
                raise RuntimeError(f"Model loading failed: {e}") from e

        return await loop.run_in_executor(None, do_load)


class BackendLoader(ModelLoader):
    """Routes each descriptor to the loader registered for its backend."""

    def __init__(self, loaders: dict[Backend, ModelLoader]):
        self.loaders = loaders

    async def load(self, descriptor: ModelDescriptor) -> ModelHandle:
        loader = self.loaders.get(descriptor.backend)
        if loader is None:
            raise LoadFailed(
                f"No loader for {descriptor.backend.value} models ({descriptor.id})"
            )
        return await loader.load(descriptor)


def default_loader(downloader: ModelDownloader | None = None) -> ModelLoader:
    """llama.cpp for GGUF models, faster-whisper for audio."""
    downloader = downloader or ModelDownloader()
    return BackendLoader(
        {
            Backend.LLAMA_CPP: LlamaCppLoader(downloader),
            Backend.WHISPER: WhisperLoader(downloader),
        }
    )
