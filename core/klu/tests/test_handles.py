import asyncio
import threading
import time
from types import SimpleNamespace

import pytest

from conftest import AUDIO_ID, CORE_ID, REGISTRY, wait_for
from klu.engine.prompt import build_messages
from klu.engine.types import Attachment, AttachmentKind, ChatMessage, GenerationParameters, Role
from klu.models.catalog import Capability
from klu.runtime.handles import LlamaModelHandle, WhisperModelHandle
from klu.tools.audio import encode_audio

CORE = REGISTRY.get(Capability.CORE, CORE_ID)
AUDIO = REGISTRY.get(Capability.AUDIO, AUDIO_ID)
PROMPT = [{"role": "user", "content": "Hi"}]


class FakeLlama:
    """Stands in for llama_cpp.Llama and records how it is driven."""

    def __init__(self, chunks, delay=0.005, fail_at=None):
        self.chunks = chunks
        self.delay = delay
        self.fail_at = fail_at
        self.calls = []
        self.active = 0
        self.max_active = 0
        self.produced = 0
        self.closed = False
        self.closed_while_active = False
        self._count_lock = threading.Lock()

    def create_chat_completion(self, messages, max_tokens, temperature, stream):
        self.calls.append(
            {"messages": messages, "max_tokens": max_tokens, "temperature": temperature, "stream": stream}
        )
        with self._count_lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            yield {"choices": [{"delta": {"role": "assistant"}}]}
            for i, text in enumerate(self.chunks):
                if i == self.fail_at:
                    raise RuntimeError("decode failed")
                time.sleep(self.delay)
                self.produced += 1
                yield {"choices": [{"delta": {"content": text}}]}
        finally:
            with self._count_lock:
                self.active -= 1

    def close(self):
        self.closed_while_active = self.active > 0
        self.closed = True


async def collect(handle, received=None):
    received = [] if received is None else received
    async for chunk in handle.stream(PROMPT, GenerationParameters(temperature=0.2, max_tokens=64)):
        received.append(chunk)
    return received


class TestLlamaModelHandle:

    @pytest.mark.asyncio
    async def test_streams_delta_content(self):
        llm = FakeLlama(["Hel", "lo"])
        handle = LlamaModelHandle(CORE, llm, model_path=None)

        assert await collect(handle) == ["Hel", "lo"]
        assert llm.calls == [
            {"messages": PROMPT, "max_tokens": 64, "temperature": 0.2, "stream": True}
        ]

    @pytest.mark.asyncio
    async def test_concurrent_streams_run_one_at_a_time(self):
        llm = FakeLlama(["a", "b", "c", "d"], delay=0.01)
        handle = LlamaModelHandle(CORE, llm, model_path=None)

        first, second = await asyncio.gather(collect(handle), collect(handle))

        assert first == second == ["a", "b", "c", "d"]
        assert llm.max_active == 1
        assert len(llm.calls) == 2

    @pytest.mark.asyncio
    async def test_closing_the_stream_stops_native_generation(self):
        llm = FakeLlama(["word "] * 200, delay=0.005)
        handle = LlamaModelHandle(CORE, llm, model_path=None)

        stream = handle.stream(PROMPT, GenerationParameters())
        received = [await stream.__anext__(), await stream.__anext__()]
        await stream.aclose()

        assert received == ["word ", "word "]
        assert llm.active == 0
        assert llm.produced < 200

    @pytest.mark.asyncio
    async def test_release_waits_for_running_generation(self):
        llm = FakeLlama(["x"] * 20, delay=0.01)
        handle = LlamaModelHandle(CORE, llm, model_path=None)
        received = []

        task = asyncio.create_task(collect(handle, received))
        await wait_for(lambda: len(received) >= 2)
        await asyncio.get_event_loop().run_in_executor(None, handle.release)

        assert llm.closed
        assert not llm.closed_while_active
        assert handle.released
        assert await task == ["x"] * 20

    @pytest.mark.asyncio
    async def test_native_error_reaches_consumer(self):
        llm = FakeLlama(["a", "b", "c"], fail_at=1)
        handle = LlamaModelHandle(CORE, llm, model_path=None)

        with pytest.raises(RuntimeError, match="decode failed"):
            await collect(handle)
        assert llm.active == 0

        # The handle lock was given back
        llm.fail_at = None
        assert await collect(handle) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_stream_after_release_is_refused(self):
        llm = FakeLlama(["a"])
        handle = LlamaModelHandle(CORE, llm, model_path=None)
        handle.release()
        handle.release()

        with pytest.raises(RuntimeError, match="released"):
            await collect(handle)
        assert llm.calls == []


class FakeWhisper:
    """Stands in for faster_whisper.WhisperModel."""

    def __init__(self, segments):
        self.segments = segments
        self.audio = None

    def transcribe(self, audio, beam_size):
        self.audio = audio.read()
        info = SimpleNamespace(language="en", language_probability=0.98)
        return (SimpleNamespace(text=text) for text in self.segments), info


class TestWhisperModelHandle:

    def prompt_with_audio(self, tmp_path):
        path = tmp_path / "memo.wav"
        path.write_bytes(b"RIFF0000WAVE")
        message = ChatMessage(
            role=Role.USER,
            content="Transcribe this audio file.",
            attachments=[
                Attachment(kind=AttachmentKind.AUDIO, path=str(path), data_uri=encode_audio(path))
            ],
        )
        return build_messages([message], "Transcribe precisely.")

    @pytest.mark.asyncio
    async def test_transcribes_audio_from_prompt(self, tmp_path):
        model = FakeWhisper([" Hello", " there."])
        handle = WhisperModelHandle(AUDIO, model, model_path=tmp_path)

        chunks = [
            chunk
            async for chunk in handle.stream(self.prompt_with_audio(tmp_path), GenerationParameters())
        ]

        assert "".join(chunks) == " Hello there."
        assert model.audio == b"RIFF0000WAVE"

    @pytest.mark.asyncio
    async def test_prompt_without_audio_is_rejected(self, tmp_path):
        handle = WhisperModelHandle(AUDIO, FakeWhisper(["x"]), model_path=tmp_path)

        with pytest.raises(ValueError, match="audio"):
            async for _ in handle.stream(PROMPT, GenerationParameters()):
                pass

    def test_release_drops_model(self, tmp_path):
        handle = WhisperModelHandle(AUDIO, FakeWhisper([]), model_path=tmp_path)

        handle.release()

        assert handle.model is None
        assert handle.released
