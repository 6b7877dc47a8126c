"""
Loaded model handles.
A handle owns the in-memory weights of one model until it is released.
"""

import asyncio
import base64
import io
import queue
import threading
from abc import ABC, abstractmethod
from contextlib import aclosing
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Iterator

from klu.engine.types import GenerationParameters
from klu.models.catalog import ModelDescriptor
from klu.utils.logging import logger


class ModelHandle(ABC):
    """Ready-to-run model. Owned by the model cache."""

    def __init__(self, descriptor: ModelDescriptor):
        self.descriptor = descriptor
        self.released = False

    @property
    def model_id(self) -> str:
        return self.descriptor.id

    @abstractmethod
    def stream(
        self, messages: list[dict], parameters: GenerationParameters
    ) -> AsyncIterator[str]:
        """Yield output text chunks for a chat-formatted prompt."""

    def release(self) -> None:
        """Free the weights. Safe to call more than once."""
        self.released = True


class ThreadedModelHandle(ModelHandle):
    """
    Base for handles around blocking native models.

    Inference runs in a background thread and chunks cross over via a queue.
    The native model is not reentrant: a thread holds the handle lock for the
    whole generation, so streams on one handle run one after another and
    release() waits for the running one to finish.
    """

    def __init__(self, descriptor: ModelDescriptor):
        super().__init__(descriptor)
        self._lock = threading.Lock()

    async def _stream_in_thread(
        self, produce: Callable[[], Iterator[str]]
    ) -> AsyncIterator[str]:
        loop = asyncio.get_event_loop()
        q: queue.Queue = queue.Queue()
        stop = threading.Event()

        def generate():
            try:
                with self._lock:
                    if self.released:
                        raise RuntimeError(f"Model {self.model_id} has been released")
                    chunks = produce()
                    try:
                        for chunk in chunks:
                            if stop.is_set():
                                break
                            if chunk:
                                q.put(chunk)
                    finally:
                        _close(chunks)
                q.put(None)  # Signal completion
            except Exception as e:
                q.put(e)

        thread = threading.Thread(target=generate, daemon=True)
        thread.start()

        try:
            while True:
                # Check queue with small timeout to allow asyncio
                try:
                    item = await loop.run_in_executor(
                        None, lambda: q.get(timeout=0.1)
                    )
                except queue.Empty:
                    continue
                if item is None:
                    break
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            # Consumer stopped early (cancel or max tokens): let the thread wind down
            stop.set()
            await loop.run_in_executor(None, thread.join)


class LlamaModelHandle(ThreadedModelHandle):
    """Handle around a llama-cpp-python Llama instance."""

    def __init__(self, descriptor: ModelDescriptor, llm: Any, model_path: Path):
        super().__init__(descriptor)
        self.llm = llm
        self.model_path = model_path

    async def stream(
        self, messages: list[dict], parameters: GenerationParameters
    ) -> AsyncIterator[str]:
        if self.released:
            raise RuntimeError(f"Model {self.model_id} has been released")

        def produce() -> Iterator[str]:
            completion = self.llm.create_chat_completion(
                messages=messages,
                max_tokens=parameters.max_tokens,
                temperature=parameters.temperature,
                stream=True,
            )
            try:
                for chunk in completion:
                    delta = chunk["choices"][0].get("delta", {})
                    yield delta.get("content") or ""
            finally:
                _close(completion)

        async with aclosing(self._stream_in_thread(produce)) as chunks:
            async for text in chunks:
                yield text

    def release(self) -> None:
        with self._lock:
            if self.llm is not None:
                # Catch any destructor errors from llama-cpp-python
                try:
                    self.llm.close()
                except Exception as e:
                    logger.warning(f"Error during model cleanup: {e}")
                self.llm = None
            super().release()


class WhisperModelHandle(ThreadedModelHandle):
    """
    Handle around a faster-whisper WhisperModel.

    Transcribes the last audio part of the prompt. The text of the prompt is
    not used, segments are streamed as they are decoded.
    """

    def __init__(self, descriptor: ModelDescriptor, model: Any, model_path: Path):
        super().__init__(descriptor)
        self.model = model
        self.model_path = model_path

    async def stream(
        self, messages: list[dict], parameters: GenerationParameters
    ) -> AsyncIterator[str]:
        if self.released:
            raise RuntimeError(f"Model {self.model_id} has been released")

        audio = find_audio(messages)
        if audio is None:
            raise ValueError(f"{self.model_id} needs an audio input to transcribe")

        def produce() -> Iterator[str]:
            segments, info = self.model.transcribe(io.BytesIO(audio), beam_size=5)
            logger.debug(
                f"Detected language {info.language} ({info.language_probability:.2f})"
            )
            for segment in segments:
                yield segment.text

        async with aclosing(self._stream_in_thread(produce)) as chunks:
            async for text in chunks:
                yield text

    def release(self) -> None:
        with self._lock:
            self.model = None
            super().release()


def _close(iterator: Iterator) -> None:
    close = getattr(iterator, "close", None)
    if close is not None:
        close()


def find_audio(messages: list[dict]) -> bytes | None:
    """Decoded bytes of the last input_audio part in a chat prompt."""
    for message in reversed(messages):
        content = message.get("content")
        if not isinstance(content, list):
            continue
        for part in reversed(content):
            if part.get("type") == "input_audio":
                return base64.b64decode(part["input_audio"]["data"])
    return None
