"""Shared fakes: a scripted model handle and a counting loader."""

import asyncio
import time
from typing import Optional

import pytest

from klu.engine.runtime import KluRuntime
from klu.models.catalog import Capability, ModelDescriptor
from klu.models.downloader import ModelDownloader
from klu.models.registry import ModelRegistry
from klu.runtime.handles import ModelHandle
from klu.runtime.loader import ModelLoader
from klu.settings import RuntimeSettings


class ScriptedHandle(ModelHandle):
    """Streams canned chunk lists, one list per stream() call (the last one repeats)."""

    def __init__(self, descriptor: ModelDescriptor, scripts: list[list[str]], chunk_delay: float = 0.0):
        super().__init__(descriptor)
        self.scripts = list(scripts)
        self.chunk_delay = chunk_delay
        self.calls: list[list[dict]] = []
        self.yielded = 0

    async def stream(self, messages, parameters):
        self.calls.append(messages)
        chunks = self.scripts.pop(0) if len(self.scripts) > 1 else self.scripts[0]
        for chunk in chunks:
            await asyncio.sleep(self.chunk_delay)
            self.yielded += 1
            yield chunk


class FakeLoader(ModelLoader):
    """Counts loads and hands out ScriptedHandles."""

    def __init__(self, delay: float = 0.0, error: Optional[Exception] = None):
        self.scripts: dict[str, list[list[str]]] = {}
        self.delay = delay
        self.error = error
        self.chunk_delay = 0.0
        self.load_count = 0
        self.handles: list[ScriptedHandle] = []

    async def load(self, descriptor: ModelDescriptor) -> ModelHandle:
        self.load_count += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        handle = ScriptedHandle(
            descriptor,
            self.scripts.get(descriptor.id, [["ok"]]),
            chunk_delay=self.chunk_delay,
        )
        self.handles.append(handle)
        return handle

    def handle_for(self, model_id: str) -> ScriptedHandle:
        return [h for h in self.handles if h.model_id == model_id][-1]


async def wait_for(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


REGISTRY = ModelRegistry()
CORE_ID = REGISTRY.default_model(Capability.CORE)
REASONING_ID = REGISTRY.default_model(Capability.REASONING)
VISION_ID = REGISTRY.default_model(Capability.VISION)
AUDIO_ID = REGISTRY.default_model(Capability.AUDIO)


@pytest.fixture
def settings():
    s = RuntimeSettings(persist=False)
    s.config.guardrails_level = "Off"
    return s


@pytest.fixture
def loader():
    return FakeLoader()


@pytest.fixture
def runtime(settings, loader, tmp_path):
    return KluRuntime(
        settings=settings,
        registry=REGISTRY,
        loader=loader,
        downloader=ModelDownloader(tmp_path / "models"),
    )
