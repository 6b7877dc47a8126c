"""Runtime module - Model loading, handles, and caching."""

from klu.runtime.cache import ModelCache
from klu.runtime.guardrails import GuardrailLevel, MemoryGuard
from klu.runtime.handles import LlamaModelHandle, ModelHandle, WhisperModelHandle
from klu.runtime.loader import (
    BackendLoader,
    LlamaCppLoader,
    ModelLoader,
    WhisperLoader,
    default_loader,
)

__all__ = [
    "BackendLoader",
    "GuardrailLevel",
    "LlamaCppLoader",
    "LlamaModelHandle",
    "MemoryGuard",
    "ModelCache",
    "ModelHandle",
    "ModelLoader",
    "WhisperLoader",
    "WhisperModelHandle",
    "default_loader",
]
