"""Engine module - Generation, cancellation, and conversation sessions."""

from klu.engine.cancellation import CancellationToken
from klu.engine.types import ChatMessage, GenerationParameters, GenerationResult

__all__ = [
    "CancellationToken",
    "ChatMessage",
    "GenerationParameters",
    "GenerationResult",
]
