"""
Error taxonomy for the Klu runtime.

Tool errors are converted into tool-result text by the dispatcher.
Model and load errors abort the current turn and reach the caller.
"""

from typing import Optional


class KluError(Exception):
    """Base class for all runtime errors."""


class ModelNotFound(KluError):
    """Requested model id is not in the capability's catalog."""

    def __init__(self, model_id: str, capability: Optional[str] = None):
        self.model_id = model_id
        self.capability = capability
        where = f" for capability '{capability}'" if capability else ""
        super().__init__(f"Model '{model_id}' not found{where}")


class LoadFailed(KluError):
    """The model loader could not produce a handle."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Model load failed: {reason}")


class MemoryLimitExceeded(LoadFailed):
    """Loading the model would exceed the configured memory guardrail."""

    def __init__(self, model_id: str, required_bytes: int, limit_bytes: int):
        self.model_id = model_id
        self.required_bytes = required_bytes
        self.limit_bytes = limit_bytes
        super().__init__(
            f"{model_id} needs {required_bytes / 1024**3:.2f} GB "
            f"but the memory limit is {limit_bytes / 1024**3:.2f} GB"
        )


class ToolError(KluError):
    """Base class for errors raised while handling a tool call."""


class InvalidParameters(ToolError):
    """Bad tool argument: missing file, disabled tool, malformed path."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class UnknownTool(ToolError):
    """The model asked for a tool that has no handler."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class AccessDenied(ToolError):
    """The path exists but could not be read."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Permission denied: {path}")


class GenerationCancelled(KluError):
    """Generation stopped because cancellation was requested."""

    def __init__(self, elapsed: float = 0.0):
        self.elapsed = elapsed
        super().__init__("Generation cancelled")


class AlreadyGenerating(KluError):
    """A turn is already in flight for this session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} is already generating a response")


class TooManyToolCalls(KluError):
    """The model kept requesting tools past the round limit."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Too many tool call rounds (limit {limit})")
