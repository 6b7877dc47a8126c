"""Pydantic models for API request/response schemas."""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from klu.engine.types import ChatMessage
from klu.models.catalog import ModelDescriptor


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


class SuccessResponse(BaseModel):
    """Generic success response."""

    success: bool
    message: str | None = None


# ─────────────────────────────────────────────────────────
# CHAT
# ─────────────────────────────────────────────────────────


class SendMessageRequest(BaseModel):
    """Chat message request."""

    message: str
    thread_id: str | None = None  # defaults to the session id


class MessageResponse(BaseModel):
    """A stored conversation message."""

    id: str
    role: str
    content: str
    kind: str
    tool_call_id: str | None = None
    tool_name: str | None = None
    tool_calls: list[dict] = []
    generating_time: float | None = None
    timestamp: str

    @classmethod
    def from_message(cls, message: ChatMessage) -> "MessageResponse":
        return cls(**message.to_dict())


class TurnResponse(BaseModel):
    """Outcome of one send."""

    session_id: str
    thread_id: str
    state: str  # completed | cancelled | idle (empty message ignored)
    message: Optional[MessageResponse] = None
    thinking_time: float = 0.0
    tool_rounds: int = 0


class SessionStateResponse(BaseModel):
    """Observable session state."""

    session_id: str
    state: str
    is_thinking: bool
    is_generating: bool
    thinking_time: float


class StopResponse(BaseModel):
    """Result of a stop request."""

    session_id: str
    stopped: bool


# ─────────────────────────────────────────────────────────
# MODELS
# ─────────────────────────────────────────────────────────


class ModelInfo(BaseModel):
    """Catalog entry with runtime status."""

    id: str
    display_name: str
    provider: str
    size_bytes: int
    size: str
    description: str | None = None
    is_default: bool = False
    selected: bool = False
    loaded: bool = False
    installed: bool = False

    @classmethod
    def from_descriptor(cls, descriptor: ModelDescriptor, **status) -> "ModelInfo":
        return cls(
            id=descriptor.id,
            display_name=descriptor.display_name,
            provider=descriptor.provider,
            size_bytes=descriptor.size_bytes,
            size=f"{descriptor.size_gb:.2f} GB",
            description=descriptor.description,
            **status,
        )


class CapabilityModels(BaseModel):
    """Models available for one capability."""

    capability: str
    default_model: str
    selected_model: str
    models: list[ModelInfo]


class LoadedModelsResponse(BaseModel):
    """Cache status."""

    models: dict[str, str]  # capability -> model id
    loads: int
    hits: int


class SelectModelRequest(BaseModel):
    """Choose the model used for a capability."""

    model_config = ConfigDict(protected_namespaces=())

    model_id: str


class CacheClearResponse(BaseModel):
    """Result of clearing the model cache."""

    released: int


# ─────────────────────────────────────────────────────────
# TOOLS
# ─────────────────────────────────────────────────────────


class ToolInfo(BaseModel):
    """Tool information."""

    id: str
    name: str
    description: str
    category: str
    parameters: list[str]
    enabled: bool


class ToolUpdateRequest(BaseModel):
    """Tool update request."""

    enabled: bool
