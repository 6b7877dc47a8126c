"""
Value types shared by the generation engine, the tools and the sessions.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from klu.config import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class MessageKind(str, Enum):
    TEXT = "text"
    TOOL_CALL = "tool_call"  # assistant output that requested tools
    TOOL_RESULT = "tool_result"


class AttachmentKind(str, Enum):
    IMAGE = "image"
    AUDIO = "audio"


@dataclass
class Attachment:
    """Media passed to a model alongside the message text."""

    kind: AttachmentKind
    path: Optional[str] = None
    data_uri: Optional[str] = None  # "data:image/png;base64,..." or "data:audio/wav;base64,..."


@dataclass
class ToolCall:
    """A tool request emitted by the model."""

    name: str
    arguments: dict[str, Any]
    call_id: str

    def to_dict(self) -> dict:
        return {"id": self.call_id, "name": self.name, "arguments": self.arguments}


@dataclass
class ChatMessage:
    """One role-tagged message of a conversation."""

    role: Role
    content: str
    kind: MessageKind = MessageKind.TEXT
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    generating_time: Optional[float] = None  # seconds
    attachments: list[Attachment] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)  # on TOOL_CALL messages
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "kind": self.kind.value,
            "tool_call_id": self.tool_call_id,
            "tool_name": self.tool_name,
            "tool_calls": [call.to_dict() for call in self.tool_calls],
            "generating_time": self.generating_time,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class GenerationParameters:
    """Sampling knobs for one generation."""

    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    capture_thinking: bool = False


@dataclass
class GenerationResult:
    """Outcome of a generation that ran to completion."""

    output_text: str
    elapsed: float  # seconds
    tool_calls: list[ToolCall] = field(default_factory=list)
    thinking_trace: Optional[str] = None
    token_count: int = 0
