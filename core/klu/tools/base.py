"""
Base classes for Klu tools.
Defines the tool result contract and the closed set of typed tool requests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional, Union

from klu.engine.cancellation import CancellationToken
from klu.engine.types import ToolCall
from klu.errors import InvalidParameters, UnknownTool


class ToolName(str, Enum):
    """Every tool the dispatcher knows how to run."""
    TRANSCRIBE_AUDIO = "transcribe_audio"
    ANALYZE_IMAGE = "analyze_image"
    PERFORM_REASONING = "perform_reasoning"
    LIST_FILES = "list_files"


class ToolCategory(str, Enum):
    """Categories of tools."""
    AUDIO = "audio"
    VISION = "vision"
    REASONING = "reasoning"
    FILESYSTEM = "filesystem"


@dataclass
class ToolResult:
    """
    Result of a tool execution.

    status: "success" | "error"
    output: text handed back to the model on success
    error: message handed back to the model on failure
    """

    call_id: str
    tool_name: str
    status: Literal["success", "error"]
    output: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == "success"

    def as_message_text(self) -> str:
        """Text folded back into the conversation."""
        if self.success:
            return self.output or ""
        return f"Error: {self.error}"

    def to_dict(self) -> dict:
        return {
            "call_id": self.call_id,
            "tool_name": self.tool_name,
            "status": self.status,
            "success": self.success,
            "output": self.output,
            "error": self.error,
        }


# ─────────────────────────────────────────────────────────
# TYPED REQUESTS
# ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AudioRequest:
    path: str


@dataclass(frozen=True)
class ImageRequest:
    path: str


@dataclass(frozen=True)
class ReasoningRequest:
    problem: str


@dataclass(frozen=True)
class ListFilesRequest:
    directory: str


ToolRequest = Union[AudioRequest, ImageRequest, ReasoningRequest, ListFilesRequest]


def _string_argument(call: ToolCall, key: str) -> str:
    value = call.arguments.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidParameters(f"{call.name} requires a non-empty '{key}' string parameter")
    return value.strip()


def to_request(call: ToolCall) -> ToolRequest:
    """
    Validate a raw tool call into its typed request.

    Raises:
        UnknownTool: If no tool has this name
        InvalidParameters: If the required argument is missing or not a string
    """
    try:
        name = ToolName(call.name)
    except ValueError:
        raise UnknownTool(call.name) from None

    match name:
        case ToolName.TRANSCRIBE_AUDIO:
            return AudioRequest(path=_string_argument(call, "audio_path"))
        case ToolName.ANALYZE_IMAGE:
            return ImageRequest(path=_string_argument(call, "image_path"))
        case ToolName.PERFORM_REASONING:
            return ReasoningRequest(problem=_string_argument(call, "problem"))
        case ToolName.LIST_FILES:
            return ListFilesRequest(directory=_string_argument(call, "directory"))


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""
    name: str
    type: str  # "string", "integer", "boolean", "array"
    description: str
    required: bool = True
    default: Any = None


@dataclass
class Tool(ABC):
    """Base class for all tools."""
    name: ToolName
    description: str
    category: ToolCategory
    parameters: list[ToolParameter] = field(default_factory=list)

    @abstractmethod
    async def execute(self, request: ToolRequest, token: CancellationToken) -> str:
        """Run the tool. Raises ToolError subclasses for bad input."""
        pass


def get_tools_prompt(tools: list[Tool]) -> str:
    """Generate a prompt describing available tools."""
    if not tools:
        return ""

    lines = ["# Available Tools\n"]

    for tool in tools:
        params_desc = ", ".join(
            f"{p.name}: {p.type}" + (" (required)" if p.required else " (optional)")
            for p in tool.parameters
        )
        lines.append(f"## {tool.name.value}")
        lines.append(f"{tool.description}")
        if params_desc:
            lines.append(f"Parameters: {params_desc}")
        lines.append("")

    lines.append("""
# How to Use Tools

To call a tool, respond with a JSON block in this format and nothing else:

```json
{"id": "call_1", "name": "tool_name", "parameters": {"param1": "value1"}}
```

You may emit several blocks to call several tools. Each call needs its own id.

EXAMPLE:

List files:
```json
{"id": "call_1", "name": "list_files", "parameters": {"directory": "/Users/example/Downloads"}}
```

IMPORTANT:
- Do NOT guess file contents, transcripts or image details. Use the tools.
- After the tool results arrive, answer the user using them.
""")

    return "\n".join(lines)
