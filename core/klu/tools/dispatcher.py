"""
Tool dispatcher: validates tool calls and routes them to their handler.
"""

from klu.engine.cancellation import CancellationToken
from klu.engine.generation import GenerationEngine
from klu.engine.types import ToolCall
from klu.errors import GenerationCancelled, LoadFailed, ModelNotFound, ToolError
from klu.models.registry import ModelRegistry
from klu.runtime.cache import ModelCache
from klu.settings import RuntimeSettings
from klu.tools.audio import TranscribeAudioTool
from klu.tools.base import (
    AudioRequest,
    ImageRequest,
    ListFilesRequest,
    ReasoningRequest,
    Tool,
    ToolResult,
    get_tools_prompt,
    to_request,
)
from klu.tools.filesystem import ListFilesTool
from klu.tools.image import AnalyzeImageTool
from klu.tools.reasoning import PerformReasoningTool
from klu.utils.logging import logger


class ToolDispatcher:
    """
    Runs the tool calls a generation emitted.

    Tool errors (bad arguments, unknown tools, unreadable paths) and unexpected
    handler failures become error results so the conversation can continue.
    Cancellation and model load errors propagate and abort the turn.
    """

    def __init__(
        self,
        cache: ModelCache,
        engine: GenerationEngine,
        registry: ModelRegistry,
        settings: RuntimeSettings,
    ):
        self.settings = settings
        self.audio = TranscribeAudioTool(cache, engine, registry, settings)
        self.image = AnalyzeImageTool(cache, engine, registry, settings)
        self.reasoning = PerformReasoningTool(cache, engine, registry, settings)
        self.files = ListFilesTool(settings)

    def list_tools(self) -> list[Tool]:
        return [self.audio, self.image, self.reasoning, self.files]

    def enabled_tools(self) -> list[Tool]:
        return [t for t in self.list_tools() if self.settings.is_tool_enabled(t.name.value)]

    def tools_prompt(self) -> str:
        return get_tools_prompt(self.enabled_tools())

    async def dispatch(self, call: ToolCall, token: CancellationToken) -> ToolResult:
        """
        Execute one tool call.

        Raises:
            GenerationCancelled: If the token is cancelled before the handler starts
            ModelNotFound, LoadFailed: If the handler's model cannot be acquired
        """
        try:
            request = to_request(call)
            token.raise_if_cancelled()

            logger.info(f"Executing tool: {call.name} with params: {call.arguments}")
            match request:
                case AudioRequest():
                    output = await self.audio.execute(request, token)
                case ImageRequest():
                    output = await self.image.execute(request, token)
                case ReasoningRequest():
                    output = await self.reasoning.execute(request, token)
                case ListFilesRequest():
                    output = await self.files.execute(request, token)

        except (GenerationCancelled, ModelNotFound, LoadFailed):
            raise
        except ToolError as e:
            logger.warning(f"Tool {call.name} rejected: {e}")
            return self._error(call, str(e))
        except Exception as e:
            logger.error(f"Tool {call.name} failed: {e}")
            return self._error(call, f"Tool execution failed: {e}")

        logger.info(f"Tool {call.name} completed")
        return ToolResult(
            call_id=call.call_id,
            tool_name=call.name,
            status="success",
            output=output,
        )

    @staticmethod
    def _error(call: ToolCall, message: str) -> ToolResult:
        return ToolResult(
            call_id=call.call_id,
            tool_name=call.name,
            status="error",
            error=message,
        )
