"""
Shared plumbing for tools that delegate to a specialized model.
"""

from klu.engine.cancellation import CancellationToken
from klu.engine.generation import GenerationEngine
from klu.engine.types import ChatMessage, GenerationParameters, GenerationResult
from klu.models.catalog import Capability
from klu.models.registry import ModelRegistry
from klu.runtime.cache import ModelCache
from klu.settings import RuntimeSettings
from klu.tools.base import Tool


class ModelBackedTool(Tool):
    """A tool whose work is one generation on a capability-specific model."""

    capability: Capability

    def __init__(
        self,
        cache: ModelCache,
        engine: GenerationEngine,
        registry: ModelRegistry,
        settings: RuntimeSettings,
        **tool_fields,
    ):
        super().__init__(**tool_fields)
        self.cache = cache
        self.engine = engine
        self.registry = registry
        self.settings = settings

    def model_id(self) -> str:
        """The user's selection for this capability, else the catalog default."""
        selected = self.settings.selected_model(self.capability.value)
        return self.registry.resolve(self.capability, selected).id

    async def run_model(
        self,
        messages: list[ChatMessage],
        system_prompt: str,
        token: CancellationToken,
        capture_thinking: bool = False,
    ) -> GenerationResult:
        token.raise_if_cancelled()

        parameters = GenerationParameters(
            temperature=self.settings.config.temperature,
            max_tokens=self.settings.config.max_tokens,
            capture_thinking=capture_thinking,
        )
        async with self.cache.lease(self.capability, self.model_id()) as handle:
            return await self.engine.generate(
                messages, system_prompt, handle, parameters, token
            )
