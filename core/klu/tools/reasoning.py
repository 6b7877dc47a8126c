"""
Deep reasoning tool backed by a reasoning model.
"""

from klu.engine.cancellation import CancellationToken
from klu.engine.types import ChatMessage, Role
from klu.models.catalog import Capability
from klu.tools.base import ReasoningRequest, ToolCategory, ToolName, ToolParameter
from klu.tools.inference import ModelBackedTool
from klu.utils.logging import logger

REASONING_PROMPT = (
    "You are a highly capable, thoughtful, and precise assistant. Your goal is to "
    "deeply understand the user's intent, ask clarifying questions when needed, "
    "think step-by-step through complex problems, provide clear and accurate "
    "answers, and proactively anticipate helpful follow-up information. Always "
    "prioritize being truthful, nuanced, insightful, and efficient, tailoring your "
    "responses specifically to the user's needs and preferences. Think about the "
    "following problem step by step."
)


class PerformReasoningTool(ModelBackedTool):
    """Return the reasoning model's thinking trace for a problem."""

    capability = Capability.REASONING

    def __init__(self, cache, engine, registry, settings):
        super().__init__(
            cache,
            engine,
            registry,
            settings,
            name=ToolName.PERFORM_REASONING,
            description="Think through a hard problem step by step with a reasoning model",
            category=ToolCategory.REASONING,
            parameters=[
                ToolParameter(
                    name="problem",
                    type="string",
                    description="The problem to reason about",
                    required=True,
                ),
            ],
        )

    async def execute(self, request: ReasoningRequest, token: CancellationToken) -> str:
        logger.info(f"Reasoning about: {request.problem[:80]}")
        message = ChatMessage(
            role=Role.USER,
            content=f"Reason about this problem for the user: {request.problem}",
        )
        result = await self.run_model(
            [message], REASONING_PROMPT, token, capture_thinking=True
        )
        return result.output_text
