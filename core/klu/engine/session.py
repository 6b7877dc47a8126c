"""
Conversation session: the entry point a front end calls to chat.

One session runs at most one turn at a time. A turn generates with the core
model, dispatches any tool calls it emits, feeds the results back and repeats
until the model answers without calling a tool.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from klu.context.threads import ThreadStore
from klu.engine.cancellation import CancellationToken
from klu.engine.events import EventChannel, SessionEvent, SessionEventKind
from klu.engine.generation import GenerationEngine
from klu.engine.types import ChatMessage, GenerationParameters, MessageKind, Role
from klu.errors import AlreadyGenerating, GenerationCancelled, TooManyToolCalls
from klu.models.catalog import Capability
from klu.models.registry import ModelRegistry
from klu.runtime.cache import ModelCache
from klu.settings import RuntimeSettings
from klu.tools.dispatcher import ToolDispatcher
from klu.utils.logging import logger


class TurnState(str, Enum):
    IDLE = "idle"
    AWAITING_GENERATION = "awaiting_generation"
    DISPATCHING = "dispatching"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TRANSITIONS: dict[TurnState, set[TurnState]] = {
    TurnState.IDLE: {TurnState.AWAITING_GENERATION},
    TurnState.AWAITING_GENERATION: {
        TurnState.DISPATCHING,
        TurnState.COMPLETED,
        TurnState.CANCELLED,
        TurnState.IDLE,  # failure
    },
    TurnState.DISPATCHING: {
        TurnState.AWAITING_GENERATION,
        TurnState.CANCELLED,
        TurnState.IDLE,  # failure
    },
    TurnState.COMPLETED: {TurnState.IDLE},
    TurnState.CANCELLED: {TurnState.IDLE},
}


@dataclass
class TurnOutcome:
    """How a turn ended. message is the final assistant message when completed."""

    state: TurnState
    message: Optional[ChatMessage] = None
    thinking_time: float = 0.0
    tool_rounds: int = 0


class ConversationSession:
    """
    Coordinates the model cache, the generation engine and the tool dispatcher
    for one conversation partner.

    Observable state: is_thinking, thinking_time, is_generating, state, plus
    the events published on the session's EventChannel.
    """

    def __init__(
        self,
        session_id: str,
        cache: ModelCache,
        engine: GenerationEngine,
        dispatcher: ToolDispatcher,
        registry: ModelRegistry,
        settings: RuntimeSettings,
        store: ThreadStore,
        events: Optional[EventChannel] = None,
    ):
        self.session_id = session_id
        self.cache = cache
        self.engine = engine
        self.dispatcher = dispatcher
        self.registry = registry
        self.settings = settings
        self.store = store
        self.events = events or EventChannel()

        self.state = TurnState.IDLE
        self.is_thinking = False
        self.thinking_time = 0.0  # seconds, last finished turn

        # In-flight guard: the token of the running turn, None when idle
        self._token: Optional[CancellationToken] = None
        self._started = 0.0

    @property
    def is_generating(self) -> bool:
        return self._token is not None

    # ─────────────────────────────────────────────────────────
    # ENTRY POINTS
    # ─────────────────────────────────────────────────────────

    async def send(self, content: str, thread_id: str) -> Optional[TurnOutcome]:
        """
        Run one user turn.

        Returns:
            None for empty input, otherwise the turn outcome (completed or cancelled)

        Raises:
            AlreadyGenerating: If a turn is already running in this session
            ModelNotFound, LoadFailed, TooManyToolCalls: The turn was aborted
        """
        if not content or not content.strip():
            return None

        if self._token is not None:
            raise AlreadyGenerating(self.session_id)

        token = CancellationToken()
        self._token = token
        self._started = started = time.monotonic()

        try:
            self._transition(TurnState.AWAITING_GENERATION)
            self.store.append_message(thread_id, Role.USER, content)

            self.is_thinking = True
            self._emit(SessionEventKind.THINKING_STARTED, thread_id=thread_id)

            return await self._run_turn(thread_id, token, started)

        except GenerationCancelled:
            logger.info(f"Session {self.session_id}: turn cancelled")
            return TurnOutcome(
                state=TurnState.CANCELLED,
                thinking_time=time.monotonic() - started,
            )

        except Exception as e:
            if token.is_cancelled:
                # Stopped while a load or tool was failing: the stop wins
                logger.info(f"Session {self.session_id}: turn cancelled ({e})")
                return TurnOutcome(
                    state=TurnState.CANCELLED,
                    thinking_time=time.monotonic() - started,
                )
            logger.error(f"Session {self.session_id}: turn failed: {e}")
            self._emit(SessionEventKind.FAILED, error=str(e), error_type=type(e).__name__)
            raise

        finally:
            if self._token is token:
                self._release(started)

    def stop(self) -> bool:
        """
        Cancel the running turn, whatever stage it is in.

        Returns:
            True if a turn was running
        """
        token = self._token
        if token is None:
            return False

        token.cancel()
        if self.state in (TurnState.AWAITING_GENERATION, TurnState.DISPATCHING):
            self._transition(TurnState.CANCELLED)
        self._release(self._started)
        self._emit(SessionEventKind.CANCELLED)
        logger.info(f"Session {self.session_id}: stop requested")
        return True

    # ─────────────────────────────────────────────────────────
    # TURN
    # ─────────────────────────────────────────────────────────

    async def _run_turn(
        self, thread_id: str, token: CancellationToken, started: float
    ) -> TurnOutcome:
        config = self.settings.config
        working = self.store.history(thread_id)
        system_prompt = self._system_prompt()
        parameters = GenerationParameters(
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )
        model_id = self.registry.resolve(
            Capability.CORE, self.settings.selected_model(Capability.CORE.value)
        ).id

        rounds = 0
        async with self.cache.lease(Capability.CORE, model_id) as handle:
            while True:
                result = await self.engine.generate(
                    working, system_prompt, handle, parameters, token,
                    on_token=self._on_token,
                )
                if not result.tool_calls:
                    break

                if rounds >= config.max_tool_rounds:
                    raise TooManyToolCalls(config.max_tool_rounds)
                rounds += 1

                token.raise_if_cancelled()
                working.append(
                    self.store.append_message(
                        thread_id,
                        Role.ASSISTANT,
                        result.output_text,
                        kind=MessageKind.TOOL_CALL,
                        generating_time=result.elapsed,
                        tool_calls=result.tool_calls,
                    )
                )

                self._transition(TurnState.DISPATCHING)
                for call in result.tool_calls:
                    self._emit(
                        SessionEventKind.TOOL_DISPATCHED,
                        tool=call.name,
                        call_id=call.call_id,
                        arguments=call.arguments,
                    )
                    tool_result = await self.dispatcher.dispatch(call, token)

                    # The tool may have finished after stop(): drop its result
                    token.raise_if_cancelled()
                    working.append(
                        self.store.append_message(
                            thread_id,
                            Role.TOOL,
                            tool_result.as_message_text(),
                            kind=MessageKind.TOOL_RESULT,
                            tool_call_id=call.call_id,
                            tool_name=call.name,
                        )
                    )
                    self._emit(SessionEventKind.TOOL_COMPLETED, **tool_result.to_dict())
                self._transition(TurnState.AWAITING_GENERATION)

        token.raise_if_cancelled()
        elapsed = time.monotonic() - started
        message = self.store.append_message(
            thread_id,
            Role.ASSISTANT,
            result.output_text,
            generating_time=elapsed,
        )
        self._transition(TurnState.COMPLETED)
        self._emit(SessionEventKind.COMPLETED, message_id=message.id, generating_time=elapsed)

        return TurnOutcome(
            state=TurnState.COMPLETED,
            message=message,
            thinking_time=elapsed,
            tool_rounds=rounds,
        )

    def _system_prompt(self) -> str:
        tools_prompt = self.dispatcher.tools_prompt()
        base = self.settings.config.system_prompt
        return f"{base}\n\n{tools_prompt}" if tools_prompt else base

    def _on_token(self, chunk: str) -> None:
        self._emit(SessionEventKind.OUTPUT_DELTA, text=chunk)

    # ─────────────────────────────────────────────────────────
    # STATE
    # ─────────────────────────────────────────────────────────

    def _transition(self, target: TurnState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal turn transition {self.state.value} -> {target.value}"
            )
        self.state = target

    def _release(self, started: float) -> None:
        """Clear the in-flight guard and return to idle."""
        self._token = None
        self.is_thinking = False
        self.thinking_time = time.monotonic() - started
        if self.state != TurnState.IDLE:
            self._transition(TurnState.IDLE)
        self._emit(SessionEventKind.THINKING_ENDED, thinking_time=self.thinking_time)

    def _emit(self, kind: SessionEventKind, **data) -> None:
        self.events.emit(SessionEvent(kind=kind, session_id=self.session_id, data=data))
