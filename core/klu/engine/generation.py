"""
Generation engine: drives one streaming generation over a loaded model.
"""

import inspect
import time
from contextlib import aclosing
from typing import Any, Callable, Optional

from klu.config import THINK_CLOSE, THINK_OPEN
from klu.engine.cancellation import CancellationToken
from klu.engine.prompt import build_messages
from klu.engine.types import ChatMessage, GenerationParameters, GenerationResult
from klu.runtime.handles import ModelHandle
from klu.tools.parser import ToolCallParser
from klu.utils.logging import logger

TokenCallback = Callable[[str], Any]


class ThinkingTrace:
    """
    Accumulates streamed text and locates the thinking trace in it.
    Reports when the closing delimiter has been produced.
    """

    def __init__(self):
        self.text = ""

    def feed(self, chunk: str) -> bool:
        """Add a chunk. Returns True once the trace is closed."""
        self.text += chunk
        start = self.text.find(THINK_OPEN)
        search_from = start + len(THINK_OPEN) if start >= 0 else 0
        return self.text.find(THINK_CLOSE, search_from) >= 0

    @property
    def trace(self) -> str:
        text = self.text
        start = text.find(THINK_OPEN)
        # No opening delimiter: the template already opened the trace
        body_start = start + len(THINK_OPEN) if start >= 0 else 0
        end = text.find(THINK_CLOSE, body_start)
        body = text[body_start:end] if end >= 0 else text[body_start:]
        return body.strip()

    def wrapped(self) -> str:
        return f"{THINK_OPEN}\n{self.trace}\n{THINK_CLOSE}"


class GenerationEngine:
    """
    Streams a model's output, polling the cancellation token after every chunk.

    A cancelled generation raises GenerationCancelled and its partial text is
    dropped. A completed one returns a GenerationResult with the elapsed time
    and any tool calls found in the output.
    """

    def __init__(self, parser: Optional[ToolCallParser] = None):
        self.parser = parser or ToolCallParser()

    async def generate(
        self,
        turn_input: list[ChatMessage],
        system_prompt: str,
        handle: ModelHandle,
        parameters: GenerationParameters,
        token: CancellationToken,
        on_token: Optional[TokenCallback] = None,
    ) -> GenerationResult:
        """
        Run one generation to completion or cancellation.

        Args:
            turn_input: Conversation history, read-only
            system_prompt: Prepended as the first message
            handle: Loaded model to stream from
            parameters: Temperature, token limit, thinking capture
            token: Polled after every streamed chunk
            on_token: Called with each chunk as it arrives

        Raises:
            GenerationCancelled: If the token was cancelled mid-stream
        """
        started = time.monotonic()
        messages = build_messages(turn_input, system_prompt)
        token.raise_if_cancelled(0.0)

        chunks: list[str] = []
        thinking = ThinkingTrace() if parameters.capture_thinking else None

        async with aclosing(handle.stream(messages, parameters)) as stream:
            async for chunk in stream:
                token.raise_if_cancelled(time.monotonic() - started)

                chunks.append(chunk)
                if on_token is not None:
                    result = on_token(chunk)
                    if inspect.isawaitable(result):
                        await result

                if thinking is not None and thinking.feed(chunk):
                    break
                # One streamed chunk counts as one token
                if len(chunks) >= parameters.max_tokens:
                    logger.debug(f"Reached max_tokens={parameters.max_tokens}")
                    break

        elapsed = time.monotonic() - started
        token.raise_if_cancelled(elapsed)

        if thinking is not None:
            output = thinking.wrapped()
            tool_calls = []
            trace = thinking.trace
        else:
            output = "".join(chunks)
            tool_calls = self.parser.parse(output)
            trace = None

        logger.info(
            f"Generated {len(chunks)} chunks with {handle.model_id} in {elapsed:.2f}s"
            + (f", {len(tool_calls)} tool call(s)" if tool_calls else "")
        )

        return GenerationResult(
            output_text=output,
            elapsed=elapsed,
            tool_calls=tool_calls,
            thinking_trace=trace,
            token_count=len(chunks),
        )
