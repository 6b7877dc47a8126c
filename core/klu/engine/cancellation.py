"""Cooperative cancellation handle passed through generation and tool calls."""

import threading

from klu.errors import GenerationCancelled


class CancellationToken:
    """
    Set once by stop(), polled by the engine after every streamed chunk and
    by tool handlers before they acquire a model or touch the filesystem.

    Backed by a threading.Event so worker threads can poll it too.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, elapsed: float = 0.0) -> None:
        if self._event.is_set():
            raise GenerationCancelled(elapsed)
