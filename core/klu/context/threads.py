"""
Conversation thread storage.

The runtime never owns durable storage: it reads a thread's history and
appends new messages through this interface.
"""

import threading
from abc import ABC, abstractmethod
from typing import Optional

from klu.engine.types import ChatMessage, MessageKind, Role, ToolCall


class ThreadStore(ABC):
    """Persistence collaborator for conversation threads."""

    @abstractmethod
    def history(self, thread_id: str) -> list[ChatMessage]:
        """Ordered messages of a thread, oldest first. Empty for unknown threads."""

    @abstractmethod
    def append_message(
        self,
        thread_id: str,
        role: Role,
        content: str,
        kind: MessageKind = MessageKind.TEXT,
        generating_time: Optional[float] = None,
        tool_call_id: Optional[str] = None,
        tool_name: Optional[str] = None,
        tool_calls: Optional[list[ToolCall]] = None,
    ) -> ChatMessage:
        """Append a message to a thread and return it."""


class InMemoryThreadStore(ThreadStore):
    """Process-local thread storage."""

    def __init__(self):
        self._threads: dict[str, list[ChatMessage]] = {}
        self._lock = threading.Lock()

    def history(self, thread_id: str) -> list[ChatMessage]:
        with self._lock:
            return list(self._threads.get(thread_id, []))

    def append_message(
        self,
        thread_id: str,
        role: Role,
        content: str,
        kind: MessageKind = MessageKind.TEXT,
        generating_time: Optional[float] = None,
        tool_call_id: Optional[str] = None,
        tool_name: Optional[str] = None,
        tool_calls: Optional[list[ToolCall]] = None,
    ) -> ChatMessage:
        message = ChatMessage(
            role=role,
            content=content,
            kind=kind,
            generating_time=generating_time,
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            tool_calls=list(tool_calls or []),
        )
        with self._lock:
            self._threads.setdefault(thread_id, []).append(message)
        return message
