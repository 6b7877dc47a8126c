"""
Runtime container: the services the application startup sequence owns.
"""

from typing import Optional

from klu.context.threads import InMemoryThreadStore, ThreadStore
from klu.engine.generation import GenerationEngine
from klu.engine.session import ConversationSession
from klu.models.downloader import ModelDownloader
from klu.models.registry import ModelRegistry
from klu.runtime.cache import ModelCache
from klu.runtime.guardrails import MemoryGuard
from klu.runtime.loader import ModelLoader, default_loader
from klu.settings import RuntimeSettings
from klu.tools.dispatcher import ToolDispatcher
from klu.utils.logging import logger


class KluRuntime:
    """
    Builds and owns the registry, cache, engine, dispatcher and sessions.

    Everything is constructed explicitly here and passed down, so tests can
    swap the loader, settings or store for fakes.
    """

    def __init__(
        self,
        settings: Optional[RuntimeSettings] = None,
        registry: Optional[ModelRegistry] = None,
        loader: Optional[ModelLoader] = None,
        store: Optional[ThreadStore] = None,
        guard: Optional[MemoryGuard] = None,
        downloader: Optional[ModelDownloader] = None,
    ):
        self.settings = settings or RuntimeSettings()
        self.registry = registry or ModelRegistry()
        self.downloader = downloader or ModelDownloader()
        self.loader = loader or default_loader(self.downloader)
        self.store = store or InMemoryThreadStore()
        self.guard = guard or MemoryGuard(self.settings)

        self.cache = ModelCache(self.registry, self.loader, self.settings, self.guard)
        self.engine = GenerationEngine()
        self.dispatcher = ToolDispatcher(self.cache, self.engine, self.registry, self.settings)
        self.sessions: dict[str, ConversationSession] = {}

    def session(self, session_id: str) -> ConversationSession:
        """Get or create the session with this id."""
        if session_id not in self.sessions:
            logger.info(f"Creating session {session_id}")
            self.sessions[session_id] = ConversationSession(
                session_id,
                self.cache,
                self.engine,
                self.dispatcher,
                self.registry,
                self.settings,
                self.store,
            )
        return self.sessions[session_id]

    async def shutdown(self) -> None:
        """Stop running turns and release every loaded model."""
        for session in self.sessions.values():
            session.stop()
        self.cache.clear_cache()
        logger.info("Runtime shut down")
