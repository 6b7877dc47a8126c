"""
Model cache with one slot per capability.
Loads are serialized per slot and concurrent requests share a single load.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from klu.errors import KluError, LoadFailed
from klu.models.catalog import Capability, ModelDescriptor
from klu.models.registry import ModelRegistry
from klu.runtime.guardrails import MemoryGuard
from klu.runtime.handles import ModelHandle
from klu.runtime.loader import ModelLoader
from klu.settings import RuntimeSettings
from klu.utils.logging import logger


@dataclass
class CacheSlot:
    """Holds at most one live handle for a capability."""

    capability: Capability
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    handle: Optional[ModelHandle] = None
    # Handles with open leases, released when the count drops to zero
    leases: dict[ModelHandle, int] = field(default_factory=dict)
    pending: Optional[asyncio.Future] = None
    pending_id: Optional[str] = None

    def holds(self, model_id: str) -> bool:
        return self.handle is not None and self.handle.model_id == model_id


class ModelCache:
    """
    Hands out ready model handles.

    With cache_models_in_memory on, a handle stays in its capability slot
    until clear_cache() or until a different model is loaded into the slot.
    With it off, every acquire loads a fresh handle.

    A handle that is evicted or cleared while leased is detached from its
    slot at once but only released when its last lease ends.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        loader: ModelLoader,
        settings: RuntimeSettings,
        guard: Optional[MemoryGuard] = None,
    ):
        self.registry = registry
        self.loader = loader
        self.settings = settings
        self.guard = guard
        self._slots = {c: CacheSlot(c) for c in registry.capabilities()}

        # Counters for status reporting
        self.loads = 0
        self.hits = 0

    # ─────────────────────────────────────────────────────────
    # ACQUIRE
    # ─────────────────────────────────────────────────────────

    async def acquire(self, capability: Capability, model_id: str) -> ModelHandle:
        """
        Get a ready handle for a model.

        Raises:
            ModelNotFound: If the id is not in the capability's catalog
            LoadFailed: If the loader errors or the memory guardrail trips
        """
        capability = Capability(capability)
        descriptor = self.registry.get(capability, model_id)
        slot = self._slots[capability]

        if not self.settings.cache_models_in_memory:
            async with slot.lock:
                return await self._load(descriptor)

        if slot.holds(descriptor.id):
            self.hits += 1
            return slot.handle

        # Same model already loading: wait for that load instead of starting another
        if slot.pending is not None and slot.pending_id == descriptor.id:
            logger.debug(f"Waiting for in-flight load of {descriptor.id}")
            return await asyncio.shield(slot.pending)

        async with slot.lock:
            if slot.holds(descriptor.id):
                self.hits += 1
                return slot.handle

            future = asyncio.get_running_loop().create_future()
            slot.pending = future
            slot.pending_id = descriptor.id
            try:
                self._evict(slot)
                handle = await self._load(descriptor)
            except asyncio.CancelledError:
                self._fail(future, LoadFailed(f"load of {descriptor.id} was cancelled"))
                raise
            except Exception as e:
                self._fail(future, e)
                raise
            else:
                slot.handle = handle
                future.set_result(handle)
                return handle
            finally:
                slot.pending = None
                slot.pending_id = None

    @asynccontextmanager
    async def lease(
        self, capability: Capability, model_id: str
    ) -> AsyncIterator[ModelHandle]:
        """Acquire a handle for the duration of a block. Uncached handles are released on exit."""
        slot = self._slots[Capability(capability)]
        handle = await self.acquire(capability, model_id)
        slot.leases[handle] = slot.leases.get(handle, 0) + 1
        try:
            yield handle
        finally:
            slot.leases[handle] -= 1
            if not slot.leases[handle]:
                del slot.leases[handle]
                if handle is not slot.handle:
                    handle.release()

    async def _load(self, descriptor: ModelDescriptor) -> ModelHandle:
        if self.guard is not None:
            self.guard.check(descriptor)

        self.loads += 1
        logger.info(f"Loading model {descriptor.id} ({descriptor.size_gb:.2f} GB)")
        try:
            return await self.loader.load(descriptor)
        except KluError:
            raise
        except Exception as e:
            logger.error(f"Failed to load {descriptor.id}: {e}")
            raise LoadFailed(str(e) or type(e).__name__) from e

    @staticmethod
    def _fail(future: asyncio.Future, error: BaseException) -> None:
        future.set_exception(error)
        # Mark retrieved so an unobserved failure does not warn at GC
        future.exception()

    # ─────────────────────────────────────────────────────────
    # EVICTION
    # ─────────────────────────────────────────────────────────

    def _evict(self, slot: CacheSlot) -> None:
        if slot.handle is None:
            return
        handle, slot.handle = slot.handle, None
        if slot.leases.get(handle):
            logger.info(
                f"Detaching {handle.model_id} from {slot.capability.value} slot, "
                f"release deferred until its lease ends"
            )
            return
        logger.info(f"Evicting {handle.model_id} from {slot.capability.value} slot")
        handle.release()

    def clear_cache(self) -> int:
        """Release every cached handle. Returns how many were released."""
        released = 0
        for slot in self._slots.values():
            if slot.handle is not None:
                self._evict(slot)
                released += 1
        logger.info(f"Model cache cleared ({released} released)")
        return released

    # ─────────────────────────────────────────────────────────
    # STATUS
    # ─────────────────────────────────────────────────────────

    def loaded_models(self) -> dict[str, str]:
        """Capability -> id of the model currently held in that slot."""
        return {
            capability.value: slot.handle.model_id
            for capability, slot in self._slots.items()
            if slot.handle is not None
        }
