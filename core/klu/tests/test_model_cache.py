import asyncio

import pytest

from conftest import CORE_ID, REGISTRY, FakeLoader, wait_for
from klu.errors import LoadFailed, MemoryLimitExceeded, ModelNotFound
from klu.models.catalog import Capability
from klu.runtime.cache import ModelCache
from klu.runtime.guardrails import MemoryGuard

OTHER_CORE_ID = "phi-4-4bit"


def make_cache(settings, loader, guard=None):
    return ModelCache(REGISTRY, loader, settings, guard)


class TestAcquire:

    @pytest.mark.asyncio
    async def test_sequential_acquire_loads_once(self, settings, loader):
        cache = make_cache(settings, loader)

        first = await cache.acquire(Capability.CORE, CORE_ID)
        second = await cache.acquire(Capability.CORE, CORE_ID)

        assert first is second
        assert loader.load_count == 1
        assert cache.hits == 1

    @pytest.mark.asyncio
    async def test_concurrent_acquire_shares_one_load(self, settings):
        loader = FakeLoader(delay=0.05)
        cache = make_cache(settings, loader)

        handles = await asyncio.gather(
            *(cache.acquire(Capability.CORE, CORE_ID) for _ in range(5))
        )

        assert loader.load_count == 1
        assert all(h is handles[0] for h in handles)

    @pytest.mark.asyncio
    async def test_concurrent_acquire_shares_failure(self, settings):
        loader = FakeLoader(delay=0.05, error=RuntimeError("weights missing"))
        cache = make_cache(settings, loader)

        results = await asyncio.gather(
            *(cache.acquire(Capability.CORE, CORE_ID) for _ in range(3)),
            return_exceptions=True,
        )

        assert loader.load_count == 1
        assert all(isinstance(r, LoadFailed) for r in results)
        assert "weights missing" in str(results[0])
        assert cache.loaded_models() == {}

    @pytest.mark.asyncio
    async def test_failed_load_can_be_retried(self, settings):
        loader = FakeLoader(error=RuntimeError("boom"))
        cache = make_cache(settings, loader)

        with pytest.raises(LoadFailed):
            await cache.acquire(Capability.CORE, CORE_ID)

        loader.error = None
        handle = await cache.acquire(Capability.CORE, CORE_ID)
        assert handle.model_id == CORE_ID
        assert loader.load_count == 2

    @pytest.mark.asyncio
    async def test_unknown_model_is_not_loaded(self, settings, loader):
        cache = make_cache(settings, loader)

        with pytest.raises(ModelNotFound):
            await cache.acquire(Capability.VISION, CORE_ID)
        assert loader.load_count == 0

    @pytest.mark.asyncio
    async def test_memory_guard_blocks_oversized_model(self, settings, loader):
        settings.config.guardrails_level = "Balanced"
        guard = MemoryGuard(settings, memory_reader=lambda: 1024**3)
        cache = make_cache(settings, loader, guard)

        with pytest.raises(MemoryLimitExceeded) as exc:
            await cache.acquire(Capability.CORE, CORE_ID)

        assert isinstance(exc.value, LoadFailed)
        assert loader.load_count == 0


class TestEviction:

    @pytest.mark.asyncio
    async def test_different_model_evicts_previous(self, settings, loader):
        cache = make_cache(settings, loader)

        first = await cache.acquire(Capability.CORE, CORE_ID)
        second = await cache.acquire(Capability.CORE, OTHER_CORE_ID)

        assert first.released
        assert not second.released
        assert cache.loaded_models() == {"core": OTHER_CORE_ID}

    @pytest.mark.asyncio
    async def test_slots_are_independent(self, settings, loader):
        cache = make_cache(settings, loader)

        core = await cache.acquire(Capability.CORE, CORE_ID)
        await cache.acquire(Capability.REASONING, "DeepHermes-3-Llama-3-8B-Preview-4Bit")

        assert not core.released
        assert set(cache.loaded_models()) == {"core", "reasoning"}

    @pytest.mark.asyncio
    async def test_clear_cache_releases_all(self, settings, loader):
        cache = make_cache(settings, loader)
        core = await cache.acquire(Capability.CORE, CORE_ID)

        assert cache.clear_cache() == 1
        assert core.released
        assert cache.loaded_models() == {}

        await cache.acquire(Capability.CORE, CORE_ID)
        assert loader.load_count == 2

    @pytest.mark.asyncio
    async def test_eviction_waits_for_open_lease(self, settings, loader):
        cache = make_cache(settings, loader)

        async with cache.lease(Capability.CORE, CORE_ID) as first:
            second = await cache.acquire(Capability.CORE, OTHER_CORE_ID)

            assert not first.released
            assert cache.loaded_models() == {"core": OTHER_CORE_ID}

        assert first.released
        assert not second.released

    @pytest.mark.asyncio
    async def test_clear_cache_waits_for_open_leases(self, settings, loader):
        cache = make_cache(settings, loader)

        async with cache.lease(Capability.CORE, CORE_ID) as outer:
            async with cache.lease(Capability.CORE, CORE_ID) as inner:
                assert inner is outer
                assert cache.clear_cache() == 1
            assert not outer.released
            assert cache.loaded_models() == {}
        assert outer.released

    @pytest.mark.asyncio
    async def test_evicted_handle_survives_a_running_stream(self, settings, loader):
        loader.chunk_delay = 0.01
        loader.scripts[CORE_ID] = [["word "] * 20]
        cache = make_cache(settings, loader)
        chunks = []

        async def consume():
            async with cache.lease(Capability.CORE, CORE_ID) as handle:
                async for chunk in handle.stream([], None):
                    assert not handle.released
                    chunks.append(chunk)
            return handle

        task = asyncio.create_task(consume())
        await wait_for(lambda: len(chunks) > 2)
        await cache.acquire(Capability.CORE, OTHER_CORE_ID)
        handle = await task

        assert len(chunks) == 20
        assert handle.released


class TestNoCacheMode:

    @pytest.mark.asyncio
    async def test_each_acquire_loads_fresh(self, settings, loader):
        settings.config.cache_models_in_memory = False
        cache = make_cache(settings, loader)

        first = await cache.acquire(Capability.CORE, CORE_ID)
        second = await cache.acquire(Capability.CORE, CORE_ID)

        assert first is not second
        assert loader.load_count == 2
        assert cache.loaded_models() == {}

    @pytest.mark.asyncio
    async def test_lease_releases_uncached_handle(self, settings, loader):
        settings.config.cache_models_in_memory = False
        cache = make_cache(settings, loader)

        async with cache.lease(Capability.CORE, CORE_ID) as handle:
            assert not handle.released
        assert handle.released

    @pytest.mark.asyncio
    async def test_lease_keeps_cached_handle(self, settings, loader):
        cache = make_cache(settings, loader)

        async with cache.lease(Capability.CORE, CORE_ID) as handle:
            pass
        assert not handle.released
