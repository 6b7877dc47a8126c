"""Models API routes."""

from fastapi import APIRouter, Depends, HTTPException

from klu.api.deps import get_runtime, http_error
from klu.api.schemas import (
    CacheClearResponse,
    CapabilityModels,
    LoadedModelsResponse,
    ModelInfo,
    SelectModelRequest,
    SuccessResponse,
)
from klu.engine.runtime import KluRuntime
from klu.errors import ModelNotFound
from klu.models.catalog import Capability
from klu.utils.logging import logger

router = APIRouter(prefix="/models", tags=["models"])


@router.get("", response_model=list[CapabilityModels])
async def list_models(runtime: KluRuntime = Depends(get_runtime)) -> list[CapabilityModels]:
    """Every capability with its catalog."""
    return [_capability_models(runtime, c) for c in runtime.registry.capabilities()]


@router.get("/loaded", response_model=LoadedModelsResponse)
async def loaded_models(runtime: KluRuntime = Depends(get_runtime)) -> LoadedModelsResponse:
    """Models currently held in the cache."""
    return LoadedModelsResponse(
        models=runtime.cache.loaded_models(),
        loads=runtime.cache.loads,
        hits=runtime.cache.hits,
    )


@router.delete("/cache", response_model=CacheClearResponse)
async def clear_cache(runtime: KluRuntime = Depends(get_runtime)) -> CacheClearResponse:
    """Release every loaded model."""
    return CacheClearResponse(released=runtime.cache.clear_cache())


@router.get("/{capability}", response_model=CapabilityModels)
async def get_capability_models(
    capability: str, runtime: KluRuntime = Depends(get_runtime)
) -> CapabilityModels:
    """Catalog for one capability."""
    return _capability_models(runtime, _parse_capability(capability))


@router.put("/{capability}/selection", response_model=SuccessResponse)
async def select_model(
    capability: str,
    request: SelectModelRequest,
    runtime: KluRuntime = Depends(get_runtime),
) -> SuccessResponse:
    """Choose which model serves a capability."""
    cap = _parse_capability(capability)
    try:
        runtime.registry.get(cap, request.model_id)
    except ModelNotFound as e:
        raise http_error(e)

    runtime.settings.select_model(cap.value, request.model_id)
    logger.info(f"Selected {request.model_id} for {cap.value}")
    return SuccessResponse(success=True, message=f"{request.model_id} selected for {cap.value}")


def _parse_capability(value: str) -> Capability:
    try:
        return Capability(value)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown capability: {value}") from None


def _capability_models(runtime: KluRuntime, capability: Capability) -> CapabilityModels:
    default_id = runtime.registry.default_model(capability)
    selected_id = runtime.settings.selected_model(capability.value) or default_id
    loaded_id = runtime.cache.loaded_models().get(capability.value)

    return CapabilityModels(
        capability=capability.value,
        default_model=default_id,
        selected_model=selected_id,
        models=[
            ModelInfo.from_descriptor(
                descriptor,
                is_default=descriptor.id == default_id,
                selected=descriptor.id == selected_id,
                loaded=descriptor.id == loaded_id,
                installed=runtime.downloader.is_downloaded(descriptor),
            )
            for descriptor in runtime.registry.list_models(capability)
        ],
    )
