"""Tools API routes."""

from fastapi import APIRouter, Depends, HTTPException

from klu.api.deps import get_runtime
from klu.api.schemas import SuccessResponse, ToolInfo, ToolUpdateRequest
from klu.engine.runtime import KluRuntime
from klu.tools.base import ToolName
from klu.utils.logging import logger

router = APIRouter(tags=["tools"])


@router.get("/tools", response_model=list[ToolInfo])
async def list_tools(runtime: KluRuntime = Depends(get_runtime)) -> list[ToolInfo]:
    """List all available tools."""
    logger.info("Listing tools")
    return [
        ToolInfo(
            id=tool.name.value,
            name=tool.name.value.replace("_", " ").title(),
            description=tool.description,
            category=tool.category.value,
            parameters=[p.name for p in tool.parameters],
            enabled=runtime.settings.is_tool_enabled(tool.name.value),
        )
        for tool in runtime.dispatcher.list_tools()
    ]


@router.put("/tools/{tool_id}", response_model=SuccessResponse)
async def update_tool(
    tool_id: str,
    request: ToolUpdateRequest,
    runtime: KluRuntime = Depends(get_runtime),
) -> SuccessResponse:
    """Toggle a tool on/off."""
    if tool_id not in {t.value for t in ToolName}:
        raise HTTPException(status_code=404, detail="Tool not found")

    logger.info(f"Updating tool {tool_id}: enabled={request.enabled}")
    runtime.settings.set_tool_enabled(tool_id, request.enabled)

    return SuccessResponse(
        success=True,
        message=f"Tool {tool_id} {'enabled' if request.enabled else 'disabled'}",
    )
