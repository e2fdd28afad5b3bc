"""
Action API Routes.

Endpoints for listing the registered actions node types can name.
"""

from fastapi import APIRouter, Depends, HTTPException

from autoflow.api.deps import get_runtime
from autoflow.api.schemas import ActionInfo, ActionListResponse, ErrorResponse
from autoflow.runtime import AutomationRuntime


router = APIRouter(prefix="/actions", tags=["Actions"])


@router.get("/", response_model=ActionListResponse)
async def list_actions(
    runtime: AutomationRuntime = Depends(get_runtime),
) -> ActionListResponse:
    """List all registered actions."""
    actions = [ActionInfo(**a) for a in runtime.registry.list_actions()]
    return ActionListResponse(actions=actions, total=len(actions))


@router.get(
    "/{action_name}",
    response_model=ActionInfo,
    responses={404: {"model": ErrorResponse}},
)
async def get_action(
    action_name: str,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> ActionInfo:
    """Get details about a specific action (aliases resolve)."""
    spec = runtime.registry.get(action_name)
    if spec is None:
        raise HTTPException(
            status_code=404,
            detail=f"Action '{action_name}' not found",
        )
    return ActionInfo(**spec.to_dict())
