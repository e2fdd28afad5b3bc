"""
Run API Routes.

Endpoints for inspecting runs and their log entries.
"""

from fastapi import APIRouter, Depends, HTTPException
import logging

from autoflow.api.deps import get_runtime
from autoflow.api.schemas import ErrorResponse, LogListResponse, ResumeResponse
from autoflow.engine.models import Run
from autoflow.runtime import AutomationRuntime


logger = logging.getLogger(__name__)

router = APIRouter(tags=["Runs"])


@router.get(
    "/runs/{run_id}",
    response_model=Run,
    responses={404: {"model": ErrorResponse}},
)
async def get_run(
    run_id: str,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> Run:
    """Get the current cursor and status of a run."""
    run = await runtime.runs.get(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Run '{run_id}' not found")
    return run


@router.get("/runs/{run_id}/logs", response_model=LogListResponse)
async def get_run_logs(
    run_id: str,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> LogListResponse:
    """Log entries of one run, oldest first."""
    entries = await runtime.logs.list_by_run(run_id)
    return LogListResponse(entries=entries, total=len(entries))


@router.post(
    "/runs/{run_id}/resume",
    response_model=ResumeResponse,
    responses={404: {"model": ErrorResponse}},
)
async def resume_run(
    run_id: str,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> ResumeResponse:
    """
    Resume a suspended run now, ignoring its resume time.

    Returns `resumed: false` if the run is not suspended.
    """
    if await runtime.runs.get(run_id) is None:
        raise HTTPException(status_code=404, detail=f"Run '{run_id}' not found")

    run = await runtime.executor.resume(run_id)
    return ResumeResponse(run_id=run_id, resumed=run is not None, run=run)


@router.get("/subscribers/{subscriber_id}/logs", response_model=LogListResponse)
async def get_subscriber_logs(
    subscriber_id: str,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> LogListResponse:
    """Log entries for one subscriber across all automations."""
    entries = await runtime.logs.list_by_subscriber(subscriber_id)
    return LogListResponse(entries=entries, total=len(entries))
