"""
Automation API Routes.

Endpoints for saving, inspecting and reporting on automations.
"""

from fastapi import APIRouter, Depends, HTTPException, status
import logging

from autoflow.api.deps import get_runtime
from autoflow.api.schemas import (
    AutomationDetailResponse,
    AutomationEnabledRequest,
    AutomationListResponse,
    AutomationSaveResponse,
    ErrorResponse,
    LogListResponse,
    NodeReportResponse,
    RunListResponse,
)
from autoflow.engine.graph import AutomationGraph
from autoflow.engine.models import Automation
from autoflow.runtime import AutomationRuntime


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/automations", tags=["Automations"])


async def _get_or_404(runtime: AutomationRuntime, automation_id: str) -> Automation:
    automation = await runtime.automations.get(automation_id)
    if automation is None:
        raise HTTPException(status_code=404, detail=f"Automation '{automation_id}' not found")
    return automation


@router.put(
    "/{automation_id}",
    response_model=AutomationSaveResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid automation"}},
)
async def save_automation(
    automation_id: str,
    automation: Automation,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> AutomationSaveResponse:
    """
    Create or replace an automation.

    The graph is fully validated before it is stored: dangling node
    references, unknown actions, malformed condition/delay params and
    cycles are all rejected.
    """
    automation.id = automation_id
    graph = AutomationGraph(automation)
    errors = graph.validate(runtime.registry, runtime.executor.evaluator, check_cycles=True)
    if errors:
        raise HTTPException(
            status_code=400,
            detail=f"Automation validation failed: {errors}",
        )

    await runtime.automations.save(automation)
    logger.info(f"Saved automation: {automation_id} ({automation.name})")

    return AutomationSaveResponse(
        automation_id=automation_id,
        name=automation.name,
        is_enabled=automation.is_enabled,
        node_count=len(automation.nodes),
        mermaid_diagram=graph.to_mermaid(),
    )


@router.get("/", response_model=AutomationListResponse)
async def list_automations(
    runtime: AutomationRuntime = Depends(get_runtime),
) -> AutomationListResponse:
    """List all stored automations."""
    automations = await runtime.automations.list_all()
    return AutomationListResponse(
        automations=[a.to_dict() for a in automations],
        total=len(automations),
    )


@router.get(
    "/{automation_id}",
    response_model=AutomationDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_automation(
    automation_id: str,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> AutomationDetailResponse:
    """Get an automation document and its Mermaid diagram."""
    automation = await _get_or_404(runtime, automation_id)
    return AutomationDetailResponse(
        automation=automation.to_dict(),
        mermaid_diagram=AutomationGraph(automation).to_mermaid(),
    )


@router.patch(
    "/{automation_id}/enabled",
    response_model=AutomationSaveResponse,
    responses={404: {"model": ErrorResponse}},
)
async def set_automation_enabled(
    automation_id: str,
    request: AutomationEnabledRequest,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> AutomationSaveResponse:
    """Enable or disable an automation. Runs already in flight are unaffected."""
    automation = await runtime.automations.set_enabled(automation_id, request.enabled)
    if automation is None:
        raise HTTPException(status_code=404, detail=f"Automation '{automation_id}' not found")

    logger.info(f"Automation {automation_id} {'enabled' if request.enabled else 'disabled'}")
    return AutomationSaveResponse(
        automation_id=automation_id,
        name=automation.name,
        is_enabled=automation.is_enabled,
        node_count=len(automation.nodes),
        message="Automation updated successfully",
    )


@router.delete(
    "/{automation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_automation(
    automation_id: str,
    runtime: AutomationRuntime = Depends(get_runtime),
):
    """Delete an automation. Its in-flight runs fail at their next step."""
    deleted = await runtime.automations.delete(automation_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Automation '{automation_id}' not found")
    logger.info(f"Deleted automation: {automation_id}")


# ============================================================
# Reporting Endpoints
# ============================================================

@router.get("/{automation_id}/logs", response_model=LogListResponse)
async def get_automation_logs(
    automation_id: str,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> LogListResponse:
    """Automation log entries, oldest first."""
    entries = await runtime.logs.list_by_automation(automation_id)
    return LogListResponse(entries=entries, total=len(entries))


@router.get("/{automation_id}/report", response_model=NodeReportResponse)
async def get_automation_report(
    automation_id: str,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> NodeReportResponse:
    """Per-node success/failure counts."""
    report = await runtime.logs.node_report(automation_id)
    return NodeReportResponse(automation_id=automation_id, nodes=report)


@router.get("/{automation_id}/runs", response_model=RunListResponse)
async def get_automation_runs(
    automation_id: str,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> RunListResponse:
    """Runs of an automation."""
    runs = await runtime.runs.list_by_automation(automation_id)
    return RunListResponse(runs=runs, total=len(runs))
