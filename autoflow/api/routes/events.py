"""
Event API Routes.

Ingress for domain events produced outside this process.
"""

from fastapi import APIRouter, Depends, HTTPException, status
import logging

from autoflow.api.deps import get_runtime
from autoflow.api.schemas import ErrorResponse, EventPublishRequest, EventPublishResponse
from autoflow.runtime import AutomationRuntime


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["Events"])


@router.post(
    "",
    response_model=EventPublishResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: {"model": ErrorResponse}},
)
async def publish_event(
    request: EventPublishRequest,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> EventPublishResponse:
    """
    Publish a domain event.

    Matching automations start in the background; the response does not
    wait for any run. Re-sending an event with the same `event_id` does not
    start duplicate runs.
    """
    try:
        event = runtime.bus.publish(request.type.value, request.payload, event_id=request.event_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Accepted {event.type} event {event.event_id}")
    return EventPublishResponse(event_id=event.event_id, type=event.type)
