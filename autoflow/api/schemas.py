"""
Pydantic Schemas for API Request/Response Models.

Automation, run and log documents are returned in their stored camelCase
form; the envelopes around them are defined here.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from autoflow.engine.models import AutomationLogEntry, Run
from autoflow.events import EventType


# ============================================================
# Automation Schemas
# ============================================================

class AutomationSaveResponse(BaseModel):
    """Response after saving an automation."""
    automation_id: str = Field(..., description="ID of the saved automation")
    name: str
    is_enabled: bool
    node_count: int
    message: str = Field(default="Automation saved successfully")
    mermaid_diagram: Optional[str] = Field(None, description="Mermaid diagram of the graph")


class AutomationDetailResponse(BaseModel):
    """A stored automation with its diagram."""
    automation: Dict[str, Any]
    mermaid_diagram: str


class AutomationListResponse(BaseModel):
    """List of stored automations."""
    automations: List[Dict[str, Any]]
    total: int


class AutomationEnabledRequest(BaseModel):
    """Enable or disable an automation."""
    enabled: bool

    class Config:
        json_schema_extra = {"example": {"enabled": False}}


class NodeReportResponse(BaseModel):
    """Per-node success/failure counts."""
    automation_id: str
    nodes: Dict[str, Dict[str, int]]


# ============================================================
# Event Schemas
# ============================================================

class EventPublishRequest(BaseModel):
    """A domain event to publish on the bus."""
    type: EventType = Field(..., description="Event type")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Event payload")
    event_id: Optional[str] = Field(
        None,
        description="Stable id for redelivery; becomes the trigger instance id",
    )

    class Config:
        json_schema_extra = {
            "example": {
                "type": "new_lead",
                "payload": {
                    "subscriberId": "sub-123",
                    "email": "lead@example.com",
                    "name": "Ada",
                    "country": "US",
                    "lists": ["list-1"],
                },
                "event_id": "form-submission-42",
            }
        }


class EventPublishResponse(BaseModel):
    """Acknowledgement for a published event. Runs start in the background."""
    event_id: str
    type: str
    message: str = Field(default="Event accepted")


# ============================================================
# Run / Log Schemas
# ============================================================

class RunListResponse(BaseModel):
    """Runs of an automation."""
    runs: List[Run]
    total: int


class LogListResponse(BaseModel):
    """Automation log entries, oldest first."""
    entries: List[AutomationLogEntry]
    total: int


class ResumeResponse(BaseModel):
    """Outcome of a manual resume."""
    run_id: str
    resumed: bool
    run: Optional[Run] = None


# ============================================================
# Action Schemas
# ============================================================

class ActionInfo(BaseModel):
    """Information about a registered action."""
    name: str
    description: str
    parameters: Dict[str, str]
    aliases: List[str] = Field(default_factory=list)


class ActionListResponse(BaseModel):
    """List of registered actions."""
    actions: List[ActionInfo]
    total: int


# ============================================================
# Error Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
    errors: Optional[List[str]] = None
