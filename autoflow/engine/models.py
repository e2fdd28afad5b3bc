"""
Data model for automations, runs and the automation log.

Stored documents are camelCase (``isEnabled``, ``subscriberId``); the Python
attributes are snake_case. Both spellings are accepted when parsing.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from enum import Enum
import uuid


# Control node types; every other type names an action
CONDITION = "condition"
DELAY = "delay"
END = "end"
ACTION = "action"  # Generic action node, capability named in params["action"]

CONTROL_TYPES = frozenset({CONDITION, DELAY, END})


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Document(BaseModel):
    """Base for camelCase documents."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible camelCase dictionary."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        return cls.model_validate(data)


# ============================================================
# Automation definition
# ============================================================

class Branches(Document):
    """True/false successors of a condition node."""
    true: Optional[str] = None
    false: Optional[str] = None

    def targets(self) -> List[str]:
        return [t for t in (self.true, self.false) if t]


class Node(Document):
    """
    One step of an automation graph.

    Attributes:
        id: Unique id within the automation
        type: Control type (condition, delay, end) or an action name
        label: Display label only
        params: Type-specific parameters
        next: Unconditional successor
        branches: Conditional successors (condition nodes only)
        position: Editor coordinates, ignored by the engine
    """

    id: str
    type: str
    label: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)
    next: Optional[str] = None
    branches: Optional[Branches] = None
    position: Optional[Dict[str, Any]] = None

    @field_validator("id")
    @classmethod
    def _id_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("Node id cannot be empty")
        return value

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        # Stored documents use EMAIL / DELAY / CONDITION / END
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _single_successor_kind(self) -> "Node":
        if self.next and self.branches is not None and self.branches.targets():
            raise ValueError(
                f"Node '{self.id}' has both 'next' and 'branches'; only one is allowed"
            )
        return self

    @property
    def is_action(self) -> bool:
        return self.type not in CONTROL_TYPES

    @property
    def action_type(self) -> Optional[str]:
        """Registry key for action nodes, None for control nodes."""
        if not self.is_action:
            return None
        if self.type == ACTION:
            action = self.params.get("action")
            return action.strip().lower() if isinstance(action, str) else None
        return self.type

    def successors(self) -> List[str]:
        """All node ids this node can advance to."""
        if self.branches is not None:
            return self.branches.targets()
        return [self.next] if self.next else []


class Trigger(Document):
    """The event type (and filter) that starts runs of an automation."""
    id: str = ""
    type: str
    params: Dict[str, Any] = Field(default_factory=dict)


class Automation(Document):
    """
    A stored trigger + node graph.

    Node order is authoring order. The entry node is ``start_node_id`` when
    set, otherwise the first node.
    """

    id: str = Field(default_factory=new_id)
    name: str
    is_enabled: bool = True
    user_id: Optional[str] = None
    trigger: Trigger
    nodes: List[Node] = Field(default_factory=list)
    start_node_id: Optional[str] = None
    editor_data: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _unique_node_ids(self) -> "Automation":
        seen = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValueError(f"Duplicate node id '{node.id}'")
            seen.add(node.id)
        return self

    @property
    def entry_node_id(self) -> Optional[str]:
        if self.start_node_id:
            return self.start_node_id
        return self.nodes[0].id if self.nodes else None


# ============================================================
# Runs
# ============================================================

class RunStatus(str, Enum):
    """Lifecycle of a run."""
    RUNNING = "running"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAILED = "failed"


class Run(Document):
    """
    Execution cursor of one automation for one subscriber.

    Everything needed to continue a suspended run lives here, so a run can
    be dropped from memory and rebuilt from storage.
    """

    run_id: str = Field(default_factory=new_id)
    automation_id: str
    subscriber_id: str
    trigger_instance_id: str
    current_node_id: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    status: RunStatus = RunStatus.RUNNING
    visits: int = 0
    resume_at: Optional[datetime] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_finished(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.FAILED)


# ============================================================
# Automation log
# ============================================================

class LogStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class AutomationLogEntry(Document):
    """One node execution attempt. Never mutated once written."""

    id: str = Field(default_factory=new_id)
    automation_id: str
    node_id: str
    subscriber_id: str
    run_id: Optional[str] = None
    trigger_instance_id: Optional[str] = None
    status: LogStatus
    attempt: int = 1
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Dict[str, Any] = Field(default_factory=dict)
    executed_at: datetime = Field(default_factory=utcnow)
