"""
Engine package - Automation model, graph validation and execution.
"""

from autoflow.engine.errors import (
    AutomationError,
    StructuralError,
    AutomationLoadError,
    ConditionError,
    DelayError,
    ActionError,
    ActionErrorKind,
)
from autoflow.engine.models import (
    Automation,
    AutomationLogEntry,
    Branches,
    LogStatus,
    Node,
    Run,
    RunStatus,
    Trigger,
)
from autoflow.engine.conditions import ConditionEvaluator
from autoflow.engine.graph import AutomationGraph

__all__ = [
    "AutomationError",
    "StructuralError",
    "AutomationLoadError",
    "ConditionError",
    "DelayError",
    "ActionError",
    "ActionErrorKind",
    "Automation",
    "AutomationLogEntry",
    "Branches",
    "LogStatus",
    "Node",
    "Run",
    "RunStatus",
    "Trigger",
    "ConditionEvaluator",
    "AutomationGraph",
]
