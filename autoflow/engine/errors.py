"""
Error taxonomy for the automation engine.

Every failure that can end a Run is one of these. None of them is shown
to end users; they are recorded in the Automation Log and on the Run.
"""

from typing import List
from enum import Enum


class AutomationError(Exception):
    """Base class for all engine errors."""


class StructuralError(AutomationError):
    """The node graph itself is broken (dangling reference, suspected cycle)."""


class AutomationLoadError(StructuralError):
    """An automation failed validation when loaded for execution or saved."""

    def __init__(self, automation_id: str, errors: List[str]):
        self.automation_id = automation_id
        self.errors = list(errors)
        super().__init__(
            f"Automation '{automation_id}' is invalid: {'; '.join(self.errors)}"
        )


class ConditionError(AutomationError):
    """Condition parameters are malformed."""


class DelayError(AutomationError):
    """Delay parameters cannot be turned into a resume time."""


class ActionErrorKind(str, Enum):
    """How an action failed, which decides whether it is retried."""
    INVALID_PARAMS = "invalid_params"
    TRANSIENT = "transient"
    COLLABORATOR_UNAVAILABLE = "collaborator_unavailable"


class ActionError(AutomationError):
    """
    Failure reported by an action (or raised on its behalf).

    Attributes:
        kind: Failure classification
        message: Human-readable description
    """

    def __init__(self, kind: ActionErrorKind, message: str):
        self.kind = ActionErrorKind(kind)
        self.message = message
        super().__init__(f"{self.kind.value}: {message}")

    @property
    def retryable(self) -> bool:
        return self.kind != ActionErrorKind.INVALID_PARAMS

    @classmethod
    def invalid_params(cls, message: str) -> "ActionError":
        return cls(ActionErrorKind.INVALID_PARAMS, message)

    @classmethod
    def transient(cls, message: str) -> "ActionError":
        return cls(ActionErrorKind.TRANSIENT, message)

    @classmethod
    def unavailable(cls, message: str) -> "ActionError":
        return cls(ActionErrorKind.COLLABORATOR_UNAVAILABLE, message)
