"""
Actions package - Action registry and built-in actions.
"""

from autoflow.actions.registry import ActionRegistry, ActionSpec
from autoflow.actions.builtin import (
    EmailSender,
    TaggingService,
    InMemoryEmailSender,
    InMemoryTaggingService,
    register_builtin_actions,
    default_registry,
)

__all__ = [
    "ActionRegistry",
    "ActionSpec",
    "EmailSender",
    "TaggingService",
    "InMemoryEmailSender",
    "InMemoryTaggingService",
    "register_builtin_actions",
    "default_registry",
]
