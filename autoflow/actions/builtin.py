"""
Built-in Actions.

Each action is a thin adapter to an external collaborator (email delivery,
subscriber tagging). The collaborators are passed in, so the same actions
run against real services in production and recording fakes in tests.
"""

from typing import Any, Dict, List, Optional, Set
from abc import ABC, abstractmethod
import logging

from pydantic import AliasChoices, BaseModel, Field, model_validator

from autoflow.actions.registry import ActionRegistry
from autoflow.engine.errors import ActionError


logger = logging.getLogger(__name__)


# ============================================================
# Collaborator interfaces
# ============================================================

class EmailSender(ABC):
    """Delivers one email and returns a delivery confirmation."""

    @abstractmethod
    async def send(
        self, to: str, subject: str, html: str, sender: Optional[str] = None
    ) -> Dict[str, Any]:
        ...


class TaggingService(ABC):
    """Attaches a tag to a subscriber."""

    @abstractmethod
    async def tag(self, subscriber_id: str, tag: str) -> Dict[str, Any]:
        ...


class InMemoryEmailSender(EmailSender):
    """Records sent emails instead of delivering them."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def send(self, to, subject, html, sender=None):
        message = {"to": to, "subject": subject, "html": html, "sender": sender}
        self.sent.append(message)
        return {"delivered": True, "to": to, "messageId": f"mem-{len(self.sent)}"}


class InMemoryTaggingService(TaggingService):
    """Keeps subscriber tags in a dict."""

    def __init__(self):
        self.tags: Dict[str, Set[str]] = {}

    async def tag(self, subscriber_id, tag):
        self.tags.setdefault(subscriber_id, set()).add(tag)
        return {"subscriberId": subscriber_id, "tag": tag, "tagged": True}


# ============================================================
# Parameter schemas
# ============================================================

class EmailParams(BaseModel):
    subject: str
    html: Optional[str] = Field(None, validation_alias=AliasChoices("html", "content"))
    to: Optional[str] = None
    sender: Optional[str] = Field(
        None, validation_alias=AliasChoices("sender", "selectedSender")
    )

    @model_validator(mode="after")
    def _body_required(self) -> "EmailParams":
        if not self.html:
            raise ValueError("either 'html' or 'content' is required")
        return self


class TagParams(BaseModel):
    tag: str = Field(..., min_length=1)


def personalize(text: str, context: Dict[str, Any]) -> str:
    """Replace the editor's subscriber placeholders."""
    name = context.get("name") or (context.get("data") or {}).get("name") or ""
    subscriber_id = str(context.get("subscriberId") or "")
    return text.replace("@Sub Name", name).replace("@Sub Id", subscriber_id)


def register_builtin_actions(
    registry: ActionRegistry,
    email_sender: EmailSender,
    tagging_service: TaggingService,
) -> ActionRegistry:
    """Register the email and tag actions against the given collaborators."""

    @registry.register(
        "email",
        params_model=EmailParams,
        description="Send an email to the subscriber",
        aliases=["send_email"],
    )
    async def send_email(params: EmailParams, context: Dict[str, Any]) -> Dict[str, Any]:
        recipient = params.to or context.get("email")
        if not recipient:
            raise ActionError.invalid_params("No recipient: set 'to' or provide 'email' in context")
        if not isinstance(recipient, str):
            raise ActionError.invalid_params(f"Recipient must be an address, got {type(recipient).__name__}")

        subject = personalize(params.subject, context)
        html = personalize(params.html, context)
        confirmation = await email_sender.send(recipient, subject, html, params.sender)
        logger.info(f"Sent email '{subject}' to {recipient}")
        # "email" stays the subscriber address for later nodes
        last_email = {"opens": 0, "clicks": 0, **confirmation}
        return {"lastEmail": last_email}

    @registry.register(
        "tag",
        params_model=TagParams,
        description="Tag the subscriber",
    )
    async def tag_subscriber(params: TagParams, context: Dict[str, Any]) -> Dict[str, Any]:
        subscriber_id = context.get("subscriberId")
        if not subscriber_id:
            raise ActionError.invalid_params("No 'subscriberId' in context")

        ack = await tagging_service.tag(str(subscriber_id), params.tag)
        tags = list(context.get("tags") or [])
        if params.tag not in tags:
            tags.append(params.tag)
        return {"tags": tags, "lastTag": ack.get("tag", params.tag)}

    return registry


def default_registry(
    email_sender: Optional[EmailSender] = None,
    tagging_service: Optional[TaggingService] = None,
) -> ActionRegistry:
    """A registry with the built-in actions wired to in-memory collaborators by default."""
    return register_builtin_actions(
        ActionRegistry(),
        email_sender or InMemoryEmailSender(),
        tagging_service or InMemoryTaggingService(),
    )
