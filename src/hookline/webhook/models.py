"""Webhook delivery models for the ingestion pipeline.

This module defines the parsed form of one inbound GitHub webhook
delivery, before it is persisted as an EventRecord. The models use
Pydantic for validation, consistent with config.py and store/models.py.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

# Sentinel used when a delivery carries no usable sender or repository
UNKNOWN = "unknown"

# Pseudo-repository for GitHub Projects (v2) events, which carry no repository
PROJECTS_REPOSITORY = "GitHub Projects"

SIGNATURE_HEADER = "x-hub-signature-256"
EVENT_HEADER = "x-github-event"
DELIVERY_HEADER = "x-github-delivery"


class IncomingWebhook(BaseModel):
    """A verified, normalized webhook delivery.

    Attributes:
        event_type: Value of the X-GitHub-Event header (e.g. "issues").
        delivery_id: Value of the X-GitHub-Delivery header. GitHub reuses it
            on redelivery, so it is advisory only.
        signature: Raw X-Hub-Signature-256 header value, if sent.
        action: The payload's "action" field, for event types that have one.
        payload: The effective JSON payload after normalization.
        sender_login: payload.sender.login, or "unknown".
        sender_id: payload.sender.id, if present.
        repository: Repository full name, organization login,
            "GitHub Projects", or "unknown".
        verified: Outcome of signature verification.
    """

    event_type: str = Field(
        ...,
        min_length=1,
        description="The X-GitHub-Event header value",
    )

    delivery_id: Optional[str] = Field(
        default=None,
        description="The X-GitHub-Delivery header value (advisory)",
    )

    signature: Optional[str] = Field(
        default=None,
        description="The raw X-Hub-Signature-256 header value",
    )

    action: Optional[str] = Field(
        default=None,
        description="The payload action, absent for events without sub-actions",
    )

    payload: Dict[str, Any] = Field(
        default_factory=dict,
        description="The effective event payload",
    )

    sender_login: str = Field(default=UNKNOWN)

    sender_id: Optional[int] = Field(default=None)

    repository: str = Field(default=UNKNOWN)

    verified: bool = Field(
        ...,
        description="Whether the delivery signature verified",
    )

    @property
    def has_known_repository(self) -> bool:
        return self.repository != UNKNOWN
