"""GitHub webhook handling for the ingestion pipeline.

This module receives and parses GitHub webhook deliveries of any event
type. Signatures are checked against the configured secret, but the
outcome is recorded rather than enforced unless the deployer opts in.
"""

from .handler import WebhookHandler, create_webhook_handler
from .models import PROJECTS_REPOSITORY, UNKNOWN, IncomingWebhook
from .signature import compute_signature, verify_signature

__all__ = [
    "IncomingWebhook",
    "PROJECTS_REPOSITORY",
    "UNKNOWN",
    "WebhookHandler",
    "compute_signature",
    "create_webhook_handler",
    "verify_signature",
]
