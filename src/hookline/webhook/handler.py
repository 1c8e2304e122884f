"""GitHub webhook parsing for the ingestion pipeline.

This module turns a raw HTTP delivery (headers plus body bytes) into an
IncomingWebhook: it verifies the signature, normalizes the payload, and
derives sender, repository and action from well-known optional fields.

GitHub can deliver payloads either as application/json or as
application/x-www-form-urlencoded with the JSON document in a "payload"
form field:

    payload=%7B%22action%22%3A%22opened%22%2C...%7D

Every step degrades gracefully. A body that cannot be decoded is kept as
{"raw_body": "<text>"}, and missing payload fields fall back to the
"unknown" sentinel, so parsing never fails a delivery.
"""

import json
import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl

from .models import (
    DELIVERY_HEADER,
    EVENT_HEADER,
    PROJECTS_REPOSITORY,
    SIGNATURE_HEADER,
    UNKNOWN,
    IncomingWebhook,
)
from .signature import verify_signature

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class WebhookHandler:
    """Parser for inbound GitHub webhook deliveries.

    Attributes:
        secret: The shared webhook secret. Empty means unauthenticated mode.
    """

    def __init__(self, secret: str = "") -> None:
        self.secret = secret

    def parse(
        self,
        headers: Mapping[str, str],
        raw_body: bytes,
        content_type: Optional[str] = None,
    ) -> IncomingWebhook:
        """Verify and normalize a webhook delivery.

        Args:
            headers: Request headers. Lookups are case-insensitive.
            raw_body: The exact request body bytes, used for verification.
            content_type: The request Content-Type. Read from headers when
                not given.

        Returns:
            IncomingWebhook with the verification outcome recorded.
        """
        lowered = {key.lower(): value for key, value in headers.items()}
        signature = lowered.get(SIGNATURE_HEADER)
        event_type = lowered.get(EVENT_HEADER) or UNKNOWN
        delivery_id = lowered.get(DELIVERY_HEADER)
        if content_type is None:
            content_type = lowered.get("content-type", "")

        verified = verify_signature(raw_body, signature, self.secret)
        if not verified:
            logger.warning(
                "Webhook signature verification failed",
                extra={"event_type": event_type, "delivery_id": delivery_id},
            )

        payload = self.normalize_payload(raw_body, content_type)
        sender_login, sender_id = self._extract_sender(payload)
        action = payload.get("action")

        return IncomingWebhook(
            event_type=event_type,
            delivery_id=delivery_id,
            signature=signature,
            action=action if isinstance(action, str) and action else None,
            payload=payload,
            sender_login=sender_login,
            sender_id=sender_id,
            repository=self._extract_repository(payload),
            verified=verified,
        )

    def normalize_payload(
        self, raw_body: bytes, content_type: str
    ) -> Dict[str, Any]:
        """Decode a delivery body into the effective payload dictionary.

        Form bodies are decoded into a flat dict. If the decoded body has a
        string "payload" field, that field is parsed as JSON and becomes the
        effective payload; when it does not parse the decoded body is kept.
        Lone UTF-16 surrogates from JSON escapes such as "\\ud800" are
        replaced with "?" in keys and values so the payload can always be
        re-encoded as UTF-8.

        Args:
            raw_body: The exact request body bytes.
            content_type: The request Content-Type header value.

        Returns:
            The payload dictionary. Never raises.
        """
        text = raw_body.decode("utf-8", errors="replace")
        if not text.strip():
            return {}

        if FORM_CONTENT_TYPE in (content_type or "").lower():
            body: Any = dict(parse_qsl(text, keep_blank_values=True))
        else:
            try:
                body = _replace_surrogates(json.loads(text))
            except (ValueError, RecursionError) as e:
                logger.warning("Malformed JSON payload, keeping raw body: %s", e)
                return {"raw_body": text}

        if not isinstance(body, dict):
            logger.warning(
                "Payload is not a JSON object, keeping raw body: %s",
                type(body).__name__,
            )
            return {"raw_body": text}

        nested = body.get("payload")
        if isinstance(nested, str):
            try:
                parsed = _replace_surrogates(json.loads(nested))
            except (ValueError, RecursionError) as e:
                logger.error("Failed to parse form-encoded payload field: %s", e)
                return body
            if isinstance(parsed, dict):
                return parsed
            logger.warning("Form-encoded payload field is not a JSON object")

        return body

    def _extract_sender(self, payload: Dict[str, Any]) -> tuple:
        """Extract (login, id) from payload.sender.

        Returns:
            Tuple of login ("unknown" when absent) and id (None when absent).
        """
        sender = payload.get("sender")
        if not isinstance(sender, dict):
            return UNKNOWN, None

        login = _non_empty_string(sender.get("login")) or UNKNOWN
        sender_id = sender.get("id")
        if isinstance(sender_id, bool) or not isinstance(sender_id, int):
            sender_id = None
        return login, sender_id

    def _extract_repository(self, payload: Dict[str, Any]) -> str:
        """Resolve the repository (or organization) a delivery belongs to.

        Precedence: repository.full_name, organization.login, then the
        "GitHub Projects" pseudo-repository for projects_v2_item events.
        A repository object without a full_name yields "unknown" without
        consulting the organization.
        """
        repository = payload.get("repository")
        if repository:
            full_name = (
                repository.get("full_name")
                if isinstance(repository, dict)
                else None
            )
            return _non_empty_string(full_name) or UNKNOWN

        organization = payload.get("organization")
        if organization:
            login = (
                organization.get("login")
                if isinstance(organization, dict)
                else None
            )
            return _non_empty_string(login) or UNKNOWN

        if payload.get("projects_v2_item"):
            return PROJECTS_REPOSITORY

        return UNKNOWN


def _replace_surrogates(value: Any) -> Any:
    """Return a copy of decoded JSON with lone surrogates replaced by "?"."""
    if isinstance(value, str):
        return value.encode("utf-8", errors="replace").decode("utf-8")
    if isinstance(value, dict):
        return {
            _replace_surrogates(k): _replace_surrogates(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_replace_surrogates(item) for item in value]
    return value


def _non_empty_string(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def create_webhook_handler(secret: str) -> WebhookHandler:
    """Factory function to create a WebhookHandler instance.

    Args:
        secret: The GitHub webhook secret.

    Returns:
        A configured WebhookHandler instance.
    """
    return WebhookHandler(secret=secret)
