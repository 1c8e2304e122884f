"""Unit tests for WebhookHandler parsing and payload normalization."""

import json
from urllib.parse import urlencode

import pytest

from hookline.webhook import (
    PROJECTS_REPOSITORY,
    UNKNOWN,
    WebhookHandler,
    compute_signature,
)


def _headers(event="issues", delivery="d-1", signature=None, content_type="application/json"):
    headers = {
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": delivery,
        "Content-Type": content_type,
    }
    if signature is not None:
        headers["X-Hub-Signature-256"] = signature
    return headers


def _issue_payload():
    return {
        "action": "opened",
        "issue": {"number": 7, "title": "Crash on start", "body": "Stack trace"},
        "repository": {"full_name": "acme/widgets"},
        "sender": {"login": "octocat", "id": 583231},
    }


@pytest.fixture
def handler():
    return WebhookHandler(secret="")


class TestHeaderExtraction:
    def test_headers_are_read_case_insensitively(self, handler):
        body = json.dumps(_issue_payload()).encode()
        headers = {
            "x-github-event": "issues",
            "x-github-delivery": "abc",
            "x-hub-signature-256": "sha256=00",
        }

        webhook = handler.parse(headers, body, "application/json")

        assert webhook.event_type == "issues"
        assert webhook.delivery_id == "abc"
        assert webhook.signature == "sha256=00"

    def test_missing_event_header_is_unknown(self, handler):
        webhook = handler.parse({}, b"{}", "application/json")

        assert webhook.event_type == UNKNOWN
        assert webhook.delivery_id is None

    def test_content_type_read_from_headers_when_not_given(self, handler):
        form = urlencode({"payload": json.dumps(_issue_payload())}).encode()
        headers = _headers(content_type="application/x-www-form-urlencoded")

        webhook = handler.parse(headers, form)

        assert webhook.repository == "acme/widgets"


class TestVerification:
    def test_no_secret_verifies_without_signature(self, handler):
        webhook = handler.parse(_headers(event="ping"), b'{"zen": "hi"}')

        assert webhook.verified is True

    def test_valid_signature_verifies(self):
        body = json.dumps(_issue_payload()).encode()
        handler = WebhookHandler(secret="s3cret")

        webhook = handler.parse(
            _headers(signature=compute_signature(body, "s3cret")), body
        )

        assert webhook.verified is True

    def test_missing_signature_fails_with_secret(self):
        handler = WebhookHandler(secret="s3cret")

        webhook = handler.parse(_headers(), json.dumps(_issue_payload()).encode())

        assert webhook.verified is False
        # Verification failure is recorded, parsing still completes
        assert webhook.repository == "acme/widgets"


class TestPayloadNormalization:
    def test_json_body(self, handler):
        payload = handler.normalize_payload(b'{"action": "opened"}', "application/json")

        assert payload == {"action": "opened"}

    def test_form_body_with_nested_json(self, handler):
        body = urlencode({"payload": json.dumps(_issue_payload())}).encode()

        payload = handler.normalize_payload(body, "application/x-www-form-urlencoded")

        assert payload == _issue_payload()

    def test_form_body_with_invalid_json_falls_back_to_form(self, handler):
        body = urlencode({"payload": "{not json", "other": "x"}).encode()

        payload = handler.normalize_payload(
            body, "application/x-www-form-urlencoded; charset=utf-8"
        )

        assert payload == {"payload": "{not json", "other": "x"}

    def test_json_body_with_string_payload_field_is_unwrapped(self, handler):
        inner = {"action": "created"}
        body = json.dumps({"payload": json.dumps(inner)}).encode()

        payload = handler.normalize_payload(body, "application/json")

        assert payload == inner

    def test_malformed_json_keeps_raw_body(self, handler):
        payload = handler.normalize_payload(b"{oops", "application/json")

        assert payload == {"raw_body": "{oops"}

    def test_non_object_json_keeps_raw_body(self, handler):
        payload = handler.normalize_payload(b"[1, 2]", "application/json")

        assert payload == {"raw_body": "[1, 2]"}

    def test_empty_body_is_empty_payload(self, handler):
        assert handler.normalize_payload(b"", "application/json") == {}

    def test_lone_surrogate_escapes_are_replaced(self, handler):
        body = (
            b'{"issue": {"title": "x\\ud800y", "labels": ["\\udfff"]},'
            b' "k\\ud83d": 1, "emoji": "\\ud83d\\ude00"}'
        )

        payload = handler.normalize_payload(body, "application/json")

        assert payload["issue"] == {"title": "x?y", "labels": ["?"]}
        assert payload["k?"] == 1
        assert payload["emoji"] == "\U0001F600"
        json.dumps(payload, ensure_ascii=False).encode("utf-8")

    def test_lone_surrogate_in_form_payload_field_is_replaced(self, handler):
        body = urlencode({"payload": '{"action": "opened\\udc80"}'}).encode()

        payload = handler.normalize_payload(body, "application/x-www-form-urlencoded")

        assert payload == {"action": "opened?"}

    def test_deeply_nested_json_keeps_raw_body(self, handler):
        body = b"[" * 100000 + b"]" * 100000

        payload = handler.normalize_payload(body, "application/json")

        assert list(payload) == ["raw_body"]


class TestMetadataDerivation:
    def test_issue_event_fields(self, handler):
        webhook = handler.parse(_headers(), json.dumps(_issue_payload()).encode())

        assert webhook.action == "opened"
        assert webhook.sender_login == "octocat"
        assert webhook.sender_id == 583231
        assert webhook.repository == "acme/widgets"
        assert webhook.has_known_repository is True

    def test_organization_used_without_repository(self, handler):
        body = json.dumps({"organization": {"login": "acme"}}).encode()

        webhook = handler.parse(_headers(event="organization"), body)

        assert webhook.repository == "acme"

    def test_projects_item_uses_pseudo_repository(self, handler):
        body = json.dumps({"action": "edited", "projects_v2_item": {"id": 1}}).encode()

        webhook = handler.parse(_headers(event="projects_v2_item"), body)

        assert webhook.repository == PROJECTS_REPOSITORY

    def test_unresolvable_repository_is_unknown(self, handler):
        webhook = handler.parse(_headers(event="ping"), b'{"zen": "Keep it simple."}')

        assert webhook.repository == UNKNOWN
        assert webhook.has_known_repository is False
        assert webhook.sender_login == UNKNOWN
        assert webhook.sender_id is None
        assert webhook.action is None

    def test_repository_without_full_name_is_unknown(self, handler):
        body = json.dumps(
            {"repository": {"name": "widgets"}, "organization": {"login": "acme"}}
        ).encode()

        webhook = handler.parse(_headers(), body)

        assert webhook.repository == UNKNOWN

    def test_malformed_sender_fields_fall_back(self, handler):
        body = json.dumps({"sender": {"login": "", "id": "12"}}).encode()

        webhook = handler.parse(_headers(), body)

        assert webhook.sender_login == UNKNOWN
        assert webhook.sender_id is None
