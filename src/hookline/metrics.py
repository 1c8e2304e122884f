"""Prometheus metrics for webhook ingestion and agent execution.

Metrics are exposed at the `/metrics` endpoint in Prometheus format.

Metrics Defined:
- hookline_events_received_total: Counter of persisted deliveries
  (event types outside GITHUB_EVENT_TYPES are labelled "other")
- hookline_documents_rendered_total: Counter of rendered documents
- hookline_agent_executions_total: Counter of agent invocations by status
- hookline_agent_duration_seconds: Histogram of agent execution time
"""

from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Agent runs range from seconds to the one-hour default timeout
DEFAULT_DURATION_BUCKETS = (
    1.0,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
    600.0,
    1800.0,
    3600.0,
)

# Webhook event names GitHub documents; anything else shares one label
GITHUB_EVENT_TYPES = frozenset({
    "branch_protection_configuration",
    "branch_protection_rule",
    "check_run",
    "check_suite",
    "code_scanning_alert",
    "commit_comment",
    "create",
    "custom_property",
    "custom_property_values",
    "delete",
    "dependabot_alert",
    "deploy_key",
    "deployment",
    "deployment_protection_rule",
    "deployment_review",
    "deployment_status",
    "discussion",
    "discussion_comment",
    "fork",
    "github_app_authorization",
    "gollum",
    "installation",
    "installation_repositories",
    "installation_target",
    "issue_comment",
    "issues",
    "label",
    "marketplace_purchase",
    "member",
    "membership",
    "merge_group",
    "meta",
    "milestone",
    "org_block",
    "organization",
    "package",
    "page_build",
    "personal_access_token_request",
    "ping",
    "project",
    "project_card",
    "project_column",
    "projects_v2",
    "projects_v2_item",
    "public",
    "pull_request",
    "pull_request_review",
    "pull_request_review_comment",
    "pull_request_review_thread",
    "push",
    "registry_package",
    "release",
    "repository",
    "repository_advisory",
    "repository_dispatch",
    "repository_import",
    "repository_ruleset",
    "repository_vulnerability_alert",
    "secret_scanning_alert",
    "secret_scanning_alert_location",
    "security_advisory",
    "security_and_analysis",
    "sponsorship",
    "star",
    "status",
    "sub_issues",
    "team",
    "team_add",
    "watch",
    "workflow_dispatch",
    "workflow_job",
    "workflow_run",
})

OTHER_EVENT_TYPE = "other"


def event_type_label(event_type: str) -> str:
    """Map an X-GitHub-Event value to a bounded metric label."""
    if event_type in GITHUB_EVENT_TYPES:
        return event_type
    return OTHER_EVENT_TYPE


class IngestionMetrics:
    """Container for all ingestion Prometheus metrics.

    Supports custom registries so tests can create isolated instances.

    Example:
        >>> metrics = IngestionMetrics(registry=CollectorRegistry())
        >>> metrics.record_event_received("issues", verified=True)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.events_received_total = Counter(
            "hookline_events_received_total",
            "Total number of webhook deliveries persisted",
            labelnames=["event_type", "verified"],
            registry=self.registry,
        )

        self.documents_rendered_total = Counter(
            "hookline_documents_rendered_total",
            "Total number of instruction documents rendered",
            labelnames=["event_type"],
            registry=self.registry,
        )

        self.agent_executions_total = Counter(
            "hookline_agent_executions_total",
            "Total number of agent invocations by outcome",
            labelnames=["status"],
            registry=self.registry,
        )

        self.agent_duration_seconds = Histogram(
            "hookline_agent_duration_seconds",
            "Agent execution wall-clock time in seconds",
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_event_received(self, event_type: str, verified: bool) -> None:
        self.events_received_total.labels(
            event_type=event_type_label(event_type),
            verified=str(verified).lower(),
        ).inc()

    def record_document_rendered(self, event_type: str) -> None:
        self.documents_rendered_total.labels(
            event_type=event_type_label(event_type)
        ).inc()

    def record_execution(self, status: str, duration_ms: int) -> None:
        """Record one agent invocation.

        Args:
            status: One of "succeeded", "failed" (non-zero exit),
                "timed_out", "launch_failed" or "errored".
            duration_ms: Wall-clock duration in milliseconds.
        """
        self.agent_executions_total.labels(status=status).inc()
        self.agent_duration_seconds.observe(duration_ms / 1000.0)

    def generate(self) -> bytes:
        return generate_latest(self.registry)
