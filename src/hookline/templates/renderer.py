"""Template rendering for instruction documents.

Templates use Jinja2 syntax and are evaluated in a sandbox against the
webhook payload:

    Issue #{{ issue.number }} in {{ repository.full_name }}
    {% if issue.body %}{{ issue.body }}{% endif %}
    {% for label in issue.labels %}- {{ label.name }}
    {% endfor %}

The full payload is also available as indented JSON in the synthetic
"payload" variable, for templates that embed the raw event verbatim.
Missing fields, nested or not, render as empty strings. Rendering never raises: a broken template yields a diagnostic document
instead, so a bad template cannot stop ingestion.
"""

import json
import logging
from typing import Any, Dict

from jinja2 import ChainableUndefined
from jinja2.sandbox import SandboxedEnvironment

logger = logging.getLogger(__name__)

PAYLOAD_VARIABLE = "payload"
RENDER_ERROR_PREFIX = "Error parsing template: "


class TemplateRenderer:
    """Renders instruction templates against event payloads."""

    def __init__(self) -> None:
        self._environment = SandboxedEnvironment(
            autoescape=False,
            undefined=ChainableUndefined,
            keep_trailing_newline=True,
        )

    def render(self, template: str, event_data: Dict[str, Any]) -> str:
        """Render a template against an event payload.

        Args:
            template: Jinja2 template source.
            event_data: The webhook payload.

        Returns:
            The rendered document, or a diagnostic document starting with
            "Error parsing template: " when the template fails.
        """
        context = dict(event_data)
        context[PAYLOAD_VARIABLE] = serialize_payload(event_data)

        try:
            compiled = self._environment.from_string(template)
            return compiled.render(context)
        except Exception as e:
            logger.error("Error parsing prompt template: %s", e)
            return f"{RENDER_ERROR_PREFIX}{e}"


def serialize_payload(event_data: Dict[str, Any]) -> str:
    """Serialize a payload the way it is embedded in rendered documents."""
    return json.dumps(event_data, indent=2, ensure_ascii=False, default=str)
