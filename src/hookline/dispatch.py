"""Auto-dispatch policy for rendered documents.

Decides whether the agent runs automatically after a document is
rendered. With auto-dispatch enabled and no tag configured, every
rendered document is dispatched. With a tag (e.g. "@clide"), only events
that mention it in one of their human-written text fields are.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional


@dataclass(frozen=True)
class DispatchPolicy:
    """Auto-dispatch switch plus an optional tag predicate.

    Attributes:
        auto_dispatch_enabled: Master switch for automatic agent runs.
        tag: Marker that must appear in the event's text fields. Empty
            means every rendered document is dispatched.
    """

    auto_dispatch_enabled: bool = True
    tag: str = ""

    def should_dispatch(self, payload: Dict[str, Any]) -> bool:
        if not self.auto_dispatch_enabled:
            return False
        if not self.tag:
            return True
        return has_tag(payload, self.tag)


def has_tag(payload: Dict[str, Any], tag: str) -> bool:
    """Check the event's text fields for a tag, case-insensitively.

    Fields checked: issue body/title, pull request body/title, release
    body, first commit message, and comment body.
    """
    needle = tag.lower()
    return any(needle in text.lower() for text in _text_fields(payload))


def _text_fields(payload: Dict[str, Any]) -> Iterator[str]:
    for section, key in (
        ("issue", "body"),
        ("issue", "title"),
        ("pull_request", "body"),
        ("pull_request", "title"),
        ("release", "body"),
        ("comment", "body"),
    ):
        value = _get(payload.get(section), key)
        if isinstance(value, str):
            yield value

    commits = payload.get("commits")
    if isinstance(commits, list) and commits:
        message = _get(commits[0], "message")
        if isinstance(message, str):
            yield message


def _get(container: Any, key: str) -> Optional[Any]:
    if isinstance(container, dict):
        return container.get(key)
    return None
