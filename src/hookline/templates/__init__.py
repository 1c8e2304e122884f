"""Instruction templates: lookup by repository and event type, and rendering."""

from .renderer import RENDER_ERROR_PREFIX, TemplateRenderer, serialize_payload
from .store import InvalidTemplateKeyError, TemplateStore, is_valid_segment

__all__ = [
    "InvalidTemplateKeyError",
    "RENDER_ERROR_PREFIX",
    "TemplateRenderer",
    "TemplateStore",
    "is_valid_segment",
    "serialize_payload",
]
