"""
Chat Templates Package

Message cards for all notification types and the renderers that turn them
into chat platform payloads.
"""
from .chat_templates import (
    format_notification,
    TEMPLATE_REGISTRY,
    FALLBACK_TEXT
)
from .renderers import (
    PayloadRenderer,
    CliqPayloadRenderer,
    GenericPayloadRenderer,
    get_renderer
)

__all__ = [
    "format_notification",
    "TEMPLATE_REGISTRY",
    "FALLBACK_TEXT",
    "PayloadRenderer",
    "CliqPayloadRenderer",
    "GenericPayloadRenderer",
    "get_renderer"
]
