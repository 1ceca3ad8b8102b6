"""Service modules - Business logic layer"""
from .linking_service import LinkingService
from .preference_service import PreferenceService, resolve_with_defaults
from .webhook_client import WebhookClient, WebhookResponse
from .dispatcher import NotificationDispatcher
from .event_router import NotificationRouter
from .scanner_service import DueDateScanner

__all__ = [
    "LinkingService",
    "PreferenceService",
    "resolve_with_defaults",
    "WebhookClient",
    "WebhookResponse",
    "NotificationDispatcher",
    "NotificationRouter",
    "DueDateScanner",
]
