"""Event Source - Change detection and classification"""
from .change_classifier import ChangeClassifier, SnapshotCache, changed_fields
from .event_source import EventSource

__all__ = [
    "ChangeClassifier",
    "SnapshotCache",
    "changed_fields",
    "EventSource",
]
