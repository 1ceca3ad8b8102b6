"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class NotificationEventType(str, Enum):
    """Typed events produced by the event source and the scanners"""
    TASK_CREATED = "task_created"
    TASK_ASSIGNED = "task_assigned"
    TASK_COMPLETED = "task_completed"
    TASK_UPDATED = "task_updated"
    TASK_OVERDUE = "task_overdue"
    TASK_DUE_SOON = "task_due_soon"
    TASK_DELETED = "task_deleted"
    PROJECT_CREATED = "project_created"
    PROJECT_DELETED = "project_deleted"
    PROJECT_INVITE = "project_invite"
    MEMBER_JOINED = "member_joined"
    MEMBER_LEFT = "member_left"


class TaskStatus(str, Enum):
    """Task status values written by the task application"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    """Task priority values"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class RecordKind(str, Enum):
    """Watched record collections"""
    TASK = "task"
    PROJECT = "project"


class ChangeKind(str, Enum):
    """Kind of change delivered by a watch"""
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


class TargetType(str, Enum):
    """Delivery target on the chat platform"""
    USER = "user"
    CHANNEL = "channel"


class DispatchReason(str, Enum):
    """Outcome of a single dispatch"""
    SENT = "sent"
    NO_MAPPING = "no_mapping"
    NO_CHANNEL = "no_channel"
    DISABLED_BY_USER = "disabled_by_user"
    ALREADY_DELIVERED = "already_delivered"
    NO_WEBHOOK_URL = "no_webhook_url"
    DELIVERY_FAILED = "delivery_failed"
    ERROR = "error"


class DeliveryStatus(str, Enum):
    """Delivery log status"""
    SENT = "sent"
    FAILED = "failed"


class PayloadFormat(str, Enum):
    """Outbound payload flavours"""
    CLIQ = "cliq"
    GENERIC = "generic"
