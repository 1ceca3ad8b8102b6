"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, EmailStr, ConfigDict

from .enums import (
    NotificationEventType, TaskStatus, RecordKind, ChangeKind, TargetType,
    DispatchReason, DeliveryStatus
)


# ============================================================================
# Actor
# ============================================================================

class ActorContext(BaseModel):
    """Current application user taken from the JWT"""
    model_config = ConfigDict(extra="forbid")

    app_user_id: str = Field(..., description="Application user id (token subject)")
    email: EmailStr = Field(..., description="User email")
    display_name: str = Field(..., description="User display name")


# ============================================================================
# Identity Map & Linking Protocol
# ============================================================================

class IdentityLink(BaseModel):
    """Trust relationship between one chat identity and one application identity"""
    model_config = ConfigDict(extra="ignore")

    chat_user_id: str = Field(..., description="Chat platform user id (document key)")
    chat_user_name: str = Field(default="", description="Chat display name at link time")
    chat_email: Optional[str] = None
    app_user_id: str
    app_email: str
    linked_at: datetime
    is_active: bool = True
    unlinked_at: Optional[datetime] = None


class LinkingCode(BaseModel):
    """Single-use linking capability with an out-of-band challenge number"""
    model_config = ConfigDict(extra="ignore")

    code: str = Field(..., min_length=6, max_length=6)
    app_user_id: str
    app_email: str
    challenge_number: int = Field(..., ge=1000, le=9999)
    created_at: datetime
    expires_at: datetime
    used: bool = False
    verified: bool = False
    verified_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    used_by_chat_user_id: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class GeneratedCode(BaseModel):
    """What the application shows the user after generating a code"""
    code: str
    challenge_number: int
    expires_at: datetime


class LinkResult(BaseModel):
    """Identity bound by a successful link"""
    app_user_id: str
    app_email: str


class UnlinkResult(BaseModel):
    """Outcome of an unlink request"""
    unlinked_count: int
    message: str


class CodeStatus(BaseModel):
    """Linking code state as seen from the chat side"""
    code: str
    verified: bool
    used: bool
    expired: bool
    expires_at: datetime


# ============================================================================
# Preferences
# ============================================================================

class QuietHours(BaseModel):
    """Recurring daily suppression window (hours in the server timezone)"""
    enabled: bool = False
    start_hour: int = Field(default=22, ge=0, le=23)
    end_hour: int = Field(default=8, ge=0, le=23)


class DoNotDisturb(BaseModel):
    """Explicit suppression, open-ended when `until` is null"""
    enabled: bool = False
    until: Optional[datetime] = None
    started_at: Optional[datetime] = None


class ProjectOverride(BaseModel):
    """Per-project mute"""
    enabled: bool = True
    muted_at: Optional[datetime] = None


class NotificationPreferences(BaseModel):
    """Per-user notification settings; defaults apply when nothing is stored"""
    model_config = ConfigDict(extra="ignore")

    app_user_id: Optional[str] = None
    enabled: bool = True

    task_created: bool = True
    task_assigned: bool = True
    task_completed: bool = True
    task_updated: bool = True
    task_overdue: bool = True
    task_due_soon: bool = True
    task_deleted: bool = True
    project_created: bool = True
    project_deleted: bool = True
    project_invite: bool = True
    member_joined: bool = True
    member_left: bool = True

    quiet_hours: QuietHours = Field(default_factory=QuietHours)
    do_not_disturb: DoNotDisturb = Field(default_factory=DoNotDisturb)
    project_overrides: Dict[str, ProjectOverride] = Field(default_factory=dict)
    updated_at: Optional[datetime] = None

    def is_event_enabled(self, event_type: NotificationEventType) -> bool:
        return bool(getattr(self, event_type.value, True))


class PreferencesUpdate(BaseModel):
    """Partial preference update; unset fields are left untouched"""
    model_config = ConfigDict(extra="forbid")

    enabled: Optional[bool] = None
    task_created: Optional[bool] = None
    task_assigned: Optional[bool] = None
    task_completed: Optional[bool] = None
    task_updated: Optional[bool] = None
    task_overdue: Optional[bool] = None
    task_due_soon: Optional[bool] = None
    task_deleted: Optional[bool] = None
    project_created: Optional[bool] = None
    project_deleted: Optional[bool] = None
    project_invite: Optional[bool] = None
    member_joined: Optional[bool] = None
    member_left: Optional[bool] = None
    quiet_hours: Optional[QuietHours] = None


# ============================================================================
# Watched Records (read models of the task application's documents)
# ============================================================================

def _with_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(doc)
    if "_id" in data:
        data.setdefault("id", str(data.pop("_id")))
    return data


class TaskSnapshot(BaseModel):
    """Snapshot of a task document"""
    model_config = ConfigDict(extra="allow")

    id: str
    title: str = "Untitled task"
    description: Optional[str] = None
    status: str = TaskStatus.PENDING.value
    priority: Optional[str] = None
    due_date: Optional[datetime] = None
    assignees: List[str] = Field(default_factory=list)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    completed_by: Optional[str] = None
    project_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "TaskSnapshot":
        return cls.model_validate(_with_id(doc))


class ProjectSnapshot(BaseModel):
    """Snapshot of a project document"""
    model_config = ConfigDict(extra="allow")

    id: str
    name: str = "Untitled project"
    description: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    members: List[str] = Field(default_factory=list)
    invites: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ProjectSnapshot":
        return cls.model_validate(_with_id(doc))


class RecordChange(BaseModel):
    """One change delivered by a watch"""
    kind: ChangeKind
    record_kind: RecordKind
    record_id: str
    record: Optional[Dict[str, Any]] = None


# ============================================================================
# Events & Messages
# ============================================================================

class NotificationEvent(BaseModel):
    """Ephemeral typed event; only its outcome is persisted"""
    type: NotificationEventType
    task: Optional[TaskSnapshot] = None
    project: Optional[ProjectSnapshot] = None
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None
    hours_until_due: Optional[int] = None
    days_overdue: Optional[int] = None
    changed_field_names: List[str] = Field(default_factory=list)
    member_ids: List[str] = Field(default_factory=list)
    role: Optional[str] = None

    @property
    def subject_id(self) -> Optional[str]:
        if self.task is not None:
            return self.task.id
        if self.project is not None:
            return self.project.id
        return None

    @property
    def project_id(self) -> Optional[str]:
        if self.project is not None:
            return self.project.id
        if self.task is not None:
            return self.task.project_id
        return None

    @property
    def dedupe_key(self) -> str:
        """Deduplication hint sent with the payload and stored in the delivery log"""
        parts = [self.type.value, self.subject_id or "-"]
        if self.type == NotificationEventType.TASK_DUE_SOON and self.task and self.task.due_date:
            parts.append(self.task.due_date.isoformat())
        elif self.type == NotificationEventType.TASK_OVERDUE and self.days_overdue is not None:
            parts.append(f"d{self.days_overdue}")
        elif self.member_ids:
            parts.append(",".join(sorted(self.member_ids)))
        return ":".join(parts)


class MessageButton(BaseModel):
    """One-click follow-up action"""
    label: str
    action_type: str
    action_payload: Dict[str, Any] = Field(default_factory=dict)


class MessageSlide(BaseModel):
    """Structured card section: free text or key/value pairs"""
    type: str = "text"
    title: Optional[str] = None
    data: Any = None


class MessageCard(BaseModel):
    title: str
    theme: str = "modern-inline"
    slides: List[MessageSlide] = Field(default_factory=list)


class NotificationMessage(BaseModel):
    """Platform-agnostic message produced by the formatter"""
    text: str
    card: Optional[MessageCard] = None
    buttons: List[MessageButton] = Field(default_factory=list)


# ============================================================================
# Channels, Delivery Log & Dispatch Results
# ============================================================================

class ProjectChannel(BaseModel):
    """Chat channel bound to a project"""
    model_config = ConfigDict(extra="ignore")

    project_id: str
    channel_name: str
    webhook_url: Optional[str] = None
    bound_by: Optional[str] = None
    bound_at: datetime


class DeliveryLogEntry(BaseModel):
    """Append-only record of a delivery attempt"""
    model_config = ConfigDict(extra="ignore")

    log_id: str
    recipient_app_user_id: Optional[str] = None
    chat_user_id: Optional[str] = None
    channel_name: Optional[str] = None
    target_type: TargetType
    event_type: NotificationEventType
    status: DeliveryStatus
    sent_at: datetime
    payload_summary: str
    subject_id: Optional[str] = None
    dedupe_key: Optional[str] = None
    status_code: Optional[int] = None
    retried: bool = False
    error: Optional[str] = None


class DeliveryHistoryPage(BaseModel):
    """One page of delivery history, newest first"""
    items: List[DeliveryLogEntry]
    has_more: bool
    last_id: Optional[str] = None


class DispatchResult(BaseModel):
    """Outcome of one dispatch"""
    sent: bool
    reason: DispatchReason
    recipient: str
    target_type: TargetType = TargetType.USER
    status_code: Optional[int] = None
    retried: bool = False
    error: Optional[str] = None


class ScanSummary(BaseModel):
    """Result of one scanner run"""
    scan: str
    candidates: int = 0
    claimed: int = 0
    skipped: int = 0
    results: List[DispatchResult] = Field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return sum(1 for r in self.results if r.sent)
