"""Change Classifier - Turns raw record changes into notification events"""
from collections import OrderedDict
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from ..domain.enums import NotificationEventType, RecordKind, ChangeKind, TaskStatus
from ..domain.models import RecordChange, NotificationEvent, TaskSnapshot, ProjectSnapshot
from ..repositories.task_repo import GUARD_FIELDS
from ..utils.logger import get_logger
from ..utils.time import utc_now, is_older_than, parse_iso

logger = get_logger(__name__)

# Never count as a user-visible change
BOOKKEEPING_FIELDS: FrozenSet[str] = frozenset({"_id", "updated_at", "updated_by"}) | GUARD_FIELDS


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return parse_iso(value)
        except (ValueError, OverflowError):
            return None
    return None


def changed_fields(before: Dict[str, Any], after: Dict[str, Any]) -> List[str]:
    """Sorted names of top-level fields whose values differ"""
    keys = (set(before) | set(after)) - BOOKKEEPING_FIELDS
    return sorted(k for k in keys if before.get(k) != after.get(k))


def _added(before: Dict[str, Any], after: Dict[str, Any], field: str) -> List[str]:
    previous = set(before.get(field) or [])
    return [v for v in (after.get(field) or []) if v not in previous]


def _removed(before: Dict[str, Any], after: Dict[str, Any], field: str) -> List[str]:
    current = set(after.get(field) or [])
    return [v for v in (before.get(field) or []) if v not in current]


class SnapshotCache:
    """
    Last-seen document per record id.

    Bounded; the least recently touched entries are evicted first.
    """

    def __init__(self, max_entries: int = 50000):
        self._entries: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self._max_entries = max_entries

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        return self._entries.get(record_id)

    def put(self, record_id: str, record: Dict[str, Any]) -> None:
        self._entries[record_id] = dict(record)
        self._entries.move_to_end(record_id)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def pop(self, record_id: str) -> Optional[Dict[str, Any]]:
        return self._entries.pop(record_id, None)

    def __contains__(self, record_id: str) -> bool:
        return record_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class ChangeClassifier:
    """
    Classify changes of one watched collection.

    Pure apart from its snapshot cache: one change in, at most one event
    out. Does not deduplicate across multiple watchers.
    """

    def __init__(
        self,
        record_kind: RecordKind,
        cache: Optional[SnapshotCache] = None,
        replay_grace_seconds: int = 30,
        recent_completion_seconds: int = 60,
        clock: Callable[[], datetime] = utc_now
    ):
        self.record_kind = record_kind
        self.cache = cache if cache is not None else SnapshotCache()
        self.replay_grace_seconds = replay_grace_seconds
        self.recent_completion_seconds = recent_completion_seconds
        self._clock = clock

    def classify(self, change: RecordChange) -> Optional[NotificationEvent]:
        if change.record_kind != self.record_kind:
            raise ValueError(f"Classifier for {self.record_kind.value} got a {change.record_kind.value} change")

        if change.kind == ChangeKind.ADDED:
            return self._classify_added(change)
        if change.kind == ChangeKind.MODIFIED:
            return self._classify_modified(change)
        return self._classify_removed(change)

    # =========================================================================
    # Added
    # =========================================================================

    def _classify_added(self, change: RecordChange) -> Optional[NotificationEvent]:
        record = change.record or {}
        self.cache.put(change.record_id, record)

        created_at = _as_datetime(record.get("created_at"))
        if is_older_than(created_at, self.replay_grace_seconds, self._clock()):
            logger.debug(f"Dropping replayed {self.record_kind.value} {change.record_id}")
            return None

        if self.record_kind == RecordKind.TASK:
            task = self._task(change.record_id, record)
            return NotificationEvent(
                type=NotificationEventType.TASK_CREATED,
                task=task,
                actor_id=task.created_by,
                member_ids=list(task.assignees),
            )

        project = self._project(change.record_id, record)
        return NotificationEvent(
            type=NotificationEventType.PROJECT_CREATED,
            project=project,
            actor_id=project.created_by,
        )

    # =========================================================================
    # Modified
    # =========================================================================

    def _classify_modified(self, change: RecordChange) -> Optional[NotificationEvent]:
        if change.record is None:
            return None
        record = change.record
        previous = self.cache.get(change.record_id)
        self.cache.put(change.record_id, record)

        if self.record_kind == RecordKind.TASK:
            return self._classify_task_modified(change.record_id, previous, record)
        return self._classify_project_modified(change.record_id, previous, record)

    def _classify_task_modified(
        self,
        record_id: str,
        previous: Optional[Dict[str, Any]],
        record: Dict[str, Any]
    ) -> Optional[NotificationEvent]:
        task = self._task(record_id, record)
        completed = record.get("status") == TaskStatus.COMPLETED.value

        if previous is None:
            completed_at = _as_datetime(record.get("completed_at"))
            if completed and not is_older_than(completed_at, self.recent_completion_seconds, self._clock()):
                return self._completed_event(task)
            return NotificationEvent(
                type=NotificationEventType.TASK_UPDATED,
                task=task,
                actor_id=task.updated_by,
            )

        fields = changed_fields(previous, record)
        if not fields:
            return None

        if completed and previous.get("status") != TaskStatus.COMPLETED.value:
            return self._completed_event(task)

        added_assignees = _added(previous, record, "assignees")
        if added_assignees:
            return NotificationEvent(
                type=NotificationEventType.TASK_ASSIGNED,
                task=task,
                actor_id=task.updated_by,
                member_ids=added_assignees,
                changed_field_names=fields,
            )

        return NotificationEvent(
            type=NotificationEventType.TASK_UPDATED,
            task=task,
            actor_id=task.updated_by,
            changed_field_names=fields,
        )

    def _completed_event(self, task: TaskSnapshot) -> NotificationEvent:
        return NotificationEvent(
            type=NotificationEventType.TASK_COMPLETED,
            task=task,
            actor_id=task.completed_by or task.updated_by,
        )

    def _classify_project_modified(
        self,
        record_id: str,
        previous: Optional[Dict[str, Any]],
        record: Dict[str, Any]
    ) -> Optional[NotificationEvent]:
        if previous is None:
            return None

        project = self._project(record_id, record)
        joined = _added(previous, record, "members")
        if joined:
            return NotificationEvent(
                type=NotificationEventType.MEMBER_JOINED,
                project=project,
                actor_id=project.updated_by,
                member_ids=joined,
            )

        left = _removed(previous, record, "members")
        if left:
            return NotificationEvent(
                type=NotificationEventType.MEMBER_LEFT,
                project=project,
                actor_id=project.updated_by,
                member_ids=left,
            )

        invited = _added(previous, record, "invites")
        if invited:
            return NotificationEvent(
                type=NotificationEventType.PROJECT_INVITE,
                project=project,
                actor_id=project.updated_by,
                member_ids=invited,
                role=record.get("invite_role"),
            )
        return None

    # =========================================================================
    # Removed
    # =========================================================================

    def _classify_removed(self, change: RecordChange) -> Optional[NotificationEvent]:
        record = self.cache.pop(change.record_id) or change.record or {}
        if self.record_kind == RecordKind.TASK:
            return NotificationEvent(
                type=NotificationEventType.TASK_DELETED,
                task=self._task(change.record_id, record),
            )
        return NotificationEvent(
            type=NotificationEventType.PROJECT_DELETED,
            project=self._project(change.record_id, record),
        )

    @staticmethod
    def _task(record_id: str, record: Dict[str, Any]) -> TaskSnapshot:
        return TaskSnapshot.from_document({**record, "_id": record_id})

    @staticmethod
    def _project(record_id: str, record: Dict[str, Any]) -> ProjectSnapshot:
        return ProjectSnapshot.from_document({**record, "_id": record_id})
