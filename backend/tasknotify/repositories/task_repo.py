"""Task Repository - Read access to the task application's records

The task and project collections belong to the task application. This
service only reads them, apart from the scanner guard fields it claims
with conditional updates:

- last_overdue_notified_on / last_overdue_notified_at
- due_soon_notified_for / due_soon_notified_at
"""
from typing import Any, List, Optional
from datetime import datetime
from bson import ObjectId
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo import ASCENDING

from .mongo_client import TASKS, USERS
from ..domain.enums import TaskStatus
from ..domain.models import TaskSnapshot
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Fields written by this service on task documents
GUARD_FIELDS = frozenset({
    "last_overdue_notified_on",
    "last_overdue_notified_at",
    "due_soon_notified_for",
    "due_soon_notified_at",
})


def match_id(record_id: str) -> Any:
    """
    Filter on a record id as carried by snapshots (always a string).

    Documents written by the task application usually have ObjectId keys,
    so a 24-hex id matches either form.
    """
    if len(record_id) == 24 and ObjectId.is_valid(record_id):
        return {"$in": [ObjectId(record_id), record_id]}
    return record_id


class TaskRepository:
    """Repository for task reads and notification guard claims"""

    def __init__(self, db: Database):
        self._tasks: Collection = db[TASKS]

    def get_task(self, task_id: str) -> Optional[TaskSnapshot]:
        doc = self._tasks.find_one({"_id": match_id(task_id)})
        return TaskSnapshot.from_document(doc) if doc else None

    def find_overdue(self, before: datetime) -> List[TaskSnapshot]:
        """Non-completed tasks due before the given instant"""
        cursor = self._tasks.find({
            "status": {"$ne": TaskStatus.COMPLETED.value},
            "due_date": {"$lt": before}
        }).sort("due_date", ASCENDING)
        return [TaskSnapshot.from_document(doc) for doc in cursor]

    def find_due_between(self, start: datetime, end: datetime) -> List[TaskSnapshot]:
        """Non-completed tasks due inside [start, end]"""
        cursor = self._tasks.find({
            "status": {"$ne": TaskStatus.COMPLETED.value},
            "due_date": {"$gte": start, "$lte": end}
        }).sort("due_date", ASCENDING)
        return [TaskSnapshot.from_document(doc) for doc in cursor]

    def claim_overdue_notification(self, task_id: str, day: str, now: datetime) -> bool:
        """
        Claim today's overdue notification for a task.

        Compared by calendar day key so a task overdue for a week is
        claimed once per day. Returns False if another run already did.
        """
        result = self._tasks.update_one(
            {"_id": match_id(task_id), "last_overdue_notified_on": {"$ne": day}},
            {"$set": {"last_overdue_notified_on": day, "last_overdue_notified_at": now}}
        )
        return result.modified_count == 1

    def claim_due_soon_notification(self, task_id: str, due_date: datetime, now: datetime) -> bool:
        """
        Claim the due-soon notification for the task's current due date.

        The guard stores the due date it was claimed for, so moving the
        due date re-arms it without anyone resetting a flag.
        """
        result = self._tasks.update_one(
            {
                "_id": match_id(task_id),
                "due_date": due_date,
                "due_soon_notified_for": {"$ne": due_date}
            },
            {"$set": {"due_soon_notified_for": due_date, "due_soon_notified_at": now}}
        )
        return result.modified_count == 1


class UserDirectoryRepository:
    """Display names of application users"""

    def __init__(self, db: Database):
        self._users: Collection = db[USERS]

    def get_display_name(self, app_user_id: Optional[str]) -> str:
        if not app_user_id:
            return "Someone"
        doc = self._users.find_one(
            {"_id": match_id(app_user_id)},
            projection={"display_name": 1, "name": 1, "email": 1}
        )
        if not doc:
            return "Someone"
        return doc.get("display_name") or doc.get("name") or doc.get("email") or "Someone"
