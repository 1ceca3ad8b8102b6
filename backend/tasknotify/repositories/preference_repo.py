"""Preference Repository - Per-user notification settings documents"""
from typing import Any, Dict, Optional
from datetime import datetime
from pymongo.collection import Collection
from pymongo.database import Database

from .mongo_client import NOTIFICATION_PREFERENCES
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class PreferenceRepository:
    """Repository for notification preference documents (keyed by app user id)"""

    def __init__(self, db: Database):
        self._preferences: Collection = db[NOTIFICATION_PREFERENCES]

    def get_document(self, app_user_id: str) -> Optional[Dict[str, Any]]:
        """Raw stored document, or None when the user never saved settings"""
        return self._preferences.find_one({"_id": app_user_id})

    def set_fields(self, app_user_id: str, fields: Dict[str, Any]) -> None:
        """Merge the given (dotted) fields into the user's document"""
        update = dict(fields)
        update["app_user_id"] = app_user_id
        update["updated_at"] = utc_now()
        self._preferences.update_one({"_id": app_user_id}, {"$set": update}, upsert=True)
        logger.info(
            "Notification preferences updated",
            extra={"app_user_id": app_user_id}
        )

    def clear_expired_dnd(self, app_user_id: str, now: datetime) -> bool:
        """
        Switch off a DND window whose `until` has passed.

        Conditional on the window still being expired so a DND the user
        re-enabled in the meantime is left alone.
        """
        result = self._preferences.update_one(
            {
                "_id": app_user_id,
                "do_not_disturb.enabled": True,
                "do_not_disturb.until": {"$ne": None, "$lte": now}
            },
            {"$set": {
                "do_not_disturb.enabled": False,
                "do_not_disturb.until": None,
                "do_not_disturb.started_at": None
            }}
        )
        return result.modified_count > 0

    def clear_all_expired_dnd(self, now: datetime) -> int:
        """Sweep every expired DND window"""
        result = self._preferences.update_many(
            {
                "do_not_disturb.enabled": True,
                "do_not_disturb.until": {"$ne": None, "$lte": now}
            },
            {"$set": {
                "do_not_disturb.enabled": False,
                "do_not_disturb.until": None,
                "do_not_disturb.started_at": None
            }}
        )
        return result.modified_count
