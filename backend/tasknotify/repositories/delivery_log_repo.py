"""Delivery Log Repository - Append-only record of notification deliveries"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo import DESCENDING

from .mongo_client import DELIVERY_LOGS
from ..domain.errors import InvalidInputError
from ..domain.models import DeliveryLogEntry, DeliveryHistoryPage
from ..utils.logger import get_logger

logger = get_logger(__name__)


class DeliveryLogRepository:
    """Repository for delivery log operations (append-only)"""

    def __init__(self, db: Database):
        self._logs: Collection = db[DELIVERY_LOGS]

    def append(self, entry: DeliveryLogEntry) -> DeliveryLogEntry:
        """Append a delivery log entry"""
        doc = entry.model_dump(mode="python")
        doc["_id"] = entry.log_id
        doc["event_type"] = entry.event_type.value
        doc["target_type"] = entry.target_type.value
        doc["status"] = entry.status.value
        self._logs.insert_one(doc)
        return entry

    def get_history(
        self,
        recipient_app_user_id: str,
        limit: int = 20,
        after: Optional[str] = None
    ) -> DeliveryHistoryPage:
        """
        Page through a recipient's deliveries, newest first.

        `after` is the `log_id` of the last entry of the previous page;
        ties on `sent_at` are broken by `log_id`. A cursor that is not one of
        the recipient's entries raises InvalidInputError.
        """
        query: Dict[str, Any] = {"recipient_app_user_id": recipient_app_user_id}

        if after:
            cursor_entry = self._logs.find_one(
                {"_id": after, "recipient_app_user_id": recipient_app_user_id}
            )
            if cursor_entry is None:
                raise InvalidInputError("Unknown history cursor", details={"after": after})
            query["$or"] = [
                {"sent_at": {"$lt": cursor_entry["sent_at"]}},
                {"sent_at": cursor_entry["sent_at"], "log_id": {"$lt": cursor_entry["log_id"]}},
            ]

        cursor = self._logs.find(query).sort(
            [("sent_at", DESCENDING), ("log_id", DESCENDING)]
        ).limit(limit + 1)

        items: List[DeliveryLogEntry] = []
        for doc in cursor:
            doc.pop("_id", None)
            items.append(DeliveryLogEntry.model_validate(doc))

        has_more = len(items) > limit
        items = items[:limit]
        return DeliveryHistoryPage(
            items=items,
            has_more=has_more,
            last_id=items[-1].log_id if items else None
        )

    def was_delivered(self, dedupe_key: str, recipient_app_user_id: Optional[str] = None) -> bool:
        """Whether a successful delivery with this dedupe key is on record"""
        query: Dict[str, Any] = {"dedupe_key": dedupe_key, "status": "sent"}
        if recipient_app_user_id:
            query["recipient_app_user_id"] = recipient_app_user_id
        return self._logs.count_documents(query, limit=1) > 0
