"""Linking Code Repository - Data access for single-use linking codes"""
from typing import Optional
from datetime import datetime
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from .mongo_client import LINKING_CODES
from ..domain.models import LinkingCode
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class LinkingCodeRepository:
    """Repository for linking code operations"""

    def __init__(self, db: Database):
        self._codes: Collection = db[LINKING_CODES]

    def insert_code(self, linking_code: LinkingCode) -> bool:
        """
        Insert a new code keyed by its value.

        Returns False when the code already exists so the caller can
        draw another one.
        """
        doc = linking_code.model_dump()
        doc["_id"] = linking_code.code
        try:
            self._codes.insert_one(doc)
        except DuplicateKeyError:
            logger.warning("Linking code collision, regenerating")
            return False
        return True

    def get_code(self, code: str) -> Optional[LinkingCode]:
        """Get linking code by value"""
        doc = self._codes.find_one({"_id": code})
        if doc:
            doc.pop("_id", None)
            return LinkingCode.model_validate(doc)
        return None

    def mark_verified(self, code: str, now: Optional[datetime] = None) -> bool:
        """Set the verified flag on an unused code"""
        result = self._codes.update_one(
            {"_id": code, "used": False},
            {"$set": {"verified": True, "verified_at": now or utc_now()}}
        )
        return result.matched_count > 0

    def consume(
        self,
        code: str,
        chat_user_id: str,
        now: Optional[datetime] = None,
        session: Optional[ClientSession] = None
    ) -> bool:
        """
        Mark a verified, unused code as used.

        The filter makes this the single point where a code can be
        consumed; a second consumer matches nothing.
        """
        result = self._codes.update_one(
            {"_id": code, "used": False, "verified": True},
            {"$set": {
                "used": True,
                "used_at": now or utc_now(),
                "used_by_chat_user_id": chat_user_id
            }},
            session=session
        )
        return result.modified_count == 1

    def delete_expired(self, now: Optional[datetime] = None) -> int:
        """Purge codes past their expiry"""
        result = self._codes.delete_many({"expires_at": {"$lte": now or utc_now()}})
        if result.deleted_count:
            logger.info(f"Purged {result.deleted_count} expired linking codes")
        return result.deleted_count
