"""Identity Repository - Chat identity <-> application identity links

Links are keyed by chat user id. They are deactivated on unlink and never
deleted; when a chat user re-links, the inactive document is archived first.
"""
from typing import List, Optional
from datetime import datetime
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from .mongo_client import IDENTITY_LINKS, IDENTITY_LINK_HISTORY
from ..domain.models import IdentityLink
from ..domain.errors import AlreadyLinkedError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class IdentityRepository:
    """Repository for identity link operations"""

    def __init__(self, db: Database):
        self._links: Collection = db[IDENTITY_LINKS]
        self._history: Collection = db[IDENTITY_LINK_HISTORY]

    @staticmethod
    def _to_model(doc: dict) -> IdentityLink:
        doc.pop("_id", None)
        return IdentityLink.model_validate(doc)

    def get_link(self, chat_user_id: str) -> Optional[IdentityLink]:
        """Get the link document for a chat user (active or not)"""
        doc = self._links.find_one({"_id": chat_user_id})
        return self._to_model(doc) if doc else None

    def get_active_link_for_chat_user(self, chat_user_id: str) -> Optional[IdentityLink]:
        """Get the active link for a chat user"""
        doc = self._links.find_one({"_id": chat_user_id, "is_active": True})
        return self._to_model(doc) if doc else None

    def get_active_link_for_app_user(self, app_user_id: str) -> Optional[IdentityLink]:
        """
        Get the canonical active link for an application user.

        The partial unique index allows at most one; callers still
        have to handle None.
        """
        doc = self._links.find_one(
            {"app_user_id": app_user_id, "is_active": True},
            sort=[("linked_at", -1)]
        )
        return self._to_model(doc) if doc else None

    def list_links_for_app_user(self, app_user_id: str) -> List[IdentityLink]:
        """All current link documents (active and inactive) for an application user"""
        cursor = self._links.find({"app_user_id": app_user_id}).sort("linked_at", -1)
        return [self._to_model(doc) for doc in cursor]

    def activate_link(
        self,
        link: IdentityLink,
        session: Optional[ClientSession] = None
    ) -> IdentityLink:
        """
        Upsert an active link keyed by chat user id.

        Only replaces a document that is not active; a live link makes the
        upsert collide on `_id`, and a live link for the same application
        user collides on the partial unique index. Both surface as
        AlreadyLinkedError.
        """
        existing = self._links.find_one(
            {"_id": link.chat_user_id, "is_active": {"$ne": True}},
            session=session
        )
        if existing:
            archived = dict(existing)
            archived.pop("_id", None)
            archived["archived_at"] = utc_now()
            self._history.insert_one(archived, session=session)

        doc = link.model_dump()
        doc["_id"] = link.chat_user_id
        try:
            self._links.replace_one(
                {"_id": link.chat_user_id, "is_active": {"$ne": True}},
                doc,
                upsert=True,
                session=session
            )
        except DuplicateKeyError as e:
            raise AlreadyLinkedError(
                "An active link already exists for this chat user or application account",
                details={"chat_user_id": link.chat_user_id, "app_user_id": link.app_user_id}
            ) from e

        logger.info(
            "Identity link activated",
            extra={"chat_user_id": link.chat_user_id, "app_user_id": link.app_user_id}
        )
        return link

    def deactivate_links_for_app_user(self, app_user_id: str, now: Optional[datetime] = None) -> int:
        """Deactivate every active link for an application user"""
        result = self._links.update_many(
            {"app_user_id": app_user_id, "is_active": True},
            {"$set": {"is_active": False, "unlinked_at": now or utc_now()}}
        )
        if result.modified_count:
            logger.info(
                f"Deactivated {result.modified_count} identity link(s)",
                extra={"app_user_id": app_user_id}
            )
        return result.modified_count
