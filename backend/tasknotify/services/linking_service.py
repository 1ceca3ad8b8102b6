"""Linking Service - Two-factor chat account linking

Flow:
1. The application user generates a code; the app shows the code and a
   challenge number.
2. The user types the code into the chat platform. The chat side shows
   the challenge number back and the user confirms it inside the
   authenticated application session (verify_challenge).
3. The chat side consumes the code (link_with_code), which marks the code
   used and activates the identity link in one transaction.

A code seen by a third party in the chat is useless without live access to
the owner's application session.
"""
from datetime import datetime, timedelta
from typing import Callable, Optional

from pymongo.database import Database

from ..config.settings import Settings
from ..domain.models import (
    LinkingCode, GeneratedCode, IdentityLink, LinkResult, UnlinkResult, CodeStatus
)
from ..domain.errors import (
    InvalidInputError, LinkingCodeNotFoundError, ForbiddenError, ExpiredError,
    MismatchError, AlreadyUsedError, NotVerifiedError, AlreadyLinkedError
)
from ..repositories.identity_repo import IdentityRepository
from ..repositories.linking_code_repo import LinkingCodeRepository
from ..repositories.mongo_client import run_in_transaction
from ..utils.idgen import generate_linking_code, generate_challenge_number
from ..utils.logger import get_logger
from ..utils.time import utc_now, format_iso

logger = get_logger(__name__)

MAX_CODE_ATTEMPTS = 5


class LinkingService:
    """Issues, verifies and consumes linking codes"""

    def __init__(
        self,
        code_repo: LinkingCodeRepository,
        identity_repo: IdentityRepository,
        settings: Settings,
        transaction: Optional[Callable] = None,
        db: Optional[Database] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.code_repo = code_repo
        self.identity_repo = identity_repo
        self.settings = settings
        self._db = db
        self._transaction = transaction or self._mongo_transaction
        self._clock = clock

    def _mongo_transaction(self, callback):
        return run_in_transaction(self._db, callback)

    # =========================================================================
    # Code issuance
    # =========================================================================

    def generate_code(self, app_user_id: str, app_email: str) -> GeneratedCode:
        """Create a fresh linking code for an application user"""
        if not app_user_id or not app_user_id.strip():
            raise InvalidInputError("app_user_id is required")
        if not app_email or not app_email.strip():
            raise InvalidInputError("app_email is required")

        now = self._clock()
        expires_at = now + timedelta(minutes=self.settings.linking_code_ttl_minutes)

        for _ in range(MAX_CODE_ATTEMPTS):
            linking_code = LinkingCode(
                code=generate_linking_code(),
                app_user_id=app_user_id,
                app_email=app_email,
                challenge_number=generate_challenge_number(),
                created_at=now,
                expires_at=expires_at,
            )
            if self.code_repo.insert_code(linking_code):
                logger.info(
                    "Linking code generated",
                    extra={"app_user_id": app_user_id, "code_prefix": linking_code.code[:2]}
                )
                return GeneratedCode(
                    code=linking_code.code,
                    challenge_number=linking_code.challenge_number,
                    expires_at=expires_at,
                )

        raise InvalidInputError("Could not allocate a linking code, please retry")

    # =========================================================================
    # Verification (application side)
    # =========================================================================

    def _load(self, code: str) -> LinkingCode:
        linking_code = self.code_repo.get_code(code.strip().upper()) if code else None
        if linking_code is None:
            raise LinkingCodeNotFoundError("Linking code not found", details={"code": code})
        return linking_code

    def verify_challenge(self, code: str, challenge_number: int, app_user_id: str) -> bool:
        """
        Confirm the challenge number from the owner's authenticated session.

        Idempotent until the code is consumed.
        """
        linking_code = self._load(code)
        now = self._clock()

        if linking_code.app_user_id != app_user_id:
            logger.warning(
                "Challenge verification attempted by non-owner",
                extra={"app_user_id": app_user_id}
            )
            raise ForbiddenError("This linking code belongs to another account")
        if linking_code.is_expired(now):
            raise ExpiredError("Linking code has expired", details={"expires_at": format_iso(linking_code.expires_at)})
        if linking_code.used:
            raise AlreadyUsedError("Linking code has already been used")
        if int(challenge_number) != linking_code.challenge_number:
            raise MismatchError("Challenge number does not match")

        if not linking_code.verified:
            self.code_repo.mark_verified(linking_code.code, now)
            logger.info("Linking code verified", extra={"app_user_id": app_user_id})
        return True

    def get_code_status(self, code: str) -> CodeStatus:
        """Let the chat side poll whether the owner confirmed the number"""
        linking_code = self._load(code)
        return CodeStatus(
            code=linking_code.code,
            verified=linking_code.verified,
            used=linking_code.used,
            expired=linking_code.is_expired(self._clock()),
            expires_at=linking_code.expires_at,
        )

    # =========================================================================
    # Consumption (chat side)
    # =========================================================================

    def link_with_code(
        self,
        code: str,
        chat_user_id: str,
        chat_user_name: str,
        chat_email: Optional[str] = None
    ) -> LinkResult:
        """Consume a verified code and activate the identity link"""
        if not chat_user_id:
            raise InvalidInputError("chat_user_id is required")

        linking_code = self._load(code)
        now = self._clock()

        if linking_code.is_expired(now):
            raise ExpiredError("Linking code has expired")
        if linking_code.used:
            raise AlreadyUsedError("Linking code has already been used")
        if not linking_code.verified:
            raise NotVerifiedError("Confirm the challenge number in the app before linking")
        if self.identity_repo.get_active_link_for_chat_user(chat_user_id):
            raise AlreadyLinkedError(
                "This chat account is already linked; unlink it first",
                details={"chat_user_id": chat_user_id}
            )

        link = IdentityLink(
            chat_user_id=chat_user_id,
            chat_user_name=chat_user_name or "",
            chat_email=chat_email,
            app_user_id=linking_code.app_user_id,
            app_email=linking_code.app_email,
            linked_at=now,
            is_active=True,
        )

        def _consume_and_link(session):
            if not self.code_repo.consume(linking_code.code, chat_user_id, now, session=session):
                raise AlreadyUsedError("Linking code has already been used")
            self.identity_repo.activate_link(link, session=session)

        self._transaction(_consume_and_link)

        logger.info(
            "Chat account linked",
            extra={"chat_user_id": chat_user_id, "app_user_id": linking_code.app_user_id}
        )
        return LinkResult(app_user_id=linking_code.app_user_id, app_email=linking_code.app_email)

    def unlink(self, app_user_id: str) -> UnlinkResult:
        """Deactivate all active links of an application user"""
        if not app_user_id:
            raise InvalidInputError("app_user_id is required")

        count = self.identity_repo.deactivate_links_for_app_user(app_user_id, self._clock())
        if count == 0:
            return UnlinkResult(unlinked_count=0, message="No active link, nothing to do")
        return UnlinkResult(unlinked_count=count, message=f"Unlinked {count} chat account(s)")

    def get_link_for_chat_user(self, chat_user_id: str) -> Optional[IdentityLink]:
        """Active link for a chat user, if any"""
        return self.identity_repo.get_active_link_for_chat_user(chat_user_id)

    def purge_expired_codes(self) -> int:
        return self.code_repo.delete_expired(self._clock())
