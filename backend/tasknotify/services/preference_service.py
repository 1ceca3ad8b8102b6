"""Preference Service - Decides whether a user wants a notification

Resolution order (first match wins):
1. no stored document -> defaults
2. global switch off -> deny
3. event type off -> deny
4. do-not-disturb active -> deny (an expired window is cleared lazily)
5. inside quiet hours -> deny
6. project muted -> deny
7. allow
"""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from ..config.settings import Settings
from ..domain.enums import NotificationEventType
from ..domain.models import NotificationPreferences, PreferencesUpdate
from ..domain.errors import InvalidInputError
from ..repositories.preference_repo import PreferenceRepository
from ..utils.logger import get_logger
from ..utils.time import utc_now, get_zone, local_hour, hour_in_window, ensure_utc

logger = get_logger(__name__)


def resolve_with_defaults(stored: Optional[Dict[str, Any]]) -> NotificationPreferences:
    """Build the effective preferences from a stored (possibly partial) document"""
    if not stored:
        return NotificationPreferences()
    doc = dict(stored)
    doc.pop("_id", None)
    return NotificationPreferences.model_validate(doc)


def dnd_active(preferences: NotificationPreferences, now: datetime) -> bool:
    dnd = preferences.do_not_disturb
    if not dnd.enabled:
        return False
    return dnd.until is None or now < ensure_utc(dnd.until)


def dnd_expired(preferences: NotificationPreferences, now: datetime) -> bool:
    dnd = preferences.do_not_disturb
    return dnd.enabled and dnd.until is not None and now >= ensure_utc(dnd.until)


class PreferenceService:
    """Reads and mutates per-user notification preferences"""

    def __init__(
        self,
        repo: PreferenceRepository,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now
    ):
        self.repo = repo
        self.zone = get_zone(settings.notification_timezone)
        self._clock = clock

    def _heal_dnd(self, app_user_id: str, preferences: NotificationPreferences, now: datetime) -> None:
        """Switch off an expired DND window in storage and in the loaded copy"""
        if dnd_expired(preferences, now):
            self.repo.clear_expired_dnd(app_user_id, now)
            preferences.do_not_disturb.enabled = False
            preferences.do_not_disturb.until = None
            preferences.do_not_disturb.started_at = None
            logger.info("Expired do-not-disturb cleared", extra={"app_user_id": app_user_id})

    def resolve(
        self,
        app_user_id: str,
        event_type: NotificationEventType,
        project_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> bool:
        """Return True if the user should receive this notification now"""
        now = now or self._clock()
        preferences = resolve_with_defaults(self.repo.get_document(app_user_id))

        if not preferences.enabled:
            return False
        if not preferences.is_event_enabled(event_type):
            return False

        if dnd_active(preferences, now):
            return False
        self._heal_dnd(app_user_id, preferences, now)

        quiet = preferences.quiet_hours
        if quiet.enabled and hour_in_window(local_hour(now, self.zone), quiet.start_hour, quiet.end_hour):
            return False

        if project_id:
            override = preferences.project_overrides.get(project_id)
            if override is not None and override.enabled is False:
                return False

        return True

    # =========================================================================
    # Owner-facing reads and mutations
    # =========================================================================

    def get_preferences(self, app_user_id: str) -> NotificationPreferences:
        now = self._clock()
        preferences = resolve_with_defaults(self.repo.get_document(app_user_id))
        self._heal_dnd(app_user_id, preferences, now)
        preferences.app_user_id = app_user_id
        return preferences

    def update_preferences(self, app_user_id: str, update: PreferencesUpdate) -> NotificationPreferences:
        """Merge the provided fields into the stored document"""
        fields = update.model_dump(exclude_none=True)
        if not fields:
            raise InvalidInputError("No preference fields provided")
        self.repo.set_fields(app_user_id, fields)
        return self.get_preferences(app_user_id)

    def set_project_muted(self, app_user_id: str, project_id: str, muted: bool) -> NotificationPreferences:
        if not project_id:
            raise InvalidInputError("project_id is required")
        if "." in project_id or project_id.startswith("$"):
            raise InvalidInputError("project_id contains invalid characters", details={"project_id": project_id})
        self.repo.set_fields(app_user_id, {
            f"project_overrides.{project_id}": {
                "enabled": not muted,
                "muted_at": self._clock() if muted else None
            }
        })
        logger.info(
            "Project muted" if muted else "Project unmuted",
            extra={"app_user_id": app_user_id, "project_id": project_id}
        )
        return self.get_preferences(app_user_id)

    def set_do_not_disturb(
        self,
        app_user_id: str,
        enabled: bool,
        duration_hours: Optional[float] = None
    ) -> NotificationPreferences:
        """Enable DND (open-ended, or for a number of hours) or disable it"""
        if duration_hours is not None and duration_hours <= 0:
            raise InvalidInputError("duration_hours must be positive")

        now = self._clock()
        until = now + timedelta(hours=duration_hours) if enabled and duration_hours else None
        self.repo.set_fields(app_user_id, {
            "do_not_disturb": {
                "enabled": enabled,
                "until": until,
                "started_at": now if enabled else None
            }
        })
        return self.get_preferences(app_user_id)

    def clear_expired_dnd(self) -> int:
        """Eager sweep; resolution does not depend on it"""
        cleared = self.repo.clear_all_expired_dnd(self._clock())
        if cleared:
            logger.info(f"Cleared {cleared} expired do-not-disturb windows")
        return cleared
