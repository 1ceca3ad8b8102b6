"""In-memory stand-ins for the Mongo repositories

Each fake mirrors the filter semantics of the real repository method it
replaces (conditional updates included) so service-level tests exercise
the same guards.
"""
import json
from copy import deepcopy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
import jwt as pyjwt

from tasknotify.domain.errors import AlreadyLinkedError, InvalidInputError
from tasknotify.domain.models import (
    LinkingCode, IdentityLink, DeliveryLogEntry, DeliveryHistoryPage, ProjectChannel,
    TaskSnapshot
)
from tasknotify.repositories.task_repo import match_id


class FakeLinkingCodeRepository:
    def __init__(self):
        self.codes: Dict[str, LinkingCode] = {}

    def insert_code(self, linking_code: LinkingCode) -> bool:
        if linking_code.code in self.codes:
            return False
        self.codes[linking_code.code] = linking_code.model_copy()
        return True

    def get_code(self, code: str) -> Optional[LinkingCode]:
        found = self.codes.get(code)
        return found.model_copy() if found else None

    def mark_verified(self, code: str, now: Optional[datetime] = None) -> bool:
        found = self.codes.get(code)
        if found is None or found.used:
            return False
        found.verified = True
        found.verified_at = now
        return True

    def consume(self, code: str, chat_user_id: str, now: Optional[datetime] = None, session=None) -> bool:
        found = self.codes.get(code)
        if found is None or found.used or not found.verified:
            return False
        found.used = True
        found.used_at = now
        found.used_by_chat_user_id = chat_user_id
        return True

    def delete_expired(self, now: Optional[datetime] = None) -> int:
        expired = [c for c, v in self.codes.items() if v.expires_at <= now]
        for code in expired:
            del self.codes[code]
        return len(expired)


class FakeIdentityRepository:
    def __init__(self):
        self.links: Dict[str, IdentityLink] = {}
        self.history: List[IdentityLink] = []

    def add_active(self, chat_user_id: str, app_user_id: str, linked_at: datetime) -> IdentityLink:
        link = IdentityLink(
            chat_user_id=chat_user_id,
            chat_user_name=chat_user_id,
            app_user_id=app_user_id,
            app_email=f"{app_user_id}@example.com",
            linked_at=linked_at,
        )
        self.links[chat_user_id] = link
        return link

    def get_link(self, chat_user_id: str) -> Optional[IdentityLink]:
        return self.links.get(chat_user_id)

    def get_active_link_for_chat_user(self, chat_user_id: str) -> Optional[IdentityLink]:
        link = self.links.get(chat_user_id)
        return link if link and link.is_active else None

    def get_active_link_for_app_user(self, app_user_id: str) -> Optional[IdentityLink]:
        active = [l for l in self.links.values() if l.app_user_id == app_user_id and l.is_active]
        return max(active, key=lambda l: l.linked_at) if active else None

    def list_links_for_app_user(self, app_user_id: str) -> List[IdentityLink]:
        return [l for l in self.links.values() if l.app_user_id == app_user_id]

    def activate_link(self, link: IdentityLink, session=None) -> IdentityLink:
        existing = self.links.get(link.chat_user_id)
        if existing and existing.is_active:
            raise AlreadyLinkedError("chat user already linked")
        if self.get_active_link_for_app_user(link.app_user_id):
            raise AlreadyLinkedError("application user already linked")
        if existing:
            self.history.append(existing)
        self.links[link.chat_user_id] = link.model_copy()
        return link

    def deactivate_links_for_app_user(self, app_user_id: str, now: Optional[datetime] = None) -> int:
        count = 0
        for link in self.links.values():
            if link.app_user_id == app_user_id and link.is_active:
                link.is_active = False
                link.unlinked_at = now
                count += 1
        return count


class FakePreferenceRepository:
    def __init__(self):
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.dnd_clears = 0

    def get_document(self, app_user_id: str) -> Optional[Dict[str, Any]]:
        doc = self.docs.get(app_user_id)
        return deepcopy(doc) if doc is not None else None

    def set_fields(self, app_user_id: str, fields: Dict[str, Any]) -> None:
        doc = self.docs.setdefault(app_user_id, {"_id": app_user_id})
        for key, value in fields.items():
            target = doc
            parts = key.split(".")
            for part in parts[:-1]:
                target = target.setdefault(part, {})
            target[parts[-1]] = deepcopy(value)
        doc["app_user_id"] = app_user_id

    def clear_expired_dnd(self, app_user_id: str, now: datetime) -> bool:
        dnd = (self.docs.get(app_user_id) or {}).get("do_not_disturb") or {}
        if dnd.get("enabled") and dnd.get("until") is not None and dnd["until"] <= now:
            dnd.update({"enabled": False, "until": None, "started_at": None})
            self.dnd_clears += 1
            return True
        return False

    def clear_all_expired_dnd(self, now: datetime) -> int:
        return sum(1 for uid in list(self.docs) if self.clear_expired_dnd(uid, now))


class FakeDeliveryLogRepository:
    def __init__(self, fail_writes: bool = False):
        self.entries: List[DeliveryLogEntry] = []
        self.fail_writes = fail_writes

    def append(self, entry: DeliveryLogEntry) -> DeliveryLogEntry:
        if self.fail_writes:
            raise RuntimeError("log store unavailable")
        self.entries.append(entry)
        return entry

    def get_history(self, recipient_app_user_id: str, limit: int = 20, after: Optional[str] = None) -> DeliveryHistoryPage:
        items = sorted(
            (e for e in self.entries if e.recipient_app_user_id == recipient_app_user_id),
            key=lambda e: (e.sent_at, e.log_id),
            reverse=True,
        )
        if after:
            ids = [e.log_id for e in items]
            if after not in ids:
                raise InvalidInputError("Unknown history cursor", details={"after": after})
            items = items[ids.index(after) + 1:]
        page = items[:limit]
        return DeliveryHistoryPage(
            items=page,
            has_more=len(items) > limit,
            last_id=page[-1].log_id if page else None,
        )

    def was_delivered(self, dedupe_key: str, recipient_app_user_id: Optional[str] = None) -> bool:
        return any(
            e.dedupe_key == dedupe_key and e.status.value == "sent"
            and (recipient_app_user_id is None or e.recipient_app_user_id == recipient_app_user_id)
            for e in self.entries
        )


class FakeChannelRepository:
    def __init__(self):
        self.channels: Dict[str, ProjectChannel] = {}

    def get_channel(self, project_id: str) -> Optional[ProjectChannel]:
        return self.channels.get(project_id)

    def bind_channel(self, channel: ProjectChannel) -> ProjectChannel:
        self.channels[channel.project_id] = channel
        return channel

    def unbind_channel(self, project_id: str) -> bool:
        return self.channels.pop(project_id, None) is not None


class FakeTaskRepository:
    """Task documents as plain dicts, keyed by their raw _id (str or ObjectId)"""

    def __init__(self):
        self.docs: Dict[Any, Dict[str, Any]] = {}

    def put(self, task_id: Any, **fields) -> Dict[str, Any]:
        doc = self.docs.setdefault(task_id, {"_id": task_id})
        doc.update(fields)
        return doc

    def _lookup(self, task_id: str) -> Optional[Dict[str, Any]]:
        wanted = match_id(task_id)
        candidates = wanted["$in"] if isinstance(wanted, dict) else [wanted]
        return next((self.docs[c] for c in candidates if c in self.docs), None)

    def get_task(self, task_id: str) -> Optional[TaskSnapshot]:
        doc = self._lookup(task_id)
        return TaskSnapshot.from_document(doc) if doc else None

    def _open(self):
        return [d for d in self.docs.values() if d.get("status") != "completed" and d.get("due_date")]

    def find_overdue(self, before: datetime) -> List[TaskSnapshot]:
        docs = sorted((d for d in self._open() if d["due_date"] < before), key=lambda d: d["due_date"])
        return [TaskSnapshot.from_document(d) for d in docs]

    def find_due_between(self, start: datetime, end: datetime) -> List[TaskSnapshot]:
        docs = sorted((d for d in self._open() if start <= d["due_date"] <= end), key=lambda d: d["due_date"])
        return [TaskSnapshot.from_document(d) for d in docs]

    def claim_overdue_notification(self, task_id: str, day: str, now: datetime) -> bool:
        doc = self._lookup(task_id)
        if doc is None or doc.get("last_overdue_notified_on") == day:
            return False
        doc["last_overdue_notified_on"] = day
        doc["last_overdue_notified_at"] = now
        return True

    def claim_due_soon_notification(self, task_id: str, due_date: datetime, now: datetime) -> bool:
        doc = self._lookup(task_id)
        if doc is None or doc.get("due_date") != due_date or doc.get("due_soon_notified_for") == due_date:
            return False
        doc["due_soon_notified_for"] = due_date
        doc["due_soon_notified_at"] = now
        return True


class FakeUserDirectory:
    def __init__(self, names: Optional[Dict[str, str]] = None):
        self.names = names or {}

    def get_display_name(self, app_user_id: Optional[str]) -> str:
        return self.names.get(app_user_id or "", "Someone")


class WebhookRecorder:
    """
    httpx MockTransport handler that records requests.

    `script` holds the outcomes of successive calls: an int status code or
    an exception instance to raise. Once exhausted, `default_status` is used.
    """

    def __init__(self, script=None, default_status: int = 200):
        self.script = list(script or [])
        self.default_status = default_status
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        outcome = self.script.pop(0) if self.script else self.default_status
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={"ok": 200 <= outcome < 300})

    @property
    def payloads(self):
        return [json.loads(r.content) for r in self.requests]


class FakeClock:
    """Callable clock for services that take `clock=`"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def issue_token(
    secret: str,
    app_user_id: str,
    email: str,
    name: Optional[str] = None,
    expires_in: timedelta = timedelta(hours=1)
) -> str:
    """Sign a session token the way the task application does"""
    now = datetime.now(timezone.utc)
    claims = {"sub": app_user_id, "email": email, "name": name or email, "iat": now, "exp": now + expires_in}
    return pyjwt.encode(claims, secret, algorithm="HS256")
