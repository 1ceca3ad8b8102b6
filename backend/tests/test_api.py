from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from tasknotify.container import ServiceContainer
from tasknotify.domain.enums import NotificationEventType, TargetType, DeliveryStatus
from tasknotify.domain.models import DeliveryLogEntry, ProjectChannel
from tasknotify.main import create_app
from tasknotify.services.event_router import NotificationRouter

from tests.conftest import NOW
from tests.fakes import issue_token

API_KEY = {"X-API-Key": "test-api-key"}


@pytest.fixture
def container(
    settings, http_client, linking_service, preference_service, dispatcher,
    identity_repo, delivery_log_repo, channel_repo, user_directory
):
    db = MagicMock()
    db.name = "tasker_notify_test"
    container = ServiceContainer(settings, db, http_client)
    container.identity_repo = identity_repo
    container.delivery_log_repo = delivery_log_repo
    container.channel_repo = channel_repo
    container.linking_service = linking_service
    container.preference_service = preference_service
    container.dispatcher = dispatcher
    container.router = NotificationRouter(dispatcher, user_directory)
    return container


@pytest.fixture
def client(settings, container):
    app = create_app(settings)
    app.state.container = container
    with TestClient(app) as test_client:
        yield test_client


def bearer(container, app_user_id="u-alice", **kwargs):
    token = issue_token(container.settings.jwt_secret, app_user_id, f"{app_user_id}@example.com", **kwargs)
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Auth
# =============================================================================

def test_missing_token_is_unauthorized(client):
    response = client.post("/api/v1/linking/codes")
    assert response.status_code == 401


def test_expired_token_is_unauthorized(client, container):
    response = client.post(
        "/api/v1/linking/codes", headers=bearer(container, expires_in=timedelta(seconds=-5))
    )
    assert response.status_code == 401
    assert response.json()["detail"]["error"]["message"] == "Token has expired"


def test_wrong_api_key_is_unauthorized(client):
    response = client.get("/api/v1/linking/identities/c-1", headers={"X-API-Key": "nope"})
    assert response.status_code == 401


# =============================================================================
# Linking
# =============================================================================

def test_full_linking_flow(client, container):
    generated = client.post("/api/v1/linking/codes", headers=bearer(container))
    assert generated.status_code == 201
    code = generated.json()["code"]
    challenge = generated.json()["challenge_number"]

    early = client.post("/api/v1/linking/link", json={"code": code, "chat_user_id": "c-alice"}, headers=API_KEY)
    assert early.status_code == 409
    assert early.json()["error"]["code"] == "NOT_VERIFIED"

    verified = client.post(
        "/api/v1/linking/verify-challenge",
        json={"code": code, "challenge_number": challenge},
        headers=bearer(container)
    )
    assert verified.json() == {"verified": True}

    status = client.get(f"/api/v1/linking/codes/{code}/status", headers=API_KEY)
    assert status.json()["verified"] is True

    linked = client.post(
        "/api/v1/linking/link",
        json={"code": code, "chat_user_id": "c-alice", "chat_user_name": "Alice"},
        headers=API_KEY
    )
    assert linked.status_code == 200
    assert linked.json() == {"app_user_id": "u-alice", "app_email": "u-alice@example.com"}

    identity = client.get("/api/v1/linking/identities/c-alice", headers=API_KEY).json()
    assert identity["linked"] is True
    assert identity["app_user_id"] == "u-alice"

    reused = client.post("/api/v1/linking/link", json={"code": code, "chat_user_id": "c-eve"}, headers=API_KEY)
    assert reused.status_code == 409
    assert reused.json()["error"]["code"] == "ALREADY_USED"


def test_verify_by_other_account_is_forbidden(client, container):
    code = client.post("/api/v1/linking/codes", headers=bearer(container)).json()

    response = client.post(
        "/api/v1/linking/verify-challenge",
        json={"code": code["code"], "challenge_number": code["challenge_number"]},
        headers=bearer(container, "u-mallory")
    )

    assert response.status_code == 403
    assert response.headers["X-Correlation-Id"]


def test_unknown_code_is_404(client):
    response = client.get("/api/v1/linking/codes/ZZZZZZ/status", headers=API_KEY)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "LINKING_CODE_NOT_FOUND"


def test_unlink_without_link(client, container):
    response = client.post("/api/v1/linking/unlink", headers=bearer(container))
    assert response.json()["unlinked_count"] == 0


# =============================================================================
# Preferences
# =============================================================================

def test_preferences_default_then_update(client, container):
    defaults = client.get("/api/v1/preferences", headers=bearer(container)).json()
    assert defaults["enabled"] is True
    assert defaults["app_user_id"] == "u-alice"

    updated = client.put("/api/v1/preferences", json={"task_updated": False}, headers=bearer(container))
    assert updated.json()["task_updated"] is False


def test_unknown_preference_field_is_rejected(client, container):
    response = client.put("/api/v1/preferences", json={"telepathy": True}, headers=bearer(container))
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_mute_project_and_resolve(client, container):
    client.post("/api/v1/preferences/mute-project", json={"project_id": "p-1"}, headers=bearer(container))

    response = client.get(
        "/api/v1/preferences/resolve",
        params={"event_type": "task_assigned", "project_id": "p-1"},
        headers=bearer(container)
    )

    assert response.json() == {"event_type": "task_assigned", "project_id": "p-1", "allowed": False}


def test_dnd_duration_must_be_positive(client, container):
    response = client.post(
        "/api/v1/preferences/dnd", json={"enabled": True, "duration_hours": 0}, headers=bearer(container)
    )
    assert response.status_code == 400


# =============================================================================
# Notifications & channels
# =============================================================================

def test_notify_user_endpoint(client, identity_repo, webhook):
    identity_repo.add_active("c-bob", "u-bob", NOW)

    response = client.post(
        "/api/v1/notifications/users/u-bob",
        json={"type": "task_assigned", "task": {"id": "t-1", "title": "Ship"}, "member_ids": ["u-bob"]},
        headers=API_KEY
    )

    assert response.status_code == 200
    assert response.json()["reason"] == "sent"
    assert webhook.payloads[0]["target_user"]["id"] == "c-bob"


def test_route_event_endpoint(client, identity_repo, channel_repo, webhook):
    identity_repo.add_active("c-bob", "u-bob", NOW)
    channel_repo.bind_channel(ProjectChannel(project_id="p-1", channel_name="apollo", bound_at=NOW))

    response = client.post(
        "/api/v1/notifications/events",
        json={
            "type": "task_created",
            "actor_id": "u-alice",
            "task": {"id": "t-1", "title": "Ship", "assignees": ["u-bob"], "created_by": "u-alice", "project_id": "p-1"},
        },
        headers=API_KEY
    )

    assert [r["reason"] for r in response.json()] == ["sent", "sent"]
    assert {p["notification_type"] for p in webhook.payloads} == {"task_assigned", "task_created"}


def test_history_pages_newest_first(client, container, delivery_log_repo):
    for i in range(3):
        delivery_log_repo.append(DeliveryLogEntry(
            log_id=f"DLV-{i}", recipient_app_user_id="u-alice", target_type=TargetType.USER,
            event_type=NotificationEventType.TASK_ASSIGNED, status=DeliveryStatus.SENT,
            sent_at=NOW + timedelta(minutes=i), payload_summary=f"message {i}"
        ))

    first = client.get("/api/v1/notifications/history", params={"limit": 2}, headers=bearer(container)).json()
    second = client.get(
        "/api/v1/notifications/history", params={"limit": 2, "after": first["last_id"]}, headers=bearer(container)
    ).json()

    assert [i["log_id"] for i in first["items"]] == ["DLV-2", "DLV-1"]
    assert first["has_more"] is True
    assert [i["log_id"] for i in second["items"]] == ["DLV-0"]
    assert second["has_more"] is False


def test_history_limit_is_bounded(client, container):
    response = client.get("/api/v1/notifications/history", params={"limit": 500}, headers=bearer(container))
    assert response.status_code == 400


def test_channel_binding_lifecycle(client):
    missing = client.get("/api/v1/channels/p-1", headers=API_KEY)
    assert missing.status_code == 404

    bound = client.put("/api/v1/channels/p-1", json={"channel_name": "apollo"}, headers=API_KEY)
    assert bound.json()["channel_name"] == "apollo"
    assert client.get("/api/v1/channels/p-1", headers=API_KEY).status_code == 200

    assert client.delete("/api/v1/channels/p-1", headers=API_KEY).json() == {"project_id": "p-1", "unbound": True}


def test_database_outage_is_503(client, container, monkeypatch):
    def unavailable(*args, **kwargs):
        raise ServerSelectionTimeoutError("no servers")

    monkeypatch.setattr(container.channel_repo, "get_channel", unavailable)

    response = client.get("/api/v1/channels/p-1", headers=API_KEY)

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "DATABASE_UNAVAILABLE"


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["scheduler"] is False
    assert body["event_source"] is False


def test_history_with_foreign_cursor_is_rejected(client, container, delivery_log_repo):
    delivery_log_repo.append(DeliveryLogEntry(
        log_id="DLV-bob", recipient_app_user_id="u-bob", target_type=TargetType.USER,
        event_type=NotificationEventType.TASK_ASSIGNED, status=DeliveryStatus.SENT,
        sent_at=NOW, payload_summary="for bob"
    ))

    response = client.get("/api/v1/notifications/history", params={"after": "DLV-bob"}, headers=bearer(container))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_INPUT"
