"""
Pytest Configuration and Fixtures

Services are built over the in-memory fakes in tests/fakes.py; the chat
platform is an httpx MockTransport.
"""
from datetime import datetime, timezone

import httpx
import pytest

from tasknotify.config.settings import Settings
from tasknotify.services.dispatcher import NotificationDispatcher
from tasknotify.services.linking_service import LinkingService
from tasknotify.services.preference_service import PreferenceService
from tasknotify.services.webhook_client import WebhookClient

from tests.fakes import (
    FakeLinkingCodeRepository, FakeIdentityRepository, FakePreferenceRepository,
    FakeDeliveryLogRepository, FakeChannelRepository, FakeTaskRepository, FakeUserDirectory,
    WebhookRecorder, FakeClock
)

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings():
    return Settings(
        chat_webhook_token="test-token",
        chat_api_key="test-api-key",
        jwt_secret="test-secret-key-for-session-tokens-0123",
        notification_timezone="UTC",
        webhook_retry_delay_seconds=0,
        dispatch_concurrency=4,
        scheduler_enabled=False,
        event_source_enabled=False,
    )


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def code_repo():
    return FakeLinkingCodeRepository()


@pytest.fixture
def identity_repo():
    return FakeIdentityRepository()


@pytest.fixture
def preference_repo():
    return FakePreferenceRepository()


@pytest.fixture
def delivery_log_repo():
    return FakeDeliveryLogRepository()


@pytest.fixture
def channel_repo():
    return FakeChannelRepository()


@pytest.fixture
def task_repo():
    return FakeTaskRepository()


@pytest.fixture
def user_directory():
    return FakeUserDirectory({"u-alice": "Alice", "u-bob": "Bob", "u-carol": "Carol"})


@pytest.fixture
def linking_service(code_repo, identity_repo, settings, clock):
    return LinkingService(
        code_repo, identity_repo, settings,
        transaction=lambda callback: callback(None),
        clock=clock
    )


@pytest.fixture
def preference_service(preference_repo, settings, clock):
    return PreferenceService(preference_repo, settings, clock=clock)


@pytest.fixture
def webhook():
    return WebhookRecorder()


@pytest.fixture
def http_client(webhook):
    return httpx.AsyncClient(transport=httpx.MockTransport(webhook))


@pytest.fixture
def webhook_client(http_client, settings):
    return WebhookClient(http_client, timeout=settings.webhook_timeout_seconds, retry_delay=0)


@pytest.fixture
def dispatcher(identity_repo, channel_repo, delivery_log_repo, preference_service, webhook_client, settings, clock):
    return NotificationDispatcher(
        identity_repo=identity_repo,
        channel_repo=channel_repo,
        delivery_log_repo=delivery_log_repo,
        preference_service=preference_service,
        webhook_client=webhook_client,
        settings=settings,
        clock=clock,
    )
