"""Service Container - Builds every repository and service once

Created in the application lifespan and stored on `app.state`; routes
reach it through `api.deps.get_container`. Tests build one over fakes.
"""
from typing import Optional

import httpx
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.database import Database

from .config.settings import Settings
from .engine.event_source import EventSource
from .repositories.identity_repo import IdentityRepository
from .repositories.linking_code_repo import LinkingCodeRepository
from .repositories.preference_repo import PreferenceRepository
from .repositories.delivery_log_repo import DeliveryLogRepository
from .repositories.channel_repo import ChannelRepository
from .repositories.task_repo import TaskRepository, UserDirectoryRepository
from .scheduler.notification_scheduler import NotificationScheduler
from .services.linking_service import LinkingService
from .services.preference_service import PreferenceService
from .services.webhook_client import WebhookClient
from .services.dispatcher import NotificationDispatcher
from .services.event_router import NotificationRouter
from .services.scanner_service import DueDateScanner
from .utils.jwt import JWTValidator


class ServiceContainer:
    """Explicitly wired dependencies of the notification service"""

    def __init__(
        self,
        settings: Settings,
        db: Database,
        http_client: httpx.AsyncClient,
        async_db: Optional[AsyncIOMotorDatabase] = None
    ):
        self.settings = settings
        self.db = db
        self.async_db = async_db
        self.http_client = http_client

        # Repositories
        self.identity_repo = IdentityRepository(db)
        self.code_repo = LinkingCodeRepository(db)
        self.preference_repo = PreferenceRepository(db)
        self.delivery_log_repo = DeliveryLogRepository(db)
        self.channel_repo = ChannelRepository(db)
        self.task_repo = TaskRepository(db)
        self.user_directory = UserDirectoryRepository(db)

        # Services
        self.jwt_validator = JWTValidator(settings.jwt_secret, settings.jwt_algorithm)
        self.linking_service = LinkingService(self.code_repo, self.identity_repo, settings, db=db)
        self.preference_service = PreferenceService(self.preference_repo, settings)
        self.webhook_client = WebhookClient(
            http_client,
            timeout=settings.webhook_timeout_seconds,
            retry_delay=settings.webhook_retry_delay_seconds,
        )
        self.dispatcher = NotificationDispatcher(
            identity_repo=self.identity_repo,
            channel_repo=self.channel_repo,
            delivery_log_repo=self.delivery_log_repo,
            preference_service=self.preference_service,
            webhook_client=self.webhook_client,
            settings=settings,
        )
        self.router = NotificationRouter(self.dispatcher, self.user_directory)
        self.scanner = DueDateScanner(self.task_repo, self.dispatcher, settings)

        self.scheduler = NotificationScheduler(
            self.scanner, self.linking_service, self.preference_service, settings
        )
        self.event_source: Optional[EventSource] = (
            EventSource(async_db, self.router.route, settings) if async_db is not None else None
        )
