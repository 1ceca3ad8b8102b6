"""
Notification Dispatcher - Gate, render, deliver and log

notify_user:            identity lookup -> preference gate -> render -> send -> log
notify_project_channel: channel lookup -> render -> send -> log (no preference gate)
notify_users:           bounded concurrent fan-out of notify_user

Short-circuits are returned as DispatchResult reasons, never raised.
"""
import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..config.settings import Settings
from ..domain.enums import TargetType, DispatchReason, DeliveryStatus
from ..domain.errors import ExternalServiceError
from ..domain.models import (
    NotificationEvent, NotificationMessage, DispatchResult, DeliveryLogEntry
)
from ..repositories.identity_repo import IdentityRepository
from ..repositories.channel_repo import ChannelRepository
from ..repositories.delivery_log_repo import DeliveryLogRepository
from ..templates.chat_templates import format_notification
from ..templates.renderers import PayloadRenderer, get_renderer
from .preference_service import PreferenceService
from .webhook_client import WebhookClient, WebhookResponse
from ..utils.idgen import generate_delivery_log_id
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)

SUMMARY_MAX_LENGTH = 200


class NotificationDispatcher:
    """Delivers notification events to linked users and project channels"""

    def __init__(
        self,
        identity_repo: IdentityRepository,
        channel_repo: ChannelRepository,
        delivery_log_repo: DeliveryLogRepository,
        preference_service: PreferenceService,
        webhook_client: WebhookClient,
        settings: Settings,
        renderer: Optional[PayloadRenderer] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.identity_repo = identity_repo
        self.channel_repo = channel_repo
        self.delivery_log_repo = delivery_log_repo
        self.preferences = preference_service
        self.webhook = webhook_client
        self.settings = settings
        self.renderer = renderer or get_renderer(settings.chat_payload_format)
        self._clock = clock
        self._concurrency = max(1, settings.dispatch_concurrency)

    # =========================================================================
    # Webhook URLs
    # =========================================================================

    def build_user_webhook_url(self) -> Optional[str]:
        """Bot incoming webhook; the payload's target_user selects the recipient"""
        token = self.settings.chat_webhook_token
        if not token:
            return None
        base = self.settings.chat_api_base_url.rstrip("/")
        return f"{base}/bots/{self.settings.chat_bot_name}/incoming?zapikey={token}"

    def build_channel_webhook_url(self, channel_name: str, explicit_url: Optional[str] = None) -> Optional[str]:
        if explicit_url:
            return explicit_url
        token = self.settings.chat_webhook_token
        if not token or not channel_name:
            return None
        base = self.settings.chat_api_base_url.rstrip("/")
        return f"{base}/channelsbyname/{channel_name}/message?zapikey={token}"

    # =========================================================================
    # Single-target dispatch
    # =========================================================================

    def _format(self, event: NotificationEvent) -> NotificationMessage:
        return format_notification(event, self.settings.app_deep_link_base)

    async def notify_user(
        self,
        app_user_id: str,
        event: NotificationEvent,
        skip_if_delivered: bool = False
    ) -> DispatchResult:
        """Deliver an event to one application user's linked chat account"""
        log_extra = {"app_user_id": app_user_id, "event_type": event.type.value}

        link = self.identity_repo.get_active_link_for_app_user(app_user_id)
        if link is None:
            logger.info("No chat mapping for user", extra={**log_extra, "reason": DispatchReason.NO_MAPPING.value})
            return DispatchResult(sent=False, reason=DispatchReason.NO_MAPPING, recipient=app_user_id)

        if not self.preferences.resolve(app_user_id, event.type, event.project_id):
            logger.info("Suppressed by user preferences", extra={**log_extra, "reason": DispatchReason.DISABLED_BY_USER.value})
            return DispatchResult(sent=False, reason=DispatchReason.DISABLED_BY_USER, recipient=app_user_id)

        if skip_if_delivered and self.delivery_log_repo.was_delivered(event.dedupe_key, app_user_id):
            logger.info("Already delivered", extra={**log_extra, "reason": DispatchReason.ALREADY_DELIVERED.value})
            return DispatchResult(sent=False, reason=DispatchReason.ALREADY_DELIVERED, recipient=app_user_id)

        url = self.build_user_webhook_url()
        if url is None:
            logger.warning("Chat webhook token not configured", extra=log_extra)
            return DispatchResult(sent=False, reason=DispatchReason.NO_WEBHOOK_URL, recipient=app_user_id)

        try:
            message = self._format(event)
            payload = self.renderer.render(
                message, event, chat_user_id=link.chat_user_id, app_user_id=app_user_id
            )
        except (ValueError, TypeError, AttributeError, KeyError) as e:
            logger.error(f"Failed to format notification: {e}", extra=log_extra)
            return DispatchResult(sent=False, reason=DispatchReason.ERROR, recipient=app_user_id, error=str(e))

        return await self._send(
            url=url,
            payload=payload,
            message=message,
            event=event,
            recipient=app_user_id,
            target_type=TargetType.USER,
            entry_fields={"recipient_app_user_id": app_user_id, "chat_user_id": link.chat_user_id},
        )

    async def notify_project_channel(self, project_id: str, event: NotificationEvent) -> DispatchResult:
        """Deliver an event to the chat channel bound to a project"""
        log_extra = {"project_id": project_id, "event_type": event.type.value}

        channel = self.channel_repo.get_channel(project_id) if project_id else None
        if channel is None or not channel.channel_name:
            logger.info("No channel bound to project", extra={**log_extra, "reason": DispatchReason.NO_CHANNEL.value})
            return DispatchResult(
                sent=False, reason=DispatchReason.NO_CHANNEL,
                recipient=project_id or "", target_type=TargetType.CHANNEL
            )

        url = self.build_channel_webhook_url(channel.channel_name, channel.webhook_url)
        if url is None:
            logger.warning("Chat webhook token not configured", extra=log_extra)
            return DispatchResult(
                sent=False, reason=DispatchReason.NO_WEBHOOK_URL,
                recipient=channel.channel_name, target_type=TargetType.CHANNEL
            )

        try:
            message = self._format(event)
            payload = self.renderer.render(message, event)
        except (ValueError, TypeError, AttributeError, KeyError) as e:
            logger.error(f"Failed to format notification: {e}", extra=log_extra)
            return DispatchResult(
                sent=False, reason=DispatchReason.ERROR, recipient=channel.channel_name,
                target_type=TargetType.CHANNEL, error=str(e)
            )

        return await self._send(
            url=url,
            payload=payload,
            message=message,
            event=event,
            recipient=channel.channel_name,
            target_type=TargetType.CHANNEL,
            entry_fields={"channel_name": channel.channel_name},
        )

    async def _send(
        self,
        url: str,
        payload: Dict[str, Any],
        message: NotificationMessage,
        event: NotificationEvent,
        recipient: str,
        target_type: TargetType,
        entry_fields: Dict[str, Any]
    ) -> DispatchResult:
        try:
            response: WebhookResponse = await self.webhook.post_json(url, payload)
        except ExternalServiceError as e:
            logger.error(
                f"Notification delivery failed: {e.message}",
                extra={
                    "recipient": recipient,
                    "event_type": event.type.value,
                    "status_code": e.status_code,
                    "reason": DispatchReason.DELIVERY_FAILED.value,
                }
            )
            retried = bool(e.details.get("retried"))
            self._record(event, message, target_type, DeliveryStatus.FAILED, entry_fields,
                         status_code=e.status_code, retried=retried, error=e.message)
            return DispatchResult(
                sent=False, reason=DispatchReason.DELIVERY_FAILED, recipient=recipient,
                target_type=target_type, status_code=e.status_code, retried=retried, error=e.message
            )

        self._record(event, message, target_type, DeliveryStatus.SENT, entry_fields,
                     status_code=response.status_code, retried=response.retried)
        logger.info(
            f"Notification sent to {target_type.value}",
            extra={"recipient": recipient, "event_type": event.type.value, "status_code": response.status_code}
        )
        return DispatchResult(
            sent=True, reason=DispatchReason.SENT, recipient=recipient, target_type=target_type,
            status_code=response.status_code, retried=response.retried
        )

    def _record(
        self,
        event: NotificationEvent,
        message: NotificationMessage,
        target_type: TargetType,
        status: DeliveryStatus,
        entry_fields: Dict[str, Any],
        status_code: Optional[int] = None,
        retried: bool = False,
        error: Optional[str] = None
    ) -> None:
        """Append a delivery log entry; a failed write never fails the dispatch"""
        entry = DeliveryLogEntry(
            log_id=generate_delivery_log_id(),
            target_type=target_type,
            event_type=event.type,
            status=status,
            sent_at=self._clock(),
            payload_summary=message.text[:SUMMARY_MAX_LENGTH],
            subject_id=event.subject_id,
            dedupe_key=event.dedupe_key,
            status_code=status_code,
            retried=retried,
            error=error,
            **entry_fields,
        )
        try:
            self.delivery_log_repo.append(entry)
        except Exception as e:
            logger.error(f"Failed to write delivery log: {e}", extra={"event_type": event.type.value})

    # =========================================================================
    # Fan-out
    # =========================================================================

    async def notify_users(
        self,
        app_user_ids: Iterable[str],
        event: NotificationEvent,
        skip_if_delivered: bool = False
    ) -> List[DispatchResult]:
        """
        Deliver one event to many users concurrently.

        Recipients are de-duplicated; each outcome is independent of the
        others and results keep the input order.
        """
        recipients = list(dict.fromkeys(uid for uid in app_user_ids if uid))
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _one(app_user_id: str) -> DispatchResult:
            async with semaphore:
                try:
                    return await self.notify_user(app_user_id, event, skip_if_delivered=skip_if_delivered)
                except Exception as e:
                    logger.error(
                        f"Dispatch to user failed: {e}",
                        extra={"app_user_id": app_user_id, "event_type": event.type.value}
                    )
                    return DispatchResult(
                        sent=False, reason=DispatchReason.ERROR, recipient=app_user_id, error=str(e)
                    )

        return list(await asyncio.gather(*(_one(uid) for uid in recipients)))
