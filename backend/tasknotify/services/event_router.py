"""
Notification Router - Decides who hears about each event

task_created    -> task_assigned to assignees (minus creator) + task_created to channel
task_assigned   -> newly added assignees (minus the assigner)
task_completed  -> creator (unless they completed it) + channel
task_updated    -> assignees (minus the editor)
task_deleted    -> channel
task_overdue / task_due_soon -> assignees
project_created -> creator
project_deleted -> channel
project_invite  -> invited users
member_joined / member_left -> channel, one message per member
"""
import asyncio
from typing import List

from ..domain.enums import NotificationEventType
from ..domain.models import NotificationEvent, DispatchResult
from ..repositories.task_repo import UserDirectoryRepository
from .dispatcher import NotificationDispatcher
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationRouter:
    """Maps classified events onto dispatcher calls"""

    def __init__(self, dispatcher: NotificationDispatcher, user_directory: UserDirectoryRepository):
        self.dispatcher = dispatcher
        self.users = user_directory

    async def route(self, event: NotificationEvent) -> List[DispatchResult]:
        handler = {
            NotificationEventType.TASK_CREATED: self._task_created,
            NotificationEventType.TASK_ASSIGNED: self._task_assigned,
            NotificationEventType.TASK_COMPLETED: self._task_completed,
            NotificationEventType.TASK_UPDATED: self._task_updated,
            NotificationEventType.TASK_DELETED: self._to_channel,
            NotificationEventType.TASK_OVERDUE: self._to_assignees,
            NotificationEventType.TASK_DUE_SOON: self._to_assignees,
            NotificationEventType.PROJECT_CREATED: self._project_created,
            NotificationEventType.PROJECT_DELETED: self._to_channel,
            NotificationEventType.PROJECT_INVITE: self._project_invite,
            NotificationEventType.MEMBER_JOINED: self._membership_changed,
            NotificationEventType.MEMBER_LEFT: self._membership_changed,
        }.get(event.type)

        if handler is None:
            logger.warning(f"No route for event type {event.type}")
            return []

        logger.info(
            f"Routing {event.type.value}",
            extra={"event_type": event.type.value, "task_id": event.task.id if event.task else None,
                   "project_id": event.project_id}
        )
        return await handler(event)

    # =========================================================================
    # Task events
    # =========================================================================

    async def _task_created(self, event: NotificationEvent) -> List[DispatchResult]:
        task = event.task
        creator_name = self.users.get_display_name(task.created_by)
        assignees = [uid for uid in task.assignees if uid != task.created_by]

        results: List[DispatchResult] = []
        if assignees:
            assigned = event.model_copy(update={
                "type": NotificationEventType.TASK_ASSIGNED,
                "actor_name": creator_name,
                "member_ids": assignees,
            })
            results.extend(await self.dispatcher.notify_users(assignees, assigned))

        if task.project_id:
            created = event.model_copy(update={"actor_name": creator_name})
            results.append(await self.dispatcher.notify_project_channel(task.project_id, created))
        return results

    async def _task_assigned(self, event: NotificationEvent) -> List[DispatchResult]:
        recipients = [uid for uid in event.member_ids if uid != event.actor_id]
        if not recipients:
            return []
        named = event.model_copy(update={"actor_name": self.users.get_display_name(event.actor_id)})
        return await self.dispatcher.notify_users(recipients, named)

    async def _task_completed(self, event: NotificationEvent) -> List[DispatchResult]:
        task = event.task
        completer = event.actor_id
        named = event.model_copy(update={"actor_name": self.users.get_display_name(completer)})

        coros = []
        if task.created_by and task.created_by != completer:
            coros.append(self.dispatcher.notify_user(task.created_by, named))
        if task.project_id:
            coros.append(self.dispatcher.notify_project_channel(task.project_id, named))
        return list(await asyncio.gather(*coros))

    async def _task_updated(self, event: NotificationEvent) -> List[DispatchResult]:
        recipients = [uid for uid in event.task.assignees if uid != event.actor_id]
        if not recipients:
            return []
        named = event.model_copy(update={"actor_name": self.users.get_display_name(event.actor_id)})
        return await self.dispatcher.notify_users(recipients, named)

    async def _to_assignees(self, event: NotificationEvent) -> List[DispatchResult]:
        return await self.dispatcher.notify_users(event.task.assignees, event)

    async def _to_channel(self, event: NotificationEvent) -> List[DispatchResult]:
        project_id = event.project_id
        if not project_id:
            return []
        return [await self.dispatcher.notify_project_channel(project_id, event)]

    # =========================================================================
    # Project events
    # =========================================================================

    async def _project_created(self, event: NotificationEvent) -> List[DispatchResult]:
        creator = event.project.created_by
        if not creator:
            return []
        named = event.model_copy(update={"actor_name": self.users.get_display_name(creator)})
        return [await self.dispatcher.notify_user(creator, named)]

    async def _project_invite(self, event: NotificationEvent) -> List[DispatchResult]:
        named = event.model_copy(update={"actor_name": self.users.get_display_name(event.actor_id)})
        return await self.dispatcher.notify_users(event.member_ids, named)

    async def _membership_changed(self, event: NotificationEvent) -> List[DispatchResult]:
        results: List[DispatchResult] = []
        for member_id in event.member_ids:
            per_member = event.model_copy(update={
                "actor_name": self.users.get_display_name(member_id),
                "member_ids": [member_id],
            })
            results.extend(await self._to_channel(per_member))
        return results
