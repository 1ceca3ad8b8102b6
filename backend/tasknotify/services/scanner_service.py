"""
Due Date Scanner - Periodic overdue and due-soon notifications

Guards are claimed on the task document with conditional updates before
anything is sent, so overlapping runs (or several instances) never notify
the same task twice for the same day / due date:

- overdue: last_overdue_notified_on holds the local calendar day
- due soon: due_soon_notified_for holds the due date that was announced;
  moving the due date re-arms the notification
"""
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..config.settings import Settings
from ..domain.enums import NotificationEventType
from ..domain.models import NotificationEvent, ScanSummary
from ..repositories.task_repo import TaskRepository
from .dispatcher import NotificationDispatcher
from ..utils.logger import get_logger
from ..utils.time import (
    utc_now, get_zone, start_of_day, day_key, calendar_days_between, hours_until
)

logger = get_logger(__name__)


class DueDateScanner:
    """Finds overdue and soon-due tasks and notifies their assignees"""

    def __init__(
        self,
        task_repo: TaskRepository,
        dispatcher: NotificationDispatcher,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now
    ):
        self.task_repo = task_repo
        self.dispatcher = dispatcher
        self.zone = get_zone(settings.notification_timezone)
        self.window = timedelta(hours=settings.due_soon_window_hours)
        self._clock = clock

    async def scan_overdue(self, now: Optional[datetime] = None) -> ScanSummary:
        """Notify assignees of tasks that were due before today, once per day"""
        now = now or self._clock()
        today = day_key(now, self.zone)
        tasks = self.task_repo.find_overdue(start_of_day(now, self.zone))
        summary = ScanSummary(scan="overdue", candidates=len(tasks))

        for task in tasks:
            if not task.assignees or task.due_date is None:
                summary.skipped += 1
                continue
            if not self.task_repo.claim_overdue_notification(task.id, today, now):
                summary.skipped += 1
                continue

            summary.claimed += 1
            event = NotificationEvent(
                type=NotificationEventType.TASK_OVERDUE,
                task=task,
                days_overdue=max(1, calendar_days_between(task.due_date, now, self.zone)),
            )
            summary.results.extend(await self.dispatcher.notify_users(task.assignees, event))

        logger.info(
            f"Overdue scan: {summary.candidates} candidates, {summary.claimed} claimed, "
            f"{summary.sent_count} sent"
        )
        return summary

    async def scan_due_soon(self, now: Optional[datetime] = None) -> ScanSummary:
        """Notify assignees of tasks due within the window, once per due date"""
        now = now or self._clock()
        tasks = self.task_repo.find_due_between(now, now + self.window)
        summary = ScanSummary(scan="due_soon", candidates=len(tasks))

        for task in tasks:
            if not task.assignees or task.due_date is None:
                summary.skipped += 1
                continue
            if not self.task_repo.claim_due_soon_notification(task.id, task.due_date, now):
                summary.skipped += 1
                continue

            summary.claimed += 1
            event = NotificationEvent(
                type=NotificationEventType.TASK_DUE_SOON,
                task=task,
                hours_until_due=hours_until(task.due_date, now),
            )
            summary.results.extend(await self.dispatcher.notify_users(task.assignees, event))

        logger.info(
            f"Due-soon scan: {summary.candidates} candidates, {summary.claimed} claimed, "
            f"{summary.sent_count} sent"
        )
        return summary
