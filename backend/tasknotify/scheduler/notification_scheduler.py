"""Notification Scheduler - Periodic scans and maintenance jobs

Safe for multi-instance deployment: every job claims its work with
conditional MongoDB updates, so running it on several servers at once
sends nothing twice.

Jobs:
- overdue scan (default daily)
- due-soon scan (default hourly)
- expired linking code purge
- expired do-not-disturb sweep
"""
from typing import Any, Awaitable, Callable, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import Settings
from ..services.scanner_service import DueDateScanner
from ..services.linking_service import LinkingService
from ..services.preference_service import PreferenceService
from ..utils.logger import get_logger, set_correlation_id
from ..utils.idgen import generate_correlation_id
from ..utils.time import utc_now

logger = get_logger(__name__)


class NotificationScheduler:
    """APScheduler wrapper owning the periodic jobs"""

    def __init__(
        self,
        scanner: DueDateScanner,
        linking_service: LinkingService,
        preference_service: PreferenceService,
        settings: Settings
    ):
        self.scanner = scanner
        self.linking_service = linking_service
        self.preference_service = preference_service
        self.settings = settings
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler(timezone="UTC")

        # Scans also run once right away; their guards make that harmless
        self.scheduler.add_job(
            self._scan_overdue,
            trigger=IntervalTrigger(seconds=self.settings.overdue_scan_interval_seconds),
            id="scan_overdue",
            name="Notify overdue tasks",
            next_run_time=utc_now(),
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self.scheduler.add_job(
            self._scan_due_soon,
            trigger=IntervalTrigger(seconds=self.settings.due_soon_scan_interval_seconds),
            id="scan_due_soon",
            name="Notify tasks due soon",
            next_run_time=utc_now(),
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self.scheduler.add_job(
            self._purge_expired_codes,
            trigger=IntervalTrigger(seconds=self.settings.code_purge_interval_seconds),
            id="purge_expired_codes",
            name="Purge expired linking codes",
            replace_existing=True
        )

        self.scheduler.add_job(
            self._clear_expired_dnd,
            trigger=IntervalTrigger(seconds=self.settings.dnd_sweep_interval_seconds),
            id="clear_expired_dnd",
            name="Clear expired do-not-disturb",
            replace_existing=True
        )

        self.scheduler.start()
        self._is_running = True
        logger.info(
            f"Scheduler started (overdue every {self.settings.overdue_scan_interval_seconds}s, "
            f"due-soon every {self.settings.due_soon_scan_interval_seconds}s)"
        )

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("Scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def _run_job(self, name: str, job: Callable[[], Awaitable[Any]]) -> Any:
        """Run one job under a fresh correlation id; failures are logged"""
        set_correlation_id(generate_correlation_id())
        start_time = utc_now()
        try:
            result = await job()
        except Exception as e:
            logger.error(
                f"Error in {name} job: {e}",
                extra={"error_type": type(e).__name__},
                exc_info=True
            )
            return None
        duration_ms = (utc_now() - start_time).total_seconds() * 1000
        logger.debug(f"{name} job finished", extra={"duration_ms": round(duration_ms, 2)})
        return result

    async def _scan_overdue(self) -> None:
        await self._run_job("scan_overdue", self.scanner.scan_overdue)

    async def _scan_due_soon(self) -> None:
        await self._run_job("scan_due_soon", self.scanner.scan_due_soon)

    async def _purge_expired_codes(self) -> None:
        async def _purge():
            purged = self.linking_service.purge_expired_codes()
            if purged:
                logger.info(f"Purged {purged} expired linking codes")
            return purged
        await self._run_job("purge_expired_codes", _purge)

    async def _clear_expired_dnd(self) -> None:
        async def _sweep():
            return self.preference_service.clear_expired_dnd()
        await self._run_job("clear_expired_dnd", _sweep)
