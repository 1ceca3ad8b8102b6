"""
Event Source - Change streams over the task application's collections

One long-lived watch per collection. On attach, the current documents are
replayed as "added" changes to seed the snapshot cache (the classifier
drops them as historical); afterwards the stream is followed with its
resume token kept so a reconnect continues where it stopped.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError, OperationFailure

from ..config.settings import Settings
from ..domain.enums import RecordKind, ChangeKind
from ..domain.models import RecordChange, NotificationEvent
from ..repositories.mongo_client import TASKS, PROJECTS
from .change_classifier import ChangeClassifier
from ..utils.logger import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[NotificationEvent], Awaitable[Any]]

OPERATION_KINDS = {
    "insert": ChangeKind.ADDED,
    "update": ChangeKind.MODIFIED,
    "replace": ChangeKind.MODIFIED,
    "delete": ChangeKind.REMOVED,
}

# Server cannot resume from the stored token any more
CHANGE_STREAM_HISTORY_LOST = 286


def to_record_change(record_kind: RecordKind, change: Dict[str, Any]) -> Optional[RecordChange]:
    """Map a change stream document; unsupported operations give None"""
    kind = OPERATION_KINDS.get(change.get("operationType"))
    if kind is None:
        return None
    record_id = str(change["documentKey"]["_id"])
    record = change.get("fullDocument")
    if kind == ChangeKind.MODIFIED and record is None:
        # Deleted before the lookup ran; the delete event follows
        return None
    return RecordChange(kind=kind, record_kind=record_kind, record_id=record_id, record=record)


class EventSource:
    """Watches tasks and projects and hands classified events to a handler"""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        handler: EventHandler,
        settings: Settings,
        classifiers: Optional[Dict[RecordKind, ChangeClassifier]] = None
    ):
        self.db = db
        self.handler = handler
        self.reconnect_seconds = settings.event_source_reconnect_seconds
        self.classifiers = classifiers or {
            kind: ChangeClassifier(
                kind,
                replay_grace_seconds=settings.event_replay_grace_seconds,
                recent_completion_seconds=settings.recent_completion_seconds,
            )
            for kind in (RecordKind.TASK, RecordKind.PROJECT)
        }
        self.collections = {RecordKind.TASK: TASKS, RecordKind.PROJECT: PROJECTS}
        self._tasks: List[asyncio.Task] = []
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Event source already running")
            return
        self._running = True
        for kind, classifier in self.classifiers.items():
            task = asyncio.create_task(
                self._watch(kind, classifier),
                name=f"watch-{self.collections[kind]}"
            )
            self._tasks.append(task)
        logger.info(f"Event source started ({len(self._tasks)} watches)")

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Event source stopped")

    async def dispatch_change(self, classifier: ChangeClassifier, change: RecordChange) -> None:
        """Classify one change and pass the event on; failures are logged, never raised"""
        event = None
        try:
            event = classifier.classify(change)
            if event is not None:
                await self.handler(event)
        except Exception as e:
            stage = "Event handler" if event is not None else "Classifying change"
            logger.error(
                f"{stage} failed for {change.record_kind.value} {change.record_id}: {e}",
                extra={
                    "event_type": event.type.value if event is not None else None,
                    "task_id": change.record_id if change.record_kind == RecordKind.TASK else None,
                    "error_type": type(e).__name__,
                },
                exc_info=True
            )

    async def _replay(self, kind: RecordKind, classifier: ChangeClassifier) -> int:
        count = 0
        async for doc in self.db[self.collections[kind]].find({}):
            change = RecordChange(
                kind=ChangeKind.ADDED, record_kind=kind, record_id=str(doc["_id"]), record=doc
            )
            await self.dispatch_change(classifier, change)
            count += 1
        return count

    async def _watch(self, kind: RecordKind, classifier: ChangeClassifier) -> None:
        collection_name = self.collections[kind]
        resume_token = None
        replayed = False

        while self._running:
            try:
                async with self.db[collection_name].watch(
                    full_document="updateLookup",
                    resume_after=resume_token
                ) as stream:
                    if not replayed:
                        count = await self._replay(kind, classifier)
                        replayed = True
                        logger.info(f"Watching {collection_name} (replayed {count} documents)")

                    async for change_doc in stream:
                        resume_token = stream.resume_token
                        change = to_record_change(kind, change_doc)
                        if change is not None:
                            await self.dispatch_change(classifier, change)
            except asyncio.CancelledError:
                raise
            except OperationFailure as e:
                if e.code == CHANGE_STREAM_HISTORY_LOST:
                    logger.warning(f"Resume token for {collection_name} lost, replaying")
                    resume_token = None
                    replayed = False
                else:
                    logger.error(f"Change stream on {collection_name} failed: {e}")
                await asyncio.sleep(self.reconnect_seconds)
            except PyMongoError as e:
                logger.error(f"Change stream on {collection_name} interrupted: {e}")
                await asyncio.sleep(self.reconnect_seconds)
            except Exception as e:
                logger.error(f"Watch on {collection_name} crashed, reconnecting: {e}", exc_info=True)
                await asyncio.sleep(self.reconnect_seconds)
