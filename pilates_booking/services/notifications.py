"""
Notification side-effect channel.

Booking code never talks to the delivery mechanism directly. It records
``NotificationEvent`` objects while the transaction runs, and the engine hands
them to a ``NotificationDispatcher`` after commit. The queued dispatcher
pushes them onto an ``asyncio.Queue`` drained by a background task, so a slow
or failing sink can never roll back or delay a booking.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pilates_booking.crud.notificationsCrud import create_notification

logger = logging.getLogger(__name__)

KIND_REMINDER = "reminder"
KIND_PROMOTED = "waitlist_promotion"


@dataclass(frozen=True)
class NotificationEvent:
    kind: str
    user_id: int
    class_id: int
    message: str
    scheduled_time: datetime


def reminder_event(user_id: int, class_id: int, when: datetime, message: str) -> NotificationEvent:
    return NotificationEvent(KIND_REMINDER, user_id, class_id, message, when)


def promoted_event(user_id: int, class_id: int, message: str, now: datetime) -> NotificationEvent:
    return NotificationEvent(KIND_PROMOTED, user_id, class_id, message, now)


class NotificationDispatcher(ABC):
    """What the booking core needs from the notification collaborator"""

    @abstractmethod
    async def schedule_reminder(self, user_id: int, class_id: int, when_iso: str, message: str) -> None:
        ...

    @abstractmethod
    async def notify_promoted(self, user_id: int, class_id: int, message: str) -> None:
        ...


async def dispatch_events(dispatcher: Optional[NotificationDispatcher], events: Iterable[NotificationEvent]) -> None:
    """Hand committed events to the dispatcher; failures are logged and dropped"""
    if dispatcher is None:
        return
    for event in events:
        try:
            if event.kind == KIND_REMINDER:
                await dispatcher.schedule_reminder(
                    event.user_id, event.class_id, event.scheduled_time.isoformat(), event.message
                )
            else:
                await dispatcher.notify_promoted(event.user_id, event.class_id, event.message)
        except Exception as e:
            logger.error(
                "Failed to dispatch %s notification for user %s, class %s: %s",
                event.kind, event.user_id, event.class_id, e
            )


class NotificationSink(ABC):
    @abstractmethod
    async def deliver(self, event: NotificationEvent) -> None:
        ...


class SqlNotificationSink(NotificationSink):
    """Stores notifications in the ``notifications`` table for the sender job"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def deliver(self, event: NotificationEvent) -> None:
        async with self.session_factory() as db:
            try:
                await create_notification(
                    db,
                    user_id=event.user_id,
                    class_id=event.class_id,
                    type=event.kind,
                    message=event.message,
                    scheduled_time=event.scheduled_time.astimezone(timezone.utc),
                )
                await db.commit()
            except SQLAlchemyError:
                await db.rollback()
                raise


class QueuedNotificationDispatcher(NotificationDispatcher):
    """
    Fire-and-forget dispatcher backed by an ``asyncio.Queue``.

    ``start()`` launches the consumer task; ``stop()`` drains what is already
    queued and then cancels it. A full queue drops the event with an error log.
    """

    def __init__(self, sink: NotificationSink, maxsize: int = 1000):
        self.sink = sink
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._consume(), name="notification-consumer")
            logger.info("Notification consumer started")

    async def stop(self) -> None:
        if self._task is None:
            return
        if self.running:
            await self.queue.join()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Notification consumer stopped")

    async def schedule_reminder(self, user_id: int, class_id: int, when_iso: str, message: str) -> None:
        self._put(reminder_event(user_id, class_id, datetime.fromisoformat(when_iso), message))

    async def notify_promoted(self, user_id: int, class_id: int, message: str) -> None:
        self._put(promoted_event(user_id, class_id, message, datetime.now(timezone.utc)))

    def _put(self, event: NotificationEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error(
                "Notification queue full, dropping %s for user %s", event.kind, event.user_id
            )

    async def _consume(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                await self.sink.deliver(event)
            except Exception as e:
                logger.error("Notification delivery failed for user %s: %s", event.user_id, e)
            finally:
                self.queue.task_done()

