"""
Booking engine: the operation surface the API layer calls.

Each operation runs in its own transaction through the repository factory,
is retried once when storage fails, turns business rule rejections into typed
results and dispatches notifications only after commit.
"""
import logging
from datetime import date, datetime, time, timezone
from typing import Awaitable, Callable, List, Optional, TypeVar, Union

from pilates_booking.core.config import Settings, get_settings
from pilates_booking.core.conversions import coerce_int, ensure_aware
from pilates_booking.core.exceptions import (
    BookingError,
    NotFoundError,
    PermissionDeniedError,
    TransactionFailure,
    ValidationError,
)
from pilates_booking.core.identity import Actor
from pilates_booking.core.logging_config import log_booking_event
from pilates_booking.repositories.base import (
    BookingData,
    BookingRepository,
    RepositoryFactory,
    WaitlistEntryData,
    with_transaction,
)
from pilates_booking.services.booking_coordinator import BookingTransactionCoordinator
from pilates_booking.services.cancellation_cascade import CancellationCascade
from pilates_booking.services.conflict_detector import ConflictDetector, ScheduleConflict
from pilates_booking.services.notifications import (
    NotificationDispatcher,
    NotificationEvent,
    dispatch_events,
)
from pilates_booking.services.results import (
    BookingResult,
    CancellationResult,
    CheckInResult,
    CompletionResult,
    WaitlistResult,
)
from pilates_booking.services.subscription_credit import SubscriptionCreditAccount
from pilates_booking.services.waitlist_queue import WaitlistQueue

logger = logging.getLogger(__name__)

T = TypeVar("T")

TransactionBody = Callable[[BookingRepository, List[NotificationEvent]], Awaitable[T]]


class BookingEngine:
    def __init__(
        self,
        repositories: RepositoryFactory,
        notifier: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None
    ):
        self.repositories = repositories
        self.notifier = notifier
        self.settings = settings or get_settings()

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_aware(now or datetime.now(timezone.utc), self.settings.tz)

    async def _run(self, operation: str, body: TransactionBody) -> T:
        """Run ``body`` in one transaction, retrying on storage failures"""
        attempts = 1 + max(self.settings.transaction_retries, 0)
        for attempt in range(1, attempts + 1):
            events: List[NotificationEvent] = []
            try:
                value = await with_transaction(self.repositories, lambda repo: body(repo, events))
            except TransactionFailure as e:
                if attempt >= attempts:
                    logger.error("%s failed after %s attempts: %s", operation, attempt, e.detail)
                    raise
                logger.warning("%s hit a storage error, retrying: %s", operation, e.detail)
                continue
            await dispatch_events(self.notifier, events)
            return value
        raise TransactionFailure(f"{operation} was not attempted")

    # Booking

    async def book_class(
        self,
        user_id: Union[int, str],
        class_id: Union[int, str],
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
        override_restrictions: bool = False
    ) -> BookingResult:
        uid, cid = coerce_int(user_id), coerce_int(class_id)
        if uid is None or cid is None:
            return BookingResult.rejected(ValidationError.code, "Validation failed")
        actor = actor or Actor(uid)
        current = self._now(now)

        async def body(repo: BookingRepository, events: List[NotificationEvent]) -> BookingResult:
            coordinator = BookingTransactionCoordinator(repo, self.settings, events)
            return await coordinator.book_class(uid, cid, actor, current, override_restrictions)

        try:
            return await self._run("book_class", body)
        except BookingError as e:
            log_booking_event("book", uid, cid, success=False, detail=e.code)
            return BookingResult.rejected(e.code, e.message, e.details)
        except TransactionFailure as e:
            return BookingResult.rejected(e.code, e.message)

    async def cancel_booking(
        self,
        booking_id: Union[int, str],
        actor: Actor,
        now: Optional[datetime] = None
    ) -> CancellationResult:
        bid = coerce_int(booking_id)
        if bid is None:
            return CancellationResult.rejected(ValidationError.code, "Validation failed")
        current = self._now(now)

        async def body(repo: BookingRepository, events: List[NotificationEvent]) -> CancellationResult:
            return await CancellationCascade(repo, self.settings, events).cancel_booking(bid, actor, current)

        try:
            return await self._run("cancel_booking", body)
        except BookingError as e:
            log_booking_event("cancel", actor.user_id, None, success=False, detail=e.code)
            return CancellationResult.rejected(e.code, e.message, booking_id=bid)
        except TransactionFailure as e:
            return CancellationResult.rejected(e.code, e.message, booking_id=bid)

    async def check_in(
        self,
        booking_id: Union[int, str],
        actor: Actor,
        now: Optional[datetime] = None
    ) -> CheckInResult:
        bid = coerce_int(booking_id)
        if bid is None:
            return CheckInResult.rejected(ValidationError.code, "Validation failed")
        current = self._now(now)

        async def body(repo: BookingRepository, events: List[NotificationEvent]) -> BookingData:
            return await BookingTransactionCoordinator(repo, self.settings, events).check_in(bid, actor, current)

        try:
            booking = await self._run("check_in", body)
        except BookingError as e:
            return CheckInResult.rejected(e.code, e.message)
        except TransactionFailure as e:
            return CheckInResult.rejected(e.code, e.message)
        return CheckInResult(
            success=True,
            message="User checked in successfully",
            booking_id=booking.id,
            check_in_time=booking.check_in_time,
        )

    async def complete_booking(
        self,
        booking_id: Union[int, str],
        actor: Actor,
        now: Optional[datetime] = None
    ) -> CompletionResult:
        bid = coerce_int(booking_id)
        if bid is None:
            return CompletionResult.rejected(ValidationError.code, "Validation failed")
        current = self._now(now)

        async def body(repo: BookingRepository, events: List[NotificationEvent]) -> BookingData:
            return await BookingTransactionCoordinator(repo, self.settings, events).complete_booking(
                bid, actor, current
            )

        try:
            booking = await self._run("complete_booking", body)
        except BookingError as e:
            return CompletionResult.rejected(e.code, e.message)
        except TransactionFailure as e:
            return CompletionResult.rejected(e.code, e.message)
        return CompletionResult(
            success=True,
            message="Booking marked as completed",
            booking_id=booking.id,
            status=booking.status,
        )

    # Waitlist

    async def join_waitlist(
        self,
        user_id: Union[int, str],
        class_id: Union[int, str],
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None
    ) -> WaitlistResult:
        uid, cid = coerce_int(user_id), coerce_int(class_id)
        if uid is None or cid is None:
            return WaitlistResult.rejected(ValidationError.code, "Validation failed")
        actor = actor or Actor(uid)
        current = self._now(now)

        async def body(repo: BookingRepository, events: List[NotificationEvent]):
            return await BookingTransactionCoordinator(repo, self.settings, events).join_waitlist(
                uid, cid, actor, current
            )

        try:
            entry, session = await self._run("join_waitlist", body)
        except BookingError as e:
            log_booking_event("waitlist", uid, cid, success=False, detail=e.code)
            return WaitlistResult.rejected(e.code, e.message)
        except TransactionFailure as e:
            return WaitlistResult.rejected(e.code, e.message)
        return WaitlistResult(
            success=True,
            message=f"Added to waitlist for \"{session.name}\" at position #{entry.position}.",
            entry_id=entry.id,
            class_id=entry.class_id,
            position=entry.position,
        )

    async def leave_waitlist(
        self,
        entry_id: Union[int, str],
        actor: Optional[Actor] = None
    ) -> WaitlistResult:
        eid = coerce_int(entry_id)
        if eid is None:
            return WaitlistResult.rejected(ValidationError.code, "Validation failed")
        actor = actor or Actor.system()

        async def body(repo: BookingRepository, events: List[NotificationEvent]) -> WaitlistEntryData:
            return await BookingTransactionCoordinator(repo, self.settings, events).leave_waitlist(eid, actor)

        try:
            entry = await self._run("leave_waitlist", body)
        except BookingError as e:
            return WaitlistResult.rejected(e.code, e.message)
        except TransactionFailure as e:
            return WaitlistResult.rejected(e.code, e.message)
        return WaitlistResult(
            success=True,
            message="Removed from waitlist successfully",
            entry_id=entry.id,
            class_id=entry.class_id,
        )

    async def class_waitlist(self, class_id: Union[int, str]) -> List[WaitlistEntryData]:
        cid = coerce_int(class_id)
        if cid is None:
            raise ValidationError("Validation failed")

        async def body(repo: BookingRepository, events: List[NotificationEvent]) -> List[WaitlistEntryData]:
            return await WaitlistQueue(repo, self.settings).entries(cid)

        return await self._run("class_waitlist", body)

    async def prune_waitlists(self, now: Optional[datetime] = None) -> int:
        current = self._now(now)

        async def body(repo: BookingRepository, events: List[NotificationEvent]) -> int:
            return await WaitlistQueue(repo, self.settings).prune_closing(current)

        return await self._run("prune_waitlists", body)

    # Queries

    async def get_booking(
        self,
        booking_id: Union[int, str],
        actor: Optional[Actor] = None
    ) -> BookingData:
        bid = coerce_int(booking_id)
        if bid is None:
            raise ValidationError("Validation failed")

        async def body(repo: BookingRepository, events: List[NotificationEvent]) -> Optional[BookingData]:
            return await repo.get_booking(bid)

        booking = await self._run("get_booking", body)
        if booking is None:
            raise NotFoundError("Booking not found")
        if actor is not None and not actor.can_act_for(booking.user_id):
            raise PermissionDeniedError("Access denied")
        return booking

    async def check_schedule_conflict(
        self,
        day: date,
        start_time: Union[str, time],
        duration_minutes: int,
        resource_id: Union[int, str, None],
        resource_kind: str,
        exclude_class_id: Optional[int] = None
    ) -> Optional[ScheduleConflict]:
        async def body(repo: BookingRepository, events: List[NotificationEvent]) -> Optional[ScheduleConflict]:
            return await ConflictDetector(repo).check_conflict(
                day, start_time, duration_minutes, resource_id, resource_kind, exclude_class_id
            )

        return await self._run("check_schedule_conflict", body)

    # Maintenance

    async def expire_subscriptions(self, now: Optional[datetime] = None) -> int:
        today = self._now(now).astimezone(self.settings.tz).date()

        async def body(repo: BookingRepository, events: List[NotificationEvent]) -> int:
            return await SubscriptionCreditAccount(repo).expire_lapsed(today)

        return await self._run("expire_subscriptions", body)
