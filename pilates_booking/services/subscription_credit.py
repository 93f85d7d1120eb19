"""
Subscription credit account: which plan pays for a booking, and its balance.
"""
import logging
from datetime import date
from typing import List, Optional, Tuple

from pilates_booking.core.exceptions import (
    CategoryMismatchError,
    EquipmentMismatchError,
    InsufficientCreditError,
    NoSubscriptionError,
)
from pilates_booking.repositories.base import (
    CATEGORY_PERSONAL,
    EQUIPMENT_BOTH,
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_CANCELLED,
    BookingRepository,
    ClassSessionData,
    SubscriptionData,
)

logger = logging.getLogger(__name__)

NO_SUBSCRIPTION_MESSAGE = (
    "You need an active subscription plan to book classes. Please purchase a plan first."
)
NO_CREDIT_MESSAGE = "No remaining classes in your subscription. Please renew or upgrade your plan."
PERSONAL_ONLY_MESSAGE = (
    "Your personal subscription only allows booking personal/private classes. "
    "Please choose a personal training session."
)
PERSONAL_CLASS_MESSAGE = (
    "This is a personal training session. You need a personal subscription to book this class."
)


def _is_personal(category: Optional[str]) -> bool:
    return category == CATEGORY_PERSONAL


class SubscriptionCreditAccount:
    def __init__(self, repo: BookingRepository):
        self.repo = repo

    @staticmethod
    def _usable(account: SubscriptionData, today: date) -> bool:
        if account.end_date < today:
            return False
        if account.status == SUBSCRIPTION_ACTIVE:
            return True
        # already-paid credits stay usable after cancellation until the end date
        return account.status == SUBSCRIPTION_CANCELLED and account.remaining_classes > 0

    async def has_capacity_for(
        self,
        user_id: int,
        today: date,
        prefer_active: bool = False
    ) -> Tuple[Optional[SubscriptionData], bool]:
        """
        Pick the account a booking would be charged to.

        Returns ``(account, ok)`` where ``ok`` means the account still has
        classes left. Accounts are considered newest first; with
        ``prefer_active`` any active account beats a newer cancelled one.
        """
        accounts: List[SubscriptionData] = [
            a for a in await self.repo.list_subscriptions_for_user(user_id)
            if self._usable(a, today)
        ]
        if not accounts:
            return None, False

        chosen = accounts[0]
        if prefer_active:
            active = [a for a in accounts if a.status == SUBSCRIPTION_ACTIVE]
            if active:
                chosen = active[0]

        return chosen, chosen.remaining_classes > 0

    async def reserve(self, account_id: int) -> None:
        if not await self.repo.try_decrement_remaining(account_id):
            raise InsufficientCreditError(NO_CREDIT_MESSAGE)

    async def refund(self, account_id: int) -> None:
        # uncapped: a refund may take the balance above the plan allotment
        if not await self.repo.increment_remaining(account_id):
            logger.warning("Refund skipped, subscription %s no longer exists", account_id)

    @staticmethod
    def check_entitlement(account: SubscriptionData, session: ClassSessionData) -> None:
        """Raise when the account may not book this kind of class"""
        if _is_personal(account.category) and not _is_personal(session.category):
            raise CategoryMismatchError(PERSONAL_ONLY_MESSAGE)
        if _is_personal(session.category) and not _is_personal(account.category):
            raise CategoryMismatchError(PERSONAL_CLASS_MESSAGE)

        if account.equipment_access == EQUIPMENT_BOTH:
            return
        if account.equipment_access != session.equipment_type:
            raise EquipmentMismatchError(
                f"Your subscription doesn't include access to {session.equipment_type} classes",
                details={
                    "equipment_access": account.equipment_access,
                    "class_equipment": session.equipment_type,
                },
            )

    async def resolve_for_booking(
        self,
        user_id: int,
        session: ClassSessionData,
        today: date,
        prefer_active: bool = False
    ) -> SubscriptionData:
        account, ok = await self.has_capacity_for(user_id, today, prefer_active=prefer_active)
        if account is None:
            raise NoSubscriptionError(NO_SUBSCRIPTION_MESSAGE)
        if not ok:
            raise InsufficientCreditError(NO_CREDIT_MESSAGE)
        self.check_entitlement(account, session)
        return account

    async def expire_lapsed(self, today: date) -> int:
        expired = await self.repo.expire_subscriptions_ending_before(today)
        if expired:
            logger.info("Expired %s subscriptions that ended before %s", expired, today)
        return expired
