"""
Tests for subscription selection, entitlement and credit movement.
"""
from datetime import date, datetime, timezone

import pytest

from pilates_booking.core.exceptions import (
    CategoryMismatchError,
    EquipmentMismatchError,
    InsufficientCreditError,
    NoSubscriptionError,
)
from pilates_booking.repositories.base import ClassSessionData, SubscriptionData
from pilates_booking.services.subscription_credit import SubscriptionCreditAccount
from tests.conftest import CLASS_DAY, add_class, add_subscription, remaining

TODAY = date(2026, 3, 2)
OLDER = datetime(2026, 1, 1, tzinfo=timezone.utc)
NEWER = datetime(2026, 2, 1, tzinfo=timezone.utc)


def _account(category="group", equipment="both"):
    return SubscriptionData(
        id=1, user_id=1, plan_id=1, remaining_classes=3, status="active",
        start_date=date(2026, 1, 1), end_date=date(2026, 12, 31),
        equipment_access=equipment, category=category,
    )


def _class(category="group", equipment="reformer"):
    return ClassSessionData(
        id=1, name="Flow", date=CLASS_DAY, start_time=datetime(2026, 3, 5, 9).time(),
        duration_minutes=60, capacity=5, enrolled=0, instructor_id=1,
        equipment_type=equipment, category=category,
    )


class TestCheckEntitlement:
    """Category and equipment gates."""

    def test_personal_account_cannot_book_group_class(self):
        with pytest.raises(CategoryMismatchError) as exc:
            SubscriptionCreditAccount.check_entitlement(_account(category="personal"), _class())
        assert "personal" in exc.value.message

    def test_group_account_cannot_book_personal_class(self):
        with pytest.raises(CategoryMismatchError) as exc:
            SubscriptionCreditAccount.check_entitlement(_account(), _class(category="personal"))
        assert "personal subscription" in exc.value.message

    def test_equipment_must_match_exactly(self):
        with pytest.raises(EquipmentMismatchError) as exc:
            SubscriptionCreditAccount.check_entitlement(_account(equipment="mat"), _class(equipment="reformer"))
        assert exc.value.message == "Your subscription doesn't include access to reformer classes"

    @pytest.mark.parametrize("equipment", ["mat", "reformer", "both"])
    def test_both_grants_every_equipment(self, equipment):
        SubscriptionCreditAccount.check_entitlement(_account(equipment="both"), _class(equipment=equipment))


class TestHasCapacityFor:
    """Choosing the account a booking is charged to."""

    async def test_no_account(self, factory):
        async with factory.transaction() as repo:
            account, ok = await SubscriptionCreditAccount(repo).has_capacity_for(1, TODAY)
        assert account is None
        assert ok is False

    async def test_most_recent_usable_account_wins(self, factory):
        await add_subscription(factory, 1, created_at=OLDER)
        newer = await add_subscription(factory, 1, created_at=NEWER, remaining_classes=2)

        async with factory.transaction() as repo:
            account, ok = await SubscriptionCreditAccount(repo).has_capacity_for(1, TODAY)

        assert account.id == newer.id
        assert ok is True

    async def test_cancelled_account_keeps_paid_credits(self, factory):
        cancelled = await add_subscription(factory, 1, status="cancelled", remaining_classes=2)

        async with factory.transaction() as repo:
            account, ok = await SubscriptionCreditAccount(repo).has_capacity_for(1, TODAY)

        assert account.id == cancelled.id
        assert ok is True

    async def test_cancelled_without_credits_and_ended_accounts_are_skipped(self, factory):
        await add_subscription(factory, 1, status="cancelled", remaining_classes=0)
        await add_subscription(factory, 1, end_date=date(2026, 3, 1))
        await add_subscription(factory, 1, status="paused")

        async with factory.transaction() as repo:
            account, ok = await SubscriptionCreditAccount(repo).has_capacity_for(1, TODAY)

        assert account is None
        assert ok is False

    async def test_prefer_active_beats_newer_cancelled(self, factory):
        active = await add_subscription(factory, 1, created_at=OLDER)
        await add_subscription(factory, 1, created_at=NEWER, status="cancelled", remaining_classes=4)

        async with factory.transaction() as repo:
            credits = SubscriptionCreditAccount(repo)
            newest, _ = await credits.has_capacity_for(1, TODAY)
            preferred, _ = await credits.has_capacity_for(1, TODAY, prefer_active=True)

        assert newest.status == "cancelled"
        assert preferred.id == active.id

    async def test_empty_active_account_is_not_ok(self, factory):
        await add_subscription(factory, 1, remaining_classes=0)

        async with factory.transaction() as repo:
            account, ok = await SubscriptionCreditAccount(repo).has_capacity_for(1, TODAY)

        assert account is not None
        assert ok is False


class TestReserveAndRefund:
    """Balance movement."""

    async def test_reserve_and_refund(self, factory):
        account = await add_subscription(factory, 1, remaining_classes=1)

        async with factory.transaction() as repo:
            await SubscriptionCreditAccount(repo).reserve(account.id)
        assert await remaining(factory, account.id) == 0

        async with factory.transaction() as repo:
            await SubscriptionCreditAccount(repo).refund(account.id)
        assert await remaining(factory, account.id) == 1

    async def test_reserve_on_empty_balance_fails(self, factory):
        account = await add_subscription(factory, 1, remaining_classes=0)

        with pytest.raises(InsufficientCreditError):
            async with factory.transaction() as repo:
                await SubscriptionCreditAccount(repo).reserve(account.id)

        assert await remaining(factory, account.id) == 0

    async def test_refund_is_uncapped(self, factory):
        account = await add_subscription(factory, 1, remaining_classes=8)

        async with factory.transaction() as repo:
            credits = SubscriptionCreditAccount(repo)
            await credits.refund(account.id)
            await credits.refund(account.id)

        assert await remaining(factory, account.id) == 10


class TestResolveForBooking:
    """Combined selection and entitlement."""

    async def test_rejections(self, factory):
        session = await add_class(factory, equipment_type="reformer")
        await add_subscription(factory, 2, remaining_classes=0)
        await add_subscription(factory, 3, equipment_access="mat")

        async with factory.transaction() as repo:
            credits = SubscriptionCreditAccount(repo)
            with pytest.raises(NoSubscriptionError):
                await credits.resolve_for_booking(1, session, TODAY)
            with pytest.raises(InsufficientCreditError):
                await credits.resolve_for_booking(2, session, TODAY)
            with pytest.raises(EquipmentMismatchError):
                await credits.resolve_for_booking(3, session, TODAY)

    async def test_expire_lapsed(self, factory):
        lapsed = await add_subscription(factory, 1, end_date=date(2026, 3, 1))
        current = await add_subscription(factory, 1, end_date=TODAY)

        async with factory.transaction() as repo:
            expired = await SubscriptionCreditAccount(repo).expire_lapsed(TODAY)

        assert expired == 1
        async with factory.transaction() as repo:
            assert (await repo.get_subscription(lapsed.id)).status == "expired"
            assert (await repo.get_subscription(current.id)).status == "active"
