"""Tests for scheduling, cancelling and listing delivery pauses."""

from datetime import datetime
from types import SimpleNamespace
import uuid

import pytest

from tiffin.core.exceptions import NotFoundError, PolicyViolation, ValidationError
from tiffin.modules.billing.models import SubscriptionStatus
from tiffin.modules.delivery.models import PauseDisplayState, PauseStatus
from tiffin.modules.delivery.pause_service import DeliveryPauseService, display_state, parse_day

from conftest import FakeDeliveryPauseRepository, FakeSubscriptionRepository, make_plan, make_subscription


NOW = datetime(2024, 6, 10, 15, 0)


@pytest.fixture
def subscription(user_id):
    return make_subscription(user_id, make_plan(), datetime(2024, 6, 1), datetime(2024, 7, 1))


@pytest.fixture
def service(session, subscription):
    service = DeliveryPauseService(session)
    service.subscription_repo = FakeSubscriptionRepository([subscription])
    service.pause_repo = FakeDeliveryPauseRepository()
    return service


class TestParseDay:

    def test_date_string(self):
        assert parse_day("2024-06-12") == datetime(2024, 6, 12)

    def test_timestamp_truncated_to_midnight(self):
        assert parse_day("2024-06-12T18:45:00+05:30") == datetime(2024, 6, 12)

    def test_missing_value(self):
        with pytest.raises(ValidationError, match="start date and an end date"):
            parse_day("")

    def test_garbage(self):
        with pytest.raises(ValidationError, match="Invalid date format"):
            parse_day("next tuesday")


class TestCreatePause:

    @pytest.mark.asyncio
    async def test_valid_pause(self, service, session, user_id, subscription):
        pause = await service.create_pause(user_id, subscription.id, "2024-06-12", "2024-06-14", now=NOW)

        assert pause.start_date == datetime(2024, 6, 12)
        assert pause.end_date == datetime(2024, 6, 14)
        assert pause.pause_days == 3
        assert pause.status == PauseStatus.ACTIVE.value
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_tomorrow_is_earliest_start(self, service, user_id, subscription):
        pause = await service.create_pause(user_id, subscription.id, "2024-06-11", "2024-06-11", now=NOW)

        assert pause.pause_days == 1

    @pytest.mark.asyncio
    async def test_today_rejected(self, service, user_id, subscription):
        with pytest.raises(ValidationError, match="at least tomorrow"):
            await service.create_pause(user_id, subscription.id, "2024-06-10", "2024-06-12", now=NOW)

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(self, service, user_id, subscription):
        with pytest.raises(ValidationError, match="End date"):
            await service.create_pause(user_id, subscription.id, "2024-06-14", "2024-06-12", now=NOW)

    @pytest.mark.asyncio
    async def test_past_subscription_end_rejected(self, service, user_id, subscription):
        with pytest.raises(ValidationError, match="exceed subscription end date"):
            await service.create_pause(user_id, subscription.id, "2024-06-28", "2024-07-02", now=NOW)

    @pytest.mark.asyncio
    async def test_other_users_subscription(self, service, subscription):
        with pytest.raises(NotFoundError):
            await service.create_pause(uuid.uuid4(), subscription.id, "2024-06-12", "2024-06-14", now=NOW)

    @pytest.mark.asyncio
    async def test_inactive_subscription(self, service, user_id, subscription):
        subscription.status = SubscriptionStatus.CANCELLED.value

        with pytest.raises(NotFoundError):
            await service.create_pause(user_id, subscription.id, "2024-06-12", "2024-06-14", now=NOW)


class TestCancelPause:

    @pytest.mark.asyncio
    async def test_cancel_future_pause(self, service, user_id, subscription):
        pause = await service.create_pause(user_id, subscription.id, "2024-06-12", "2024-06-14", now=NOW)

        cancelled = await service.cancel_pause(user_id, pause.id, now=NOW)

        assert cancelled.status == PauseStatus.CANCELLED.value

    @pytest.mark.asyncio
    async def test_cannot_cancel_on_start_day(self, service, user_id, subscription):
        pause = await service.create_pause(user_id, subscription.id, "2024-06-12", "2024-06-14", now=NOW)

        with pytest.raises(PolicyViolation, match="already started or is today"):
            await service.cancel_pause(user_id, pause.id, now=datetime(2024, 6, 12, 6, 0))

    @pytest.mark.asyncio
    async def test_cannot_cancel_twice(self, service, user_id, subscription):
        pause = await service.create_pause(user_id, subscription.id, "2024-06-12", "2024-06-14", now=NOW)
        await service.cancel_pause(user_id, pause.id, now=NOW)

        with pytest.raises(PolicyViolation, match="already cancelled"):
            await service.cancel_pause(user_id, pause.id, now=NOW)

    @pytest.mark.asyncio
    async def test_other_users_pause(self, service, user_id, subscription):
        pause = await service.create_pause(user_id, subscription.id, "2024-06-12", "2024-06-14", now=NOW)

        with pytest.raises(NotFoundError):
            await service.cancel_pause(uuid.uuid4(), pause.id, now=NOW)


class TestListing:

    @pytest.mark.asyncio
    async def test_latest_first_with_state(self, service, user_id, subscription):
        early = await service.create_pause(user_id, subscription.id, "2024-06-12", "2024-06-13", now=NOW)
        late = await service.create_pause(user_id, subscription.id, "2024-06-20", "2024-06-21", now=NOW)

        views = await service.list_pauses(user_id, now=datetime(2024, 6, 13, 9, 0))

        assert [v.pause.id for v in views] == [late.id, early.id]
        assert [v.state for v in views] == [PauseDisplayState.SCHEDULED, PauseDisplayState.IN_PROGRESS]

    def test_display_states(self):
        pause = SimpleNamespace(
            status=PauseStatus.ACTIVE.value,
            start_date=datetime(2024, 6, 12),
            end_date=datetime(2024, 6, 14),
        )

        assert display_state(pause, datetime(2024, 6, 11, 23, 0)) == PauseDisplayState.SCHEDULED
        assert display_state(pause, datetime(2024, 6, 14, 23, 0)) == PauseDisplayState.IN_PROGRESS
        assert display_state(pause, datetime(2024, 6, 15)) == PauseDisplayState.COMPLETED

        pause.status = PauseStatus.CANCELLED.value
        assert display_state(pause, datetime(2024, 6, 13)) == PauseDisplayState.CANCELLED
