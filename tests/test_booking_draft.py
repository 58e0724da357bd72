"""Tests for the booking draft state machine and booking service."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from wanderlust.config import BookingSettings
from wanderlust.models.booking import Booking, PriceTable
from wanderlust.models.result import ErrorKind
from wanderlust.models.trip import TripSchedule
from wanderlust.services.booking_service import (
    BookingDraft,
    BookingService,
    Counter,
    DraftState,
    SubmissionMode,
    SubmissionOutcome,
)
from wanderlust.services.payment_service import CheckoutSession, PaymentError
from wanderlust.services.pricing import CapacityPolicy
from wanderlust.services.supabase_client import SupabaseError, SupabaseNetworkError


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def schedule():
    return TripSchedule(
        id="42",
        base_trip_id="7",
        price=PriceTable(
            price_single=Decimal("100"),
            price_double=Decimal("150"),
            price_triple=Decimal("200"),
        ),
    )


@pytest.fixture
def draft(schedule):
    return BookingDraft(schedule)


@pytest.fixture
def service():
    """Booking service with the network calls mocked out."""
    service = MagicMock(spec=BookingService)
    service.find_existing = AsyncMock(return_value=None)
    service.create_booking = AsyncMock(
        return_value=Booking(id="b-1", user_id="u-1", trip_schedule_id="42", ticket_id="TICK-1")
    )
    return service


def select(draft, people=1, single=0, double=0, triple=0):
    """Set counters from the initial state (1 person, no rooms)."""
    draft.change(Counter.PEOPLE, people - 1)
    draft.change(Counter.SINGLE, single)
    draft.change(Counter.DOUBLE, double)
    draft.change(Counter.TRIPLE, triple)


# =============================================================================
# Editing Tests
# =============================================================================


def test_initial_state(draft):
    assert draft.state == DraftState.EDITING
    assert draft.attendee_count == 1
    assert draft.rooms.total_rooms == 0
    assert draft.totals.total == Decimal("0")


def test_people_clamped_at_one(draft):
    draft.decrement(Counter.PEOPLE)
    draft.decrement("people")

    assert draft.attendee_count == 1


def test_rooms_clamped_at_zero(draft):
    draft.decrement(Counter.SINGLE)

    assert draft.rooms.single == 0


def test_change_recomputes_totals(draft):
    totals = draft.increment(Counter.DOUBLE)

    assert totals.total == Decimal("150")
    assert totals.capacity == 2


def test_change_does_not_validate(draft):
    select(draft, people=5, single=1)

    assert draft.state == DraftState.EDITING
    assert draft.error is None


def test_change_after_invalid_returns_to_editing(draft):
    draft.validate()
    assert draft.state == DraftState.INVALID

    draft.increment(Counter.SINGLE)

    assert draft.state == DraftState.EDITING
    assert draft.error is None


# =============================================================================
# Validation Tests
# =============================================================================


def test_no_rooms_rejected(draft):
    select(draft, people=3)

    result = draft.validate()

    assert not result.ok
    assert result.kind == ErrorKind.VALIDATION
    assert result.message == "Please select at least one room before booking."
    assert draft.state == DraftState.INVALID


def test_over_capacity_rejected(draft):
    select(draft, people=2, single=1)

    result = draft.validate()

    assert not result.ok
    assert result.message == "You selected 2 people, but the rooms only hold 1."


def test_fewer_people_than_rooms_rejected(draft):
    select(draft, people=1, single=1, double=1)

    result = draft.validate()

    assert not result.ok
    assert result.message == (
        "The number of people (1) cannot be less than the rooms selected (2)."
    )


def test_fewer_people_than_rooms_allowed_when_not_enforced(schedule):
    draft = BookingDraft(schedule, enforce_min_people_per_room=False)
    select(draft, people=1, single=1, double=1)

    assert draft.validate().ok


def test_first_failing_rule_wins(draft):
    # Zero rooms is reported even though no other rule could pass either
    select(draft, people=10)

    assert draft.validate().message == "Please select at least one room before booking."


def test_double_room_for_two_is_ready(draft):
    select(draft, people=2, double=1)

    result = draft.validate()

    assert result.ok
    assert result.value.capacity == 2
    assert draft.state == DraftState.READY


def test_uniform_double_policy(schedule):
    draft = BookingDraft(schedule, policy=CapacityPolicy.UNIFORM_DOUBLE)
    select(draft, people=2, single=1)

    assert draft.validate().ok


def test_from_settings(schedule):
    settings = BookingSettings(currency="USD", capacity_policy="uniform_double", submission_mode="persist_first")

    draft = BookingDraft.from_settings(schedule, settings)

    assert draft.currency == "USD"
    assert draft.policy == CapacityPolicy.UNIFORM_DOUBLE
    assert draft.submission_mode == SubmissionMode.PERSIST_FIRST


# =============================================================================
# Submission Tests
# =============================================================================


@pytest.mark.asyncio
async def test_submit_deferred(draft, service):
    select(draft, people=4, single=2, double=1)

    result = await draft.submit(service, "u-1")

    assert result.ok
    outcome = result.value
    assert outcome.mode == SubmissionMode.DEFERRED
    assert outcome.booking is None
    assert outcome.payload.total_price == Decimal("350")
    assert outcome.payload.attendees == 4
    assert outcome.payload.ticket_id.startswith("TICK-")
    assert draft.state == DraftState.SUBMITTED
    service.create_booking.assert_not_called()


@pytest.mark.asyncio
async def test_submit_persist_first(draft, service):
    select(draft, people=1, single=1)

    result = await draft.submit(service, "u-1", mode=SubmissionMode.PERSIST_FIRST)

    assert result.ok
    assert result.value.booking_id == "b-1"
    payload = service.create_booking.call_args.args[0]
    assert payload.idempotency_key == draft.idempotency_key


@pytest.mark.asyncio
async def test_submit_invalid_skips_network(draft, service):
    result = await draft.submit(service, "u-1")

    assert result.kind == ErrorKind.VALIDATION
    service.find_existing.assert_not_called()


@pytest.mark.asyncio
async def test_submit_requires_user(draft, service):
    select(draft, people=1, single=1)

    result = await draft.submit(service, None)

    assert result.kind == ErrorKind.AUTH
    assert result.message == "Please log in to book a trip."
    service.find_existing.assert_not_called()


@pytest.mark.asyncio
async def test_submit_twice_rejected(draft, service):
    select(draft, people=1, single=1)
    await draft.submit(service, "u-1")

    result = await draft.submit(service, "u-1")

    assert result.kind == ErrorKind.CONFLICT
    assert result.message == "Booking was already submitted."
    assert service.find_existing.await_count == 1


@pytest.mark.asyncio
async def test_concurrent_submit_rejected(draft, service):
    select(draft, people=1, single=1)
    release = asyncio.Event()

    async def slow_find(*args):
        await release.wait()
        return None

    service.find_existing = AsyncMock(side_effect=slow_find)

    first = asyncio.create_task(draft.submit(service, "u-1"))
    await asyncio.sleep(0)
    assert draft.state == DraftState.SUBMITTING

    second = await draft.submit(service, "u-1")
    release.set()
    first_result = await first

    assert second.kind == ErrorKind.CONFLICT
    assert second.message == "Booking is already being submitted."
    assert first_result.ok


@pytest.mark.asyncio
async def test_editing_blocked_while_submitting(draft, service):
    select(draft, people=1, single=1)
    draft.state = DraftState.SUBMITTING

    with pytest.raises(RuntimeError):
        draft.increment(Counter.SINGLE)


@pytest.mark.asyncio
async def test_failure_returns_to_ready(draft, service):
    select(draft, people=2, double=1)
    service.create_booking = AsyncMock(side_effect=SupabaseNetworkError("connection reset"))

    result = await draft.submit(service, "u-1", mode=SubmissionMode.PERSIST_FIRST)

    assert result.kind == ErrorKind.NETWORK
    assert result.message == "connection reset"
    assert draft.state == DraftState.READY
    assert DraftState.FAILED in draft.history
    assert draft.rooms.double == 1
    assert draft.attendee_count == 2


@pytest.mark.asyncio
async def test_retry_reuses_ticket_and_key(draft, service):
    select(draft, people=1, single=1)
    service.create_booking = AsyncMock(side_effect=SupabaseError("timeout"))
    await draft.submit(service, "u-1", mode=SubmissionMode.PERSIST_FIRST)
    first = service.create_booking.call_args.args[0]

    await draft.submit(service, "u-1", mode=SubmissionMode.PERSIST_FIRST)
    second = service.create_booking.call_args.args[0]

    assert first.ticket_id == second.ticket_id
    assert first.idempotency_key == second.idempotency_key


@pytest.mark.asyncio
async def test_existing_booking_conflict(draft, service):
    select(draft, people=1, single=1)
    service.find_existing = AsyncMock(
        return_value=Booking(id="old", user_id="u-1", trip_schedule_id="42", idempotency_key="other")
    )

    result = await draft.submit(service, "u-1", mode=SubmissionMode.PERSIST_FIRST)

    assert result.kind == ErrorKind.CONFLICT
    assert result.message == "You have already booked this trip."
    assert draft.state == DraftState.READY
    service.create_booking.assert_not_called()


@pytest.mark.asyncio
async def test_existing_booking_from_same_draft_reused(draft, service):
    select(draft, people=1, single=1)
    earlier = Booking(
        id="b-9", user_id="u-1", trip_schedule_id="42", idempotency_key=draft.idempotency_key
    )
    service.find_existing = AsyncMock(return_value=earlier)

    result = await draft.submit(service, "u-1", mode=SubmissionMode.PERSIST_FIRST)

    assert result.ok
    assert result.value.booking_id == "b-9"
    service.create_booking.assert_not_called()


@pytest.mark.asyncio
async def test_cancelled_submit_returns_to_ready(draft, service):
    select(draft, people=1, single=1)
    service.find_existing = AsyncMock(side_effect=asyncio.CancelledError())

    with pytest.raises(asyncio.CancelledError):
        await draft.submit(service, "u-1")

    assert draft.state == DraftState.READY


@pytest.mark.asyncio
async def test_unexpected_error_returns_to_ready(draft, service):
    select(draft, people=2, double=1)
    service.find_existing = AsyncMock(side_effect=ValueError("bad row"))

    with pytest.raises(ValueError):
        await draft.submit(service, "u-1")

    assert draft.state == DraftState.READY
    assert DraftState.FAILED in draft.history
    assert draft.error == "bad row"
    assert draft.rooms.double == 1

    service.find_existing = AsyncMock(return_value=None)
    result = await draft.submit(service, "u-1")

    assert result.ok
    assert draft.state == DraftState.SUBMITTED


# =============================================================================
# Booking Service Tests
# =============================================================================


@pytest.fixture
def client():
    client = MagicMock()
    client.select_one = AsyncMock(return_value=None)
    client.insert = AsyncMock()
    return client


@pytest.mark.asyncio
async def test_create_booking_upserts_on_idempotency_key(draft, client):
    select(draft, people=1, single=1)
    payload = draft.build_payload("u-1")
    client.insert.return_value = [
        {**payload.to_row(), "id": 5},
    ]
    service = BookingService(client, MagicMock())

    booking = await service.create_booking(payload)

    assert booking.id == "5"
    assert booking.total_price == Decimal("100")
    assert booking.attendees == 1
    args, kwargs = client.insert.call_args
    assert args[0] == "bookings"
    assert kwargs["on_conflict"] == "idempotency_key"


@pytest.mark.asyncio
async def test_get_booking_not_found(client):
    service = BookingService(client, MagicMock())

    with pytest.raises(SupabaseError, match="Booking not found."):
        await service.get_booking("missing")


@pytest.mark.asyncio
async def test_checkout_builds_request(draft, service):
    select(draft, people=3, single=1, double=1)
    outcome = SubmissionOutcome(payload=draft.build_payload("u-1"), mode=SubmissionMode.DEFERRED)
    payments = MagicMock()
    payments.create_checkout_session = AsyncMock(
        return_value=CheckoutSession(url="https://pay.example/s/1")
    )

    result = await BookingService(MagicMock(), payments).checkout(outcome)

    assert result.ok
    request = payments.create_checkout_session.call_args.args[0]
    body = request.to_body()
    assert body["booking_info"] == {
        "singleRooms": 1,
        "doubleRooms": 1,
        "tripleRooms": 0,
        "members": 3,
    }
    assert "booking_id" not in body


@pytest.mark.asyncio
async def test_checkout_failure(draft):
    select(draft, people=1, single=1)
    outcome = SubmissionOutcome(payload=draft.build_payload("u-1"), mode=SubmissionMode.DEFERRED)
    payments = MagicMock()
    payments.create_checkout_session = AsyncMock(
        side_effect=PaymentError("Could not retrieve payment URL.")
    )

    result = await BookingService(MagicMock(), payments).checkout(outcome)

    assert result.kind == ErrorKind.NETWORK
    assert result.message == "Could not retrieve payment URL."


@pytest.mark.asyncio
async def test_watch_payment_status_requires_channels():
    service = BookingService(MagicMock(), MagicMock())

    with pytest.raises(RuntimeError):
        await service.watch_payment_status("b-1", lambda status: None)
