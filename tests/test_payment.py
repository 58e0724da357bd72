"""Tests for checkout session creation."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from wanderlust.models.booking import RoomSelection
from wanderlust.services.payment_service import (
    BookingInfo,
    CheckoutRequest,
    PaymentError,
    PaymentService,
)
from wanderlust.services.supabase_client import SupabaseError


@pytest.fixture
def client():
    client = MagicMock()
    client.invoke_function = AsyncMock(return_value={"url": "https://checkout.example/s/1", "id": "cs_1"})
    return client


@pytest.fixture
def request_body():
    return CheckoutRequest(
        trip_schedule_id="42",
        user_id="u-1",
        booking_info=BookingInfo.from_rooms(RoomSelection(single=2, double=1), members=4),
    )


@pytest.mark.asyncio
async def test_create_checkout_session(client, request_body):
    service = PaymentService(client)

    session = await service.create_checkout_session(request_body)

    assert session.url == "https://checkout.example/s/1"
    assert session.session_id == "cs_1"
    name = client.invoke_function.call_args.args[0]
    body = client.invoke_function.call_args.kwargs["json"]
    assert name == "create-checkout-session"
    assert body == {
        "trip_schedule_id": "42",
        "user_id": "u-1",
        "booking_info": {"singleRooms": 2, "doubleRooms": 1, "tripleRooms": 0, "members": 4},
    }


@pytest.mark.asyncio
async def test_missing_url(client, request_body):
    client.invoke_function.return_value = {"error": None}

    with pytest.raises(PaymentError) as exc_info:
        await PaymentService(client).create_checkout_session(request_body)

    assert str(exc_info.value) == "Could not retrieve payment URL."


@pytest.mark.asyncio
async def test_function_error_wrapped(client, request_body):
    client.invoke_function.side_effect = SupabaseError("Trip is full", status_code=400)

    with pytest.raises(PaymentError) as exc_info:
        await PaymentService(client, "checkout-v2").create_checkout_session(request_body)

    assert str(exc_info.value) == "Trip is full"
    assert exc_info.value.status_code == 400
    assert client.invoke_function.call_args.args[0] == "checkout-v2"
