"""Hosted checkout session creation."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from wanderlust.models.booking import RoomSelection
from wanderlust.services.supabase_client import SupabaseClient, SupabaseError
from wanderlust.utils.logger import get_logger

logger = get_logger(__name__)


class PaymentError(SupabaseError):
    """Checkout could not be started."""

    pass


class BookingInfo(BaseModel):
    """Room and attendee counts in the shape the checkout function expects."""

    model_config = ConfigDict(populate_by_name=True)

    single_rooms: int = Field(ge=0, alias="singleRooms")
    double_rooms: int = Field(ge=0, alias="doubleRooms")
    triple_rooms: int = Field(ge=0, alias="tripleRooms")
    members: int = Field(ge=1)

    @classmethod
    def from_rooms(cls, rooms: RoomSelection, members: int) -> "BookingInfo":
        return cls(
            single_rooms=rooms.single,
            double_rooms=rooms.double,
            triple_rooms=rooms.triple,
            members=members,
        )


class CheckoutRequest(BaseModel):
    """Request body of the checkout function."""

    trip_schedule_id: str
    user_id: str
    booking_info: BookingInfo
    booking_id: Optional[str] = None
    ticket_id: Optional[str] = None
    idempotency_key: Optional[str] = None

    def to_body(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class CheckoutSession(BaseModel):
    """Redirect target of the hosted checkout page."""

    url: str
    session_id: Optional[str] = None


class PaymentService:
    """
    Starts hosted checkout sessions. Completion is only visible later,
    through the booking's payment status.
    """

    def __init__(self, client: SupabaseClient, function_name: str = "create-checkout-session"):
        self.client = client
        self.function_name = function_name

    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSession:
        """
        Create a checkout session for a booking.

        Raises:
            PaymentError: If the function fails or returns no URL
        """
        logger.info(
            "checkout_session_requested",
            trip_schedule_id=request.trip_schedule_id,
            booking_id=request.booking_id,
        )
        try:
            data = await self.client.invoke_function(self.function_name, json=request.to_body())
        except PaymentError:
            raise
        except SupabaseError as e:
            raise PaymentError(str(e), status_code=e.status_code, response=e.response) from e

        url = data.get("url") if isinstance(data, dict) else None
        if not url:
            raise PaymentError("Could not retrieve payment URL.", response=data)

        session = CheckoutSession(url=url, session_id=data.get("session_id") or data.get("id"))
        logger.info("checkout_session_created", session_id=session.session_id)
        return session
