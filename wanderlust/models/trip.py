"""Pydantic models for trips, schedules and tickets."""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from wanderlust.models.booking import Booking, PriceTable


class TripStatus(str, Enum):
    """Status of a booked trip in the user's trip list."""

    ON_GOING = "On Going"
    COMPLETED = "Completed"


class BaseTrip(BaseModel):
    """Trip template shared by all of its schedules."""

    id: str
    title: str = "Untitled"
    description: str | None = None
    country: str | None = None
    city: str | None = None
    photo_urls: list[str] = []
    video_url: str | None = None
    average_rating: float | None = None
    review_count: int = 0
    company_id: str | None = None

    @field_validator("id", "company_id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> Any:
        return str(v) if v is not None else v

    @field_validator("photo_urls", mode="before")
    @classmethod
    def default_photos(cls, v: Any) -> Any:
        return v or []


class TripSchedule(BaseModel):
    """Bookable instance of a base trip with dates and per-room prices."""

    id: str
    base_trip_id: str | None = None
    date: datetime | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    price: PriceTable = Field(default_factory=PriceTable)

    @field_validator("id", "base_trip_id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> Any:
        return str(v) if v is not None else v

    @field_validator("price", mode="before")
    @classmethod
    def parse_price(cls, v: Any) -> Any:
        if isinstance(v, PriceTable):
            return v
        return PriceTable.from_schedule_price(v)


class TripDetails(BaseModel):
    """Schedule together with its base trip, as shown on the trip screen."""

    schedule: TripSchedule
    trip: BaseTrip


class MyTrip(BaseModel):
    """Entry of the signed-in user's booked trips."""

    schedule_id: str
    status: TripStatus
    title: str
    start_date: datetime | None = None
    end_date: datetime | None = None
    image: str = ""
    ticket_id: str | None = None


class Profile(BaseModel):
    """Public profile of a user."""

    id: str
    display_name: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    role: str = "user"
    is_blocked: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("is_blocked", mode="before")
    @classmethod
    def default_blocked(cls, v: Any) -> bool:
        return bool(v)


class Ticket(BaseModel):
    """Booking with everything the ticket view displays."""

    booking: Booking
    schedule: TripSchedule
    trip: BaseTrip
    profile: Profile | None = None

    @property
    def room_details(self) -> str:
        from wanderlust.services.pricing import describe_rooms

        return describe_rooms(self.booking.rooms)

    @property
    def qr_payload(self) -> str:
        """Value encoded in the ticket QR code."""
        return self.booking.ticket_id or self.booking.id

    @property
    def travel_date(self) -> date | None:
        when = self.schedule.start_date or self.schedule.date
        return when.date() if when else None
