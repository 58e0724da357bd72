"""Pydantic models for room selection, pricing and booking data."""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PaymentStatus(str, Enum):
    """Booking payment status, moved to PAID by the payment webhook."""

    PENDING = "pending"
    PAID = "paid"


class RoomSelection(BaseModel):
    """Room counts by type."""

    model_config = ConfigDict(frozen=True)

    single: int = Field(ge=0, default=0)
    double: int = Field(ge=0, default=0)
    triple: int = Field(ge=0, default=0)

    @property
    def total_rooms(self) -> int:
        return self.single + self.double + self.triple

    def __add__(self, other: "RoomSelection") -> "RoomSelection":
        return RoomSelection(
            single=self.single + other.single,
            double=self.double + other.double,
            triple=self.triple + other.triple,
        )


def _to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid price: {value!r}") from e


class PriceTable(BaseModel):
    """Price per room type of one trip schedule."""

    model_config = ConfigDict(frozen=True)

    price_single: Decimal = Field(ge=0, default=Decimal("0"))
    price_double: Decimal = Field(ge=0, default=Decimal("0"))
    price_triple: Decimal = Field(ge=0, default=Decimal("0"))

    @field_validator("price_single", "price_double", "price_triple", mode="before")
    @classmethod
    def parse_price(cls, v: Any) -> Decimal:
        # Schedule rows store prices as strings ("1500") or numbers
        return _to_decimal(v)

    @classmethod
    def from_schedule_price(cls, price: dict | None) -> "PriceTable":
        """Build from the `price` JSON column of a trip schedule row."""
        price = price or {}
        return cls(
            price_single=price.get("price_single"),
            price_double=price.get("price_double"),
            price_triple=price.get("price_triple"),
        )


class Totals(BaseModel):
    """Derived total price and people capacity of a room selection."""

    model_config = ConfigDict(frozen=True)

    total: Decimal
    capacity: int


class BookingPayload(BaseModel):
    """Booking row built by the client from a validated draft."""

    ticket_id: str
    user_id: str
    trip_schedule_id: str
    booking_date: datetime
    payment_status: PaymentStatus = PaymentStatus.PENDING
    total_price: Decimal
    currency: str = "EGP"
    attendees: int = Field(ge=1)
    rooms: RoomSelection
    idempotency_key: str

    def to_row(self) -> dict:
        """Serialize in the column shape of the bookings relation."""
        return {
            "ticket_id": self.ticket_id,
            "user_id": self.user_id,
            "trip_schedule_id": self.trip_schedule_id,
            "booking_date": self.booking_date.isoformat(),
            "payment_status": self.payment_status.value,
            "total_price": {"amount": float(self.total_price), "currency": self.currency},
            "attendees": {"members": self.attendees},
            "rooms": self.rooms.model_dump(),
            "idempotency_key": self.idempotency_key,
        }


class Booking(BaseModel):
    """Server-owned booking record."""

    id: str
    ticket_id: str | None = None
    user_id: str
    trip_schedule_id: str
    booking_date: datetime | None = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    total_price: Decimal = Decimal("0")
    attendees: int = 1
    rooms: RoomSelection = Field(default_factory=RoomSelection)
    idempotency_key: str | None = None

    @field_validator("id", "user_id", "trip_schedule_id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("total_price", mode="before")
    @classmethod
    def parse_total(cls, v: Any) -> Decimal:
        if isinstance(v, dict):
            v = v.get("amount")
        return _to_decimal(v)

    @field_validator("attendees", mode="before")
    @classmethod
    def parse_attendees(cls, v: Any) -> int:
        if isinstance(v, dict):
            v = v.get("members", 1)
        return int(v or 1)

    @field_validator("rooms", mode="before")
    @classmethod
    def parse_rooms(cls, v: Any) -> Any:
        return v or {}

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID
