"""Trips, schedules, the user's booked trips and tickets."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from wanderlust.models.booking import Booking, PriceTable
from wanderlust.models.trip import (
    BaseTrip,
    MyTrip,
    Profile,
    Ticket,
    TripDetails,
    TripSchedule,
    TripStatus,
)
from wanderlust.services.supabase_client import SupabaseClient, SupabaseNotFoundError
from wanderlust.utils.logger import get_logger

logger = get_logger(__name__)

MY_TRIPS_COLUMNS = """
    id,
    ticket_id,
    trip_schedules (
        id,
        start_date,
        end_date,
        base_trips (
            id,
            title,
            photo_urls
        )
    )
"""


@dataclass
class TripFilter:
    """Browse filters; text filters match case-insensitively anywhere in the value."""

    city: Optional[str] = None
    country: Optional[str] = None
    max_price: Optional[Decimal] = None

    def matches(self, details: TripDetails) -> bool:
        trip = details.trip
        if self.city and self.city.lower() not in (trip.city or "").lower():
            return False
        if self.country and self.country.lower() not in (trip.country or "").lower():
            return False
        if self.max_price is not None and cheapest_price(details.schedule.price) > self.max_price:
            return False
        return True


def cheapest_price(prices: PriceTable) -> Decimal:
    """Lowest non-zero room price, or 0 when the schedule has no prices."""
    values = [p for p in (prices.price_single, prices.price_double, prices.price_triple) if p > 0]
    return min(values) if values else Decimal("0")


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class TripService:
    """Read side of trips and bookings."""

    def __init__(self, client: SupabaseClient):
        self.client = client

    async def get_schedule(self, schedule_id: str) -> TripSchedule:
        row = await self.client.select_one("trip_schedules", filters={"id": schedule_id})
        if row is None:
            raise SupabaseNotFoundError("Schedule for this trip not found.")
        return TripSchedule.model_validate(row)

    async def get_base_trip(self, base_trip_id: str) -> BaseTrip:
        row = await self.client.select_one("base_trips", filters={"id": base_trip_id})
        if row is None:
            raise SupabaseNotFoundError("Trip details not found.")
        return BaseTrip.model_validate(row)

    async def get_trip_details(self, schedule_id: str) -> TripDetails:
        """Schedule and base trip shown on the trip screen."""
        schedule = await self.get_schedule(schedule_id)
        if not schedule.base_trip_id:
            raise SupabaseNotFoundError("Trip details not found.")
        trip = await self.get_base_trip(schedule.base_trip_id)
        return TripDetails(schedule=schedule, trip=trip)

    async def list_trips(
        self,
        trip_filter: Optional[TripFilter] = None,
        now: Optional[datetime] = None,
    ) -> list[TripDetails]:
        """Schedules that have not ended yet, with their base trips."""
        now = _as_aware(now or datetime.now(timezone.utc))
        rows = await self.client.select("trip_schedules", columns="*, base_trips(*)")

        trips = []
        for row in rows:
            base = row.get("base_trips")
            if not base:
                continue
            details = TripDetails(
                schedule=TripSchedule.model_validate(row),
                trip=BaseTrip.model_validate(base),
            )
            end = details.schedule.end_date
            if end is not None and _as_aware(end) < now:
                continue
            if trip_filter and not trip_filter.matches(details):
                continue
            trips.append(details)

        logger.debug("trips_listed", total=len(rows), active=len(trips))
        return trips

    async def list_my_trips(self, user_id: str, today: Optional[datetime] = None) -> list[MyTrip]:
        """The user's booked trips, marked completed once their end date has passed."""
        today = _as_aware(today or datetime.now(timezone.utc))
        today_date = today.date()

        rows = await self.client.select(
            "bookings", columns=MY_TRIPS_COLUMNS, filters={"user_id": user_id}
        )

        trips = []
        for row in rows:
            schedule = row.get("trip_schedules")
            if not schedule:
                continue
            base = schedule.get("base_trips") or {}

            parsed = TripSchedule.model_validate(schedule)
            status = TripStatus.ON_GOING
            if parsed.end_date and _as_aware(parsed.end_date).date() < today_date:
                status = TripStatus.COMPLETED

            photos = base.get("photo_urls") or []
            trips.append(
                MyTrip(
                    schedule_id=parsed.id,
                    status=status,
                    title=base.get("title") or "Untitled",
                    start_date=parsed.start_date,
                    end_date=parsed.end_date,
                    image=photos[0] if photos else "",
                    ticket_id=row.get("ticket_id") or None,
                )
            )
        return trips

    async def get_ticket(self, ticket_id: str) -> Ticket:
        """Booking by ticket id with its schedule, trip and owner profile."""
        row = await self.client.select_one("bookings", filters={"ticket_id": ticket_id})
        if row is None:
            raise SupabaseNotFoundError("Booking not found.")
        booking = Booking.model_validate(row)

        schedule = await self.get_schedule(booking.trip_schedule_id)
        if not schedule.base_trip_id:
            raise SupabaseNotFoundError("Trip details not found.")

        trip, profile_row = await asyncio.gather(
            self.get_base_trip(schedule.base_trip_id),
            self.client.select_one("profiles", filters={"id": booking.user_id}),
        )
        profile = Profile.model_validate(profile_row) if profile_row else None

        logger.info("ticket_loaded", ticket_id=ticket_id, paid=booking.is_paid)
        return Ticket(booking=booking, schedule=schedule, trip=trip, profile=profile)
