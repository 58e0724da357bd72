"""Application context and command line entry point for the Wanderlust client."""

import asyncio
import sys
from decimal import Decimal, InvalidOperation
from typing import Optional

from wanderlust.config import Settings, get_settings
from wanderlust.models.booking import PriceTable
from wanderlust.models.trip import TripSchedule
from wanderlust.services.auth_service import AuthContext, AuthService
from wanderlust.services.booking_service import BookingDraft, BookingService, Counter
from wanderlust.services.chat_service import ChatSession
from wanderlust.services.complaint_service import ComplaintService
from wanderlust.services.payment_service import PaymentService
from wanderlust.services.realtime import ChannelManager
from wanderlust.services.review_service import ReviewService
from wanderlust.services.supabase_client import SupabaseClient, SupabaseError
from wanderlust.services.trip_service import TripService
from wanderlust.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


# =============================================================================
# Application Context
# =============================================================================


class AppContext:
    """
    Everything one running client needs, created at start and torn down at stop.

    Usage:
        async with AppContext() as app:
            trips = await app.trips.list_my_trips(user_id)
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.client: SupabaseClient | None = None
        self.channels: ChannelManager | None = None

        self.auth: AuthService | None = None
        self.trips: TripService | None = None
        self.payments: PaymentService | None = None
        self.bookings: BookingService | None = None
        self.reviews: ReviewService | None = None
        self.complaints: ComplaintService | None = None

    async def __aenter__(self) -> "AppContext":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def start(self) -> None:
        """Open the backend client and build the services."""
        supabase = self.settings.supabase
        self.client = SupabaseClient(
            url=supabase.url,
            anon_key=supabase.anon_key.get_secret_value(),
            timeout=supabase.timeout_seconds,
        )
        await self.client.__aenter__()

        self.channels = ChannelManager(self.client, self.settings.chat.poll_interval_seconds)
        self.auth = AuthService(self.client)
        self.trips = TripService(self.client)
        self.payments = PaymentService(self.client, self.settings.booking.checkout_function)
        self.bookings = BookingService(self.client, self.payments, self.channels)
        self.reviews = ReviewService(self.client)
        self.complaints = ComplaintService(self.client, self.settings.storage.complaints_bucket)

        logger.info("app_context_started", url=supabase.url)

    async def stop(self) -> None:
        """Close every channel, then the backend client."""
        try:
            if self.channels:
                await self.channels.remove_all()
        finally:
            if self.client:
                await self.client.close()
            logger.info("app_context_stopped")

    def new_draft(self, schedule: TripSchedule) -> BookingDraft:
        return BookingDraft.from_settings(schedule, self.settings.booking)

    def chat_session(self, auth: AuthContext) -> ChatSession:
        return ChatSession(self.client, self.channels, auth.require_user(), self.settings.chat)


# =============================================================================
# CLI Commands
# =============================================================================


def cmd_quote(args: list[str]) -> int:
    """Price a room selection without touching the network."""
    if len(args) != 7:
        print("Usage: wanderlust quote SINGLE DOUBLE TRIPLE PEOPLE PRICE_SINGLE PRICE_DOUBLE PRICE_TRIPLE")
        return 1

    try:
        single, double, triple, people = (int(a) for a in args[:4])
        prices = [Decimal(a) for a in args[4:]]
    except (ValueError, InvalidOperation) as e:
        print(f"❌ Invalid argument: {e}")
        return 1

    schedule = TripSchedule(
        id="quote",
        price=PriceTable(price_single=prices[0], price_double=prices[1], price_triple=prices[2]),
    )
    draft = BookingDraft.from_settings(schedule, get_settings().booking)
    for counter, count in (
        (Counter.SINGLE, single),
        (Counter.DOUBLE, double),
        (Counter.TRIPLE, triple),
        (Counter.PEOPLE, people - 1),
    ):
        draft.change(counter, count)

    totals = draft.totals
    print(f"\n💰 Total: {totals.total} {draft.currency}")
    print(f"🛏️  Capacity: {totals.capacity} people in {draft.rooms.total_rooms} rooms")

    result = draft.validate()
    if result.ok:
        print("✅ Selection is valid\n")
        return 0
    print(f"❌ {result.message}\n")
    return 2


async def cmd_test_connection() -> int:
    """Check that the backend is reachable with the configured key."""
    settings = get_settings()
    print("\n🔍 Testing Connection...\n")

    try:
        async with SupabaseClient(
            url=settings.supabase_url,
            anon_key=settings.supabase_anon_key,
            timeout=settings.supabase.timeout_seconds,
        ) as client:
            rows = await client.select("trip_schedules", columns="id", limit=1)
            print(f"   ✅ Connected to {settings.supabase_url}")
            print(f"   📋 Schedules visible: {'yes' if rows else 'none'}")
    except SupabaseError as e:
        print(f"   ❌ Connection failed: {e}")
        return 1

    print("\n✅ Connection test complete!\n")
    return 0


async def cmd_ticket(args: list[str]) -> int:
    """Print the summary shown on a ticket."""
    if len(args) != 1:
        print("Usage: wanderlust ticket TICKET_ID")
        return 1

    async with AppContext() as app:
        try:
            ticket = await app.trips.get_ticket(args[0])
        except SupabaseError as e:
            print(f"❌ {e}")
            return 1

    booking = ticket.booking
    print("\n" + "=" * 50)
    print(f"🎫 {ticket.qr_payload}")
    print("=" * 50)
    print(f"Trip:      {ticket.trip.title}")
    print(f"Date:      {ticket.travel_date or '-'}")
    print(f"Traveller: {ticket.profile.display_name if ticket.profile else '-'}")
    print(f"People:    {booking.attendees}")
    print(f"Rooms:     {ticket.room_details}")
    print(f"Total:     {booking.total_price}")
    print(f"Payment:   {booking.payment_status.value}")
    print("=" * 50 + "\n")
    return 0


# =============================================================================
# Main
# =============================================================================


def main() -> None:
    """Main entry point."""
    app_settings = get_settings().app
    setup_logging(app_settings.log_level, app_settings.log_format)

    command = sys.argv[1] if len(sys.argv) > 1 else ""
    args = sys.argv[2:]

    if command == "quote":
        code = cmd_quote(args)
    elif command == "test":
        code = asyncio.run(cmd_test_connection())
    elif command == "ticket":
        code = asyncio.run(cmd_ticket(args))
    else:
        print(f"Unknown command: {command}")
        print("Usage: wanderlust [quote|test|ticket]")
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
