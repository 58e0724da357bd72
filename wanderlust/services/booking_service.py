"""Booking draft state machine and booking persistence."""

import asyncio
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from wanderlust.config import BookingSettings
from wanderlust.models.booking import Booking, BookingPayload, PaymentStatus, RoomSelection, Totals
from wanderlust.models.result import Err, ErrorKind, Ok, Result
from wanderlust.models.trip import TripSchedule
from wanderlust.services.payment_service import (
    BookingInfo,
    CheckoutRequest,
    PaymentError,
    PaymentService,
)
from wanderlust.services.pricing import CapacityPolicy, compute_totals
from wanderlust.services.realtime import ChangeEvent, ChannelManager, RealtimeChannel, RowEvent
from wanderlust.services.supabase_client import (
    SupabaseAuthError,
    SupabaseClient,
    SupabaseError,
    SupabaseNotFoundError,
)
from wanderlust.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Data Models
# =============================================================================


class DraftState(str, Enum):
    """Booking draft lifecycle."""

    EDITING = "editing"
    VALIDATING = "validating"
    INVALID = "invalid"
    READY = "ready"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    FAILED = "failed"


class Counter(str, Enum):
    """Counters the user can step up and down."""

    PEOPLE = "people"
    SINGLE = "single"
    DOUBLE = "double"
    TRIPLE = "triple"


class SubmissionMode(str, Enum):
    """Where the booking row gets created."""

    PERSIST_FIRST = "persist_first"  # insert now, pay for the stored booking
    DEFERRED = "deferred"  # hand the payload to checkout, which creates the row


@dataclass
class SubmissionOutcome:
    """What a successful submission hands to the payment step."""

    payload: BookingPayload
    mode: SubmissionMode
    booking: Optional[Booking] = None

    @property
    def booking_id(self) -> Optional[str]:
        return self.booking.id if self.booking else None


def _error_kind(error: SupabaseError) -> ErrorKind:
    if isinstance(error, SupabaseAuthError):
        return ErrorKind.AUTH
    if isinstance(error, SupabaseNotFoundError):
        return ErrorKind.NOT_FOUND
    return ErrorKind.NETWORK


# =============================================================================
# Booking Service
# =============================================================================


class BookingService:
    """Persistence, checkout and status tracking of bookings."""

    def __init__(
        self,
        client: SupabaseClient,
        payments: PaymentService,
        channels: Optional[ChannelManager] = None,
    ):
        self.client = client
        self.payments = payments
        self.channels = channels

    async def find_existing(self, user_id: str, trip_schedule_id: str) -> Optional[Booking]:
        """The user's booking for a schedule, if any."""
        row = await self.client.select_one(
            "bookings",
            filters={"user_id": user_id, "trip_schedule_id": trip_schedule_id},
            limit=1,
        )
        return Booking.model_validate(row) if row else None

    async def create_booking(self, payload: BookingPayload) -> Booking:
        """Insert a booking; a retry with the same idempotency key returns the same row."""
        rows = await self.client.insert(
            "bookings", payload.to_row(), on_conflict="idempotency_key"
        )
        if not rows:
            raise SupabaseError("Booking was not created.")
        booking = Booking.model_validate(rows[0])
        logger.info("booking_created", booking_id=booking.id, ticket_id=booking.ticket_id)
        return booking

    async def get_booking(self, booking_id: str) -> Booking:
        row = await self.client.select_one("bookings", filters={"id": booking_id})
        if row is None:
            raise SupabaseNotFoundError("Booking not found.")
        return Booking.model_validate(row)

    async def refresh_booking(self, booking: Booking) -> Booking:
        """Refetch a booking to observe server-driven payment status changes."""
        refreshed = await self.get_booking(booking.id)
        if refreshed.payment_status != booking.payment_status:
            logger.info(
                "booking_payment_status_changed",
                booking_id=booking.id,
                status=refreshed.payment_status.value,
            )
        return refreshed

    async def watch_payment_status(
        self,
        booking_id: str,
        callback: Callable[[PaymentStatus], Any],
    ) -> RealtimeChannel:
        """Subscribe to payment status updates of one booking."""
        if self.channels is None:
            raise RuntimeError("BookingService was created without a channel manager")

        def _on_update(event: RowEvent) -> Any:
            return callback(PaymentStatus(event.record.get("payment_status", "pending")))

        return await self.channels.subscribe(
            topic=f"booking_{booking_id}",
            table="bookings",
            event=ChangeEvent.UPDATE,
            filters={"id": booking_id},
            callback=_on_update,
            watch_column="payment_status",
        )

    async def checkout(self, outcome: SubmissionOutcome) -> Result:
        """Start hosted checkout for a submitted draft."""
        payload = outcome.payload
        request = CheckoutRequest(
            trip_schedule_id=payload.trip_schedule_id,
            user_id=payload.user_id,
            booking_info=BookingInfo.from_rooms(payload.rooms, payload.attendees),
            booking_id=outcome.booking_id,
            ticket_id=payload.ticket_id,
            idempotency_key=payload.idempotency_key,
        )
        try:
            session = await self.payments.create_checkout_session(request)
        except PaymentError as e:
            logger.error("checkout_failed", error=str(e))
            return Err(ErrorKind.NETWORK, str(e))
        return Ok(session)


# =============================================================================
# Booking Draft
# =============================================================================


class BookingDraft:
    """
    Client-side booking being put together on the trip screen.

    Counter changes recompute totals without validating. `submit` validates
    (first failing rule wins), then hands a payload to the booking service.
    A failed submission goes back to READY with the selection intact.
    """

    def __init__(
        self,
        schedule: TripSchedule,
        policy: CapacityPolicy = CapacityPolicy.OCCUPANCY,
        enforce_min_people_per_room: bool = True,
        currency: str = "EGP",
        ticket_prefix: str = "TICK-",
        submission_mode: SubmissionMode = SubmissionMode.DEFERRED,
    ):
        self.schedule = schedule
        self.policy = policy
        self.enforce_min_people_per_room = enforce_min_people_per_room
        self.currency = currency
        self.ticket_prefix = ticket_prefix
        self.submission_mode = submission_mode

        self.attendee_count = 1
        self.rooms = RoomSelection()
        self.state = DraftState.EDITING
        self.history: list[DraftState] = [DraftState.EDITING]
        self.error: Optional[str] = None

        # Reused by every submission attempt of this draft
        self.idempotency_key = str(uuid.uuid4())
        self._ticket_id: Optional[str] = None

        if policy == CapacityPolicy.UNIFORM_DOUBLE:
            logger.warning("uniform_double_capacity_policy", schedule_id=schedule.id)

    @classmethod
    def from_settings(cls, schedule: TripSchedule, settings: BookingSettings) -> "BookingDraft":
        return cls(
            schedule,
            policy=CapacityPolicy(settings.capacity_policy),
            enforce_min_people_per_room=settings.enforce_min_people_per_room,
            currency=settings.currency,
            ticket_prefix=settings.ticket_prefix,
            submission_mode=SubmissionMode(settings.submission_mode),
        )

    @property
    def totals(self) -> Totals:
        return compute_totals(self.rooms, self.schedule.price, self.policy)

    def _transition(self, state: DraftState) -> None:
        if state != self.state:
            logger.debug("booking_draft_transition", old=self.state.value, new=state.value)
        self.state = state
        self.history.append(state)

    def _ensure_editable(self) -> None:
        if self.state == DraftState.SUBMITTING:
            raise RuntimeError("Booking is being submitted")
        if self.state == DraftState.SUBMITTED:
            raise RuntimeError("Booking draft was already submitted")

    # =========================================================================
    # Editing
    # =========================================================================

    def change(self, counter: Counter | str, op: int) -> Totals:
        """Step a counter by `op`; people stay >= 1 and rooms >= 0."""
        self._ensure_editable()
        counter = Counter(counter)

        if counter == Counter.PEOPLE:
            self.attendee_count = max(1, self.attendee_count + op)
        else:
            field = counter.value
            self.rooms = self.rooms.model_copy(
                update={field: max(0, getattr(self.rooms, field) + op)}
            )

        self.error = None
        if self.state != DraftState.EDITING:
            self._transition(DraftState.EDITING)
        return self.totals

    def increment(self, counter: Counter | str) -> Totals:
        return self.change(counter, 1)

    def decrement(self, counter: Counter | str) -> Totals:
        return self.change(counter, -1)

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self) -> Result:
        """Apply the room/capacity rules. Never touches the network."""
        self._ensure_editable()
        self._transition(DraftState.VALIDATING)

        totals = self.totals
        total_rooms = self.rooms.total_rooms
        message = None

        if total_rooms == 0:
            message = "Please select at least one room before booking."
        elif self.attendee_count > totals.capacity:
            message = (
                f"You selected {self.attendee_count} people, "
                f"but the rooms only hold {totals.capacity}."
            )
        elif self.enforce_min_people_per_room and self.attendee_count < total_rooms:
            message = (
                f"The number of people ({self.attendee_count}) cannot be less "
                f"than the rooms selected ({total_rooms})."
            )

        if message:
            self.error = message
            self._transition(DraftState.INVALID)
            return Err(ErrorKind.VALIDATION, message)

        self.error = None
        self._transition(DraftState.READY)
        return Ok(totals)

    # =========================================================================
    # Submission
    # =========================================================================

    def build_payload(self, user_id: str) -> BookingPayload:
        if self._ticket_id is None:
            self._ticket_id = f"{self.ticket_prefix}{int(time.time() * 1000)}"

        return BookingPayload(
            ticket_id=self._ticket_id,
            user_id=user_id,
            trip_schedule_id=self.schedule.id,
            booking_date=datetime.now(timezone.utc),
            total_price=self.totals.total,
            currency=self.currency,
            attendees=self.attendee_count,
            rooms=self.rooms,
            idempotency_key=self.idempotency_key,
        )

    async def submit(
        self,
        service: BookingService,
        user_id: Optional[str],
        mode: Optional[SubmissionMode] = None,
    ) -> Result:
        """
        Validate and submit the draft.

        `mode` defaults to the draft's submission mode.

        Returns:
            Ok(SubmissionOutcome) or Err with a user-facing message
        """
        if self.state == DraftState.SUBMITTING:
            return Err(ErrorKind.CONFLICT, "Booking is already being submitted.")
        if self.state == DraftState.SUBMITTED:
            return Err(ErrorKind.CONFLICT, "Booking was already submitted.")

        validation = self.validate()
        if not validation.ok:
            return validation

        if not user_id:
            return Err(ErrorKind.AUTH, "Please log in to book a trip.")

        mode = SubmissionMode(mode or self.submission_mode)

        self._transition(DraftState.SUBMITTING)
        payload = self.build_payload(user_id)
        booking: Optional[Booking] = None

        try:
            existing = await service.find_existing(user_id, self.schedule.id)
            if existing and existing.idempotency_key == self.idempotency_key:
                # An earlier attempt of this draft already went through
                booking = existing
            elif existing:
                self._transition(DraftState.READY)
                return Err(ErrorKind.CONFLICT, "You have already booked this trip.")
            elif mode == SubmissionMode.PERSIST_FIRST:
                booking = await service.create_booking(payload)
        except SupabaseError as e:
            self.error = str(e)
            self._transition(DraftState.FAILED)
            logger.error("booking_submit_failed", schedule_id=self.schedule.id, error=str(e))
            self._transition(DraftState.READY)
            return Err(_error_kind(e), str(e))
        except asyncio.CancelledError:
            self._transition(DraftState.READY)
            raise
        except Exception as e:
            self.error = str(e)
            self._transition(DraftState.FAILED)
            logger.exception("booking_submit_error", schedule_id=self.schedule.id)
            self._transition(DraftState.READY)
            raise

        self._transition(DraftState.SUBMITTED)
        logger.info(
            "booking_submitted",
            schedule_id=self.schedule.id,
            mode=mode.value,
            booking_id=booking.id if booking else None,
            total=str(payload.total_price),
        )
        return Ok(SubmissionOutcome(payload=payload, mode=mode, booking=booking))
