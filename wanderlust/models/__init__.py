"""Data models."""

from .result import Err, ErrorKind, Ok, Result
from .booking import Booking, BookingPayload, PaymentStatus, PriceTable, RoomSelection, Totals
from .chat import ChatMessage, ChatStatus, SupportChat
from .trip import BaseTrip, MyTrip, Profile, Ticket, TripDetails, TripSchedule, TripStatus

__all__ = [
    # Results
    "Ok",
    "Err",
    "ErrorKind",
    "Result",
    # Booking
    "Booking",
    "BookingPayload",
    "PaymentStatus",
    "PriceTable",
    "RoomSelection",
    "Totals",
    # Chat
    "ChatMessage",
    "ChatStatus",
    "SupportChat",
    # Trips
    "BaseTrip",
    "MyTrip",
    "Profile",
    "Ticket",
    "TripDetails",
    "TripSchedule",
    "TripStatus",
]
