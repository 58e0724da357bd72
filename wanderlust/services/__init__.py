"""Services talking to the hosted backend, plus the pure booking and chat logic."""

from .supabase_client import (
    SupabaseClient,
    SupabaseError,
    SupabaseAuthError,
    SupabaseNotFoundError,
    SupabaseNetworkError,
)
from .pricing import CapacityPolicy, compute_totals, describe_rooms
from .booking_service import BookingDraft, BookingService, DraftState, SubmissionMode
from .chat_service import ChatSession, MessageReconciler
from .realtime import ChannelManager, RealtimeChannel

__all__ = [
    "SupabaseClient",
    "SupabaseError",
    "SupabaseAuthError",
    "SupabaseNotFoundError",
    "SupabaseNetworkError",
    "CapacityPolicy",
    "compute_totals",
    "describe_rooms",
    "BookingDraft",
    "BookingService",
    "DraftState",
    "SubmissionMode",
    "ChatSession",
    "MessageReconciler",
    "ChannelManager",
    "RealtimeChannel",
]
