"""Room capacity and price calculation."""

from decimal import Decimal
from enum import Enum

from wanderlust.models.booking import PriceTable, RoomSelection, Totals


class CapacityPolicy(str, Enum):
    """How many people a selection of rooms can hold."""

    OCCUPANCY = "occupancy"  # single=1, double=2, triple=3
    UNIFORM_DOUBLE = "uniform_double"  # 2 per room, whatever the type


OCCUPANCY = {"single": 1, "double": 2, "triple": 3}


def room_capacity(rooms: RoomSelection, policy: CapacityPolicy = CapacityPolicy.OCCUPANCY) -> int:
    """People capacity of a room selection."""
    if policy == CapacityPolicy.UNIFORM_DOUBLE:
        return rooms.total_rooms * 2
    return (
        rooms.single * OCCUPANCY["single"]
        + rooms.double * OCCUPANCY["double"]
        + rooms.triple * OCCUPANCY["triple"]
    )


def total_price(rooms: RoomSelection, prices: PriceTable) -> Decimal:
    return (
        rooms.single * prices.price_single
        + rooms.double * prices.price_double
        + rooms.triple * prices.price_triple
    )


def compute_totals(
    rooms: RoomSelection,
    prices: PriceTable,
    policy: CapacityPolicy = CapacityPolicy.OCCUPANCY,
) -> Totals:
    """
    Total price and capacity of a room selection.

    Pure and cheap enough to call on every counter tap. Counts are
    non-negative by construction; no upper bound is applied here.
    """
    return Totals(
        total=total_price(rooms, prices),
        capacity=room_capacity(rooms, policy),
    )


def describe_rooms(rooms: RoomSelection) -> str:
    """Human-readable room summary, e.g. "2 Single, 1 Double"."""
    parts = []
    if rooms.single:
        parts.append(f"{rooms.single} Single")
    if rooms.double:
        parts.append(f"{rooms.double} Double")
    if rooms.triple:
        parts.append(f"{rooms.triple} Triple")
    return ", ".join(parts) if parts else "No rooms selected"
