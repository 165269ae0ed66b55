# schoolpool/services/capacity.py
"""
Seat capacity of vehicle assignments.

Works on anything shaped like a vehicle assignment: an ORM VehicleAssignment
or a VehicleAssignmentOut record, i.e. objects with .seat_override and
.vehicle.capacity. Pure functions, no DB access.

Capacity is advisory: the schedule store reports over-capacity assignments
but does not refuse them.
"""

from dataclasses import dataclass
from datetime import datetime

from schoolpool.config import settings
from schoolpool.exceptions import InvalidSeatOverrideError


@dataclass
class SlotCapacitySummary:
    schedule_slot_id: str
    datetime: datetime
    vehicle_count: int
    child_count: int
    total_capacity: int
    available_seats: int
    is_at_capacity: bool


def effective_capacity(assignment) -> int:
    """Seat override when one is set (0 included), otherwise the vehicle's capacity."""
    if assignment.seat_override is not None:
        return assignment.seat_override
    return assignment.vehicle.capacity


def has_override(assignment) -> bool:
    return assignment.seat_override is not None


def is_at_capacity(assignment, current_child_count: int) -> bool:
    return current_child_count >= effective_capacity(assignment)


def available_seats(assignment, current_child_count: int) -> int:
    return max(0, effective_capacity(assignment) - current_child_count)


def validate_seat_override(seat_override: int):
    if isinstance(seat_override, bool) or not isinstance(seat_override, int):
        raise InvalidSeatOverrideError(f"Seat override must be an integer, got {seat_override!r}")
    if seat_override < 0:
        raise InvalidSeatOverrideError("Seat override cannot be negative")
    if seat_override > settings.SEAT_OVERRIDE_MAX:
        raise InvalidSeatOverrideError(
            f"Seat override cannot exceed {settings.SEAT_OVERRIDE_MAX} seats (application limit)"
        )


def slot_capacity_summary(slot) -> SlotCapacitySummary:
    """Totals over every vehicle of a loaded slot."""
    total = sum(effective_capacity(va) for va in slot.vehicle_assignments)
    children = len(slot.child_assignments)
    return SlotCapacitySummary(
        schedule_slot_id=slot.id,
        datetime=slot.datetime,
        vehicle_count=len(slot.vehicle_assignments),
        child_count=children,
        total_capacity=total,
        available_seats=max(0, total - children),
        is_at_capacity=children >= total,
    )
