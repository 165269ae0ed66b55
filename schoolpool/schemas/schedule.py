# schoolpool/schemas/schedule.py
"""
Plain records returned by the schedule store and the API.
Every instant serialises as UTC ISO-8601 with milliseconds: 2024-01-08T08:00:00.000Z
"""

from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, PlainSerializer, computed_field

from schoolpool.services import capacity
from schoolpool.utils.iso_week import format_instant, parse_instant

Instant = Annotated[datetime, AfterValidator(parse_instant), PlainSerializer(format_instant, return_type=str)]


# ── Referenced entities ──────────────────────────────────────────────────────

class VehicleSummary(BaseModel):
    id: str
    name: str
    capacity: int

    class Config:
        from_attributes = True


class DriverSummary(BaseModel):
    id: str
    name: str

    class Config:
        from_attributes = True


class ChildSummary(BaseModel):
    id: str
    name: str
    family_id: Optional[str] = None

    class Config:
        from_attributes = True


# ── Schedule graph ───────────────────────────────────────────────────────────

class VehicleAssignmentOut(BaseModel):
    id: str
    schedule_slot_id: str
    vehicle_id: str
    driver_id: Optional[str] = None
    seat_override: Optional[int] = None
    created_at: Instant
    vehicle: VehicleSummary
    driver: Optional[DriverSummary] = None
    child_count: int = 0

    class Config:
        from_attributes = True

    @computed_field
    @property
    def effective_capacity(self) -> int:
        return capacity.effective_capacity(self)

    @computed_field
    @property
    def is_at_capacity(self) -> bool:
        return capacity.is_at_capacity(self, self.child_count)

    @computed_field
    @property
    def is_over_capacity(self) -> bool:
        return self.child_count > capacity.effective_capacity(self)


class ChildAssignmentOut(BaseModel):
    schedule_slot_id: str
    child_id: str
    vehicle_assignment_id: str
    assigned_at: Instant
    child: ChildSummary
    over_capacity: bool = False     # set by attach_child when the vehicle was already full

    class Config:
        from_attributes = True


class ScheduleSlotOut(BaseModel):
    id: str
    group_id: str
    datetime: Instant
    created_at: Instant
    vehicle_assignments: list[VehicleAssignmentOut] = []
    child_assignments: list[ChildAssignmentOut] = []

    class Config:
        from_attributes = True

    def children_for(self, vehicle_assignment_id: str) -> list[ChildAssignmentOut]:
        return [ca for ca in self.child_assignments if ca.vehicle_assignment_id == vehicle_assignment_id]


class DetachVehicleResult(BaseModel):
    removed_assignment: VehicleAssignmentOut
    slot_was_deleted: bool


class SlotCapacityOut(BaseModel):
    schedule_slot_id: str
    datetime: Instant
    vehicle_count: int
    child_count: int
    total_capacity: int
    available_seats: int
    is_at_capacity: bool

    class Config:
        from_attributes = True


# ── Request bodies ───────────────────────────────────────────────────────────

class AttachVehicleRequest(BaseModel):
    vehicle_id: str
    driver_id: Optional[str] = None
    seat_override: Optional[int] = None


class CreateSlotWithVehicleRequest(AttachVehicleRequest):
    datetime: Instant


class AttachChildRequest(BaseModel):
    child_id: str
    vehicle_assignment_id: str


class UpdateDriverRequest(BaseModel):
    driver_id: Optional[str] = None


class UpdateSeatOverrideRequest(BaseModel):
    seat_override: Optional[int] = None


# ── Grid and conflicts ───────────────────────────────────────────────────────

class ScheduleSlotView(ScheduleSlotOut):
    """A slot as shown on the weekly grid, labelled on the viewer's wall clock."""
    timezone: str
    day: str        # MONDAY .. SUNDAY
    time: str       # HH:MM
    week: str       # 2024-W01


class ScheduleConflict(BaseModel):
    type: str                   # VEHICLE_DOUBLE_BOOKING | DRIVER_DOUBLE_BOOKING
    message: str
    conflicting_slot_id: str
    group_id: str
    datetime: Instant
