# schoolpool/routers/schedule_slots.py
"""
Weekly schedule grid — slots, vehicle and child assignments.
Thin layer over ScheduleGraphStore; typed store errors are turned into
HTTP responses by the ScheduleError handler in main.py.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from schoolpool.config import settings
from schoolpool.exceptions import CalendarError
from schoolpool.schemas.schedule import (
    AttachChildRequest,
    AttachVehicleRequest,
    ChildAssignmentOut,
    CreateSlotWithVehicleRequest,
    DetachVehicleResult,
    ScheduleConflict,
    ScheduleSlotOut,
    ScheduleSlotView,
    SlotCapacityOut,
    UpdateDriverRequest,
    UpdateSeatOverrideRequest,
    VehicleAssignmentOut,
)
from schoolpool.services.schedule_store import ScheduleGraphStore, get_schedule_store
from schoolpool.utils.iso_week import is_valid_timezone, slot_display_fields

router = APIRouter()


@router.post("/groups/{group_id}/schedule-slots", response_model=VehicleAssignmentOut, status_code=201,
             summary="Put a vehicle on the grid, creating the slot if needed")
def create_slot_with_vehicle(group_id: str, body: CreateSlotWithVehicleRequest,
                             store: ScheduleGraphStore = Depends(get_schedule_store)):
    return store.attach_vehicle_creating_slot(
        group_id, body.datetime, body.vehicle_id,
        driver_id=body.driver_id, seat_override=body.seat_override,
    )


def _grid_view(slots: list[ScheduleSlotOut], tz_name: str) -> list[ScheduleSlotView]:
    views = []
    for slot in slots:
        display = slot_display_fields(slot.datetime, tz_name)
        views.append(ScheduleSlotView(**dict(slot), timezone=tz_name, day=display.day,
                                      time=display.time, week=display.week))
    return views


@router.get("/groups/{group_id}/schedule", response_model=list[ScheduleSlotView],
            summary="Slots of one local week (or an explicit UTC range)")
def get_schedule(group_id: str, year: Optional[int] = None, week: Optional[int] = None,
                 reference: Optional[str] = None, start: Optional[str] = None, end: Optional[str] = None,
                 timezone: Optional[str] = None,
                 store: ScheduleGraphStore = Depends(get_schedule_store)):
    """
    Pick the week with either ?year=&week= or ?reference=<instant>, both read
    on the wall clock of ?timezone= (IANA, default from settings).
    ?start=&end= queries a raw inclusive UTC range instead.
    Every slot carries its day/time/week labels in that timezone.
    """
    tz_name = timezone or settings.DEFAULT_TIMEZONE
    if not is_valid_timezone(tz_name):
        raise CalendarError(f"Invalid timezone: {tz_name} (use UTC or a Region/City IANA identifier)")
    if year is not None and week is not None:
        slots = store.list_slots_for_iso_week(group_id, year, week, tz_name)
    elif reference:
        slots = store.list_slots_for_week_containing(group_id, reference, tz_name)
    elif start and end:
        slots = store.list_slots_in_range(group_id, start, end)
    else:
        raise CalendarError("Provide year and week, a reference instant, or start and end")
    return _grid_view(slots, tz_name)


@router.get("/schedule-conflicts", response_model=list[ScheduleConflict],
            summary="Other slots at the same instant that already use a vehicle or driver")
def get_conflicts(datetime: str, vehicle_id: Optional[str] = None, driver_id: Optional[str] = None,
                  exclude_slot_id: Optional[str] = None,
                  store: ScheduleGraphStore = Depends(get_schedule_store)):
    return store.find_conflicts(datetime, vehicle_id=vehicle_id, driver_id=driver_id,
                                exclude_slot_id=exclude_slot_id)


@router.get("/schedule-slots/{slot_id}", response_model=ScheduleSlotOut)
def get_slot(slot_id: str, store: ScheduleGraphStore = Depends(get_schedule_store)):
    slot = store.find_slot_by_id(slot_id)
    if not slot:
        raise HTTPException(status_code=404, detail=f"Schedule slot {slot_id} not found")
    return slot


@router.get("/schedule-slots/{slot_id}/capacity", response_model=SlotCapacityOut,
            summary="Seats, riders and free places across all vehicles of a slot")
def get_slot_capacity(slot_id: str, store: ScheduleGraphStore = Depends(get_schedule_store)):
    summary = store.slot_capacity_summary(slot_id)
    if not summary:
        raise HTTPException(status_code=404, detail=f"Schedule slot {slot_id} not found")
    return summary


@router.post("/schedule-slots/{slot_id}/vehicles", response_model=VehicleAssignmentOut, status_code=201)
def attach_vehicle(slot_id: str, body: AttachVehicleRequest,
                   store: ScheduleGraphStore = Depends(get_schedule_store)):
    return store.attach_vehicle(slot_id, body.vehicle_id, driver_id=body.driver_id,
                                seat_override=body.seat_override)


@router.delete("/schedule-slots/{slot_id}/vehicles/{vehicle_id}", response_model=DetachVehicleResult,
               summary="Remove a vehicle; the slot goes away with its last vehicle")
def detach_vehicle(slot_id: str, vehicle_id: str, store: ScheduleGraphStore = Depends(get_schedule_store)):
    return store.detach_vehicle(slot_id, vehicle_id)


@router.patch("/schedule-slots/{slot_id}/vehicles/{vehicle_id}/driver", response_model=VehicleAssignmentOut)
def update_vehicle_driver(slot_id: str, vehicle_id: str, body: UpdateDriverRequest,
                          store: ScheduleGraphStore = Depends(get_schedule_store)):
    return store.update_vehicle_driver(slot_id, vehicle_id, body.driver_id)


@router.patch("/vehicle-assignments/{vehicle_assignment_id}/seat-override", response_model=VehicleAssignmentOut)
def update_seat_override(vehicle_assignment_id: str, body: UpdateSeatOverrideRequest,
                         store: ScheduleGraphStore = Depends(get_schedule_store)):
    return store.update_seat_override(vehicle_assignment_id, body.seat_override)


@router.post("/schedule-slots/{slot_id}/children", response_model=ChildAssignmentOut, status_code=201)
def attach_child(slot_id: str, body: AttachChildRequest, store: ScheduleGraphStore = Depends(get_schedule_store)):
    return store.attach_child(slot_id, body.vehicle_assignment_id, body.child_id)


@router.delete("/schedule-slots/{slot_id}/children/{child_id}", response_model=ChildAssignmentOut)
def detach_child(slot_id: str, child_id: str, store: ScheduleGraphStore = Depends(get_schedule_store)):
    return store.detach_child(slot_id, child_id)
