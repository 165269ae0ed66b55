# schoolpool/services/schedule_store.py
"""
Schedule Graph Store — the only writer of schedule slots, vehicle assignments
and child assignments.

Every public method is one unit of work: all validation reads and the write
happen in a single transaction, which rolls back whole on any error. Slots
being mutated are row-locked first (FOR UPDATE), and the unique constraints
on (group, datetime), (slot, vehicle) and (slot, child) back every duplicate
check, so a concurrent writer that slips past a check still fails at flush
with the matching Duplicate*Error.

Slot lifecycle: created by create_slot() or the first vehicle attached to an
empty (group, instant); deleted when its last vehicle assignment is detached.
A slot with zero vehicles is never committed by a detach.

Scheduling guards on every mutation:
  - slots whose instant is behind the store's clock are read-only (SlotInPastError)
  - a vehicle or driver cannot be booked twice at the same instant, in any
    group (SchedulingConflictError)

Returns plain pydantic records (schoolpool.schemas.schedule), never ORM rows.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from schoolpool.config import settings
from schoolpool.database import SessionLocal, unit_of_work
from schoolpool.exceptions import (
    AssignmentNotFoundError,
    ChildNotFoundError,
    DriverNotFoundError,
    DuplicateAssignmentError,
    DuplicateChildAssignmentError,
    DuplicateSlotError,
    GroupNotFoundError,
    SchedulingConflictError,
    SlotInPastError,
    SlotNotFoundError,
    VehicleNotFoundError,
)
from schoolpool.models.child_assignment import ChildAssignment
from schoolpool.models.schedule_slot import ScheduleSlot
from schoolpool.models.types import utcnow
from schoolpool.models.vehicle_assignment import VehicleAssignment
from schoolpool.repositories.schedule_slot_repository import ScheduleSlotRepository
from schoolpool.schemas.schedule import (
    ChildAssignmentOut,
    DetachVehicleResult,
    ScheduleConflict,
    ScheduleSlotOut,
    VehicleAssignmentOut,
)
from schoolpool.services import capacity, lookup_service
from schoolpool.utils import iso_week
from schoolpool.utils.logger import get_logger

logger = get_logger(__name__)

InstantLike = Union[datetime, str]


@contextmanager
def _duplicate_guard(error_cls, message: str):
    """Turn a unique-constraint violation raised at flush into a typed error."""
    try:
        yield
    except IntegrityError as e:
        raise error_cls(message) from e


def _collect_conflicts(repo: ScheduleSlotRepository, at: datetime, vehicle_id: Optional[str],
                       driver_id: Optional[str], exclude_slot_id: Optional[str] = None,
                       exclude_assignment_id: Optional[str] = None) -> list[ScheduleConflict]:
    conflicts = []
    bookings = repo.list_bookings_at(at, vehicle_id, driver_id, exclude_slot_id, exclude_assignment_id)
    for booking in bookings:
        other = booking.schedule_slot
        when = iso_week.format_instant(other.datetime)
        if vehicle_id is not None and booking.vehicle_id == vehicle_id:
            conflicts.append(ScheduleConflict(
                type="VEHICLE_DOUBLE_BOOKING",
                message=f"Vehicle {vehicle_id} is already assigned to schedule slot {other.id} at {when}",
                conflicting_slot_id=other.id,
                group_id=other.group_id,
                datetime=other.datetime,
            ))
        if driver_id is not None and booking.driver_id == driver_id:
            conflicts.append(ScheduleConflict(
                type="DRIVER_DOUBLE_BOOKING",
                message=f"Driver {driver_id} is already driving in schedule slot {other.id} at {when}",
                conflicting_slot_id=other.id,
                group_id=other.group_id,
                datetime=other.datetime,
            ))
    return conflicts


class ScheduleGraphStore:
    def __init__(self, session_factory=SessionLocal, clock=utcnow):
        self._session_factory = session_factory
        self._clock = clock

    # ── Queries ───────────────────────────────────────────────────────────────

    def find_slot_by_id(self, slot_id: str) -> Optional[ScheduleSlotOut]:
        with unit_of_work(self._session_factory) as db:
            slot = ScheduleSlotRepository(db).get_slot(slot_id)
            return ScheduleSlotOut.model_validate(slot) if slot else None

    def find_slot_by_group_and_instant(self, group_id: str, instant: InstantLike) -> Optional[ScheduleSlotOut]:
        at = iso_week.parse_instant(instant)
        with unit_of_work(self._session_factory) as db:
            slot = ScheduleSlotRepository(db).get_slot_by_group_and_datetime(group_id, at)
            return ScheduleSlotOut.model_validate(slot) if slot else None

    def list_slots_in_range(self, group_id: str, start: InstantLike, end: InstantLike) -> list[ScheduleSlotOut]:
        """Slots with start <= datetime <= end, ascending by datetime."""
        start_at = iso_week.parse_instant(start)
        end_at = iso_week.parse_instant(end)
        with unit_of_work(self._session_factory) as db:
            slots = ScheduleSlotRepository(db).list_slots_in_range(group_id, start_at, end_at)
            return [ScheduleSlotOut.model_validate(s) for s in slots]

    def list_slots_for_iso_week(self, group_id: str, iso_year: int, iso_week_number: int,
                                tz_name: str) -> list[ScheduleSlotOut]:
        week = iso_week.week_boundaries(iso_year, iso_week_number, tz_name)
        return self.list_slots_in_range(group_id, week.start, week.end)

    def list_slots_for_week_containing(self, group_id: str, reference: InstantLike,
                                       tz_name: str) -> list[ScheduleSlotOut]:
        week = iso_week.week_boundaries_from_instant(reference, tz_name)
        return self.list_slots_in_range(group_id, week.start, week.end)

    def find_vehicle_assignment(self, vehicle_assignment_id: str) -> Optional[VehicleAssignmentOut]:
        with unit_of_work(self._session_factory) as db:
            assignment = ScheduleSlotRepository(db).get_vehicle_assignment(vehicle_assignment_id)
            return VehicleAssignmentOut.model_validate(assignment) if assignment else None

    def slot_capacity_summary(self, slot_id: str) -> Optional[capacity.SlotCapacitySummary]:
        with unit_of_work(self._session_factory) as db:
            slot = ScheduleSlotRepository(db).get_slot(slot_id)
            return capacity.slot_capacity_summary(slot) if slot else None

    def find_conflicts(self, instant: InstantLike, vehicle_id: Optional[str] = None,
                       driver_id: Optional[str] = None,
                       exclude_slot_id: Optional[str] = None) -> list[ScheduleConflict]:
        """Bookings of the vehicle or driver in any group's slot at the same instant."""
        at = iso_week.parse_instant(instant)
        with unit_of_work(self._session_factory) as db:
            return _collect_conflicts(ScheduleSlotRepository(db), at, vehicle_id, driver_id, exclude_slot_id)

    # ── Slot creation ─────────────────────────────────────────────────────────

    def create_slot(self, group_id: str, instant: InstantLike) -> ScheduleSlotOut:
        at = iso_week.parse_instant(instant)
        self._ensure_not_in_past(at, "create")
        with unit_of_work(self._session_factory) as db:
            repo = ScheduleSlotRepository(db)
            if not lookup_service.group_exists(db, group_id):
                raise GroupNotFoundError(f"Group {group_id} not found")
            if repo.get_slot_by_group_and_datetime(group_id, at, lock=True) is not None:
                raise DuplicateSlotError(self._duplicate_slot_message(group_id, at))

            slot = repo.add_slot(group_id, at)
            with _duplicate_guard(DuplicateSlotError, self._duplicate_slot_message(group_id, at)):
                db.flush()
            logger.info(f"[Slot] Created {slot.id} group={group_id} at={iso_week.format_instant(at)}")
            return ScheduleSlotOut.model_validate(slot)

    # ── Vehicles ──────────────────────────────────────────────────────────────

    def attach_vehicle(self, slot_id: str, vehicle_id: str, driver_id: Optional[str] = None,
                       seat_override: Optional[int] = None) -> VehicleAssignmentOut:
        with unit_of_work(self._session_factory) as db:
            repo = ScheduleSlotRepository(db)
            slot = repo.lock_slot(slot_id)
            if slot is None:
                raise SlotNotFoundError(f"Schedule slot {slot_id} not found")
            self._ensure_not_in_past(slot.datetime)
            assignment = self._attach_vehicle(db, repo, slot, vehicle_id, driver_id, seat_override)
            return VehicleAssignmentOut.model_validate(assignment)

    def attach_vehicle_creating_slot(self, group_id: str, instant: InstantLike, vehicle_id: str,
                                     driver_id: Optional[str] = None,
                                     seat_override: Optional[int] = None) -> VehicleAssignmentOut:
        """
        Find-or-create the slot for (group, instant) and attach the vehicle,
        all in one transaction. If the attach fails, a slot created here is
        rolled back with it. Losing a creation race to another writer is not
        an error: the other writer's slot is used.
        """
        at = iso_week.parse_instant(instant)
        self._ensure_not_in_past(at, "create")
        with unit_of_work(self._session_factory) as db:
            repo = ScheduleSlotRepository(db)
            slot = repo.get_slot_by_group_and_datetime(group_id, at, lock=True)
            if slot is None:
                if not lookup_service.group_exists(db, group_id):
                    raise GroupNotFoundError(f"Group {group_id} not found")
                slot = self._insert_slot_or_use_existing(db, repo, group_id, at)
            assignment = self._attach_vehicle(db, repo, slot, vehicle_id, driver_id, seat_override)
            return VehicleAssignmentOut.model_validate(assignment)

    def detach_vehicle(self, slot_id: str, vehicle_id: str) -> DetachVehicleResult:
        with unit_of_work(self._session_factory) as db:
            repo = ScheduleSlotRepository(db)
            slot = repo.lock_slot(slot_id)
            assignment = repo.get_vehicle_assignment_for_pair(slot_id, vehicle_id) if slot else None
            if assignment is None:
                raise AssignmentNotFoundError(f"Vehicle {vehicle_id} is not assigned to schedule slot {slot_id}")
            self._ensure_not_in_past(slot.datetime)

            removed = VehicleAssignmentOut.model_validate(assignment)
            db.delete(assignment)     # cascades to its child assignments
            db.flush()

            slot_was_deleted = repo.count_vehicle_assignments(slot_id) == 0
            if slot_was_deleted:
                db.expire(slot, ["vehicle_assignments", "child_assignments"])
                db.delete(slot)
                db.flush()
            logger.info(
                f"[Slot] Vehicle {vehicle_id} detached from {slot_id} "
                f"({removed.child_count} children released, slot_deleted={slot_was_deleted})"
            )
            return DetachVehicleResult(removed_assignment=removed, slot_was_deleted=slot_was_deleted)

    def update_vehicle_driver(self, slot_id: str, vehicle_id: str,
                              driver_id: Optional[str]) -> VehicleAssignmentOut:
        """Set, change or clear (driver_id=None) the driver of a vehicle assignment."""
        with unit_of_work(self._session_factory) as db:
            repo = ScheduleSlotRepository(db)
            slot = repo.lock_slot(slot_id)
            assignment = repo.get_vehicle_assignment_for_pair(slot_id, vehicle_id) if slot else None
            if assignment is None:
                raise AssignmentNotFoundError(f"Vehicle {vehicle_id} is not assigned to schedule slot {slot_id}")
            self._ensure_not_in_past(slot.datetime)
            driver = None
            if driver_id is not None:
                driver = lookup_service.get_driver(db, driver_id)
                if driver is None:
                    raise DriverNotFoundError(f"Driver {driver_id} not found")
                self._ensure_no_conflicts(repo, slot, None, driver_id, exclude_assignment_id=assignment.id)
            assignment.driver = driver
            db.flush()
            logger.info(f"[Slot] Driver of vehicle {vehicle_id} in {slot_id} set to {driver_id}")
            return VehicleAssignmentOut.model_validate(assignment)

    def update_seat_override(self, vehicle_assignment_id: str,
                             seat_override: Optional[int]) -> VehicleAssignmentOut:
        """Set or clear (None) the per-occasion seat count of a vehicle assignment."""
        with unit_of_work(self._session_factory) as db:
            assignment = ScheduleSlotRepository(db).get_vehicle_assignment(vehicle_assignment_id)
            if assignment is None:
                raise AssignmentNotFoundError(f"Vehicle assignment {vehicle_assignment_id} not found")
            self._ensure_not_in_past(assignment.schedule_slot.datetime)
            if seat_override is not None:
                capacity.validate_seat_override(seat_override)
            assignment.seat_override = seat_override
            db.flush()
            out = VehicleAssignmentOut.model_validate(assignment)
            if out.is_over_capacity:
                logger.warning(
                    f"[Capacity] Vehicle assignment {vehicle_assignment_id} now over capacity "
                    f"({out.child_count}/{out.effective_capacity})"
                )
            return out

    # ── Children ──────────────────────────────────────────────────────────────

    def attach_child(self, slot_id: str, vehicle_assignment_id: str, child_id: str) -> ChildAssignmentOut:
        """
        Put a child in one vehicle of a slot.
        Capacity is not enforced here; an over-capacity insert is logged and
        flagged on the returned record (over_capacity=True).
        """
        with unit_of_work(self._session_factory) as db:
            repo = ScheduleSlotRepository(db)
            slot = repo.lock_slot(slot_id)
            if slot is None:
                raise SlotNotFoundError(f"Schedule slot {slot_id} not found")
            self._ensure_not_in_past(slot.datetime)

            assignment = repo.get_vehicle_assignment(vehicle_assignment_id)
            if assignment is None or assignment.schedule_slot_id != slot_id:
                raise AssignmentNotFoundError(
                    f"Vehicle assignment {vehicle_assignment_id} not found in schedule slot {slot_id}"
                )
            child = lookup_service.get_child(db, child_id)
            if child is None:
                raise ChildNotFoundError(f"Child {child_id} not found")
            duplicate_message = f"Child {child_id} is already assigned to schedule slot {slot_id}"
            if repo.get_child_assignment(slot_id, child_id) is not None:
                raise DuplicateChildAssignmentError(duplicate_message)

            riders_before = repo.count_children_in_vehicle(assignment.id)
            child_assignment = ChildAssignment(
                schedule_slot=slot,
                vehicle_assignment=assignment,
                child=child,
            )
            db.add(child_assignment)
            with _duplicate_guard(DuplicateChildAssignmentError, duplicate_message):
                db.flush()

            over_capacity = capacity.is_at_capacity(assignment, riders_before)
            if over_capacity:
                logger.warning(
                    f"[Capacity] Child {child_id} added to full vehicle {assignment.vehicle_id} in {slot_id} "
                    f"({riders_before + 1}/{capacity.effective_capacity(assignment)})"
                )
            logger.info(f"[Slot] Child {child_id} assigned to vehicle {assignment.vehicle_id} in {slot_id}")
            out = ChildAssignmentOut.model_validate(child_assignment)
            return out.model_copy(update={"over_capacity": over_capacity})

    def detach_child(self, slot_id: str, child_id: str) -> ChildAssignmentOut:
        with unit_of_work(self._session_factory) as db:
            child_assignment = ScheduleSlotRepository(db).get_child_assignment(slot_id, child_id)
            if child_assignment is None:
                raise AssignmentNotFoundError(f"Child {child_id} is not assigned to schedule slot {slot_id}")
            self._ensure_not_in_past(child_assignment.schedule_slot.datetime)
            removed = ChildAssignmentOut.model_validate(child_assignment)
            db.delete(child_assignment)
            db.flush()
            logger.info(f"[Slot] Child {child_id} removed from {slot_id}")
            return removed

    # ── Internals ─────────────────────────────────────────────────────────────

    def _attach_vehicle(self, db: Session, repo: ScheduleSlotRepository, slot: ScheduleSlot,
                        vehicle_id: str, driver_id: Optional[str],
                        seat_override: Optional[int]) -> VehicleAssignment:
        vehicle = lookup_service.get_vehicle(db, vehicle_id)
        if vehicle is None:
            raise VehicleNotFoundError(f"Vehicle {vehicle_id} not found")

        driver = None
        if driver_id is not None:
            driver = lookup_service.get_driver(db, driver_id)
            if driver is None:
                raise DriverNotFoundError(f"Driver {driver_id} not found")

        if seat_override is not None:
            capacity.validate_seat_override(seat_override)

        duplicate_message = f"Vehicle {vehicle_id} is already assigned to schedule slot {slot.id}"
        if repo.get_vehicle_assignment_for_pair(slot.id, vehicle_id) is not None:
            raise DuplicateAssignmentError(duplicate_message)
        self._ensure_no_conflicts(repo, slot, vehicle_id, driver_id)

        assignment = VehicleAssignment(
            schedule_slot=slot,
            vehicle=vehicle,
            driver=driver,
            seat_override=seat_override,
        )
        db.add(assignment)
        with _duplicate_guard(DuplicateAssignmentError, duplicate_message):
            db.flush()
        logger.info(
            f"[Slot] Vehicle {vehicle_id} attached to {slot.id} "
            f"driver={driver_id} seats={capacity.effective_capacity(assignment)}"
        )
        return assignment

    def _insert_slot_or_use_existing(self, db: Session, repo: ScheduleSlotRepository,
                                     group_id: str, at: datetime) -> ScheduleSlot:
        # Savepoint so a unique-key clash does not poison the outer transaction
        savepoint = db.begin_nested()
        slot = repo.add_slot(group_id, at)
        try:
            db.flush()
        except IntegrityError:
            savepoint.rollback()
            existing = repo.get_slot_by_group_and_datetime(group_id, at, lock=True)
            if existing is None:
                raise
            logger.info(f"[Slot] Reusing {existing.id} created concurrently for group={group_id}")
            return existing
        savepoint.commit()
        logger.info(f"[Slot] Created {slot.id} group={group_id} at={iso_week.format_instant(at)}")
        return slot

    def _ensure_not_in_past(self, at: datetime, action: str = "modify"):
        if at < self._clock():
            tz_name = settings.DEFAULT_TIMEZONE
            local = iso_week.to_local(at, tz_name).strftime("%Y-%m-%d %H:%M")
            raise SlotInPastError(f"Cannot {action} trips in the past ({local} in {tz_name})")

    def _ensure_no_conflicts(self, repo: ScheduleSlotRepository, slot: ScheduleSlot,
                             vehicle_id: Optional[str], driver_id: Optional[str],
                             exclude_assignment_id: Optional[str] = None):
        conflicts = _collect_conflicts(repo, slot.datetime, vehicle_id, driver_id,
                                       exclude_assignment_id=exclude_assignment_id)
        if conflicts:
            logger.info(f"[Slot] Booking refused for {slot.id}: {[c.type for c in conflicts]}")
            raise SchedulingConflictError(
                "Cannot assign to schedule slot due to conflicts: " + "; ".join(c.message for c in conflicts),
                conflicts=conflicts,
            )

    @staticmethod
    def _duplicate_slot_message(group_id: str, at: datetime) -> str:
        return f"Group {group_id} already has a schedule slot at {iso_week.format_instant(at)}"


def get_schedule_store() -> ScheduleGraphStore:
    """FastAPI dependency — the store opens its own transactions per call."""
    return ScheduleGraphStore(SessionLocal)
