# schoolpool/repositories/schedule_slot_repository.py
"""
Queries over the ScheduleSlot / VehicleAssignment / ChildAssignment tables.
Works on whatever Session it is given; the caller owns the transaction.

Slot reads load the whole aggregate up front in a fixed number of queries:
slot rows, then vehicle assignments (with vehicle and driver joined), their
child assignments, and the slot's child assignments (with child joined).
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload
from schoolpool.models.child_assignment import ChildAssignment
from schoolpool.models.schedule_slot import ScheduleSlot
from schoolpool.models.vehicle_assignment import VehicleAssignment

_SLOT_AGGREGATE = (
    selectinload(ScheduleSlot.vehicle_assignments).selectinload(VehicleAssignment.child_assignments),
    selectinload(ScheduleSlot.child_assignments),
)


class ScheduleSlotRepository:
    def __init__(self, db: Session):
        self.db = db

    # ── Slots ─────────────────────────────────────────────────────────────
    def get_slot(self, slot_id: str) -> Optional[ScheduleSlot]:
        return (
            self.db.query(ScheduleSlot)
            .options(*_SLOT_AGGREGATE)
            .filter(ScheduleSlot.id == slot_id)
            .first()
        )

    def lock_slot(self, slot_id: str) -> Optional[ScheduleSlot]:
        """
        Load the bare slot row with FOR UPDATE so concurrent mutations of the
        same slot queue behind each other. No-op on SQLite.
        """
        return (
            self.db.query(ScheduleSlot)
            .filter(ScheduleSlot.id == slot_id)
            .with_for_update()
            .first()
        )

    def get_slot_by_group_and_datetime(self, group_id: str, at: datetime,
                                       lock: bool = False) -> Optional[ScheduleSlot]:
        q = self.db.query(ScheduleSlot).filter(
            ScheduleSlot.group_id == group_id,
            ScheduleSlot.datetime == at,
        )
        if lock:
            q = q.with_for_update()
        else:
            q = q.options(*_SLOT_AGGREGATE)
        return q.first()

    def list_slots_in_range(self, group_id: str, start: datetime, end: datetime) -> list[ScheduleSlot]:
        """Slots with start <= datetime <= end, earliest first."""
        return (
            self.db.query(ScheduleSlot)
            .options(*_SLOT_AGGREGATE)
            .filter(
                ScheduleSlot.group_id == group_id,
                ScheduleSlot.datetime >= start,
                ScheduleSlot.datetime <= end,
            )
            .order_by(ScheduleSlot.datetime.asc())
            .all()
        )

    def add_slot(self, group_id: str, at: datetime) -> ScheduleSlot:
        slot = ScheduleSlot(group_id=group_id, datetime=at)
        self.db.add(slot)
        return slot

    # ── Vehicle assignments ───────────────────────────────────────────────
    def get_vehicle_assignment(self, vehicle_assignment_id: str) -> Optional[VehicleAssignment]:
        return self.db.get(VehicleAssignment, vehicle_assignment_id)

    def get_vehicle_assignment_for_pair(self, slot_id: str, vehicle_id: str) -> Optional[VehicleAssignment]:
        return (
            self.db.query(VehicleAssignment)
            .filter(
                VehicleAssignment.schedule_slot_id == slot_id,
                VehicleAssignment.vehicle_id == vehicle_id,
            )
            .first()
        )

    def count_vehicle_assignments(self, slot_id: str) -> int:
        return (
            self.db.query(func.count(VehicleAssignment.id))
            .filter(VehicleAssignment.schedule_slot_id == slot_id)
            .scalar()
        )

    # ── Child assignments ─────────────────────────────────────────────────
    def get_child_assignment(self, slot_id: str, child_id: str) -> Optional[ChildAssignment]:
        return self.db.get(ChildAssignment, (slot_id, child_id))

    def count_children_in_vehicle(self, vehicle_assignment_id: str) -> int:
        return (
            self.db.query(func.count(ChildAssignment.child_id))
            .filter(ChildAssignment.vehicle_assignment_id == vehicle_assignment_id)
            .scalar()
        )

    # ── Bookings at one instant ────────────────────────────────────────────
    def list_bookings_at(self, at: datetime, vehicle_id: Optional[str] = None, driver_id: Optional[str] = None,
                         exclude_slot_id: Optional[str] = None,
                         exclude_assignment_id: Optional[str] = None) -> list[VehicleAssignment]:
        """Vehicle assignments in any group's slot at `at` that use the vehicle or the driver."""
        criteria = []
        if vehicle_id is not None:
            criteria.append(VehicleAssignment.vehicle_id == vehicle_id)
        if driver_id is not None:
            criteria.append(VehicleAssignment.driver_id == driver_id)
        if not criteria:
            return []

        q = (
            self.db.query(VehicleAssignment)
            .join(VehicleAssignment.schedule_slot)
            .filter(ScheduleSlot.datetime == at, or_(*criteria))
        )
        if exclude_slot_id is not None:
            q = q.filter(VehicleAssignment.schedule_slot_id != exclude_slot_id)
        if exclude_assignment_id is not None:
            q = q.filter(VehicleAssignment.id != exclude_assignment_id)
        return q.order_by(ScheduleSlot.group_id, VehicleAssignment.created_at).all()
