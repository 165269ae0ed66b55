# schoolpool/models/child_assignment.py
"""
A child riding in one specific vehicle of a schedule slot.
A child rides at most one vehicle per slot: (schedule_slot_id, child_id) is
the primary key. vehicle_assignment_id must point at a vehicle assignment of
the same slot; the schedule store checks this before every insert.
"""

from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import relationship
from schoolpool.database import Base
from schoolpool.models.types import UTCDateTime, utcnow


class ChildAssignment(Base):
    __tablename__ = "schedule_slot_children"

    schedule_slot_id = Column(String(36), ForeignKey("schedule_slots.id", ondelete="CASCADE"), primary_key=True)
    child_id = Column(String(36), ForeignKey("children.id", ondelete="CASCADE"), primary_key=True)
    vehicle_assignment_id = Column(String(36), ForeignKey("schedule_slot_vehicles.id", ondelete="CASCADE"),
                                   nullable=False, index=True)
    assigned_at = Column(UTCDateTime, default=utcnow, nullable=False)

    schedule_slot = relationship("ScheduleSlot", back_populates="child_assignments")
    vehicle_assignment = relationship("VehicleAssignment", back_populates="child_assignments")
    child = relationship("Child", lazy="joined")

    def __repr__(self):
        return f"<ChildAssignment slot={self.schedule_slot_id} child={self.child_id} vehicle={self.vehicle_assignment_id}>"
