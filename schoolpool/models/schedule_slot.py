# schoolpool/models/schedule_slot.py
"""
One carpool occasion: a group at a single UTC instant.
(group_id, datetime) is unique. Day/time/week labels are derived from
datetime for display and are never stored.
A slot only exists while at least one vehicle is assigned to it.
"""

from sqlalchemy import Column, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship
from schoolpool.database import Base
from schoolpool.models.types import UTCDateTime, new_id, utcnow


class ScheduleSlot(Base):
    __tablename__ = "schedule_slots"
    __table_args__ = (
        UniqueConstraint("group_id", "datetime", name="uq_schedule_slots_group_datetime"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    group_id = Column(String(36), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    datetime = Column(UTCDateTime, nullable=False, index=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    group = relationship("Group", back_populates="schedule_slots")
    vehicle_assignments = relationship(
        "VehicleAssignment",
        back_populates="schedule_slot",
        cascade="all, delete-orphan",
        order_by="VehicleAssignment.created_at",
    )
    child_assignments = relationship(
        "ChildAssignment",
        back_populates="schedule_slot",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<ScheduleSlot {self.id} group={self.group_id} at={self.datetime}>"
