# schoolpool/models/vehicle_assignment.py
"""
A vehicle (and optionally its driver) volunteering for one schedule slot.
A vehicle is booked at most once per slot. seat_override, when set,
replaces the vehicle's registered capacity for this occasion only.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from schoolpool.database import Base
from schoolpool.models.types import UTCDateTime, new_id, utcnow


class VehicleAssignment(Base):
    __tablename__ = "schedule_slot_vehicles"
    __table_args__ = (
        UniqueConstraint("schedule_slot_id", "vehicle_id", name="uq_slot_vehicles_slot_vehicle"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    schedule_slot_id = Column(String(36), ForeignKey("schedule_slots.id", ondelete="CASCADE"),
                              nullable=False, index=True)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    driver_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))   # unconfirmed driver = NULL
    seat_override = Column(Integer)                                                  # NULL = registered capacity
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    schedule_slot = relationship("ScheduleSlot", back_populates="vehicle_assignments")
    vehicle = relationship("Vehicle", lazy="joined")
    driver = relationship("User", lazy="joined")
    child_assignments = relationship(
        "ChildAssignment",
        back_populates="vehicle_assignment",
        cascade="all, delete-orphan",
    )

    @property
    def child_count(self) -> int:
        return len(self.child_assignments)

    def __repr__(self):
        return f"<VehicleAssignment {self.id} slot={self.schedule_slot_id} vehicle={self.vehicle_id}>"
