# schoolpool/models/vehicle.py
"""
Registered family vehicles.
Owned by the family-management side; the scheduler only reads name and
capacity, and checks existence before assigning a vehicle to a slot.
"""

from sqlalchemy import Column, Integer, String
from schoolpool.database import Base
from schoolpool.models.types import UTCDateTime, new_id, utcnow


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    capacity = Column(Integer, nullable=False)        # registered seats for children
    family_id = Column(String(36), index=True)
    created_at = Column(UTCDateTime, default=utcnow)

    def __repr__(self):
        return f"<Vehicle {self.id} name={self.name} capacity={self.capacity}>"
