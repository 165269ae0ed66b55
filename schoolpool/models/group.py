# schoolpool/models/group.py
"""
Carpool groups. Membership and invitations live elsewhere; the scheduler
only needs the row so slots can reference it.
"""

from sqlalchemy import Column, String
from sqlalchemy.orm import relationship
from schoolpool.database import Base
from schoolpool.models.types import UTCDateTime, new_id, utcnow


class Group(Base):
    __tablename__ = "groups"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)

    schedule_slots = relationship("ScheduleSlot", back_populates="group", passive_deletes=True)

    def __repr__(self):
        return f"<Group {self.id} name={self.name}>"
