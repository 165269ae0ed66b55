# schoolpool/models/child.py
"""
Children registered by families. Read-only for the scheduler.
"""

from sqlalchemy import Column, String
from schoolpool.database import Base
from schoolpool.models.types import UTCDateTime, new_id, utcnow


class Child(Base):
    __tablename__ = "children"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    family_id = Column(String(36), index=True)
    created_at = Column(UTCDateTime, default=utcnow)

    def __repr__(self):
        return f"<Child {self.id} name={self.name}>"
