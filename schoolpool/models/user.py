# schoolpool/models/user.py
"""
Users (parents). A user can be named as the driver of a vehicle assignment.
"""

from sqlalchemy import Column, String
from schoolpool.database import Base
from schoolpool.models.types import UTCDateTime, new_id, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    email = Column(String(320), unique=True)
    created_at = Column(UTCDateTime, default=utcnow)

    def __repr__(self):
        return f"<User {self.id} name={self.name}>"
