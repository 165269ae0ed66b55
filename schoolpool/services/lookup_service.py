# schoolpool/services/lookup_service.py
"""
Read-only lookups of the entities the schedule graph points at.
Vehicles, children, drivers and groups are owned by family/group management;
the scheduler only checks they exist and reads name/capacity.
"""

from sqlalchemy.orm import Session
from schoolpool.models.child import Child
from schoolpool.models.group import Group
from schoolpool.models.user import User
from schoolpool.models.vehicle import Vehicle


def get_vehicle(db: Session, vehicle_id: str):
    """Find a vehicle by id. Returns None if not found."""
    return db.get(Vehicle, vehicle_id)


def get_driver(db: Session, driver_id: str):
    """Find a user who can drive by id. Returns None if not found."""
    return db.get(User, driver_id)


def get_child(db: Session, child_id: str):
    return db.get(Child, child_id)


def group_exists(db: Session, group_id: str) -> bool:
    return db.query(Group.id).filter(Group.id == group_id).first() is not None
