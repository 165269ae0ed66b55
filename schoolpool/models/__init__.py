# schoolpool — Database Models
# Import all models here for SQLAlchemy discovery

from schoolpool.models.group import Group                            # noqa
from schoolpool.models.user import User                              # noqa
from schoolpool.models.vehicle import Vehicle                        # noqa
from schoolpool.models.child import Child                            # noqa
from schoolpool.models.schedule_slot import ScheduleSlot             # noqa
from schoolpool.models.vehicle_assignment import VehicleAssignment   # noqa
from schoolpool.models.child_assignment import ChildAssignment       # noqa
