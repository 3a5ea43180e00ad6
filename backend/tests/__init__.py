# Force SQLModel table registration at test discovery time
# so every table exists before create_all runs on the test engine
from hangarplan.models.aircraft import Aircraft  # noqa: F401
from hangarplan.models.event_audit import MaintenanceEventAudit  # noqa: F401
from hangarplan.models.hangar import Hangar, HangarLayout, HangarStand  # noqa: F401
from hangarplan.models.maintenance_event import MaintenanceEvent  # noqa: F401
from hangarplan.models.stand_reservation import StandReservation  # noqa: F401
