from hangarplan.models.aircraft import Aircraft
from hangarplan.models.event_audit import EventAuditAction, MaintenanceEventAudit
from hangarplan.models.hangar import Hangar, HangarLayout, HangarStand
from hangarplan.models.maintenance_event import EventStatus, MaintenanceEvent, PlanningLevel
from hangarplan.models.stand_reservation import StandReservation

__all__ = [
    "Aircraft",
    "Hangar",
    "HangarLayout",
    "HangarStand",
    "MaintenanceEvent",
    "PlanningLevel",
    "EventStatus",
    "StandReservation",
    "MaintenanceEventAudit",
    "EventAuditAction",
]
