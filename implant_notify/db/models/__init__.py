"""SQLAlchemy ORM models."""

from implant_notify.db.models.clinical import (
    Appointment,
    Implant,
    Operation,
    Patient,
    SurgeryImplant,
)
from implant_notify.db.models.flags import Flag
from implant_notify.db.models.notifications import DigestRun, Notification, NotificationPreference
from implant_notify.db.models.orgs import Membership, Organization, User

__all__ = [
    "Appointment",
    "DigestRun",
    "Flag",
    "Implant",
    "Membership",
    "Notification",
    "NotificationPreference",
    "Operation",
    "Organization",
    "Patient",
    "SurgeryImplant",
    "User",
]
