"""Enum definitions for application constants."""

from implant_notify.db.enums.auth import Role
from implant_notify.db.enums.clinical import (
    AppointmentStatus,
    AppointmentType,
    ImplantStatus,
    PatientStatus,
)
from implant_notify.db.enums.flags import FlagEntityType, FlagLevel, FlagType
from implant_notify.db.enums.jobs import JobType
from implant_notify.db.enums.notifications import (
    CATEGORY_TO_KINDS,
    KIND_TO_CATEGORY,
    DigestStatus,
    NotificationCategory,
    NotificationEntityType,
    NotificationFrequency,
    NotificationKind,
    NotificationSeverity,
    NotificationType,
    category_for_kind,
)

__all__ = [
    "AppointmentStatus",
    "AppointmentType",
    "CATEGORY_TO_KINDS",
    "KIND_TO_CATEGORY",
    "DigestStatus",
    "FlagEntityType",
    "FlagLevel",
    "FlagType",
    "ImplantStatus",
    "JobType",
    "NotificationCategory",
    "NotificationEntityType",
    "NotificationFrequency",
    "NotificationKind",
    "NotificationSeverity",
    "NotificationType",
    "PatientStatus",
    "Role",
    "category_for_kind",
]
