"""Notification-related enums."""

from enum import Enum


class NotificationKind(str, Enum):
    ALERT = "ALERT"
    REMINDER = "REMINDER"
    ACTIVITY = "ACTIVITY"
    IMPORT = "IMPORT"
    SYSTEM = "SYSTEM"


class NotificationSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class NotificationEntityType(str, Enum):
    PATIENT = "PATIENT"
    IMPLANT = "IMPLANT"
    OPERATION = "OPERATION"
    APPOINTMENT = "APPOINTMENT"
    DOCUMENT = "DOCUMENT"
    IMPORT = "IMPORT"
    INTEGRATION = "INTEGRATION"
    BILLING = "BILLING"


class NotificationCategory(str, Enum):
    """Preference groups. Each maps to one or more notification kinds."""

    ALERTS_REMINDERS = "ALERTS_REMINDERS"
    TEAM_ACTIVITY = "TEAM_ACTIVITY"
    IMPORTS = "IMPORTS"
    SYSTEM = "SYSTEM"


class NotificationFrequency(str, Enum):
    NONE = "NONE"
    DIGEST = "DIGEST"
    IMMEDIATE = "IMMEDIATE"


class DigestStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationType(str, Enum):
    """Known notification types emitted by the event wrappers."""

    # Clinical alerts
    ISQ_LOW = "ISQ_LOW"
    ISQ_DECLINING = "ISQ_DECLINING"
    UNSTABLE_ISQ_HISTORY = "UNSTABLE_ISQ_HISTORY"

    # Follow-up reminders
    FOLLOWUP_TO_SCHEDULE = "FOLLOWUP_TO_SCHEDULE"
    NO_POSTOP_FOLLOWUP = "NO_POSTOP_FOLLOWUP"
    NO_RECENT_VISIT = "NO_RECENT_VISIT"
    SURGERY_NO_FOLLOWUP_PLANNED = "SURGERY_NO_FOLLOWUP_PLANNED"
    IMPLANT_24M_FOLLOWUP = "IMPLANT_24M_FOLLOWUP"

    # Team activity
    DOCUMENT_ADDED = "DOCUMENT_ADDED"
    RADIO_ADDED = "RADIO_ADDED"
    PATIENT_UPDATED = "PATIENT_UPDATED"
    APPOINTMENT_CREATED = "APPOINTMENT_CREATED"
    INVITATION_SENT = "INVITATION_SENT"
    NEW_MEMBER_JOINED = "NEW_MEMBER_JOINED"
    ROLE_CHANGED = "ROLE_CHANGED"

    # Imports
    IMPORT_STARTED = "IMPORT_STARTED"
    IMPORT_COMPLETED = "IMPORT_COMPLETED"
    IMPORT_PARTIAL = "IMPORT_PARTIAL"
    IMPORT_FAILED = "IMPORT_FAILED"

    # System
    SYNC_ERROR = "SYNC_ERROR"
    EMAIL_ERROR = "EMAIL_ERROR"
    SYSTEM_MAINTENANCE = "SYSTEM_MAINTENANCE"


# Closed mapping: five kinds onto the four preference categories.
KIND_TO_CATEGORY: dict[NotificationKind, NotificationCategory] = {
    NotificationKind.ALERT: NotificationCategory.ALERTS_REMINDERS,
    NotificationKind.REMINDER: NotificationCategory.ALERTS_REMINDERS,
    NotificationKind.ACTIVITY: NotificationCategory.TEAM_ACTIVITY,
    NotificationKind.IMPORT: NotificationCategory.IMPORTS,
    NotificationKind.SYSTEM: NotificationCategory.SYSTEM,
}

CATEGORY_TO_KINDS: dict[NotificationCategory, tuple[NotificationKind, ...]] = {
    category: tuple(kind for kind, mapped in KIND_TO_CATEGORY.items() if mapped is category)
    for category in NotificationCategory
}


def category_for_kind(kind: NotificationKind | str) -> NotificationCategory:
    return KIND_TO_CATEGORY[NotificationKind(kind)]
