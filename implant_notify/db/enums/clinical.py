"""Clinical status enums read by the follow-up rules."""

from enum import Enum


class PatientStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ARCHIVED = "ARCHIVED"


class ImplantStatus(str, Enum):
    IN_FOLLOWUP = "IN_FOLLOWUP"
    SUCCESS = "SUCCESS"
    COMPLICATION = "COMPLICATION"
    FAILURE = "FAILURE"


class AppointmentType(str, Enum):
    CONSULTATION = "CONSULTATION"
    FOLLOWUP = "FOLLOWUP"
    SURGERY = "SURGERY"
    CHECKUP = "CHECKUP"
    EMERGENCY = "EMERGENCY"
    OTHER = "OTHER"


class AppointmentStatus(str, Enum):
    UPCOMING = "UPCOMING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
