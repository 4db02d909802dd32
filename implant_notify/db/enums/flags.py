"""Clinical flag enums."""

from enum import Enum


class FlagLevel(str, Enum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"


class FlagEntityType(str, Enum):
    PATIENT = "PATIENT"
    OPERATION = "OPERATION"
    IMPLANT = "IMPLANT"


class FlagType(str, Enum):
    """Closed set of flag types. The detector raises the ISQ and follow-up rules."""

    # Critical (clinical)
    ISQ_LOW = "ISQ_LOW"
    ISQ_DECLINING = "ISQ_DECLINING"
    LOW_SUCCESS_RATE = "LOW_SUCCESS_RATE"

    # Warning (follow-up)
    NO_RECENT_ISQ = "NO_RECENT_ISQ"
    NO_POSTOP_FOLLOWUP = "NO_POSTOP_FOLLOWUP"
    NO_RECENT_APPOINTMENT = "NO_RECENT_APPOINTMENT"

    # Follow-up reminders
    FOLLOWUP_2M = "FOLLOWUP_2M"
    FOLLOWUP_4M = "FOLLOWUP_4M"
    FOLLOWUP_6M = "FOLLOWUP_6M"
    FOLLOWUP_12M = "FOLLOWUP_12M"

    # Info (coherence)
    IMPLANT_NO_OPERATION = "IMPLANT_NO_OPERATION"
    MISSING_DOCUMENT = "MISSING_DOCUMENT"
    INCOMPLETE_DATA = "INCOMPLETE_DATA"
