"""Pydantic schemas for notifications, preferences and typed metadata."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from implant_notify.db.enums import NotificationFrequency, NotificationType
from implant_notify.utils.datetime_parsing import parse_digest_time


# =============================================================================
# Preferences
# =============================================================================


class PreferenceSettings(BaseModel):
    """Effective settings for one category (stored row or defaults)."""
    model_config = ConfigDict(frozen=True)

    frequency: NotificationFrequency = NotificationFrequency.IMMEDIATE
    in_app_enabled: bool = True
    email_enabled: bool = False
    digest_time: str = "08:00"

    @property
    def suppressed(self) -> bool:
        """Nothing is delivered: no row, no email."""
        return self.frequency == NotificationFrequency.NONE or (
            not self.in_app_enabled and not self.email_enabled
        )

    @property
    def sends_immediate_email(self) -> bool:
        return self.email_enabled and self.frequency == NotificationFrequency.IMMEDIATE


class PreferenceUpdate(BaseModel):
    """Partial update. Malformed digest times are rejected here, not at send time."""

    frequency: NotificationFrequency | None = None
    in_app_enabled: bool | None = None
    email_enabled: bool | None = None
    digest_time: str | None = None

    @field_validator("digest_time")
    @classmethod
    def _validate_digest_time(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return str(parse_digest_time(value))


# =============================================================================
# Typed metadata per notification type
# =============================================================================


class _Metadata(BaseModel):
    model_config = ConfigDict(extra="forbid")


class IsqLowMetadata(_Metadata):
    implant_ref: str
    isq_value: float


class IsqDecliningMetadata(_Metadata):
    implant_site: str
    previous_isq: float
    current_isq: float
    drop: float


class UnstableIsqMetadata(_Metadata):
    implant_site: str
    low_isq_count: int
    recent_isq_values: list[float]


class OperationFollowupMetadata(_Metadata):
    operation_id: str
    operation_date: str
    days_since_op: int | None = None


class NoRecentVisitMetadata(_Metadata):
    implant_site: str
    months_since_visit: int


class ImplantFollowupMetadata(_Metadata):
    surgery_implant_id: str
    implant_site: str
    placement_date: str
    months_since_placement: int


class DocumentMetadata(_Metadata):
    document_name: str
    patient_id: str | None = None


class RadioMetadata(_Metadata):
    radio_type: str


class PatientUpdatedMetadata(_Metadata):
    changes: list[str]


class AppointmentMetadata(_Metadata):
    appointment_date: str
    patient_id: str | None = None


class ImportStartedMetadata(_Metadata):
    file_name: str


class ImportResultMetadata(_Metadata):
    success_count: int
    failure_count: int


class ErrorMetadata(_Metadata):
    error_message: str
    integration_name: str | None = None
    email_type: str | None = None
    target_email: str | None = None


class TeamMetadata(_Metadata):
    role: str
    invitee_email: str | None = None
    new_member_name: str | None = None
    new_member_email: str | None = None
    affected_user_name: str | None = None
    previous_role: str | None = None


class MaintenanceMetadata(_Metadata):
    maintenance_type: str
    scheduled_at: str | None = None


METADATA_MODELS: dict[NotificationType, type[_Metadata]] = {
    NotificationType.ISQ_LOW: IsqLowMetadata,
    NotificationType.ISQ_DECLINING: IsqDecliningMetadata,
    NotificationType.UNSTABLE_ISQ_HISTORY: UnstableIsqMetadata,
    NotificationType.NO_POSTOP_FOLLOWUP: OperationFollowupMetadata,
    NotificationType.SURGERY_NO_FOLLOWUP_PLANNED: OperationFollowupMetadata,
    NotificationType.NO_RECENT_VISIT: NoRecentVisitMetadata,
    NotificationType.IMPLANT_24M_FOLLOWUP: ImplantFollowupMetadata,
    NotificationType.DOCUMENT_ADDED: DocumentMetadata,
    NotificationType.RADIO_ADDED: RadioMetadata,
    NotificationType.PATIENT_UPDATED: PatientUpdatedMetadata,
    NotificationType.APPOINTMENT_CREATED: AppointmentMetadata,
    NotificationType.IMPORT_STARTED: ImportStartedMetadata,
    NotificationType.IMPORT_COMPLETED: ImportResultMetadata,
    NotificationType.IMPORT_PARTIAL: ImportResultMetadata,
    NotificationType.IMPORT_FAILED: ErrorMetadata,
    NotificationType.SYNC_ERROR: ErrorMetadata,
    NotificationType.EMAIL_ERROR: ErrorMetadata,
    NotificationType.INVITATION_SENT: TeamMetadata,
    NotificationType.NEW_MEMBER_JOINED: TeamMetadata,
    NotificationType.ROLE_CHANGED: TeamMetadata,
    NotificationType.SYSTEM_MAINTENANCE: MaintenanceMetadata,
}


def validate_metadata(
    notification_type: str,
    metadata: BaseModel | dict[str, Any] | None,
) -> dict[str, Any] | None:
    """
    Validate metadata against the model registered for its type.

    Known types must match their model exactly (pydantic ValidationError
    otherwise); unknown types pass through as a plain dict.
    """
    if metadata is None:
        return None
    try:
        known_type = NotificationType(notification_type)
    except ValueError:
        known_type = None

    model = METADATA_MODELS.get(known_type) if known_type else None
    if isinstance(metadata, BaseModel):
        if model and not isinstance(metadata, model):
            metadata = model.model_validate(metadata.model_dump())
        return metadata.model_dump(mode="json")
    if model:
        return model.model_validate(metadata).model_dump(mode="json")
    return dict(metadata)
