"""Notification events for domain services.

Named wrappers around notification_service.create_notification so calling
code never builds raw parameters: each one fixes the kind, type, severity,
dedupe key and metadata shape of its event.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from implant_notify.db.enums import (
    NotificationEntityType,
    NotificationKind,
    NotificationSeverity,
    NotificationType,
)
from implant_notify.db.models import Notification
from implant_notify.schemas.notification import (
    AppointmentMetadata,
    DocumentMetadata,
    ErrorMetadata,
    ImplantFollowupMetadata,
    ImportResultMetadata,
    ImportStartedMetadata,
    IsqDecliningMetadata,
    IsqLowMetadata,
    MaintenanceMetadata,
    NoRecentVisitMetadata,
    OperationFollowupMetadata,
    PatientUpdatedMetadata,
    RadioMetadata,
    TeamMetadata,
    UnstableIsqMetadata,
)
from implant_notify.services import notification_service
from implant_notify.services.email_sender import EmailSender
from implant_notify.services.notification_service import NO_EXPIRY


# =============================================================================
# Clinical alerts
# =============================================================================


async def on_isq_low(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    patient_id: UUID,
    implant_ref: str,
    isq_value: float,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.ALERT,
        type=NotificationType.ISQ_LOW,
        severity=NotificationSeverity.CRITICAL,
        title="Low ISQ detected",
        body=f"An implant has a low ISQ ({isq_value:g}). Action required.",
        entity_type=NotificationEntityType.PATIENT,
        entity_id=patient_id,
        metadata=IsqLowMetadata(implant_ref=implant_ref, isq_value=isq_value),
        dedupe_key=f"isq_low_{patient_id}_{implant_ref}",
        email_sender=email_sender,
    )


async def on_isq_declining(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    patient_id: UUID,
    patient_name: str,
    implant_site: str,
    previous_isq: float,
    current_isq: float,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    drop = previous_isq - current_isq
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.ALERT,
        type=NotificationType.ISQ_DECLINING,
        severity=NotificationSeverity.WARNING,
        title="Significant drop in implant stability",
        body=(
            f"Implant at site {implant_site} ({patient_name}) lost {drop:g} ISQ points "
            f"({previous_isq:g} -> {current_isq:g})."
        ),
        entity_type=NotificationEntityType.PATIENT,
        entity_id=patient_id,
        metadata=IsqDecliningMetadata(
            implant_site=implant_site,
            previous_isq=previous_isq,
            current_isq=current_isq,
            drop=drop,
        ),
        dedupe_key=f"isq_declining_{patient_id}_{implant_site}",
        email_sender=email_sender,
    )


async def on_unstable_isq_history(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    patient_id: UUID,
    patient_name: str,
    implant_site: str,
    recent_isq_values: list[float],
    email_sender: EmailSender | None = None,
) -> Notification | None:
    values = ", ".join(f"{v:g}" for v in recent_isq_values)
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.ALERT,
        type=NotificationType.UNSTABLE_ISQ_HISTORY,
        severity=NotificationSeverity.CRITICAL,
        title="Unstable ISQ history",
        body=(
            f"{patient_name}, site {implant_site}: {len(recent_isq_values)} consecutive "
            f"low ISQ measurements ({values})."
        ),
        entity_type=NotificationEntityType.PATIENT,
        entity_id=patient_id,
        metadata=UnstableIsqMetadata(
            implant_site=implant_site,
            low_isq_count=len(recent_isq_values),
            recent_isq_values=recent_isq_values,
        ),
        dedupe_key=f"unstable_isq_{patient_id}_{implant_site}",
        email_sender=email_sender,
    )


# =============================================================================
# Follow-up reminders
# =============================================================================


async def on_followup_to_schedule(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    patient_id: UUID,
    patient_name: str,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.REMINDER,
        type=NotificationType.FOLLOWUP_TO_SCHEDULE,
        severity=NotificationSeverity.WARNING,
        title="Follow-up to schedule",
        body=f"{patient_name} needs a follow-up appointment.",
        entity_type=NotificationEntityType.PATIENT,
        entity_id=patient_id,
        dedupe_key=f"followup_{patient_id}",
        email_sender=email_sender,
    )


async def on_no_postop_followup(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    patient_id: UUID,
    patient_name: str,
    operation_id: UUID,
    operation_date: str,
    days_since_op: int,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.REMINDER,
        type=NotificationType.NO_POSTOP_FOLLOWUP,
        severity=NotificationSeverity.WARNING,
        title="Missing post-operative follow-up",
        body=(
            f"{patient_name}: surgery on {operation_date} without an ISQ check "
            f"at day {days_since_op}."
        ),
        entity_type=NotificationEntityType.PATIENT,
        entity_id=patient_id,
        metadata=OperationFollowupMetadata(
            operation_id=str(operation_id),
            operation_date=operation_date,
            days_since_op=days_since_op,
        ),
        dedupe_key=f"no_postop_{operation_id}",
        email_sender=email_sender,
    )


async def on_no_recent_visit(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    patient_id: UUID,
    patient_name: str,
    implant_site: str,
    months_since_visit: int,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.REMINDER,
        type=NotificationType.NO_RECENT_VISIT,
        severity=NotificationSeverity.INFO,
        title="Implant without a recent visit",
        body=f"{patient_name}, site {implant_site}: no visit for {months_since_visit} months.",
        entity_type=NotificationEntityType.PATIENT,
        entity_id=patient_id,
        metadata=NoRecentVisitMetadata(
            implant_site=implant_site, months_since_visit=months_since_visit
        ),
        dedupe_key=f"no_recent_visit_{patient_id}_{implant_site}",
        email_sender=email_sender,
    )


async def on_surgery_no_followup_planned(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    patient_id: UUID,
    patient_name: str,
    operation_id: UUID,
    operation_date: str,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.REMINDER,
        type=NotificationType.SURGERY_NO_FOLLOWUP_PLANNED,
        severity=NotificationSeverity.WARNING,
        title="Surgery without a planned follow-up",
        body=f"{patient_name}: surgery on {operation_date} has no follow-up appointment.",
        entity_type=NotificationEntityType.PATIENT,
        entity_id=patient_id,
        metadata=OperationFollowupMetadata(
            operation_id=str(operation_id), operation_date=operation_date
        ),
        dedupe_key=f"surgery_no_followup_{operation_id}",
        email_sender=email_sender,
    )


async def on_implant_24m_followup(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    patient_id: UUID,
    patient_name: str,
    surgery_implant_id: UUID,
    implant_site: str,
    placement_date: str,
    months_since_placement: int,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    """Raised once per placement and recipient; the dedupe key never expires."""
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.ALERT,
        type=NotificationType.IMPLANT_24M_FOLLOWUP,
        severity=NotificationSeverity.WARNING,
        title=f"Implant control due ({months_since_placement} months)",
        body=(
            f"{patient_name}, site {implant_site}: placed on {placement_date}, "
            f"{months_since_placement} months ago. An ISQ control is due."
        ),
        entity_type=NotificationEntityType.PATIENT,
        entity_id=patient_id,
        metadata=ImplantFollowupMetadata(
            surgery_implant_id=str(surgery_implant_id),
            implant_site=implant_site,
            placement_date=placement_date,
            months_since_placement=months_since_placement,
        ),
        dedupe_key=f"implant_{months_since_placement}m_{surgery_implant_id}",
        dedupe_cooldown_minutes=NO_EXPIRY,
        email_sender=email_sender,
    )


# =============================================================================
# Team activity
# =============================================================================


async def on_document_uploaded(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    actor_user_id: UUID,
    document_id: UUID,
    document_name: str,
    patient_id: UUID | None = None,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.ACTIVITY,
        type=NotificationType.DOCUMENT_ADDED,
        title="Document added",
        body=f"{document_name} was added.",
        entity_type=NotificationEntityType.DOCUMENT,
        entity_id=document_id,
        actor_user_id=actor_user_id,
        metadata=DocumentMetadata(
            document_name=document_name,
            patient_id=str(patient_id) if patient_id else None,
        ),
        email_sender=email_sender,
    )


async def on_radio_added(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    actor_user_id: UUID,
    patient_id: UUID,
    patient_name: str,
    radio_type: str,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.ACTIVITY,
        type=NotificationType.RADIO_ADDED,
        title="X-ray added",
        body=f"{radio_type} added for {patient_name}.",
        entity_type=NotificationEntityType.PATIENT,
        entity_id=patient_id,
        actor_user_id=actor_user_id,
        metadata=RadioMetadata(radio_type=radio_type),
        email_sender=email_sender,
    )


async def on_patient_updated(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    actor_user_id: UUID,
    patient_id: UUID,
    changes: list[str],
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.ACTIVITY,
        type=NotificationType.PATIENT_UPDATED,
        title="Patient record updated",
        body="Changes were made to a patient record.",
        entity_type=NotificationEntityType.PATIENT,
        entity_id=patient_id,
        actor_user_id=actor_user_id,
        metadata=PatientUpdatedMetadata(changes=changes),
        email_sender=email_sender,
    )


async def on_appointment_created(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    appointment_id: UUID,
    appointment_date: str,
    actor_user_id: UUID | None = None,
    patient_id: UUID | None = None,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.ACTIVITY,
        type=NotificationType.APPOINTMENT_CREATED,
        title="New appointment",
        body=f"An appointment was scheduled for {appointment_date}.",
        entity_type=NotificationEntityType.APPOINTMENT,
        entity_id=appointment_id,
        actor_user_id=actor_user_id,
        metadata=AppointmentMetadata(
            appointment_date=appointment_date,
            patient_id=str(patient_id) if patient_id else None,
        ),
        email_sender=email_sender,
    )


async def on_invitation_sent(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    invitee_email: str,
    role: str,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.ACTIVITY,
        type=NotificationType.INVITATION_SENT,
        title="Invitation sent",
        body=f"An invitation was sent to {invitee_email} as {role}.",
        metadata=TeamMetadata(role=role, invitee_email=invitee_email),
        email_sender=email_sender,
    )


async def on_new_member_joined(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    new_member_name: str,
    new_member_email: str,
    role: str,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.ACTIVITY,
        type=NotificationType.NEW_MEMBER_JOINED,
        title="New team member",
        body=f"{new_member_name} ({new_member_email}) joined the team as {role}.",
        metadata=TeamMetadata(
            role=role, new_member_name=new_member_name, new_member_email=new_member_email
        ),
        email_sender=email_sender,
    )


async def on_role_changed(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    actor_user_id: UUID,
    affected_user_name: str,
    previous_role: str,
    new_role: str,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.ACTIVITY,
        type=NotificationType.ROLE_CHANGED,
        title="Role changed",
        body=f"{affected_user_name}'s role changed: {previous_role} -> {new_role}.",
        actor_user_id=actor_user_id,
        metadata=TeamMetadata(
            role=new_role, affected_user_name=affected_user_name, previous_role=previous_role
        ),
        email_sender=email_sender,
    )


# =============================================================================
# Imports
# =============================================================================


async def on_import_started(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    import_id: UUID,
    file_name: str,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.IMPORT,
        type=NotificationType.IMPORT_STARTED,
        title="Import started",
        body=f"Import of {file_name} is in progress.",
        entity_type=NotificationEntityType.IMPORT,
        entity_id=import_id,
        metadata=ImportStartedMetadata(file_name=file_name),
        email_sender=email_sender,
    )


async def on_import_completed(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    import_id: UUID,
    success_count: int,
    failure_count: int,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    partial = failure_count > 0
    body = f"{success_count} records imported"
    if partial:
        body += f", {failure_count} errors"
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.IMPORT,
        type=NotificationType.IMPORT_PARTIAL if partial else NotificationType.IMPORT_COMPLETED,
        severity=NotificationSeverity.WARNING if partial else NotificationSeverity.INFO,
        title="Import finished with errors" if partial else "Import finished",
        body=body,
        entity_type=NotificationEntityType.IMPORT,
        entity_id=import_id,
        metadata=ImportResultMetadata(success_count=success_count, failure_count=failure_count),
        email_sender=email_sender,
    )


async def on_import_failed(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    import_id: UUID,
    error_message: str,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.IMPORT,
        type=NotificationType.IMPORT_FAILED,
        severity=NotificationSeverity.CRITICAL,
        title="Import failed",
        body="The import failed.",
        entity_type=NotificationEntityType.IMPORT,
        entity_id=import_id,
        metadata=ErrorMetadata(error_message=error_message),
        email_sender=email_sender,
    )


# =============================================================================
# System
# =============================================================================


async def on_sync_error(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    integration_name: str,
    error_message: str,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.SYSTEM,
        type=NotificationType.SYNC_ERROR,
        severity=NotificationSeverity.WARNING,
        title="Synchronization error",
        body=f"{integration_name} synchronization hit an error.",
        entity_type=NotificationEntityType.INTEGRATION,
        metadata=ErrorMetadata(error_message=error_message, integration_name=integration_name),
        dedupe_key=f"sync_error_{integration_name}",
        email_sender=email_sender,
    )


async def on_email_error(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    email_type: str,
    target_email: str,
    error_message: str,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.SYSTEM,
        type=NotificationType.EMAIL_ERROR,
        severity=NotificationSeverity.WARNING,
        title="Email delivery error",
        body=f"The {email_type} email to {target_email} could not be sent.",
        metadata=ErrorMetadata(
            error_message=error_message, email_type=email_type, target_email=target_email
        ),
        dedupe_key=f"email_error_{target_email}_{email_type}",
        email_sender=email_sender,
    )


async def on_system_maintenance(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    maintenance_type: str,
    description: str,
    scheduled_at: str | None = None,
    email_sender: EmailSender | None = None,
) -> Notification | None:
    return await notification_service.create_notification(
        db,
        org_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=NotificationKind.SYSTEM,
        type=NotificationType.SYSTEM_MAINTENANCE,
        title="System maintenance",
        body=description,
        metadata=MaintenanceMetadata(maintenance_type=maintenance_type, scheduled_at=scheduled_at),
        email_sender=email_sender,
    )
