"""
Clinical flag detection.

Threshold rules over implant stability (ISQ) measurements and over follow-up
visits produce Flag rows scoped to the placement, operation or patient.
Detection is additive: it never resolves or edits
existing flags, and skips entities that already carry an unresolved flag of
the same type.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import exists, or_
from sqlalchemy.orm import Session, joinedload

from implant_notify.core.config import settings
from implant_notify.core.structured_logging import build_log_context
from implant_notify.db.enums import (
    AppointmentStatus,
    FlagEntityType,
    FlagLevel,
    FlagType,
    ImplantStatus,
    PatientStatus,
)
from implant_notify.db.models import (
    Appointment,
    Flag,
    Operation,
    Organization,
    Patient,
    SurgeryImplant,
)
from implant_notify.utils.datetime_parsing import local_now

logger = logging.getLogger(__name__)

# Deltas are compared after rounding so 70.3 -> 60.3 counts as exactly 10
DELTA_PRECISION = 6


@dataclass(frozen=True)
class IsqDecline:
    previous_label: str
    previous_value: float
    current_label: str
    current_value: float

    @property
    def drop(self) -> float:
        return round(self.previous_value - self.current_value, DELTA_PRECISION)


@dataclass
class DetectionSummary:
    created: int = 0
    existing: int = 0
    failed_orgs: list[UUID] = field(default_factory=list)


# =============================================================================
# Rules
# =============================================================================


def min_isq(placement: SurgeryImplant) -> float | None:
    values = [value for _, value in placement.isq_sequence if value is not None]
    return min(values) if values else None


def is_isq_low(placement: SurgeryImplant, threshold: float | None = None) -> bool:
    """Any measurement strictly below the threshold. Exactly at it is not low."""
    threshold = settings.ISQ_LOW_THRESHOLD if threshold is None else threshold
    return any(value is not None and value < threshold for _, value in placement.isq_sequence)


def find_isq_decline(
    placement: SurgeryImplant,
    threshold: float | None = None,
) -> IsqDecline | None:
    """
    First step in pose -> 2m -> 3m -> 6m that drops by at least ``threshold``.

    Each present value is compared with the most recent earlier recorded value,
    so a missing 2m makes 3m compare against pose. Requires a pose value.
    """
    threshold = settings.ISQ_DECLINE_THRESHOLD if threshold is None else threshold
    if placement.isq_pose is None:
        return None

    previous_label, previous_value = "pose", placement.isq_pose
    for label, value in placement.isq_sequence[1:]:
        if value is None:
            continue
        decline = IsqDecline(previous_label, previous_value, label, value)
        if decline.drop >= threshold:
            return decline
        previous_label, previous_value = label, value
    return None


# =============================================================================
# Store helpers
# =============================================================================


def get_open_flag(
    db: Session,
    org_id: UUID,
    entity_type: FlagEntityType,
    entity_id: str,
    flag_type: FlagType,
) -> Flag | None:
    return db.query(Flag).filter(
        Flag.organization_id == org_id,
        Flag.entity_type == entity_type.value,
        Flag.entity_id == entity_id,
        Flag.type == flag_type.value,
        Flag.resolved_at.is_(None),
    ).first()


def _create_flag_if_absent(
    db: Session,
    *,
    org_id: UUID,
    flag_type: FlagType,
    level: FlagLevel,
    label: str,
    description: str,
    entity_type: FlagEntityType,
    entity_id: str,
    now: datetime,
) -> bool:
    """Insert unless an unresolved flag of the same type exists. Returns True if created."""
    if get_open_flag(db, org_id, entity_type, entity_id, flag_type):
        return False
    db.add(
        Flag(
            organization_id=org_id,
            level=level.value,
            type=flag_type.value,
            label=label,
            description=description,
            entity_type=entity_type.value,
            entity_id=entity_id,
            created_at=now,
        )
    )
    # Visible to the next open-flag lookup in this pass
    db.flush()
    return True


def _tally(summary: DetectionSummary, created: bool, flag_type: FlagType, entity_id: str) -> None:
    if created:
        summary.created += 1
        logger.info("Created %s flag for %s", flag_type.value, entity_id)
    else:
        summary.existing += 1


def list_flags(
    db: Session,
    org_id: UUID,
    entity_type: FlagEntityType | None = None,
    entity_id: str | None = None,
    include_resolved: bool = False,
) -> list[Flag]:
    query = db.query(Flag).filter(Flag.organization_id == org_id)
    if entity_type:
        query = query.filter(Flag.entity_type == entity_type.value)
    if entity_id:
        query = query.filter(Flag.entity_id == entity_id)
    if not include_resolved:
        query = query.filter(Flag.resolved_at.is_(None))
    return query.order_by(Flag.created_at.desc()).all()


def resolve_flag(
    db: Session,
    org_id: UUID,
    flag_id: UUID,
    user_id: UUID,
) -> Flag | None:
    """Resolve a flag (scoped by org). Already-resolved flags keep their original stamp."""
    flag = db.query(Flag).filter(
        Flag.id == flag_id,
        Flag.organization_id == org_id,
    ).first()
    if not flag:
        return None
    if flag.resolved_at is None:
        flag.resolved_at = local_now()
        flag.resolved_by = user_id
        db.commit()
        db.refresh(flag)
    return flag


# =============================================================================
# Detection
# =============================================================================


def _placements_query(db: Session, org_id: UUID):
    return (
        db.query(SurgeryImplant)
        .options(joinedload(SurgeryImplant.operation).joinedload(Operation.patient))
        .filter(SurgeryImplant.organization_id == org_id)
    )


def _patient_label(placement: SurgeryImplant) -> str:
    return placement.operation.patient.full_name


def detect_low_isq(db: Session, org_id: UUID, now: datetime, summary: DetectionSummary) -> None:
    threshold = settings.ISQ_LOW_THRESHOLD
    placements = _placements_query(db, org_id).filter(
        or_(
            SurgeryImplant.isq_pose < threshold,
            SurgeryImplant.isq_2m < threshold,
            SurgeryImplant.isq_3m < threshold,
            SurgeryImplant.isq_6m < threshold,
        )
    ).all()
    logger.info("Found %d implants with low ISQ", len(placements), extra=build_log_context(org_id=org_id))

    for placement in placements:
        if not is_isq_low(placement, threshold):
            continue
        created = _create_flag_if_absent(
            db,
            org_id=org_id,
            flag_type=FlagType.ISQ_LOW,
            level=FlagLevel.CRITICAL,
            label=f"Low ISQ: {min_isq(placement):g}",
            description=(
                f"Patient {_patient_label(placement)}, site {placement.site_fdi} - "
                f"ISQ below {threshold:g}"
            ),
            entity_type=FlagEntityType.IMPLANT,
            entity_id=str(placement.id),
            now=now,
        )
        _tally(summary, created, FlagType.ISQ_LOW, str(placement.id))


def detect_declining_isq(
    db: Session, org_id: UUID, now: datetime, summary: DetectionSummary
) -> None:
    threshold = settings.ISQ_DECLINE_THRESHOLD
    placements = _placements_query(db, org_id).filter(SurgeryImplant.isq_pose.is_not(None)).all()

    declining = [(p, d) for p in placements if (d := find_isq_decline(p, threshold))]
    logger.info(
        "Found %d implants with declining ISQ", len(declining), extra=build_log_context(org_id=org_id)
    )

    for placement, decline in declining:
        created = _create_flag_if_absent(
            db,
            org_id=org_id,
            flag_type=FlagType.ISQ_DECLINING,
            level=FlagLevel.CRITICAL,
            label="Declining ISQ",
            description=(
                f"Patient {_patient_label(placement)}, site {placement.site_fdi} - "
                f"ISQ dropped {decline.drop:g} points "
                f"({decline.previous_label} {decline.previous_value:g} -> "
                f"{decline.current_label} {decline.current_value:g})"
            ),
            entity_type=FlagEntityType.IMPLANT,
            entity_id=str(placement.id),
            now=now,
        )
        _tally(summary, created, FlagType.ISQ_DECLINING, str(placement.id))


def detect_no_recent_isq(
    db: Session, org_id: UUID, now: datetime, summary: DetectionSummary
) -> None:
    """Placements in follow-up, older than the window, with no ISQ-bearing visit inside it."""
    days = settings.NO_RECENT_ISQ_DAYS
    cutoff = now - timedelta(days=days)
    recent_isq = exists().where(
        Appointment.organization_id == org_id,
        Appointment.surgery_implant_id == SurgeryImplant.id,
        Appointment.isq.is_not(None),
        Appointment.date_start > cutoff,
    )
    placements = (
        _placements_query(db, org_id)
        .join(Operation, SurgeryImplant.operation_id == Operation.id)
        .filter(
            SurgeryImplant.status == ImplantStatus.IN_FOLLOWUP.value,
            Operation.operation_date < cutoff.date(),
            ~recent_isq,
        )
        .all()
    )
    logger.info(
        "Found %d implants without a recent ISQ", len(placements), extra=build_log_context(org_id=org_id)
    )

    for placement in placements:
        created = _create_flag_if_absent(
            db,
            org_id=org_id,
            flag_type=FlagType.NO_RECENT_ISQ,
            level=FlagLevel.WARNING,
            label="No recent ISQ",
            description=(
                f"Patient {_patient_label(placement)}, site {placement.site_fdi} - "
                f"no ISQ measurement in {days} days"
            ),
            entity_type=FlagEntityType.IMPLANT,
            entity_id=str(placement.id),
            now=now,
        )
        _tally(summary, created, FlagType.NO_RECENT_ISQ, str(placement.id))


def detect_no_postop_followup(
    db: Session, org_id: UUID, now: datetime, summary: DetectionSummary
) -> None:
    """Operations strictly between the min and max age with no completed follow-up visit."""
    newest = (now - timedelta(days=settings.POSTOP_FOLLOWUP_MIN_DAYS)).date()
    oldest = (now - timedelta(days=settings.POSTOP_FOLLOWUP_MAX_DAYS)).date()
    completed_followup = exists().where(
        Appointment.organization_id == org_id,
        Appointment.operation_id == Operation.id,
        Appointment.status == AppointmentStatus.COMPLETED.value,
    )
    operations = (
        db.query(Operation)
        .options(joinedload(Operation.patient))
        .filter(
            Operation.organization_id == org_id,
            Operation.operation_date < newest,
            Operation.operation_date > oldest,
            ~completed_followup,
        )
        .all()
    )
    logger.info(
        "Found %d operations without post-op follow-up",
        len(operations),
        extra=build_log_context(org_id=org_id),
    )

    for operation in operations:
        created = _create_flag_if_absent(
            db,
            org_id=org_id,
            flag_type=FlagType.NO_POSTOP_FOLLOWUP,
            level=FlagLevel.WARNING,
            label="No post-op follow-up",
            description=(
                f"Patient {operation.patient.full_name}, surgery on "
                f"{operation.operation_date.isoformat()} - no completed follow-up visit"
            ),
            entity_type=FlagEntityType.OPERATION,
            entity_id=str(operation.id),
            now=now,
        )
        _tally(summary, created, FlagType.NO_POSTOP_FOLLOWUP, str(operation.id))


def detect_no_recent_appointment(
    db: Session, org_id: UUID, now: datetime, summary: DetectionSummary
) -> None:
    """Active patients with at least one placement and no completed visit in the window."""
    days = settings.NO_RECENT_APPOINTMENT_DAYS
    cutoff = now - timedelta(days=days)
    has_placement = exists().where(
        SurgeryImplant.organization_id == org_id,
        SurgeryImplant.operation_id == Operation.id,
        Operation.patient_id == Patient.id,
    )
    recent_visit = exists().where(
        Appointment.organization_id == org_id,
        Appointment.patient_id == Patient.id,
        Appointment.status == AppointmentStatus.COMPLETED.value,
        Appointment.date_start > cutoff,
    )
    patients = db.query(Patient).filter(
        Patient.organization_id == org_id,
        Patient.status == PatientStatus.ACTIVE.value,
        has_placement,
        ~recent_visit,
    ).all()
    logger.info(
        "Found %d patients without a recent visit", len(patients), extra=build_log_context(org_id=org_id)
    )

    for patient in patients:
        created = _create_flag_if_absent(
            db,
            org_id=org_id,
            flag_type=FlagType.NO_RECENT_APPOINTMENT,
            level=FlagLevel.WARNING,
            label="No recent visit",
            description=f"Patient {patient.full_name} - no completed visit in {days} days",
            entity_type=FlagEntityType.PATIENT,
            entity_id=str(patient.id),
            now=now,
        )
        _tally(summary, created, FlagType.NO_RECENT_APPOINTMENT, str(patient.id))


def detect_for_org(db: Session, org_id: UUID, now: datetime | None = None) -> DetectionSummary:
    """Run every rule for one organization and commit its flags together."""
    now = now or local_now()
    summary = DetectionSummary()
    detect_low_isq(db, org_id, now, summary)
    detect_declining_isq(db, org_id, now, summary)
    detect_no_recent_isq(db, org_id, now, summary)
    detect_no_postop_followup(db, org_id, now, summary)
    detect_no_recent_appointment(db, org_id, now, summary)
    db.commit()
    return summary


def run_detection(
    db: Session,
    *,
    org_ids: list[UUID] | None = None,
    now: datetime | None = None,
) -> DetectionSummary:
    """
    Scan every organization (or ``org_ids``).

    A failing organization is rolled back, logged and listed in
    ``failed_orgs``; the remaining organizations are still processed.
    """
    now = now or local_now()
    if org_ids is None:
        org_ids = [row.id for row in db.query(Organization.id).all()]
    logger.info("Flag detection starting for %d organizations", len(org_ids))

    total = DetectionSummary()
    for org_id in org_ids:
        log_extra = build_log_context(org_id=org_id, job="flag_detection")
        try:
            org_summary = detect_for_org(db, org_id, now=now)
        except Exception:
            db.rollback()
            logger.exception("Flag detection failed for org %s", org_id, extra=log_extra)
            total.failed_orgs.append(org_id)
            continue

        total.created += org_summary.created
        total.existing += org_summary.existing
        logger.info(
            "Org %s: created=%d, existing=%d",
            org_id,
            org_summary.created,
            org_summary.existing,
            extra=log_extra,
        )

    logger.info(
        "Flag detection finished: created=%d, existing=%d, failed_orgs=%d",
        total.created,
        total.existing,
        len(total.failed_orgs),
    )
    return total
