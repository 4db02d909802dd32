"""
Implant follow-up sweep.

Daily job that raises a reminder ALERT for every placement whose operation
reached the follow-up age (24 months by default). The window trails the exact
anniversary by a few grace days so a missed daily run is caught up; the
never-expiring dedupe key keeps it to one notification per placement and
recipient.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from implant_notify.core.config import settings
from implant_notify.core.structured_logging import build_log_context
from implant_notify.db.models import Membership, Operation, SurgeryImplant
from implant_notify.services import notification_events
from implant_notify.services.email_sender import EmailSender
from implant_notify.utils.datetime_parsing import local_now, subtract_months

logger = logging.getLogger(__name__)


def followup_window(
    today: date,
    months: int | None = None,
    grace_days: int | None = None,
) -> tuple[date, date]:
    """Inclusive operation-date range that is due for follow-up on ``today``."""
    months = settings.IMPLANT_FOLLOWUP_MONTHS if months is None else months
    grace_days = settings.IMPLANT_FOLLOWUP_GRACE_DAYS if grace_days is None else grace_days
    anniversary = subtract_months(today, months)
    return anniversary - timedelta(days=grace_days), anniversary


def get_due_placements(db: Session, today: date) -> list[SurgeryImplant]:
    start, end = followup_window(today)
    return (
        db.query(SurgeryImplant)
        .join(Operation, SurgeryImplant.operation_id == Operation.id)
        .options(joinedload(SurgeryImplant.operation).joinedload(Operation.patient))
        .filter(Operation.operation_date >= start, Operation.operation_date <= end)
        .order_by(Operation.operation_date.asc())
        .all()
    )


def get_active_member_ids(db: Session, org_id: UUID) -> list[UUID]:
    rows = (
        db.query(Membership.user_id)
        .filter(Membership.organization_id == org_id, Membership.is_active.is_(True))
        .all()
    )
    return [row.user_id for row in rows]


async def run_isq_followup_sweep(
    db: Session,
    *,
    now: datetime | None = None,
    email_sender: EmailSender | None = None,
) -> int:
    """Notify active members about placements due for control. Returns notifications created."""
    today = (now or local_now()).date()
    months = settings.IMPLANT_FOLLOWUP_MONTHS
    placements = get_due_placements(db, today)
    logger.info("Found %d placements due for %d-month follow-up", len(placements), months)

    members_by_org: dict[UUID, list[UUID]] = {}
    created = 0
    for placement in placements:
        org_id = placement.organization_id
        if org_id not in members_by_org:
            members_by_org[org_id] = get_active_member_ids(db, org_id)

        operation = placement.operation
        for user_id in members_by_org[org_id]:
            notification = await notification_events.on_implant_24m_followup(
                db,
                org_id=org_id,
                recipient_user_id=user_id,
                patient_id=operation.patient_id,
                patient_name=operation.patient.full_name,
                surgery_implant_id=placement.id,
                implant_site=placement.site_fdi,
                placement_date=operation.operation_date.isoformat(),
                months_since_placement=months,
                email_sender=email_sender,
            )
            if notification:
                created += 1

    logger.info(
        "Follow-up sweep created %d notifications",
        created,
        extra=build_log_context(job="isq_followup_sweep"),
    )
    return created
