"""
Digest Batcher - batched notification emails.

Runs on every scheduler tick. For each (user, organization) with a digest
preference due at this exact minute, it collects the undigested notifications
since the last SENT digest, sends one email, and records the outcome.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from implant_notify.core.config import settings
from implant_notify.core.structured_logging import build_log_context, mask_email
from implant_notify.db.enums import (
    CATEGORY_TO_KINDS,
    DigestStatus,
    NotificationCategory,
    category_for_kind,
)
from implant_notify.db.models import DigestRun, Notification, User
from implant_notify.services import email_templates, preference_service
from implant_notify.services.email_sender import EmailSender, get_email_sender
from implant_notify.utils.datetime_parsing import local_now

logger = logging.getLogger(__name__)

DAILY_PERIOD_LABEL = "Daily"

# A FAILED run extends the next window only if it ended about one period ago
FAILED_RUN_SLACK = timedelta(hours=1)


@dataclass
class DigestResult:
    user_id: UUID
    organization_id: UUID | None
    email: str
    notification_count: int
    success: bool
    error: str | None = None


@dataclass
class DigestSummary:
    results: list[DigestResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.success)


def get_watermark(
    db: Session,
    user_id: UUID,
    org_id: UUID,
    default: datetime,
) -> datetime:
    """
    Start of the next digest window for (user, org).

    sent_at of the latest SENT run. FAILED runs never advance it; when nothing
    was ever sent and the previous tick failed, the window reaches back to that
    failed run's start so the retry covers the same notifications. A failed run
    older than one period (plus ``FAILED_RUN_SLACK``) is ignored.
    """
    last_sent = (
        db.query(DigestRun)
        .filter(
            DigestRun.user_id == user_id,
            DigestRun.organization_id == org_id,
            DigestRun.status == DigestStatus.SENT.value,
            DigestRun.sent_at.is_not(None),
        )
        .order_by(DigestRun.sent_at.desc())
        .first()
    )
    if last_sent:
        return last_sent.sent_at

    last_failed = (
        db.query(DigestRun)
        .filter(
            DigestRun.user_id == user_id,
            DigestRun.organization_id == org_id,
            DigestRun.status == DigestStatus.FAILED.value,
        )
        .order_by(DigestRun.period_end.desc())
        .first()
    )
    if (
        last_failed
        and last_failed.period_end >= default - FAILED_RUN_SLACK
        and last_failed.period_start < default
    ):
        return last_failed.period_start
    return default


def get_undigested_notifications(
    db: Session,
    user_id: UUID,
    org_id: UUID,
    kinds: set[str],
    since: datetime,
    until: datetime,
) -> list[Notification]:
    return (
        db.query(Notification)
        .filter(
            Notification.recipient_user_id == user_id,
            Notification.organization_id == org_id,
            Notification.kind.in_(sorted(kinds)),
            Notification.created_at >= since,
            Notification.created_at < until,
            Notification.digested_at.is_(None),
        )
        .order_by(Notification.created_at.asc())
        .all()
    )


def count_by_category(
    notifications: list[Notification],
    categories: list[NotificationCategory],
) -> dict[NotificationCategory, int]:
    """Each notification counts once, under the category its kind maps to."""
    counts = {category: 0 for category in categories}
    for notification in notifications:
        category = category_for_kind(notification.kind)
        if category in counts:
            counts[category] += 1
    return counts


def _build_email_data(user: User, notifications: list[Notification]) -> email_templates.DigestEmailData:
    return email_templates.DigestEmailData(
        first_name=user.first_name,
        period_label=DAILY_PERIOD_LABEL,
        dashboard_url=f"{settings.FRONTEND_URL.rstrip('/')}/notifications",
        items=[
            email_templates.DigestItem(
                title=n.title,
                body=n.body,
                severity=n.severity,
                entity_type=n.entity_type,
                created_at=n.created_at.strftime("%Y-%m-%d %H:%M"),
            )
            for n in notifications
        ],
    )


async def _process_user_org(
    db: Session,
    *,
    user: User,
    org_id: UUID,
    categories: list[NotificationCategory],
    now: datetime,
    period: timedelta,
    email_sender: EmailSender,
) -> DigestResult | None:
    """Send one digest for (user, org). Returns None when there is nothing to send."""
    kinds = {kind.value for category in categories for kind in CATEGORY_TO_KINDS[category]}
    if not kinds:
        return None

    since = get_watermark(db, user.id, org_id, default=now - period)
    notifications = get_undigested_notifications(db, user.id, org_id, kinds, since, now)
    if not notifications:
        return None

    counts = count_by_category(notifications, categories)
    contributing = [category for category in categories if counts[category] > 0]
    log_extra = build_log_context(user_id=user.id, org_id=org_id, job="digest")

    result = await email_sender.send_email(
        user.email,
        email_templates.DIGEST_TEMPLATE,
        _build_email_data(user, notifications),
    )

    if result.success:
        notification_ids = [n.id for n in notifications]
        try:
            # Undigested guard: a row is never digested twice
            db.query(Notification).filter(
                Notification.id.in_(notification_ids),
                Notification.digested_at.is_(None),
            ).update({"digested_at": now}, synchronize_session=False)
            for category in contributing:
                db.add(
                    DigestRun(
                        organization_id=org_id,
                        user_id=user.id,
                        category=category.value,
                        period_start=since,
                        period_end=now,
                        status=DigestStatus.SENT.value,
                        notification_count=counts[category],
                        sent_at=now,
                    )
                )
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(
            "Sent digest to %s (org %s) with %d notifications",
            mask_email(user.email),
            org_id,
            len(notifications),
            extra=log_extra,
        )
        return DigestResult(
            user_id=user.id,
            organization_id=org_id,
            email=user.email,
            notification_count=len(notifications),
            success=True,
        )

    error_message = result.error or "Unknown error"
    for category in contributing:
        db.add(
            DigestRun(
                organization_id=org_id,
                user_id=user.id,
                category=category.value,
                period_start=since,
                period_end=now,
                status=DigestStatus.FAILED.value,
                error_message=error_message,
                notification_count=counts[category],
            )
        )
    db.commit()

    logger.warning(
        "Failed to send digest to %s (org %s): %s",
        mask_email(user.email),
        org_id,
        error_message,
        extra=log_extra,
    )
    return DigestResult(
        user_id=user.id,
        organization_id=org_id,
        email=user.email,
        notification_count=len(notifications),
        success=False,
        error="Failed to send email",
    )


async def run_digest(
    db: Session,
    *,
    now: datetime | None = None,
    email_sender: EmailSender | None = None,
    period: timedelta | None = None,
) -> DigestSummary:
    """
    Run one digest pass for preferences due at ``now``'s hour and minute.

    A minute that is never ticked is never caught up. One user's failure is
    recorded in the summary and does not stop the others.
    """
    now = now or local_now()
    period = period or timedelta(hours=settings.DIGEST_PERIOD_HOURS)
    email_sender = email_sender or get_email_sender()
    summary = DigestSummary()

    due = preference_service.get_due_digest_preferences(db, now)
    if not due:
        logger.debug("No digest preferences due at %02d:%02d", now.hour, now.minute)
        return summary

    # user -> org -> categories
    grouped: dict[UUID, dict[UUID, list[NotificationCategory]]] = defaultdict(
        lambda: defaultdict(list)
    )
    for pref in due:
        categories = grouped[pref.user_id][pref.organization_id]
        if pref.category not in categories:
            categories.append(pref.category)

    for user_id, org_categories in grouped.items():
        try:
            user = db.get(User, user_id)
            if not user or not user.email:
                logger.info("User %s has no email, skipping digest", user_id)
                continue

            for org_id, categories in org_categories.items():
                result = await _process_user_org(
                    db,
                    user=user,
                    org_id=org_id,
                    categories=categories,
                    now=now,
                    period=period,
                    email_sender=email_sender,
                )
                if result:
                    summary.results.append(result)
        except Exception as exc:
            db.rollback()
            logger.exception(
                "Error processing digest for user %s",
                user_id,
                extra=build_log_context(user_id=user_id, job="digest"),
            )
            summary.results.append(
                DigestResult(
                    user_id=user_id,
                    organization_id=None,
                    email="unknown",
                    notification_count=0,
                    success=False,
                    error=str(exc),
                )
            )

    logger.info("Digest pass complete: %d processed, %d sent", summary.processed, summary.sent)
    return summary
