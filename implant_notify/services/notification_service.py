"""
Notification Service - creation gate, dedupe and in-app read model.

create_notification is the single entry point for raising an event: it
consults the recipient's preferences and the dedupe window, persists the row,
and fires the immediate email when the preference asks for one.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.orm import Session

from implant_notify.core.config import settings
from implant_notify.core.structured_logging import build_log_context, mask_email
from implant_notify.db.enums import (
    NotificationEntityType,
    NotificationKind,
    NotificationSeverity,
    category_for_kind,
)
from implant_notify.db.models import Notification, User
from implant_notify.schemas.notification import validate_metadata
from implant_notify.services import email_templates, preference_service
from implant_notify.services.email_sender import EmailSender, get_email_sender
from implant_notify.utils.datetime_parsing import local_now

logger = logging.getLogger(__name__)

# Cooldown value that matches an equivalent notification of any age
NO_EXPIRY = 0


# =============================================================================
# Dedupe Gate
# =============================================================================


def is_duplicate(
    db: Session,
    dedupe_key: str,
    recipient_user_id: UUID,
    cooldown_minutes: int | None = None,
    now: datetime | None = None,
) -> bool:
    """
    True if an equivalent notification reached this recipient within the cooldown.

    Sliding window, inclusive at the boundary. ``cooldown_minutes=None`` uses
    the configured default; NO_EXPIRY matches any age. Negative values are rejected.
    """
    if cooldown_minutes is None:
        cooldown_minutes = settings.DEDUPE_COOLDOWN_MINUTES
    if cooldown_minutes < 0:
        raise ValueError(f"cooldown_minutes must be >= 0, got {cooldown_minutes}")
    query = db.query(Notification.id).filter(
        Notification.dedupe_key == dedupe_key,
        Notification.recipient_user_id == recipient_user_id,
    )
    if cooldown_minutes != NO_EXPIRY:
        window_start = (now or local_now()) - timedelta(minutes=cooldown_minutes)
        query = query.filter(Notification.created_at >= window_start)
    return query.first() is not None


# =============================================================================
# Notification Creator
# =============================================================================


def _coerce(enum_cls, value):
    return value if isinstance(value, enum_cls) else enum_cls(value)


async def create_notification(
    db: Session,
    *,
    org_id: UUID,
    recipient_user_id: UUID,
    kind: NotificationKind | str,
    type: Enum | str,
    title: str,
    severity: NotificationSeverity | str = NotificationSeverity.INFO,
    body: str | None = None,
    entity_type: NotificationEntityType | str | None = None,
    entity_id: UUID | str | None = None,
    actor_user_id: UUID | None = None,
    metadata: BaseModel | dict[str, Any] | None = None,
    dedupe_key: str | None = None,
    dedupe_cooldown_minutes: int | None = None,
    email_sender: EmailSender | None = None,
    now: datetime | None = None,
) -> Notification | None:
    """
    Create a notification, or return None when it is suppressed.

    Suppression (preference NONE / both channels off, or an active dedupe
    window) writes nothing and is only visible in the logs. Insert failures
    propagate; an immediate email failure is logged and never undoes the insert.
    """
    kind = _coerce(NotificationKind, kind)
    severity = _coerce(NotificationSeverity, severity)
    category = category_for_kind(kind)
    log_extra = build_log_context(
        user_id=recipient_user_id, org_id=org_id, category=category.value
    )

    prefs = preference_service.get_preference(db, recipient_user_id, org_id, category)
    if prefs.suppressed:
        logger.info(
            "Notification %s suppressed by preferences for user %s",
            type,
            recipient_user_id,
            extra=log_extra,
        )
        return None

    type_value = type.value if isinstance(type, Enum) else str(type)
    created_at = now or local_now()
    if dedupe_key and is_duplicate(
        db, dedupe_key, recipient_user_id, dedupe_cooldown_minutes, now=created_at
    ):
        logger.info("Skipping duplicate notification %s", dedupe_key, extra=log_extra)
        return None

    notification = Notification(
        organization_id=org_id,
        recipient_user_id=recipient_user_id,
        kind=kind.value,
        type=type_value,
        severity=severity.value,
        title=title[:255],
        body=body,
        entity_type=_coerce(NotificationEntityType, entity_type).value if entity_type else None,
        entity_id=str(entity_id) if entity_id else None,
        actor_user_id=actor_user_id,
        meta=validate_metadata(type_value, metadata),
        dedupe_key=dedupe_key,
        created_at=created_at,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    logger.info("Created notification %s (%s)", notification.id, notification.type, extra=log_extra)

    if prefs.sends_immediate_email:
        await _send_immediate_email(db, notification, email_sender or get_email_sender())

    return notification


def build_deep_link(entity_type: str | None, entity_id: str | None) -> str:
    base_url = settings.FRONTEND_URL.rstrip("/")
    if entity_type and entity_id:
        if entity_type == NotificationEntityType.PATIENT.value:
            return f"{base_url}/patients/{entity_id}"
        if entity_type == NotificationEntityType.IMPLANT.value:
            return f"{base_url}/implants/{entity_id}"
    if entity_type == NotificationEntityType.APPOINTMENT.value:
        return f"{base_url}/calendar"
    if entity_type == NotificationEntityType.IMPORT.value:
        return f"{base_url}/import"
    return f"{base_url}/notifications"


async def _send_immediate_email(
    db: Session,
    notification: Notification,
    email_sender: EmailSender,
) -> None:
    user = db.get(User, notification.recipient_user_id)
    if not user or not user.email:
        logger.info(
            "Cannot send immediate email for notification %s - recipient has no email",
            notification.id,
        )
        return

    data = email_templates.AlertEmailData(
        title=notification.title,
        body=notification.body,
        severity=notification.severity,
        action_url=build_deep_link(notification.entity_type, notification.entity_id),
        first_name=user.first_name,
    )
    result = await email_sender.send_email(user.email, email_templates.ALERT_TEMPLATE, data)
    if result.success:
        logger.info(
            "Sent immediate email for notification %s to %s",
            notification.id,
            mask_email(user.email),
        )
    else:
        logger.error(
            "Immediate email failed for notification %s: %s",
            notification.id,
            result.error,
        )


# =============================================================================
# Read model
# =============================================================================


def list_notifications(
    db: Session,
    user_id: UUID,
    org_id: UUID,
    kind: NotificationKind | None = None,
    unread_only: bool = False,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Notification], int]:
    """Non-archived notifications for a user, newest first, with the total count."""
    query = db.query(Notification).filter(
        Notification.recipient_user_id == user_id,
        Notification.organization_id == org_id,
        Notification.archived_at.is_(None),
    )
    if kind:
        query = query.filter(Notification.kind == kind.value)
    if unread_only:
        query = query.filter(Notification.read_at.is_(None))

    total = query.count()
    rows = (
        query.order_by(Notification.created_at.desc())
        .offset((max(page, 1) - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return rows, total


def get_unread_count(db: Session, user_id: UUID, org_id: UUID) -> int:
    """Get count of unread, non-archived notifications."""
    return db.query(Notification).filter(
        Notification.recipient_user_id == user_id,
        Notification.organization_id == org_id,
        Notification.read_at.is_(None),
        Notification.archived_at.is_(None),
    ).count()


def mark_read(
    db: Session,
    notification_id: UUID,
    user_id: UUID,
    org_id: UUID,
) -> bool:
    """Mark a notification as read. An existing read_at is never overwritten."""
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.recipient_user_id == user_id,
        Notification.organization_id == org_id,
    ).first()
    if not notification:
        return False
    if notification.read_at is None:
        notification.read_at = local_now()
        db.commit()
    return True


def mark_all_read(db: Session, user_id: UUID, org_id: UUID) -> int:
    """Mark all notifications as read. Returns count updated."""
    count = db.query(Notification).filter(
        Notification.recipient_user_id == user_id,
        Notification.organization_id == org_id,
        Notification.read_at.is_(None),
        Notification.archived_at.is_(None),
    ).update({"read_at": local_now()}, synchronize_session=False)
    db.commit()
    return count


def archive_notification(
    db: Session,
    notification_id: UUID,
    user_id: UUID,
    org_id: UUID,
) -> bool:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.recipient_user_id == user_id,
        Notification.organization_id == org_id,
    ).first()
    if not notification:
        return False
    if notification.archived_at is None:
        notification.archived_at = local_now()
        db.commit()
    return True
