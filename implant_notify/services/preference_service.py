"""
Preference Store - per-user, per-organization, per-category delivery settings.

A missing row means defaults; rows are created lazily on the first update.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from implant_notify.core.config import settings
from implant_notify.db.enums import NotificationCategory, NotificationFrequency
from implant_notify.db.models import NotificationPreference
from implant_notify.schemas.notification import PreferenceSettings, PreferenceUpdate
from implant_notify.utils.datetime_parsing import DigestTime, parse_digest_time

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES = PreferenceSettings()


def _to_settings(pref: NotificationPreference) -> PreferenceSettings:
    return PreferenceSettings(
        frequency=NotificationFrequency(pref.frequency),
        in_app_enabled=pref.in_app_enabled,
        email_enabled=pref.email_enabled,
        digest_time=pref.digest_time or settings.DIGEST_DEFAULT_TIME,
    )


def _get_row(
    db: Session,
    user_id: UUID,
    org_id: UUID,
    category: NotificationCategory,
) -> NotificationPreference | None:
    return db.query(NotificationPreference).filter(
        NotificationPreference.user_id == user_id,
        NotificationPreference.organization_id == org_id,
        NotificationPreference.category == category.value,
    ).first()


def get_preference(
    db: Session,
    user_id: UUID,
    org_id: UUID,
    category: NotificationCategory,
) -> PreferenceSettings:
    """Effective settings for one category; defaults when no row exists."""
    pref = _get_row(db, user_id, org_id, category)
    if pref is None:
        return DEFAULT_PREFERENCES
    return _to_settings(pref)


def list_preferences(
    db: Session,
    user_id: UUID,
    org_id: UUID,
) -> dict[NotificationCategory, PreferenceSettings]:
    """Settings for every category, filling gaps with defaults."""
    rows = db.query(NotificationPreference).filter(
        NotificationPreference.user_id == user_id,
        NotificationPreference.organization_id == org_id,
    ).all()
    by_category = {row.category: _to_settings(row) for row in rows}
    return {
        category: by_category.get(category.value, DEFAULT_PREFERENCES)
        for category in NotificationCategory
    }


def update_preference(
    db: Session,
    user_id: UUID,
    org_id: UUID,
    category: NotificationCategory,
    updates: PreferenceUpdate,
) -> PreferenceSettings:
    """
    Apply a validated partial update.

    Creates the row (seeded with defaults) if it doesn't exist.
    """
    pref = _get_row(db, user_id, org_id, category)
    if pref is None:
        pref = NotificationPreference(
            user_id=user_id,
            organization_id=org_id,
            category=category.value,
            frequency=DEFAULT_PREFERENCES.frequency.value,
            in_app_enabled=DEFAULT_PREFERENCES.in_app_enabled,
            email_enabled=DEFAULT_PREFERENCES.email_enabled,
            digest_time=settings.DIGEST_DEFAULT_TIME,
        )
        db.add(pref)

    changes = updates.model_dump(exclude_unset=True, exclude_none=True)
    if "frequency" in changes:
        pref.frequency = NotificationFrequency(changes["frequency"]).value
    if "in_app_enabled" in changes:
        pref.in_app_enabled = changes["in_app_enabled"]
    if "email_enabled" in changes:
        pref.email_enabled = changes["email_enabled"]
    if "digest_time" in changes:
        pref.digest_time = changes["digest_time"]

    db.commit()
    db.refresh(pref)
    return _to_settings(pref)


@dataclass(frozen=True)
class DuePreference:
    user_id: UUID
    organization_id: UUID
    category: NotificationCategory
    digest_time: DigestTime


def stored_digest_time(raw_value: str | None) -> DigestTime:
    """
    Parse a stored digest time.

    Values are validated on write; rows written before validation existed
    fall back to the default time.
    """
    default = parse_digest_time(settings.DIGEST_DEFAULT_TIME)
    if not raw_value:
        return default
    try:
        return parse_digest_time(raw_value)
    except ValueError:
        logger.warning("Invalid stored digest_time %r, using %s", raw_value, default)
        return default


def get_due_digest_preferences(db: Session, now: datetime) -> list[DuePreference]:
    """Digest+email preferences whose target hour:minute is exactly ``now``'s."""
    rows = db.query(NotificationPreference).filter(
        NotificationPreference.frequency == NotificationFrequency.DIGEST.value,
        NotificationPreference.email_enabled.is_(True),
    ).all()

    due: list[DuePreference] = []
    for row in rows:
        target = stored_digest_time(row.digest_time)
        if not target.matches(now):
            continue
        try:
            category = NotificationCategory(row.category)
        except ValueError:
            logger.warning("Unknown preference category %r on row %s", row.category, row.id)
            continue
        due.append(
            DuePreference(
                user_id=row.user_id,
                organization_id=row.organization_id,
                category=category,
                digest_time=target,
            )
        )
    return due
