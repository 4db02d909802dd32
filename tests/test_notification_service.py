from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from implant_notify.db.enums import (
    NotificationCategory,
    NotificationFrequency,
    NotificationKind,
    NotificationSeverity,
    NotificationType,
)
from implant_notify.db.models import Notification
from implant_notify.schemas.notification import PreferenceUpdate
from implant_notify.services import email_templates, notification_service, preference_service

T0 = datetime(2026, 10, 18, 7, 10)


async def _create(db, org, user, *, now=T0, dedupe_key="isq_low_p1_36", **kwargs):
    params = dict(
        org_id=org.id,
        recipient_user_id=user.id,
        kind=NotificationKind.ALERT,
        type=NotificationType.ISQ_LOW,
        severity=NotificationSeverity.CRITICAL,
        title="Low ISQ detected",
        dedupe_key=dedupe_key,
        now=now,
    )
    params.update(kwargs)
    return await notification_service.create_notification(db, **params)


def _count(db) -> int:
    return db.query(Notification).count()


@pytest.mark.asyncio
async def test_create_notification_persists_row(db, test_org, test_user):
    notification = await _create(db, test_org, test_user, entity_type="PATIENT", entity_id="p1")

    assert notification is not None
    assert notification.kind == "ALERT"
    assert notification.type == "ISQ_LOW"
    assert notification.severity == "CRITICAL"
    assert notification.entity_id == "p1"
    assert notification.created_at == T0
    assert notification.read_at is None
    assert notification.digested_at is None


@pytest.mark.asyncio
async def test_dedupe_suppresses_within_cooldown(db, test_org, test_user):
    first = await _create(db, test_org, test_user)
    second = await _create(db, test_org, test_user, now=T0 + timedelta(minutes=29))

    assert first is not None
    assert second is None
    assert _count(db) == 1


@pytest.mark.asyncio
async def test_dedupe_window_boundary_is_inclusive(db, test_org, test_user):
    await _create(db, test_org, test_user)
    at_boundary = await _create(db, test_org, test_user, now=T0 + timedelta(minutes=30))

    assert at_boundary is None
    assert _count(db) == 1


@pytest.mark.asyncio
async def test_dedupe_allows_after_cooldown(db, test_org, test_user):
    await _create(db, test_org, test_user)
    later = await _create(db, test_org, test_user, now=T0 + timedelta(minutes=31))

    assert later is not None
    assert _count(db) == 2


@pytest.mark.asyncio
async def test_dedupe_is_per_recipient(db, test_org, test_user, make_user):
    colleague = make_user(test_org)

    await _create(db, test_org, test_user)
    other = await _create(db, test_org, colleague)

    assert other is not None
    assert _count(db) == 2


@pytest.mark.asyncio
async def test_no_expiry_cooldown_matches_any_age(db, test_org, test_user):
    await _create(db, test_org, test_user, dedupe_key="implant_24m_x")

    assert notification_service.is_duplicate(
        db,
        "implant_24m_x",
        test_user.id,
        cooldown_minutes=notification_service.NO_EXPIRY,
        now=T0 + timedelta(days=400),
    )
    assert not notification_service.is_duplicate(
        db, "implant_24m_x", test_user.id, cooldown_minutes=30, now=T0 + timedelta(days=400)
    )


def test_negative_cooldown_is_rejected(db, test_user):
    with pytest.raises(ValueError, match="cooldown_minutes"):
        notification_service.is_duplicate(db, "implant_24m_x", test_user.id, cooldown_minutes=-5, now=T0)


@pytest.mark.asyncio
async def test_frequency_none_suppresses(db, test_org, test_user):
    preference_service.update_preference(
        db,
        test_user.id,
        test_org.id,
        NotificationCategory.ALERTS_REMINDERS,
        PreferenceUpdate(frequency=NotificationFrequency.NONE),
    )

    result = await _create(db, test_org, test_user)

    assert result is None
    assert _count(db) == 0


@pytest.mark.asyncio
async def test_both_channels_disabled_suppresses(db, test_org, test_user):
    preference_service.update_preference(
        db,
        test_user.id,
        test_org.id,
        NotificationCategory.ALERTS_REMINDERS,
        PreferenceUpdate(in_app_enabled=False, email_enabled=False),
    )

    assert await _create(db, test_org, test_user) is None
    assert _count(db) == 0


@pytest.mark.asyncio
async def test_preferences_apply_per_category(db, test_org, test_user):
    preference_service.update_preference(
        db,
        test_user.id,
        test_org.id,
        NotificationCategory.TEAM_ACTIVITY,
        PreferenceUpdate(frequency=NotificationFrequency.NONE),
    )

    result = await _create(db, test_org, test_user)

    assert result is not None


@pytest.mark.asyncio
async def test_immediate_email_sent_when_enabled(db, test_org, test_user, email_sender):
    preference_service.update_preference(
        db,
        test_user.id,
        test_org.id,
        NotificationCategory.ALERTS_REMINDERS,
        PreferenceUpdate(email_enabled=True),
    )

    await _create(
        db,
        test_org,
        test_user,
        entity_type="PATIENT",
        entity_id="p1",
        email_sender=email_sender,
    )

    assert len(email_sender.sent) == 1
    sent = email_sender.sent[0]
    assert sent.to_email == "surgeon@test.com"
    assert sent.template == email_templates.ALERT_TEMPLATE
    assert sent.data.action_url.endswith("/patients/p1")


@pytest.mark.asyncio
async def test_immediate_email_failure_keeps_notification(
    db, test_org, test_user, failing_email_sender
):
    preference_service.update_preference(
        db,
        test_user.id,
        test_org.id,
        NotificationCategory.ALERTS_REMINDERS,
        PreferenceUpdate(email_enabled=True),
    )

    notification = await _create(db, test_org, test_user, email_sender=failing_email_sender)

    assert notification is not None
    assert _count(db) == 1


@pytest.mark.asyncio
async def test_digest_frequency_does_not_send_immediately(db, test_org, test_user, email_sender):
    preference_service.update_preference(
        db,
        test_user.id,
        test_org.id,
        NotificationCategory.ALERTS_REMINDERS,
        PreferenceUpdate(frequency=NotificationFrequency.DIGEST, email_enabled=True),
    )

    notification = await _create(db, test_org, test_user, email_sender=email_sender)

    assert notification is not None
    assert email_sender.sent == []


@pytest.mark.asyncio
async def test_recipient_without_email_skips_immediate_send(
    db, test_org, make_user, email_sender
):
    user = make_user(test_org, email="")
    preference_service.update_preference(
        db,
        user.id,
        test_org.id,
        NotificationCategory.ALERTS_REMINDERS,
        PreferenceUpdate(email_enabled=True),
    )

    notification = await _create(db, test_org, user, email_sender=email_sender)

    assert notification is not None
    assert email_sender.sent == []


@pytest.mark.asyncio
async def test_known_type_metadata_is_validated(db, test_org, test_user):
    with pytest.raises(ValidationError):
        await _create(db, test_org, test_user, metadata={"implant_ref": "36", "unexpected": 1})

    notification = await _create(
        db, test_org, test_user, metadata={"implant_ref": "36", "isq_value": 52}
    )
    assert notification.meta == {"implant_ref": "36", "isq_value": 52.0}


@pytest.mark.asyncio
async def test_unknown_type_metadata_passes_through(db, test_org, test_user):
    notification = await _create(
        db,
        test_org,
        test_user,
        type="CUSTOM_EVENT",
        dedupe_key=None,
        metadata={"anything": "goes"},
    )

    assert notification.type == "CUSTOM_EVENT"
    assert notification.meta == {"anything": "goes"}


@pytest.mark.asyncio
async def test_mark_read_never_overwrites(db, test_org, test_user, monkeypatch):
    notification = await _create(db, test_org, test_user)
    first_read = datetime(2026, 10, 18, 9, 0)
    monkeypatch.setattr(notification_service, "local_now", lambda: first_read)

    assert notification_service.mark_read(db, notification.id, test_user.id, test_org.id)

    monkeypatch.setattr(notification_service, "local_now", lambda: first_read + timedelta(hours=1))
    assert notification_service.mark_read(db, notification.id, test_user.id, test_org.id)

    db.refresh(notification)
    assert notification.read_at == first_read


@pytest.mark.asyncio
async def test_mark_read_scoped_to_recipient(db, test_org, test_user, make_user):
    notification = await _create(db, test_org, test_user)
    stranger = make_user(test_org)

    assert not notification_service.mark_read(db, notification.id, stranger.id, test_org.id)


@pytest.mark.asyncio
async def test_list_unread_and_archive(db, test_org, test_user):
    first = await _create(db, test_org, test_user, dedupe_key="a")
    second = await _create(db, test_org, test_user, dedupe_key="b", now=T0 + timedelta(minutes=5))
    await _create(
        db,
        test_org,
        test_user,
        dedupe_key="c",
        kind=NotificationKind.IMPORT,
        type=NotificationType.IMPORT_STARTED,
        now=T0 + timedelta(minutes=10),
    )

    rows, total = notification_service.list_notifications(db, test_user.id, test_org.id)
    assert total == 3
    assert rows[0].dedupe_key == "c"

    alerts, alert_total = notification_service.list_notifications(
        db, test_user.id, test_org.id, kind=NotificationKind.ALERT
    )
    assert alert_total == 2
    assert [n.id for n in alerts] == [second.id, first.id]

    assert notification_service.archive_notification(db, first.id, test_user.id, test_org.id)
    _, total = notification_service.list_notifications(db, test_user.id, test_org.id)
    assert total == 2
    assert notification_service.get_unread_count(db, test_user.id, test_org.id) == 2

    assert notification_service.mark_all_read(db, test_user.id, test_org.id) == 2
    assert notification_service.get_unread_count(db, test_user.id, test_org.id) == 0
    _, unread_total = notification_service.list_notifications(
        db, test_user.id, test_org.id, unread_only=True
    )
    assert unread_total == 0


def test_build_deep_link():
    link = notification_service.build_deep_link("PATIENT", "abc")
    assert link.endswith("/patients/abc")
    assert notification_service.build_deep_link("IMPORT", None).endswith("/import")
    assert notification_service.build_deep_link(None, None).endswith("/notifications")
