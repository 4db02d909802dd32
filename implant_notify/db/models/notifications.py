"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from implant_notify.db.base import Base
from implant_notify.db.enums import DigestStatus, NotificationFrequency, NotificationSeverity
from implant_notify.utils.datetime_parsing import local_now


class Notification(Base):
    """
    In-app notifications for users.

    Lifecycle timestamps (read/archived/digested) are set once and never cleared.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notif_user_unread", "recipient_user_id", "read_at", "created_at"),
        Index("idx_notif_org_user", "organization_id", "recipient_user_id", "created_at"),
        Index("idx_notif_dedupe", "dedupe_key", "recipient_user_id", "created_at"),
        Index("idx_notif_digest", "recipient_user_id", "organization_id", "digested_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    recipient_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(
        String(20), default=NotificationSeverity.INFO.value, nullable=False
    )

    # Content
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Entity reference (for click-through)
    entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    # Dedupe key: equivalent events for one recipient collapse within the cooldown
    dedupe_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=local_now, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)
    digested_at: Mapped[datetime | None] = mapped_column(nullable=True)


class NotificationPreference(Base):
    """
    Per-user, per-organization, per-category delivery settings.

    Missing row = defaults (immediate, in-app only).
    """

    __tablename__ = "notification_preferences"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "organization_id", "category", name="uq_notif_pref_user_org_category"
        ),
        Index("idx_notif_pref_digest", "frequency", "email_enabled"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    frequency: Mapped[str] = mapped_column(
        String(20), default=NotificationFrequency.IMMEDIATE.value, nullable=False
    )
    in_app_enabled: Mapped[bool] = mapped_column(default=True, nullable=False)
    email_enabled: Mapped[bool] = mapped_column(default=False, nullable=False)
    digest_time: Mapped[str | None] = mapped_column(String(5), default="08:00", nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=local_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=local_now, onupdate=local_now, nullable=False
    )


class DigestRun(Base):
    """
    Audit row for one digest email attempt, per contributing category.

    The latest SENT run's sent_at is the watermark for the next batch.
    """

    __tablename__ = "digest_runs"
    __table_args__ = (
        Index("idx_digest_runs_watermark", "user_id", "organization_id", "status", "sent_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    period_start: Mapped[datetime] = mapped_column(nullable=False)
    period_end: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DigestStatus.PENDING.value, nullable=False
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    notification_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=local_now, nullable=False)
