"""Clinical tables read by the flag rules.

Only the columns the flag rules and the follow-up sweep need are mapped here;
the rest of the clinical schema belongs to the main application.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Date, Float, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from implant_notify.db.base import Base
from implant_notify.db.enums import (
    AppointmentStatus,
    AppointmentType,
    ImplantStatus,
    PatientStatus,
)
from implant_notify.utils.datetime_parsing import local_now


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=PatientStatus.ACTIVE.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=local_now, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Operation(Base):
    __tablename__ = "operations"
    __table_args__ = (Index("idx_operations_date", "operation_date"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    operation_date: Mapped[date] = mapped_column(Date, nullable=False)

    patient: Mapped["Patient"] = relationship()


class Implant(Base):
    """Catalog entry (brand/reference), shared by placements."""

    __tablename__ = "implants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    brand: Mapped[str] = mapped_column(String(100), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)


class SurgeryImplant(Base):
    """An implant placed during an operation, with its stability measurements."""

    __tablename__ = "surgery_implants"
    __table_args__ = (Index("idx_surgery_implants_org", "organization_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    operation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("operations.id", ondelete="CASCADE"), nullable=False
    )
    implant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("implants.id", ondelete="RESTRICT"), nullable=False
    )
    site_fdi: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ImplantStatus.IN_FOLLOWUP.value, nullable=False
    )

    # ISQ at placement, then at 2, 3 and 6 months
    isq_pose: Mapped[float | None] = mapped_column(Float, nullable=True)
    isq_2m: Mapped[float | None] = mapped_column(Float, nullable=True)
    isq_3m: Mapped[float | None] = mapped_column(Float, nullable=True)
    isq_6m: Mapped[float | None] = mapped_column(Float, nullable=True)

    operation: Mapped["Operation"] = relationship()
    implant: Mapped["Implant"] = relationship()

    @property
    def isq_sequence(self) -> list[tuple[str, float | None]]:
        """Measurements in chronological order."""
        return [
            ("pose", self.isq_pose),
            ("2m", self.isq_2m),
            ("3m", self.isq_3m),
            ("6m", self.isq_6m),
        ]


class Appointment(Base):
    """A visit, optionally tied to the operation or placement it follows up."""

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_patient", "organization_id", "patient_id"),
        Index("idx_appointments_surgery_implant", "surgery_implant_id"),
        Index("idx_appointments_operation", "operation_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    operation_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("operations.id", ondelete="SET NULL"), nullable=True
    )
    surgery_implant_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("surgery_implants.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[str] = mapped_column(String(20), default=AppointmentType.FOLLOWUP.value, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=AppointmentStatus.UPCOMING.value, nullable=False
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    date_start: Mapped[datetime] = mapped_column(nullable=False)
    # Weighted ISQ recorded at the visit, if any
    isq: Mapped[float | None] = mapped_column(Float, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=local_now, nullable=False)
