"""
Test configuration and fixtures.

Provides:
- A fresh in-memory SQLite database per test (schema from the models)
- Organization / user / membership fixtures
- Patient / operation / placement / appointment factories
- FakeEmailSender that records sends and returns a configurable result
"""
import os
import uuid
from datetime import date, datetime
from types import SimpleNamespace
from typing import Generator

# Point settings at SQLite before anything imports the engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RESEND_API_KEY"] = ""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import implant_notify.db.models  # noqa: F401
from implant_notify.db.base import Base
from implant_notify.db.enums import AppointmentStatus, ImplantStatus, PatientStatus, Role
from implant_notify.db.models import (
    Appointment,
    Implant,
    Membership,
    Operation,
    Organization,
    Patient,
    SurgeryImplant,
    User,
)
from implant_notify.services.email_sender import EmailResult


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# Tenant Fixtures
# =============================================================================

def _create_user(db: Session, org: Organization, email: str | None = None, is_active: bool = True) -> User:
    user = User(
        email=email if email is not None else f"user-{uuid.uuid4().hex[:8]}@test.com",
        first_name="Test",
        last_name="User",
    )
    db.add(user)
    db.flush()
    db.add(
        Membership(
            user_id=user.id,
            organization_id=org.id,
            role=Role.SURGEON.value,
            is_active=is_active,
        )
    )
    db.commit()
    return user


@pytest.fixture
def test_org(db) -> Organization:
    org = Organization(name="Test Clinic")
    db.add(org)
    db.commit()
    return org


@pytest.fixture
def test_user(db, test_org) -> User:
    return _create_user(db, test_org, email="surgeon@test.com")


# =============================================================================
# Clinical Fixtures
# =============================================================================

def _create_placement(
    db: Session,
    org: Organization,
    *,
    operation_date: date = date(2025, 1, 15),
    site_fdi: str = "36",
    isq_pose: float | None = None,
    isq_2m: float | None = None,
    isq_3m: float | None = None,
    isq_6m: float | None = None,
    status: ImplantStatus = ImplantStatus.IN_FOLLOWUP,
    patient_status: PatientStatus = PatientStatus.ACTIVE,
) -> SurgeryImplant:
    patient = Patient(
        organization_id=org.id, first_name="Jane", last_name="Doe", status=patient_status.value
    )
    db.add(patient)
    db.flush()
    operation = Operation(
        organization_id=org.id, patient_id=patient.id, operation_date=operation_date
    )
    implant = Implant(organization_id=org.id, brand="Straumann", reference="BLT 4.1")
    db.add_all([operation, implant])
    db.flush()
    placement = SurgeryImplant(
        organization_id=org.id,
        operation_id=operation.id,
        implant_id=implant.id,
        site_fdi=site_fdi,
        status=status.value,
        isq_pose=isq_pose,
        isq_2m=isq_2m,
        isq_3m=isq_3m,
        isq_6m=isq_6m,
    )
    db.add(placement)
    db.commit()
    return placement


def _create_appointment(
    db: Session,
    placement: SurgeryImplant,
    *,
    date_start: datetime,
    status: AppointmentStatus = AppointmentStatus.COMPLETED,
    isq: float | None = None,
    link_operation: bool = True,
    link_placement: bool = True,
) -> Appointment:
    operation = placement.operation
    appointment = Appointment(
        organization_id=placement.organization_id,
        patient_id=operation.patient_id,
        operation_id=operation.id if link_operation else None,
        surgery_implant_id=placement.id if link_placement else None,
        status=status.value,
        title="Follow-up",
        date_start=date_start,
        isq=isq,
    )
    db.add(appointment)
    db.commit()
    return appointment


@pytest.fixture
def make_user(db):
    def factory(org, email=None, is_active=True):
        return _create_user(db, org, email=email, is_active=is_active)

    return factory


@pytest.fixture
def make_placement(db):
    def factory(org, **kwargs):
        return _create_placement(db, org, **kwargs)

    return factory


@pytest.fixture
def make_appointment(db):
    def factory(placement, **kwargs):
        return _create_appointment(db, placement, **kwargs)

    return factory


# =============================================================================
# Email
# =============================================================================

class FakeEmailSender:
    key = "fake"

    def __init__(self, result: EmailResult | None = None, fail_for: set[str] | None = None):
        self.result = result or EmailResult(success=True, message_id="msg_test")
        self.fail_for = fail_for or set()
        self.sent: list[SimpleNamespace] = []

    async def send_email(self, to_email, template, data) -> EmailResult:
        if to_email in self.fail_for:
            raise RuntimeError(f"boom for {to_email}")
        self.sent.append(SimpleNamespace(to_email=to_email, template=template, data=data))
        return self.result


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def failing_email_sender() -> FakeEmailSender:
    return FakeEmailSender(result=EmailResult(success=False, error="Resend API error: 503"))


@pytest.fixture
def make_email_sender():
    return FakeEmailSender
