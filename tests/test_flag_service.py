from datetime import date, datetime

import pytest

from implant_notify.db.enums import (
    AppointmentStatus,
    FlagEntityType,
    FlagLevel,
    FlagType,
    ImplantStatus,
    PatientStatus,
)
from implant_notify.db.models import Flag, Organization, Patient, SurgeryImplant
from implant_notify.services import flag_service

NOW = datetime(2026, 10, 18, 7, 0)


@pytest.fixture
def isq_placement(make_placement):
    """Placement on a patient out of follow-up, so only the ISQ rules apply."""

    def factory(org, **kwargs):
        kwargs.setdefault("status", ImplantStatus.SUCCESS)
        kwargs.setdefault("patient_status", PatientStatus.INACTIVE)
        return make_placement(org, **kwargs)

    return factory


def _flags(db, flag_type=None):
    query = db.query(Flag)
    if flag_type:
        query = query.filter(Flag.type == flag_type.value)
    return query.all()


def test_isq_exactly_at_threshold_is_not_low(db, test_org, isq_placement):
    isq_placement(test_org, isq_pose=55)

    summary = flag_service.run_detection(db, now=NOW)

    assert summary.created == 0
    assert _flags(db) == []


def test_isq_below_threshold_creates_critical_flag(db, test_org, isq_placement):
    placement = isq_placement(test_org, isq_pose=58, isq_2m=56, isq_3m=54.9)

    summary = flag_service.run_detection(db, now=NOW)

    assert summary.created == 1
    flag = _flags(db, FlagType.ISQ_LOW)[0]
    assert flag.level == FlagLevel.CRITICAL.value
    assert flag.entity_type == FlagEntityType.IMPLANT.value
    assert flag.entity_id == str(placement.id)
    assert "54.9" in flag.label
    assert flag.organization_id == test_org.id
    assert flag.created_at == NOW


def test_low_label_uses_minimum_value(db, test_org, isq_placement):
    isq_placement(test_org, isq_pose=50, isq_2m=52)

    flag_service.run_detection(db, now=NOW)

    assert "50" in _flags(db, FlagType.ISQ_LOW)[0].label


def test_drop_of_exactly_ten_is_declining(db, test_org, isq_placement):
    isq_placement(test_org, isq_pose=70, isq_2m=60)

    flag_service.run_detection(db, now=NOW)

    flag = _flags(db, FlagType.ISQ_DECLINING)[0]
    assert flag.level == FlagLevel.CRITICAL.value
    assert "pose 70 -> 2m 60" in flag.description


def test_drop_below_ten_is_not_declining(db, test_org, isq_placement):
    isq_placement(test_org, isq_pose=70, isq_2m=60.1)

    flag_service.run_detection(db, now=NOW)

    assert _flags(db, FlagType.ISQ_DECLINING) == []


def test_decline_compares_consecutive_measurements(db, test_org, isq_placement):
    # 70 -> 65 -> 56: 14 points overall but never 10 between two measurements
    isq_placement(test_org, isq_pose=70, isq_2m=65, isq_3m=56)

    flag_service.run_detection(db, now=NOW)

    assert _flags(db, FlagType.ISQ_DECLINING) == []


def test_missing_measurement_compares_with_last_recorded(db, test_org, isq_placement):
    isq_placement(test_org, isq_pose=75, isq_2m=None, isq_3m=64)

    flag_service.run_detection(db, now=NOW)

    assert len(_flags(db, FlagType.ISQ_DECLINING)) == 1


def test_decline_requires_pose_value(db, test_org, isq_placement):
    isq_placement(test_org, isq_pose=None, isq_2m=80, isq_3m=68)

    summary = flag_service.run_detection(db, now=NOW)

    assert summary.created == 0


def test_decline_handles_float_noise():
    placement = SurgeryImplant(isq_pose=70.3, isq_2m=60.3)

    decline = flag_service.find_isq_decline(placement, threshold=10)

    assert decline is not None
    assert decline.drop == 10


def test_rerun_creates_nothing_new(db, test_org, isq_placement):
    isq_placement(test_org, isq_pose=70, isq_2m=50)

    first = flag_service.run_detection(db, now=NOW)
    second = flag_service.run_detection(db, now=NOW)

    assert first.created == 2
    assert second.created == 0
    assert second.existing == 2
    assert len(_flags(db)) == 2


def test_resolved_flag_allows_new_detection(db, test_org, test_user, isq_placement):
    isq_placement(test_org, isq_pose=50)
    flag_service.run_detection(db, now=NOW)
    flag = _flags(db, FlagType.ISQ_LOW)[0]

    flag_service.resolve_flag(db, test_org.id, flag.id, test_user.id)
    summary = flag_service.run_detection(db, now=NOW)

    assert summary.created == 1
    assert len(flag_service.list_flags(db, test_org.id)) == 1
    assert len(flag_service.list_flags(db, test_org.id, include_resolved=True)) == 2


def test_resolve_flag_sets_once(db, test_org, test_user, make_user, isq_placement, monkeypatch):
    isq_placement(test_org, isq_pose=50)
    flag_service.run_detection(db, now=NOW)
    flag = _flags(db)[0]
    other = make_user(test_org)

    monkeypatch.setattr(flag_service, "local_now", lambda: datetime(2026, 10, 18, 9, 0))
    resolved = flag_service.resolve_flag(db, test_org.id, flag.id, test_user.id)
    monkeypatch.setattr(flag_service, "local_now", lambda: datetime(2026, 10, 18, 10, 0))
    again = flag_service.resolve_flag(db, test_org.id, flag.id, other.id)

    assert resolved.resolved_at == datetime(2026, 10, 18, 9, 0)
    assert again.resolved_at == datetime(2026, 10, 18, 9, 0)
    assert again.resolved_by == test_user.id


def test_resolve_flag_scoped_to_org(db, test_org, test_user, isq_placement):
    isq_placement(test_org, isq_pose=50)
    flag_service.run_detection(db, now=NOW)
    flag = _flags(db)[0]
    other_org = Organization(name="Other Clinic")
    db.add(other_org)
    db.commit()

    assert flag_service.resolve_flag(db, other_org.id, flag.id, test_user.id) is None


def test_list_flags_filters_by_entity(db, test_org, isq_placement):
    first = isq_placement(test_org, isq_pose=50)
    isq_placement(test_org, isq_pose=40)
    flag_service.run_detection(db, now=NOW)

    flags = flag_service.list_flags(
        db, test_org.id, entity_type=FlagEntityType.IMPLANT, entity_id=str(first.id)
    )

    assert len(flags) == 1


def test_org_failure_is_isolated(db, test_org, isq_placement, monkeypatch):
    broken_org = Organization(name="Broken Clinic")
    db.add(broken_org)
    db.commit()
    isq_placement(test_org, isq_pose=50)
    isq_placement(broken_org, isq_pose=50)

    original = flag_service.detect_low_isq

    def flaky_detect(db, org_id, now, summary):
        if org_id == broken_org.id:
            raise RuntimeError("query failed")
        return original(db, org_id, now, summary)

    monkeypatch.setattr(flag_service, "detect_low_isq", flaky_detect)

    summary = flag_service.run_detection(db, org_ids=[broken_org.id, test_org.id], now=NOW)

    assert summary.failed_orgs == [broken_org.id]
    assert summary.created == 1
    flags = _flags(db)
    assert [flag.organization_id for flag in flags] == [test_org.id]


def test_detection_limited_to_requested_orgs(db, test_org, isq_placement):
    other_org = Organization(name="Other Clinic")
    db.add(other_org)
    db.commit()
    isq_placement(test_org, isq_pose=50)
    isq_placement(other_org, isq_pose=50)

    summary = flag_service.run_detection(db, org_ids=[other_org.id], now=NOW)

    assert summary.created == 1
    assert _flags(db)[0].organization_id == other_org.id


@pytest.mark.parametrize(
    "values, expected",
    [
        ((80, 75, 70, 66), None),
        ((80, 70, None, None), ("pose", "2m")),
        ((80, 78, 77, 67), ("3m", "6m")),
    ],
)
def test_find_isq_decline_steps(values, expected):
    pose, two, three, six = values
    placement = SurgeryImplant(isq_pose=pose, isq_2m=two, isq_3m=three, isq_6m=six)

    decline = flag_service.find_isq_decline(placement, threshold=10)

    if expected is None:
        assert decline is None
    else:
        assert (decline.previous_label, decline.current_label) == expected


# =============================================================================
# Follow-up rules
# =============================================================================
# NOW - 90 days = 2026-07-20, NOW - 30 days = 2026-09-18, NOW - 180 days = 2026-04-21


@pytest.mark.parametrize(
    "operation_date, flagged",
    [
        (date(2026, 7, 19), True),
        (date(2026, 7, 20), False),
        (date(2026, 9, 1), False),
    ],
)
def test_no_recent_isq_needs_placement_older_than_window(
    db, test_org, make_placement, operation_date, flagged
):
    placement = make_placement(
        test_org, operation_date=operation_date, patient_status=PatientStatus.INACTIVE
    )

    flag_service.run_detection(db, now=NOW)

    flags = _flags(db, FlagType.NO_RECENT_ISQ)
    if flagged:
        assert [flag.entity_id for flag in flags] == [str(placement.id)]
        assert flags[0].level == FlagLevel.WARNING.value
        assert flags[0].entity_type == FlagEntityType.IMPLANT.value
        assert "90 days" in flags[0].description
    else:
        assert flags == []


@pytest.mark.parametrize(
    "visit_at, isq, flagged",
    [
        (datetime(2026, 7, 20, 7, 1), 68, False),
        (datetime(2026, 7, 20, 7, 0), 68, True),
        (datetime(2026, 10, 1, 9, 0), None, True),
    ],
)
def test_no_recent_isq_cleared_by_isq_visit_inside_window(
    db, test_org, make_placement, make_appointment, visit_at, isq, flagged
):
    placement = make_placement(test_org, patient_status=PatientStatus.INACTIVE)
    make_appointment(placement, date_start=visit_at, isq=isq)

    flag_service.run_detection(db, now=NOW)

    assert bool(_flags(db, FlagType.NO_RECENT_ISQ)) is flagged


def test_no_recent_isq_skips_placements_out_of_followup(db, test_org, isq_placement):
    isq_placement(test_org)

    flag_service.run_detection(db, now=NOW)

    assert _flags(db, FlagType.NO_RECENT_ISQ) == []


@pytest.mark.parametrize(
    "operation_date, flagged",
    [
        (date(2026, 9, 18), False),
        (date(2026, 9, 17), True),
        (date(2026, 7, 21), True),
        (date(2026, 7, 20), False),
    ],
)
def test_no_postop_followup_window(db, test_org, make_placement, operation_date, flagged):
    placement = make_placement(test_org, operation_date=operation_date)

    flag_service.run_detection(db, now=NOW)

    flags = _flags(db, FlagType.NO_POSTOP_FOLLOWUP)
    if flagged:
        assert len(flags) == 1
        assert flags[0].level == FlagLevel.WARNING.value
        assert flags[0].entity_type == FlagEntityType.OPERATION.value
        assert flags[0].entity_id == str(placement.operation_id)
        assert operation_date.isoformat() in flags[0].description
    else:
        assert flags == []


@pytest.mark.parametrize(
    "status, flagged",
    [
        (AppointmentStatus.COMPLETED, False),
        (AppointmentStatus.UPCOMING, True),
        (AppointmentStatus.CANCELLED, True),
    ],
)
def test_no_postop_followup_needs_completed_visit(
    db, test_org, make_placement, make_appointment, status, flagged
):
    placement = make_placement(test_org, operation_date=date(2026, 8, 20))
    make_appointment(placement, date_start=datetime(2026, 9, 3, 10, 0), status=status)

    flag_service.run_detection(db, now=NOW)

    assert bool(_flags(db, FlagType.NO_POSTOP_FOLLOWUP)) is flagged


def test_no_recent_appointment_flags_active_patient(db, test_org, make_placement):
    placement = make_placement(test_org)

    flag_service.run_detection(db, now=NOW)

    flags = _flags(db, FlagType.NO_RECENT_APPOINTMENT)
    assert len(flags) == 1
    assert flags[0].level == FlagLevel.WARNING.value
    assert flags[0].entity_type == FlagEntityType.PATIENT.value
    assert flags[0].entity_id == str(placement.operation.patient_id)
    assert "Jane Doe" in flags[0].description


@pytest.mark.parametrize(
    "visit_at, status, flagged",
    [
        (datetime(2026, 4, 21, 7, 1), AppointmentStatus.COMPLETED, False),
        (datetime(2026, 4, 21, 7, 0), AppointmentStatus.COMPLETED, True),
        (datetime(2026, 10, 1, 9, 0), AppointmentStatus.CANCELLED, True),
    ],
)
def test_no_recent_appointment_window(
    db, test_org, make_placement, make_appointment, visit_at, status, flagged
):
    placement = make_placement(test_org)
    # Any visit of the patient counts, linked to the placement or not
    make_appointment(
        placement,
        date_start=visit_at,
        status=status,
        link_operation=False,
        link_placement=False,
    )

    flag_service.run_detection(db, now=NOW)

    assert bool(_flags(db, FlagType.NO_RECENT_APPOINTMENT)) is flagged


def test_no_recent_appointment_ignores_inactive_and_implantless_patients(
    db, test_org, make_placement
):
    make_placement(test_org, patient_status=PatientStatus.INACTIVE)
    db.add(Patient(organization_id=test_org.id, first_name="No", last_name="Implant"))
    db.commit()

    flag_service.run_detection(db, now=NOW)

    assert _flags(db, FlagType.NO_RECENT_APPOINTMENT) == []


def test_followup_flags_are_not_auto_resolved(db, test_org, make_placement, make_appointment):
    placement = make_placement(test_org)
    first = flag_service.run_detection(db, now=NOW)

    make_appointment(placement, date_start=datetime(2026, 10, 10, 9, 0), isq=70)
    second = flag_service.run_detection(db, now=NOW)

    assert first.created == 2
    assert second.created == 0
    assert second.existing == 0
    flags = flag_service.list_flags(db, test_org.id)
    assert {flag.type for flag in flags} == {"NO_RECENT_ISQ", "NO_RECENT_APPOINTMENT"}
    assert all(flag.resolved_at is None for flag in flags)
