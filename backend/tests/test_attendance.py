import pytest

from camphq.errors import InvalidRequest, InvalidTransition, NotRegistered
from camphq.extensions import db
from camphq.models import (
    AttendanceRecord, AttendanceStatus, CampDayStatus, CheckInMethod, CheckOutMethod,
)
from camphq.services import attendance, camp_days
from camphq.services.attendance import PickupPerson


def test_initialize_roster_is_idempotent(camp_day, enroll):
    enroll(3)

    first = attendance.initialize_roster(camp_day.id)
    second = attendance.initialize_roster(camp_day.id)

    assert len(first.succeeded) == 3
    assert len(second.succeeded) == 0
    assert len(second.skipped) == 3
    assert AttendanceRecord.query.filter_by(camp_day_id=camp_day.id).count() == 3


def test_roster_is_created_lazily(camp_day, enroll):
    enroll(2)

    roster = attendance.get_roster(camp_day.id)

    assert len(roster) == 2
    assert all(r.status == AttendanceStatus.not_arrived for r in roster)


def test_check_in(camp_day, enroll, frozen_clock, users):
    (athlete, registration), = enroll(1)
    frozen_clock.at(9, 0)

    record = attendance.check_in(camp_day.id, athlete.id, method=CheckInMethod.kiosk, actor=users["coach"].id)

    assert record.status == AttendanceStatus.checked_in
    assert record.check_in_at == frozen_clock.now
    assert record.check_in_method == CheckInMethod.kiosk
    assert record.check_in_by == users["coach"].id
    assert record.registration_id == registration.id


def test_check_in_requires_confirmed_registration(camp_day, make_athlete):
    with pytest.raises(NotRegistered):
        attendance.check_in(camp_day.id, make_athlete().id)


def test_double_check_in_is_rejected(camp_day, enroll):
    (athlete, _), = enroll(1)
    attendance.check_in(camp_day.id, athlete.id)

    with pytest.raises(InvalidTransition):
        attendance.check_in(camp_day.id, athlete.id)


def test_typed_checkout_requires_a_name(camp_day, enroll):
    (athlete, _), = enroll(1)
    attendance.check_in(camp_day.id, athlete.id)

    with pytest.raises(InvalidRequest):
        attendance.check_out(camp_day.id, athlete.id, pickup_person=PickupPerson("  "))

    assert attendance.get_record(camp_day.id, athlete.id).status == AttendanceStatus.checked_in


def test_checkout_before_checkin_is_rejected(camp_day, enroll):
    (athlete, _), = enroll(1)
    attendance.initialize_roster(camp_day.id)

    with pytest.raises(InvalidTransition):
        attendance.check_out(camp_day.id, athlete.id, pickup_person=PickupPerson("Jane Doe"))

    assert attendance.get_record(camp_day.id, athlete.id).status == AttendanceStatus.not_arrived


def test_checkout_has_a_single_writer(camp_day, enroll, frozen_clock):
    (athlete, _), = enroll(1)
    frozen_clock.at(9, 0)
    attendance.check_in(camp_day.id, athlete.id)
    frozen_clock.at(15, 0)

    record = attendance.check_out(
        camp_day.id, athlete.id, pickup_person={"name": "Jane Doe", "relationship": "mother"}
    )

    assert record.status == AttendanceStatus.checked_out
    assert record.check_out_method == CheckOutMethod.typed_name
    assert record.pickup_person_name == "Jane Doe"
    assert record.check_out_at == frozen_clock.now

    frozen_clock.at(15, 1)
    with pytest.raises(InvalidTransition):
        attendance.check_out(camp_day.id, athlete.id, pickup_person=PickupPerson("John Doe"))

    db.session.refresh(record)
    assert record.pickup_person_name == "Jane Doe"
    assert record.check_out_at.hour == 15 and record.check_out_at.minute == 0


def test_absent_athlete_can_still_be_checked_in(camp_day, enroll):
    (athlete, _), = enroll(1)

    record = attendance.mark_absent(camp_day.id, athlete.id, notes="called in sick")
    assert record.status == AttendanceStatus.absent
    assert "[Absent] called in sick" in record.notes

    record = attendance.check_in(camp_day.id, athlete.id)
    assert record.status == AttendanceStatus.checked_in


def test_mark_absent_after_check_in_is_rejected(camp_day, enroll):
    (athlete, _), = enroll(1)
    attendance.check_in(camp_day.id, athlete.id)

    with pytest.raises(InvalidTransition):
        attendance.mark_absent(camp_day.id, athlete.id)


def test_no_check_in_on_a_closed_day(camp_day, enroll):
    (athlete, _), = enroll(1)
    camp_days.cancel_day(camp_day.id, reason="lightning")
    assert camp_day.status == CampDayStatus.cancelled

    with pytest.raises(InvalidTransition):
        attendance.check_in(camp_day.id, athlete.id)


def test_no_absences_on_a_closed_day(camp_day, enroll):
    (athlete, _), = enroll(1)
    camp_days.cancel_day(camp_day.id, reason="heat advisory")

    with pytest.raises(InvalidTransition):
        attendance.mark_absent(camp_day.id, athlete.id)
    assert attendance.get_record(camp_day.id, athlete.id) is None


def test_roster_reports_only_rows_it_created(camp_day, enroll, monkeypatch):
    enroll(2)
    insert_ignore = attendance._insert_ignore

    def racing_insert(rows):
        insert_ignore(rows[:1])  # a concurrent writer lands first
        return insert_ignore(rows)

    monkeypatch.setattr(attendance, "_insert_ignore", racing_insert)
    result = attendance.initialize_roster(camp_day.id)

    assert len(result.succeeded) == 1
    assert len(result.skipped) == 1
    assert AttendanceRecord.query.filter_by(camp_day_id=camp_day.id).count() == 2


def test_stats(camp_day, enroll):
    enrolled = enroll(4)
    attendance.initialize_roster(camp_day.id)
    attendance.check_in(camp_day.id, enrolled[0][0].id)
    attendance.check_in(camp_day.id, enrolled[1][0].id)
    attendance.check_out(camp_day.id, enrolled[1][0].id, pickup_person=PickupPerson("Grandpa"))
    attendance.mark_absent(camp_day.id, enrolled[2][0].id)

    stats = attendance.get_stats(camp_day.id)

    assert stats == {
        "not_arrived": 1,
        "checked_in": 1,
        "checked_out": 1,
        "absent": 1,
        "registered": 4,
        "on_site": 1,
    }
