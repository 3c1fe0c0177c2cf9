from datetime import date
import os

import pytest

from camphq.collaborators import CsvReportGenerator
from camphq.errors import InvalidTransition, NotFound
from camphq.extensions import db
from camphq.models import AttendanceRecord, AttendanceStatus, CampDayStatus, CheckOutMethod
from camphq.services import attendance, camp_days


def test_get_or_create_camp_day_is_idempotent(camp):
    first = camp_days.get_or_create_camp_day(camp.id, date(2026, 7, 8))
    again = camp_days.get_or_create_camp_day(camp.id, "2026-07-08")

    assert first.id == again.id
    assert first.day_number == 3
    assert first.status == CampDayStatus.not_started


def test_camp_day_outside_the_camp_is_not_found(camp):
    with pytest.raises(NotFound):
        camp_days.get_or_create_camp_day(camp.id, date(2026, 7, 11))


def test_start_day_builds_the_roster(camp_day, enroll, users):
    enroll(3)

    started, roster = camp_days.start_day(camp_day.id, actor=users["director"].id)

    assert started.status == CampDayStatus.in_progress
    assert started.started_by == users["director"].id
    assert len(roster.succeeded) == 3

    with pytest.raises(InvalidTransition):
        camp_days.start_day(camp_day.id)


def test_end_day_sweeps_remaining_athletes(camp_day, enroll, frozen_clock):
    enrolled = enroll(3)
    camp_days.start_day(camp_day.id)
    attendance.check_in(camp_day.id, enrolled[0][0].id)
    attendance.check_in(camp_day.id, enrolled[1][0].id)
    attendance.check_out(camp_day.id, enrolled[1][0].id, pickup_person={"name": "Aunt May"})
    frozen_clock.at(17, 30)

    outcome = camp_days.end_day(camp_day.id, recap={"word_of_the_day": "grit", "unknown": "x"})

    assert outcome["camp_day"].status == CampDayStatus.finished
    assert outcome["camp_day"].recap == {"word_of_the_day": "grit"}
    assert [item["athlete_id"] for item in outcome["checkouts"].succeeded] == [enrolled[0][0].id]
    assert [item["athlete_id"] for item in outcome["absences"].succeeded] == [enrolled[2][0].id]

    swept = attendance.get_record(camp_day.id, enrolled[0][0].id)
    assert swept.status == AttendanceStatus.checked_out
    assert swept.check_out_method == CheckOutMethod.day_end_sweep
    picked_up = attendance.get_record(camp_day.id, enrolled[1][0].id)
    assert picked_up.check_out_method == CheckOutMethod.typed_name
    assert attendance.get_record(camp_day.id, enrolled[2][0].id).status == AttendanceStatus.absent


def test_end_day_without_auto_checkout_refuses_while_athletes_on_site(camp_day, enroll):
    (athlete, _), = enroll(1)
    camp_days.start_day(camp_day.id)
    attendance.check_in(camp_day.id, athlete.id)

    with pytest.raises(InvalidTransition) as exc:
        camp_days.end_day(camp_day.id, auto_checkout=False)

    assert exc.value.details["on_site"] == 1
    db.session.refresh(camp_day)
    assert camp_day.status == CampDayStatus.in_progress
    assert attendance.get_record(camp_day.id, athlete.id).status == AttendanceStatus.checked_in


def test_end_day_requires_force_before_start(camp_day, enroll):
    enroll(1)

    with pytest.raises(InvalidTransition):
        camp_days.end_day(camp_day.id)

    outcome = camp_days.end_day(camp_day.id, force=True)
    assert outcome["camp_day"].status == CampDayStatus.finished


def test_end_day_on_locked_camp_is_rejected(camp, camp_day):
    camp_days.start_day(camp_day.id)
    camp.is_locked = True
    db.session.commit()

    with pytest.raises(InvalidTransition):
        camp_days.end_day(camp_day.id)


def test_cancelled_day_cannot_be_ended(camp_day):
    camp_days.cancel_day(camp_day.id)

    with pytest.raises(InvalidTransition):
        camp_days.end_day(camp_day.id, force=True)


def test_last_day_sends_session_recap(last_camp_day, enroll, notifier, reports):
    enroll(2)
    camp_days.start_day(last_camp_day.id)

    outcome = camp_days.end_day(last_camp_day.id, send_notifications=True, generate_report=True)

    assert notifier.templates().count("daily_recap") == 2
    assert notifier.templates().count("session_recap") == 2
    assert outcome["report"] == f"reports/day{last_camp_day.id}.csv"
    assert reports.days == [(last_camp_day.id, 2)]


def test_first_day_sends_only_daily_recap(camp_day, enroll, notifier):
    enroll(1)
    camp_days.start_day(camp_day.id)

    camp_days.end_day(camp_day.id, send_notifications=True)

    assert notifier.templates() == ["daily_recap"]


def test_notes_and_summary(camp_day, enroll):
    enroll(2)
    camp_days.update_notes(camp_day.id, "Bring sunscreen")

    summary = camp_days.get_summary(camp_day.id)

    assert summary["notes"] == "Bring sunscreen"
    assert summary["total_days"] == 5
    assert summary["stats"]["registered"] == 0


def test_csv_day_report(app, camp_day, enroll):
    enrolled = enroll(2)
    camp_days.start_day(camp_day.id)
    attendance.check_in(camp_day.id, enrolled[0][0].id)
    records = AttendanceRecord.query.filter_by(camp_day_id=camp_day.id).all()

    path = CsvReportGenerator().day_report(camp_day, records)

    assert os.path.exists(path)
    with open(path) as fh:
        lines = fh.read().splitlines()
    assert lines[0].startswith("athlete_id,athlete_name,status")
    assert len(lines) == 3
