"""Camp day lifecycle: not_started -> in_progress -> finished (or cancelled)."""
from datetime import date as date_cls
from flask import current_app
from sqlalchemy import update
from sqlalchemy.dialects import sqlite, postgresql
from camphq.extensions import db
from camphq.errors import CampOpsError, InvalidTransition, NotFound
from camphq.collaborators import get_collaborator, notify
from camphq.models import (
    AttendanceRecord, AttendanceStatus, CampDay, CampDayStatus, CheckOutMethod,
    Registration, RegistrationStatus,
)
from camphq.services import attendance
from camphq.services.registrations import get_camp
from camphq.services.results import BatchResult
from utils import clock
from utils.audit import track

get_camp_day = attendance.get_camp_day

RECAP_FIELDS = ("word_of_the_day", "primary_sport", "secondary_sport", "guest_speaker", "highlights")


def get_or_create_camp_day(camp_id, day):
    """Materializes the camp's day for ``day``, numbering it from the start date."""
    camp = get_camp(camp_id)
    if isinstance(day, str):
        day = date_cls.fromisoformat(day)
    if not camp.runs_on(day):
        raise NotFound(f"Camp is not running on {day.isoformat()}", camp_id=camp.id)

    existing = CampDay.query.filter_by(camp_id=camp.id, date=day).first()
    if existing:
        return existing

    day_number = (day - camp.start_date).days + 1
    now = clock.utcnow()
    row = {
        "camp_id": camp.id,
        "date": day,
        "day_number": day_number,
        "title": f"Day {day_number}",
        "status": CampDayStatus.not_started,
        "deleted": False,
        "created_at": now,
        "updated_at": now,
    }
    dialect = db.session.get_bind().dialect.name
    if dialect in ("sqlite", "postgresql"):
        insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
        db.session.execute(insert(CampDay).values(row).on_conflict_do_nothing(index_elements=["camp_id", "date"]))
    else:
        db.session.add(CampDay(**row))
    db.session.commit()
    return CampDay.query.filter_by(camp_id=camp.id, date=day).one()


def get_summary(camp_day_id):
    camp_day = get_camp_day(camp_day_id)
    data = camp_day.to_dict()
    data["camp"] = camp_day.camp.to_dict()
    data["total_days"] = camp_day.camp.total_days
    data["stats"] = attendance.get_stats(camp_day.id)
    return data


def update_notes(camp_day_id, notes, actor=None):
    camp_day = get_camp_day(camp_day_id)
    camp_day.notes = notes
    track("CAMP_DAY_NOTES_UPDATED", actor, f"day={camp_day.id}")
    db.session.commit()
    return camp_day


def _set_status(camp_day_id, allowed_from, values):
    result = db.session.execute(
        update(CampDay)
        .where(CampDay.id == camp_day_id, CampDay.status.in_(allowed_from))
        .values(updated_at=clock.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def start_day(camp_day_id, actor=None):
    """Opens the day and initializes its roster. Returns (camp_day, roster BatchResult)."""
    camp_day = get_camp_day(camp_day_id)
    if camp_day.camp.is_locked:
        raise InvalidTransition("Camp is locked and cannot be modified", camp_id=camp_day.camp_id)

    values = {"status": CampDayStatus.in_progress, "started_at": clock.utcnow(), "started_by": actor}
    if not _set_status(camp_day.id, (CampDayStatus.not_started,), values):
        db.session.refresh(camp_day)
        raise InvalidTransition(f"Day is {camp_day.status.value}, not not_started", camp_day_id=camp_day.id)

    track("CAMP_DAY_STARTED", actor, f"day={camp_day.id} camp={camp_day.camp_id}")
    roster = attendance.initialize_roster(camp_day.id, commit=False)
    db.session.commit()
    db.session.refresh(camp_day)
    current_app.logger.info("Camp day %s started with %s new roster entries", camp_day.id, len(roster))
    return camp_day, roster


def cancel_day(camp_day_id, actor=None, reason=None):
    camp_day = get_camp_day(camp_day_id)
    values = {"status": CampDayStatus.cancelled, "notes": reason or camp_day.notes}
    if not _set_status(camp_day.id, (CampDayStatus.not_started,), values):
        db.session.refresh(camp_day)
        raise InvalidTransition(f"Only a day that has not started can be cancelled (day is {camp_day.status.value})")

    track("CAMP_DAY_CANCELLED", actor, f"day={camp_day.id} reason={reason or 'N/A'}")
    db.session.commit()
    db.session.refresh(camp_day)
    return camp_day


def _clean_recap(recap):
    if not recap:
        return None
    cleaned = {k: v for k, v in recap.items() if k in RECAP_FIELDS and v not in (None, "")}
    return cleaned or None


def end_day(camp_day_id, actor=None, auto_checkout=None, generate_report=False,
            send_notifications=False, recap=None, notes=None, force=False):
    """
    Closes the day. Still-checked-in athletes are released by the day-end
    sweep when ``auto_checkout`` is on (the normal path, pickup is staggered);
    remaining not_arrived athletes are marked absent. Each athlete is handled
    independently and reported in the returned BatchResults.

    Rejected outside in_progress unless ``force`` is given.
    """
    camp_day = get_camp_day(camp_day_id)
    camp = camp_day.camp
    if auto_checkout is None:
        auto_checkout = current_app.config.get("END_DAY_AUTO_CHECKOUT", True)

    if camp.is_locked:
        raise InvalidTransition("Camp is locked and cannot be modified", camp_id=camp.id)
    if camp_day.status == CampDayStatus.cancelled:
        raise InvalidTransition("Day was cancelled", camp_day_id=camp_day.id)
    if camp_day.status != CampDayStatus.in_progress and not force:
        raise InvalidTransition(
            f"Day is {camp_day.status.value}; ending it requires force", camp_day_id=camp_day.id
        )

    on_site = AttendanceRecord.query.filter_by(camp_day_id=camp_day.id, status=AttendanceStatus.checked_in).all()
    if on_site and not auto_checkout and not force:
        count = len(on_site)
        raise InvalidTransition(
            f"{count} camper{'s are' if count != 1 else ' is'} still on-site. Enable auto-checkout or force end.",
            on_site=count,
        )

    observed_status = camp_day.status
    checkouts = BatchResult("day_end_checkout")
    if auto_checkout:
        for record in on_site:
            try:
                attendance.check_out(
                    camp_day.id, record.athlete_id,
                    verification=CheckOutMethod.day_end_sweep,
                    actor=actor, notes="Checked out by end-of-day sweep", commit=False,
                )
            except CampOpsError as e:
                checkouts.fail(e, athlete_id=record.athlete_id)
            else:
                checkouts.ok(athlete_id=record.athlete_id)

    absences = BatchResult("day_end_absent")
    not_arrived = AttendanceRecord.query.filter_by(camp_day_id=camp_day.id, status=AttendanceStatus.not_arrived).all()
    for record in not_arrived:
        try:
            attendance.mark_absent(camp_day.id, record.athlete_id, actor=actor, notes="Not arrived by end of day", commit=False)
        except CampOpsError as e:
            absences.fail(e, athlete_id=record.athlete_id)
        else:
            absences.ok(athlete_id=record.athlete_id)

    values = {"status": CampDayStatus.finished, "completed_at": clock.utcnow(), "completed_by": actor}
    if notes:
        values["notes"] = notes
    cleaned_recap = _clean_recap(recap)
    if cleaned_recap:
        values["recap"] = cleaned_recap
    if not _set_status(camp_day.id, (observed_status,), values):
        db.session.rollback()
        raise InvalidTransition("Day was changed by someone else; reload and retry", camp_day_id=camp_day.id)

    track(
        "CAMP_DAY_ENDED", actor,
        f"day={camp_day.id} checked_out={len(checkouts)} absent={len(absences)} forced={force}",
    )
    db.session.commit()
    db.session.refresh(camp_day)

    report = _generate_report(camp_day) if generate_report else None
    if send_notifications:
        _send_recaps(camp_day)

    return {
        "camp_day": camp_day,
        "checkouts": checkouts,
        "absences": absences,
        "report": report,
    }


def _generate_report(camp_day):
    records = AttendanceRecord.query.filter_by(camp_day_id=camp_day.id).all()
    try:
        return get_collaborator("reports").day_report(camp_day, records)
    except Exception as e:
        current_app.logger.error("Report for camp day %s failed: %s", camp_day.id, e)
        return None


def _send_recaps(camp_day):
    registrations = Registration.query.filter_by(
        camp_id=camp_day.camp_id, status=RegistrationStatus.confirmed
    ).all()
    sent = 0
    for registration in registrations:
        athlete = registration.athlete
        context = {
            "camp_name": camp_day.camp.name,
            "camper_first_name": athlete.first_name,
            "day_number": camp_day.day_number,
            "recap": camp_day.recap or {},
        }
        if notify("daily_recap", athlete.parent_email, **context):
            sent += 1
        if camp_day.is_last_day:
            notify("session_recap", athlete.parent_email, **context)
    current_app.logger.info("Sent %s daily recap(s) for camp day %s", sent, camp_day.id)
    return sent
