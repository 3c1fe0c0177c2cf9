"""
Per-athlete, per-camp-day presence state machine.

    not_arrived -> checked_in -> checked_out
    not_arrived -> absent -> checked_in   (staff re-admits a marked no-show)

Every transition is a conditional UPDATE on the current status, so the first
writer wins and a concurrent second attempt sees ``InvalidTransition``.
``check_out`` is the only path to checked_out; pickup token redemption and
manual overrides both write through it.
"""
from collections import namedtuple
from flask import current_app
from sqlalchemy import update, select
from sqlalchemy.exc import IntegrityError
from camphq.extensions import db
from camphq.errors import NotFound, InvalidTransition, NotRegistered, InvalidRequest
from camphq.models import (
    Athlete, AttendanceRecord, AttendanceStatus, CampDay, CampDayStatus, CheckInMethod,
    CheckOutMethod, PickupToken, Registration, RegistrationStatus,
)
from camphq.services.results import BatchResult
from camphq.services.registrations import find_confirmed_registration
from utils import clock
from utils.audit import track

PickupPerson = namedtuple("PickupPerson", ["name", "relationship", "identifier"], defaults=(None, None))

CLOSED_DAY_STATUSES = (CampDayStatus.finished, CampDayStatus.cancelled)


def get_camp_day(camp_day_id):
    camp_day = db.session.get(CampDay, camp_day_id)
    if not camp_day or camp_day.deleted:
        raise NotFound("Camp day not found", camp_day_id=camp_day_id)
    return camp_day


def get_record(camp_day_id, athlete_id):
    return AttendanceRecord.query.filter_by(camp_day_id=camp_day_id, athlete_id=athlete_id).first()


def _insert_ignore(rows):
    """
    INSERT ... ON CONFLICT DO NOTHING on (camp_day_id, athlete_id). Returns
    the athlete ids of the rows this call created.
    """
    if not rows:
        return set()
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return _insert_each(rows)

    stmt = (
        insert(AttendanceRecord).values(rows)
        .on_conflict_do_nothing(index_elements=["camp_day_id", "athlete_id"])
        .returning(AttendanceRecord.athlete_id)
    )
    return set(db.session.execute(stmt).scalars())


def _insert_each(rows):
    created = set()
    for row in rows:
        try:
            with db.session.begin_nested():
                db.session.execute(AttendanceRecord.__table__.insert().values(**row))
            created.add(row["athlete_id"])
        except IntegrityError:
            pass  # another writer created it first
    return created


def _default_row(camp_day_id, registration, now):
    return {
        "camp_day_id": camp_day_id,
        "athlete_id": registration.athlete_id,
        "registration_id": registration.id,
        "status": AttendanceStatus.not_arrived,
        "created_at": now,
        "updated_at": now,
    }


def ensure_record(camp_day, registration):
    """Returns the athlete's record for the day, creating the default row once."""
    _insert_ignore([_default_row(camp_day.id, registration, clock.utcnow())])
    return get_record(camp_day.id, registration.athlete_id)


def initialize_roster(camp_day_id, commit=True):
    """
    Ensures exactly one not_arrived record per confirmed athlete on the day's
    camp. Existing records are never reset; re-running is a no-op.
    """
    camp_day = get_camp_day(camp_day_id)
    result = BatchResult("initialize_roster")

    registrations = Registration.query.filter_by(
        camp_id=camp_day.camp_id, status=RegistrationStatus.confirmed
    ).all()
    existing = set(db.session.execute(
        select(AttendanceRecord.athlete_id).where(AttendanceRecord.camp_day_id == camp_day.id)
    ).scalars())

    now = clock.utcnow()
    missing = [r for r in registrations if r.athlete_id not in existing]
    created = _insert_ignore([_default_row(camp_day.id, r, now) for r in missing])

    for registration in registrations:
        if registration.athlete_id in created:
            result.ok(athlete_id=registration.athlete_id, registration_id=registration.id)
        else:
            result.skip("exists", athlete_id=registration.athlete_id)

    if commit:
        db.session.commit()
    current_app.logger.info("Roster for camp day %s: %s new records", camp_day.id, len(created))
    return result


def get_roster(camp_day_id):
    camp_day = get_camp_day(camp_day_id)
    if not AttendanceRecord.query.filter_by(camp_day_id=camp_day.id).first():
        initialize_roster(camp_day.id)

    return (
        AttendanceRecord.query.join(Athlete, AttendanceRecord.athlete_id == Athlete.id)
        .filter(AttendanceRecord.camp_day_id == camp_day.id)
        .order_by(AttendanceRecord.status, Athlete.last_name, Athlete.first_name)
        .all()
    )


def get_stats(camp_day_id):
    get_camp_day(camp_day_id)
    counts = dict(
        db.session.query(AttendanceRecord.status, db.func.count(AttendanceRecord.id))
        .filter(AttendanceRecord.camp_day_id == camp_day_id)
        .group_by(AttendanceRecord.status)
        .all()
    )
    stats = {status.value: counts.get(status, 0) for status in AttendanceStatus}
    stats["registered"] = sum(counts.values())
    stats["on_site"] = stats[AttendanceStatus.checked_in.value]
    return stats


def _transition(record_id, allowed_from, values):
    result = db.session.execute(
        update(AttendanceRecord)
        .where(AttendanceRecord.id == record_id, AttendanceRecord.status.in_(allowed_from))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _reject(record, action):
    db.session.refresh(record)
    raise InvalidTransition(
        f"Cannot {action}: athlete is {record.status.value.replace('_', ' ')}",
        athlete_id=record.athlete_id,
        status=record.status.value,
    )


def _registered_record(camp_day, athlete_id):
    registration = find_confirmed_registration(camp_day.camp_id, athlete_id)
    if not registration:
        raise NotRegistered(athlete_id=athlete_id, camp_id=camp_day.camp_id)
    return ensure_record(camp_day, registration)


def check_in(camp_day_id, athlete_id, method=CheckInMethod.manual, actor=None, notes=None):
    camp_day = get_camp_day(camp_day_id)
    if camp_day.status in CLOSED_DAY_STATUSES:
        raise InvalidTransition(f"Camp day is {camp_day.status.value}", camp_day_id=camp_day.id)

    method = CheckInMethod(method)
    record = _registered_record(camp_day, athlete_id)
    now = clock.utcnow()

    values = {
        "status": AttendanceStatus.checked_in,
        "check_in_at": now,
        "check_in_method": method,
        "check_in_by": actor,
        "updated_at": now,
    }
    if notes:
        values["notes"] = f"{record.notes or ''}\n[Check-in] {notes}".strip()

    if not _transition(record.id, (AttendanceStatus.not_arrived, AttendanceStatus.absent), values):
        _reject(record, "check in")

    track("ATHLETE_CHECKED_IN", actor, f"day={camp_day.id} athlete={athlete_id} method={method.value}")
    db.session.commit()
    db.session.refresh(record)
    return record


def mark_absent(camp_day_id, athlete_id, actor=None, notes=None, commit=True):
    camp_day = get_camp_day(camp_day_id)
    if camp_day.status in CLOSED_DAY_STATUSES:
        raise InvalidTransition(f"Camp day is {camp_day.status.value}", camp_day_id=camp_day.id)
    record = _registered_record(camp_day, athlete_id)
    now = clock.utcnow()

    values = {
        "status": AttendanceStatus.absent,
        "marked_absent_at": now,
        "marked_absent_by": actor,
        "updated_at": now,
    }
    if notes:
        values["notes"] = f"{record.notes or ''}\n[Absent] {notes}".strip()

    if not _transition(record.id, (AttendanceStatus.not_arrived,), values):
        _reject(record, "mark absent")

    track("ATHLETE_MARKED_ABSENT", actor, f"day={camp_day.id} athlete={athlete_id}")
    if commit:
        db.session.commit()
    db.session.refresh(record)
    return record


def check_out(camp_day_id, athlete_id, pickup_person=None, verification=CheckOutMethod.typed_name,
              actor=None, notes=None, commit=True):
    """
    Releases a checked-in athlete to an adult. Single writer: only the first
    release is recorded; any later attempt raises InvalidTransition.

    With ``commit=False`` the caller owns the transaction (token redemption
    marks its token redeemed in the same unit of work).
    """
    verification = CheckOutMethod(verification)
    if pickup_person is None:
        pickup_person = PickupPerson(None)
    elif isinstance(pickup_person, dict):
        pickup_person = PickupPerson(
            pickup_person.get("name"), pickup_person.get("relationship"), pickup_person.get("identifier")
        )

    if verification == CheckOutMethod.typed_name and not (pickup_person.name or "").strip():
        raise InvalidRequest("Pickup person's typed name is required")

    get_camp_day(camp_day_id)
    record = get_record(camp_day_id, athlete_id)
    if not record:
        raise InvalidTransition("Cannot check out: athlete was never checked in", athlete_id=athlete_id)

    now = clock.utcnow()
    values = {
        "status": AttendanceStatus.checked_out,
        "check_out_at": now,
        "check_out_method": verification,
        "check_out_by": actor,
        "check_out_notes": notes,
        "pickup_person_name": (pickup_person.name or "").strip() or None,
        "pickup_relationship": pickup_person.relationship,
        "pickup_identifier": pickup_person.identifier,
        "updated_at": now,
    }
    if not _transition(record.id, (AttendanceStatus.checked_in,), values):
        _reject(record, "check out")

    if verification != CheckOutMethod.token_redemption:
        revoked = PickupToken.revoke_active(camp_day_id, athlete_id, f"released via {verification.value}", now)
        if revoked:
            current_app.logger.info("Revoked %s outstanding pickup token(s) for athlete %s", revoked, athlete_id)

    track(
        "ATHLETE_CHECKED_OUT", actor,
        f"day={camp_day_id} athlete={athlete_id} method={verification.value} pickup={values['pickup_person_name'] or 'N/A'}",
    )
    if commit:
        db.session.commit()
    db.session.refresh(record)
    return record
