"""
Registration store and capacity oracle.

``Camp.slots_held`` is the single source of truth for "slots remaining". It is
only ever changed here, through conditional UPDATEs evaluated by the database,
so two concurrent callers can never both take the last slot.
"""
from flask import current_app
from sqlalchemy import update, select
from camphq.extensions import db
from camphq.errors import NotFound, InvalidTransition, CapacityUnavailable
from camphq.models import (
    Camp, Athlete, Registration, RegistrationStatus, PaymentStatus,
)
from utils import clock
from utils.audit import track

ACTIVE_STATUSES = (
    RegistrationStatus.confirmed,
    RegistrationStatus.waitlisted,
    RegistrationStatus.offered,
    RegistrationStatus.accepted,
)


def get_camp(camp_id):
    camp = db.session.get(Camp, camp_id)
    if not camp:
        raise NotFound("Camp not found", camp_id=camp_id)
    return camp


def get_athlete(athlete_id):
    athlete = db.session.get(Athlete, athlete_id)
    if not athlete or athlete.deleted:
        raise NotFound("Athlete not found", athlete_id=athlete_id)
    return athlete


def get_registration(registration_id):
    registration = db.session.get(Registration, registration_id)
    if not registration:
        raise NotFound("Registration not found", registration_id=registration_id)
    return registration


def _expire_counter(camp_id):
    camp = db.session.get(Camp, camp_id)
    if camp is not None:
        db.session.expire(camp, ["slots_held"])


def reserve_slot(camp_id):
    """Atomically take one slot. Returns False when the camp is full."""
    result = db.session.execute(
        update(Camp)
        .where(Camp.id == camp_id, Camp.slots_held < Camp.capacity)
        .values(slots_held=Camp.slots_held + 1)
        .execution_options(synchronize_session=False)
    )
    _expire_counter(camp_id)
    return result.rowcount == 1


def release_slot(camp_id):
    result = db.session.execute(
        update(Camp)
        .where(Camp.id == camp_id, Camp.slots_held > 0)
        .values(slots_held=Camp.slots_held - 1)
        .execution_options(synchronize_session=False)
    )
    _expire_counter(camp_id)
    if result.rowcount != 1:
        current_app.logger.warning("Slot release on camp %s found no held slot", camp_id)
    return result.rowcount == 1


def confirmed_count(camp_id):
    return Registration.query.filter_by(camp_id=camp_id, status=RegistrationStatus.confirmed).count()


def available_slots(camp_id):
    row = db.session.execute(
        select(Camp.capacity, Camp.slots_held).where(Camp.id == camp_id)
    ).first()
    if row is None:
        raise NotFound("Camp not found", camp_id=camp_id)
    return max(0, row.capacity - row.slots_held)


def capacity_summary(camp_id):
    camp = get_camp(camp_id)
    counts = dict(
        db.session.query(Registration.status, db.func.count(Registration.id))
        .filter(Registration.camp_id == camp_id)
        .group_by(Registration.status)
        .all()
    )
    return {
        "camp_id": camp.id,
        "capacity": camp.capacity,
        "slots_held": camp.slots_held,
        "available": max(0, camp.capacity - camp.slots_held),
        "confirmed": counts.get(RegistrationStatus.confirmed, 0),
        "offered": counts.get(RegistrationStatus.offered, 0),
        "accepted": counts.get(RegistrationStatus.accepted, 0),
        "waitlisted": counts.get(RegistrationStatus.waitlisted, 0),
    }


def find_active_registration(camp_id, athlete_id):
    return Registration.query.filter(
        Registration.camp_id == camp_id,
        Registration.athlete_id == athlete_id,
        Registration.status.in_(ACTIVE_STATUSES),
    ).first()


def has_waitlist(camp_id):
    return db.session.query(
        Registration.query.filter_by(camp_id=camp_id, status=RegistrationStatus.waitlisted).exists()
    ).scalar()


def find_confirmed_registration(camp_id, athlete_id):
    return Registration.query.filter_by(
        camp_id=camp_id, athlete_id=athlete_id, status=RegistrationStatus.confirmed
    ).first()


def create_registration(camp_id, athlete_id, total_price_cents=0, special_considerations=None, actor=None):
    """Creates a paid, capacity-consuming registration."""
    camp = get_camp(camp_id)
    get_athlete(athlete_id)

    existing = find_active_registration(camp_id, athlete_id)
    if existing:
        raise InvalidTransition(
            f"Athlete already has a {existing.status.value} registration for this camp",
            registration_id=existing.id,
        )

    if has_waitlist(camp.id):
        raise CapacityUnavailable("Camp has a waitlist; join the waitlist instead", camp_id=camp.id)
    if not reserve_slot(camp.id):
        raise CapacityUnavailable("Camp is full; join the waitlist instead", camp_id=camp.id)

    now = clock.utcnow()
    registration = Registration(
        camp_id=camp.id,
        athlete_id=athlete_id,
        status=RegistrationStatus.confirmed,
        payment_status=PaymentStatus.paid,
        total_price_cents=total_price_cents,
        special_considerations=special_considerations,
        confirmed_at=now,
    )
    db.session.add(registration)
    db.session.flush()
    track("REGISTRATION_CONFIRMED", actor, f"registration={registration.id} camp={camp.id} athlete={athlete_id}")
    db.session.commit()
    return registration


def cancel_registration(registration_id, actor=None, reason=None):
    """
    Cancels a confirmed registration and frees its slot. The slot is offered
    to the head of the waitlist right away so no walk-in can jump the queue.
    """
    registration = get_registration(registration_id)
    now = clock.utcnow()

    result = db.session.execute(
        update(Registration)
        .where(Registration.id == registration.id, Registration.status == RegistrationStatus.confirmed)
        .values(
            status=RegistrationStatus.cancelled,
            cancelled_at=now,
            removal_reason=reason,
            payment_status=PaymentStatus.refunded,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.refresh(registration)
        raise InvalidTransition(
            f"Registration is {registration.status.value}, not confirmed",
            registration_id=registration.id,
        )

    release_slot(registration.camp_id)
    track("REGISTRATION_CANCELLED", actor, f"registration={registration.id} camp={registration.camp_id}")
    db.session.commit()
    db.session.refresh(registration)
    current_app.logger.info("Registration %s cancelled; camp %s has a free slot", registration.id, registration.camp_id)

    if current_app.config.get("WAITLIST_PROMOTE_ON_CANCEL", True):
        from camphq.services.waitlist import fill_open_slots
        fill_open_slots(registration.camp_id, actor=actor)

    return registration
