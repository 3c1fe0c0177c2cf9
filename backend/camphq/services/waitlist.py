"""
Waitlist promotion engine.

A waitlist entry is a Registration that moves through

    waitlisted -> offered -> accepted -> confirmed
    offered -> expired -> (waitlisted again when requeued)
    {waitlisted, offered, accepted, expired} -> removed

An offer reserves one unit of ``Camp.slots_held`` when it is issued, so the
number of live offers can never exceed the free capacity, and two sweeps
racing for the last slot cannot both win. The slot is kept through
acceptance and checkout and given back on expiry, decline or removal.
"""
import secrets
from datetime import timedelta
from flask import current_app
from sqlalchemy import update
from camphq.extensions import db
from camphq.errors import (
    AlreadyRedeemed, CapacityUnavailable, Expired, InvalidTransition, NotFound, PaymentError,
)
from camphq.collaborators import get_collaborator, notify
from camphq.models import PaymentStatus, Registration, RegistrationStatus, SLOT_HOLDING_STATUSES
from camphq.services.registrations import (
    available_slots, find_active_registration, get_athlete, get_camp, get_registration, has_waitlist,
    release_slot, reserve_slot,
)
from camphq.services.results import BatchResult
from utils import clock
from utils.audit import track

QUEUE_ORDER = (Registration.queued_at, Registration.id)

REMOVABLE_STATUSES = (
    RegistrationStatus.waitlisted,
    RegistrationStatus.offered,
    RegistrationStatus.accepted,
    RegistrationStatus.expired,
)

VIEW_STATUSES = REMOVABLE_STATUSES


def _offer_url(token):
    return f"{current_app.config['APP_URL']}/waitlist/offer/{token}"


def _update_status(registration_id, allowed_from, values):
    result = db.session.execute(
        update(Registration)
        .where(Registration.id == registration_id, Registration.status.in_(allowed_from))
        .values(updated_at=clock.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _stale(registration, action):
    db.session.rollback()
    db.session.refresh(registration)
    raise InvalidTransition(
        f"Cannot {action}: entry is {registration.status.value}",
        registration_id=registration.id,
        status=registration.status.value,
    )


def _by_offer_token(token):
    registration = Registration.query.filter_by(offer_token=token).first() if token else None
    if not registration:
        raise NotFound("Offer not found")
    return registration


def _next_in_line(camp_id, exclude=()):
    query = Registration.query.filter(
        Registration.camp_id == camp_id,
        Registration.status == RegistrationStatus.waitlisted,
    )
    if exclude:
        query = query.filter(Registration.id.notin_(exclude))
    return query.order_by(*QUEUE_ORDER).first()


# Queue

def join_waitlist(camp_id, athlete_id, total_price_cents=0, special_considerations=None, actor=None):
    """
    Adds the athlete at the back of the queue. Allowed when the camp is full
    or others are already waiting. Returns (entry, position).
    """
    camp = get_camp(camp_id)
    athlete = get_athlete(athlete_id)

    if available_slots(camp.id) > 0 and not has_waitlist(camp.id):
        raise InvalidTransition("Camp still has spots available; register normally", camp_id=camp.id)

    existing = find_active_registration(camp.id, athlete.id)
    if existing:
        if existing.status == RegistrationStatus.waitlisted:
            raise InvalidTransition("This athlete is already on the waitlist for this camp", registration_id=existing.id)
        raise InvalidTransition(
            f"Athlete already has a {existing.status.value} registration for this camp",
            registration_id=existing.id,
        )

    registration = Registration(
        camp_id=camp.id,
        athlete_id=athlete.id,
        status=RegistrationStatus.waitlisted,
        payment_status=PaymentStatus.pending,
        total_price_cents=total_price_cents,
        special_considerations=special_considerations,
        queued_at=clock.utcnow(),
    )
    db.session.add(registration)
    db.session.flush()
    track("WAITLIST_JOINED", actor, f"registration={registration.id} camp={camp.id} athlete={athlete.id}")
    db.session.commit()

    position = get_position(registration.id)["position"]
    notify(
        "waitlist_joined", athlete.parent_email,
        camp_name=camp.name, camper_first_name=athlete.first_name, waitlist_position=position,
    )
    return registration, position


def get_waitlist(camp_id):
    """Open entries of the camp in queue order; waitlisted ones carry their 1-based position."""
    get_camp(camp_id)
    entries = (
        Registration.query.filter(Registration.camp_id == camp_id, Registration.status.in_(VIEW_STATUSES))
        .order_by(*QUEUE_ORDER)
        .all()
    )
    now = clock.utcnow()
    position = 0
    rows = []
    for entry in entries:
        data = entry.to_dict()
        if entry.status == RegistrationStatus.waitlisted:
            position += 1
            data["position"] = position
        else:
            data["position"] = None
        data["offer_live"] = (
            entry.status == RegistrationStatus.offered
            and entry.offer_expires_at is not None
            and entry.offer_expires_at > now
        )
        rows.append(data)
    return rows


def get_position(registration_id):
    registration = get_registration(registration_id)
    waitlisted = Registration.query.filter_by(camp_id=registration.camp_id, status=RegistrationStatus.waitlisted)
    total = waitlisted.count()

    position = None
    if registration.status == RegistrationStatus.waitlisted:
        ahead = waitlisted.filter(
            db.or_(
                Registration.queued_at < registration.queued_at,
                db.and_(Registration.queued_at == registration.queued_at, Registration.id < registration.id),
            )
        ).count()
        position = ahead + 1

    return {
        "registration_id": registration.id,
        "status": registration.status.value,
        "position": position,
        "total_waitlisted": total,
    }


# Offers

def send_offer(registration_id, actor=None):
    """
    Offers the entry a slot. A waitlisted entry first reserves a slot and gets
    ``CapacityUnavailable`` when none is free, which is an ordinary outcome.
    An accepted entry whose checkout failed already holds its slot and is
    simply re-offered.
    """
    registration = get_registration(registration_id)
    now = clock.utcnow()
    token = secrets.token_urlsafe(32)
    values = {
        "status": RegistrationStatus.offered,
        "offer_token": token,
        "offer_issued_at": now,
        "offer_expires_at": now + timedelta(hours=current_app.config.get("WAITLIST_OFFER_HOURS", 48)),
        "accepted_at": None,
        "checkout_reference": None,
        "checkout_failed_at": None,
        "payment_status": PaymentStatus.pending,
    }

    if registration.status == RegistrationStatus.accepted and registration.checkout_failed_at is not None:
        result = db.session.execute(
            update(Registration)
            .where(
                Registration.id == registration.id,
                Registration.status == RegistrationStatus.accepted,
                Registration.checkout_failed_at.isnot(None),
            )
            .values(updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            _stale(registration, "re-offer")
    elif registration.status == RegistrationStatus.waitlisted:
        if not reserve_slot(registration.camp_id):
            current_app.logger.info("No free slot on camp %s for waitlist entry %s", registration.camp_id, registration.id)
            raise CapacityUnavailable("No free slot to offer", camp_id=registration.camp_id)
        if not _update_status(registration.id, (RegistrationStatus.waitlisted,), values):
            # rollback also gives back the slot reserved above
            _stale(registration, "send offer")
    else:
        raise InvalidTransition(
            f"Cannot send offer: entry is {registration.status.value}",
            registration_id=registration.id,
            status=registration.status.value,
        )

    track("WAITLIST_OFFER_SENT", actor, f"registration={registration.id} camp={registration.camp_id}")
    db.session.commit()
    db.session.refresh(registration)

    athlete = registration.athlete
    notify(
        "waitlist_offer", athlete.parent_email,
        camp_name=registration.camp.name,
        camper_first_name=athlete.first_name,
        offer_url=_offer_url(token),
        expires_at=registration.offer_expires_at.isoformat(),
    )
    current_app.logger.info("Offer sent to waitlist entry %s (camp %s)", registration.id, registration.camp_id)
    return registration


def get_offer_details(token):
    registration = _by_offer_token(token)
    camp = registration.camp
    now = clock.utcnow()
    return {
        "registration_id": registration.id,
        "status": registration.status.value,
        "camp": camp.to_dict(),
        "camper_first_name": registration.athlete.first_name,
        "total_price_cents": registration.total_price_cents,
        "offer_expires_at": registration.offer_expires_at.isoformat() if registration.offer_expires_at else None,
        "is_expired": registration.status == RegistrationStatus.expired or (
            registration.status == RegistrationStatus.offered and registration.offer_expires_at <= now
        ),
    }


def _check_offer_open(registration, now):
    if registration.status in (RegistrationStatus.accepted, RegistrationStatus.confirmed):
        raise AlreadyRedeemed("This offer has already been accepted", registration_id=registration.id)
    if registration.status == RegistrationStatus.expired:
        raise Expired("This offer has expired", registration_id=registration.id)
    if registration.status != RegistrationStatus.offered:
        raise InvalidTransition(
            f"Offer is no longer open: entry is {registration.status.value}",
            registration_id=registration.id,
        )
    if registration.offer_expires_at <= now:
        raise Expired("This offer has expired", registration_id=registration.id)


def accept_offer(token, success_url=None, cancel_url=None):
    """
    Accepts a live offer and opens the payment checkout. Returns
    (registration, checkout). If the gateway fails the entry stays accepted
    with ``checkout_failed_at`` set and a ``PaymentError`` is raised.
    """
    registration = _by_offer_token(token)
    now = clock.utcnow()
    _check_offer_open(registration, now)

    result = db.session.execute(
        update(Registration)
        .where(
            Registration.id == registration.id,
            Registration.status == RegistrationStatus.offered,
            Registration.offer_expires_at > now,
        )
        .values(status=RegistrationStatus.accepted, accepted_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        db.session.refresh(registration)
        _check_offer_open(registration, now)
        raise InvalidTransition("Offer changed while accepting; reload and retry", registration_id=registration.id)

    track("WAITLIST_OFFER_ACCEPTED", None, f"registration={registration.id} camp={registration.camp_id}")
    db.session.commit()
    db.session.refresh(registration)

    app_url = current_app.config["APP_URL"]
    success_url = success_url or f"{app_url}/waitlist/offer/{token}/success"
    cancel_url = cancel_url or f"{app_url}/waitlist/offer/{token}"
    try:
        checkout = get_collaborator("payments").create_checkout(registration, success_url, cancel_url)
    except Exception as e:
        current_app.logger.error("Checkout for waitlist entry %s failed: %s", registration.id, e)
        mark_checkout_failed(registration.id, reason=str(e))
        raise PaymentError("Could not start checkout; staff will follow up", registration_id=registration.id)

    registration.checkout_reference = checkout.get("reference")
    db.session.commit()
    return registration, checkout


def mark_checkout_failed(registration_id, actor=None, reason=None):
    """Flags an abandoned or failed checkout. The entry keeps its slot and waits for staff."""
    registration = get_registration(registration_id)
    now = clock.utcnow()
    values = {"checkout_failed_at": now, "payment_status": PaymentStatus.failed}
    if not _update_status(registration.id, (RegistrationStatus.accepted,), values):
        _stale(registration, "mark checkout failed")

    track(
        "WAITLIST_CHECKOUT_FAILED", actor,
        f"registration={registration.id} reason={reason or 'N/A'}", level="WARNING",
    )
    db.session.commit()
    db.session.refresh(registration)
    return registration


def complete_registration(registration_id, actor=None, checkout_reference=None):
    """Payment confirmed: the accepted entry becomes a confirmed registration in place."""
    registration = get_registration(registration_id)
    if registration.status == RegistrationStatus.confirmed:
        return registration

    now = clock.utcnow()
    values = {
        "status": RegistrationStatus.confirmed,
        "payment_status": PaymentStatus.paid,
        "confirmed_at": now,
        "checkout_failed_at": None,
    }
    if checkout_reference:
        values["checkout_reference"] = checkout_reference
    if not _update_status(registration.id, (RegistrationStatus.accepted,), values):
        db.session.rollback()
        db.session.refresh(registration)
        if registration.status == RegistrationStatus.confirmed:
            return registration
        _stale(registration, "confirm payment")

    track("WAITLIST_REGISTRATION_CONFIRMED", actor, f"registration={registration.id} camp={registration.camp_id}")
    db.session.commit()
    db.session.refresh(registration)
    current_app.logger.info("Waitlist entry %s confirmed on camp %s", registration.id, registration.camp_id)
    return registration


def decline_offer(token):
    """The family turns the offer down: terminal, and the slot goes to the next in line."""
    registration = _by_offer_token(token)
    now = clock.utcnow()
    values = {"status": RegistrationStatus.removed, "removed_at": now, "removal_reason": "declined"}
    if not _update_status(registration.id, (RegistrationStatus.offered,), values):
        _stale(registration, "decline offer")

    release_slot(registration.camp_id)
    track("WAITLIST_OFFER_DECLINED", None, f"registration={registration.id} camp={registration.camp_id}")
    db.session.commit()
    db.session.refresh(registration)

    fill_open_slots(registration.camp_id)
    return registration


# Staff actions

def remove(registration_id, actor=None, reason=None):
    """Withdraws the entry. Terminal; does not promote anyone."""
    registration = get_registration(registration_id)
    observed = registration.status
    if observed not in REMOVABLE_STATUSES:
        raise InvalidTransition(
            f"Cannot remove: entry is {observed.value}",
            registration_id=registration.id,
            status=observed.value,
        )

    now = clock.utcnow()
    values = {
        "status": RegistrationStatus.removed,
        "removed_at": now,
        "removed_by": actor,
        "removal_reason": reason,
    }
    if not _update_status(registration.id, (observed,), values):
        _stale(registration, "remove")

    if observed in SLOT_HOLDING_STATUSES:
        release_slot(registration.camp_id)
    track("WAITLIST_ENTRY_REMOVED", actor, f"registration={registration.id} from={observed.value} reason={reason or 'N/A'}")
    db.session.commit()
    db.session.refresh(registration)
    return registration


def requeue(registration_id, actor=None):
    """Puts an expired entry back at the end of the queue."""
    registration = get_registration(registration_id)
    values = {
        "status": RegistrationStatus.waitlisted,
        "queued_at": clock.utcnow(),
        "offer_token": None,
        "offer_issued_at": None,
        "offer_expires_at": None,
    }
    if not _update_status(registration.id, (RegistrationStatus.expired,), values):
        _stale(registration, "requeue")

    track("WAITLIST_ENTRY_REQUEUED", actor, f"registration={registration.id} camp={registration.camp_id}")
    db.session.commit()
    db.session.refresh(registration)
    return registration


# Sweeps

def fill_open_slots(camp_id, actor=None, result=None):
    """Offers free slots to the oldest waitlisted entries until the camp is full."""
    result = result if result is not None else BatchResult("waitlist_offers")
    tried = []
    while True:
        entry = _next_in_line(camp_id, exclude=tried)
        if entry is None:
            break
        tried.append(entry.id)
        try:
            send_offer(entry.id, actor=actor)
        except CapacityUnavailable:
            break
        except InvalidTransition as e:
            result.fail(e, registration_id=entry.id, camp_id=camp_id)
        else:
            result.ok(registration_id=entry.id, camp_id=camp_id)
    return result


def expire_stale_offers(actor=None):
    """
    Periodic sweep. Expires offers past their window, gives their slots back,
    then offers every free slot to the queue. Entries another worker already
    moved are skipped, so overlapping runs never double-allocate.
    """
    now = clock.utcnow()
    expired = BatchResult("expire_offers")
    offers = BatchResult("waitlist_offers")

    stale = (
        Registration.query.filter(
            Registration.status == RegistrationStatus.offered,
            Registration.offer_expires_at <= now,
        )
        .order_by(Registration.offer_expires_at, Registration.id)
        .all()
    )
    for registration in stale:
        changed = db.session.execute(
            update(Registration)
            .where(
                Registration.id == registration.id,
                Registration.status == RegistrationStatus.offered,
                Registration.offer_expires_at <= now,
            )
            .values(status=RegistrationStatus.expired, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if changed.rowcount != 1:
            db.session.rollback()
            expired.skip("already handled", registration_id=registration.id)
            continue

        release_slot(registration.camp_id)
        track("WAITLIST_OFFER_EXPIRED", actor, f"registration={registration.id} camp={registration.camp_id}")
        db.session.commit()
        expired.ok(registration_id=registration.id, camp_id=registration.camp_id)

        athlete = registration.athlete
        notify(
            "waitlist_offer_expired", athlete.parent_email,
            camp_name=registration.camp.name, camper_first_name=athlete.first_name,
        )

    camp_ids = [
        row[0] for row in db.session.query(Registration.camp_id)
        .filter(Registration.status == RegistrationStatus.waitlisted)
        .distinct()
        .all()
    ]
    for camp_id in camp_ids:
        fill_open_slots(camp_id, actor=actor, result=offers)

    if current_app.config.get("WAITLIST_REQUEUE_EXPIRED"):
        for item in expired.succeeded:
            try:
                requeue(item["registration_id"], actor=actor)
            except InvalidTransition as e:
                current_app.logger.info("Requeue of %s skipped: %s", item["registration_id"], e.message)

    if expired.succeeded or offers.succeeded:
        current_app.logger.info(
            "Waitlist sweep: %s offer(s) expired, %s new offer(s) sent", len(expired), len(offers)
        )
    return {"expired": expired, "offers": offers}
