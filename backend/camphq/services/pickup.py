"""
Pickup authorization: single-use, expiring bearer codes that release one
checked-in athlete. A code is looked up only by the SHA-256 digest of its
secret, so the submitted plaintext is never compared against stored secrets.
"""
import secrets
from datetime import datetime, time, timedelta
from flask import current_app
from sqlalchemy import update
from camphq.extensions import db
from camphq.errors import (
    AlreadyRedeemed, Expired, InvalidRequest, InvalidTransition, NotFound, Revoked,
)
from camphq.models import (
    AttendanceRecord, AttendanceStatus, CampDayStatus, CheckOutMethod, PickupToken,
    PickupTokenStatus, digest_secret,
)
from camphq.services import attendance
from camphq.services.attendance import PickupPerson
from camphq.services.results import BatchResult
from utils import clock
from utils.audit import track, log_event

TOKEN_BYTES = 16


def _new_secret():
    return secrets.token_hex(TOKEN_BYTES)


def token_expiry(camp_day, now):
    """Fixed lifetime from issuance, capped at the end of the camp day."""
    ttl = timedelta(hours=current_app.config.get("PICKUP_TOKEN_TTL_HOURS", 10))
    end_of_day = datetime.combine(camp_day.date, time.max)
    return min(now + ttl, end_of_day)


def _check_day_open(camp_day, now):
    if camp_day.status in (CampDayStatus.finished, CampDayStatus.cancelled):
        raise InvalidTransition(f"Camp day is {camp_day.status.value}", camp_day_id=camp_day.id)
    expires_at = token_expiry(camp_day, now)
    if expires_at <= now:
        raise InvalidTransition("Camp day is already over; tokens would be born expired", camp_day_id=camp_day.id)
    return expires_at


def _issue(camp_day, record, actor, now, expires_at, reason):
    revoked = PickupToken.revoke_active(camp_day.id, record.athlete_id, reason, now)
    secret = _new_secret()
    token = PickupToken(
        camp_day_id=camp_day.id,
        athlete_id=record.athlete_id,
        attendance_id=record.id,
        secret=secret,
        secret_hash=digest_secret(secret),
        status=PickupTokenStatus.active,
        issued_at=now,
        issued_by=actor,
        expires_at=expires_at,
    )
    db.session.add(token)
    db.session.flush()
    return token, revoked


def generate_tokens(camp_day_id, actor=None):
    """
    Issues one fresh token per athlete currently checked in on the day. Any
    earlier live token of the same athlete is revoked, so only the newest
    code works.

    The attendance rows are locked first; a concurrent generation for the
    same day waits and then revokes what this one issued.
    """
    camp_day = attendance.get_camp_day(camp_day_id)
    now = clock.utcnow()
    expires_at = _check_day_open(camp_day, now)

    result = BatchResult("generate_pickup_tokens")
    records = (
        AttendanceRecord.query.filter_by(camp_day_id=camp_day.id, status=AttendanceStatus.checked_in)
        .order_by(AttendanceRecord.id)
        .with_for_update()
        .all()
    )

    for record in records:
        token, revoked = _issue(camp_day, record, actor, now, expires_at, "superseded by regeneration")
        result.ok(athlete_id=record.athlete_id, token_id=token.id, revoked=revoked)

    track("PICKUP_TOKENS_GENERATED", actor, f"day={camp_day.id} count={len(result)}")
    db.session.commit()
    current_app.logger.info("Generated %s pickup token(s) for camp day %s", len(result), camp_day.id)
    return result


def generate_token_for_athlete(camp_day_id, athlete_id, actor=None):
    """
    Returns the athlete's live code, issuing one for that athlete alone when
    there is none (late arrivals after the day's batch). Other families'
    codes are untouched. Returns (token, created).
    """
    camp_day = attendance.get_camp_day(camp_day_id)
    now = clock.utcnow()
    expires_at = _check_day_open(camp_day, now)

    record = (
        AttendanceRecord.query.filter_by(camp_day_id=camp_day.id, athlete_id=athlete_id)
        .with_for_update()
        .first()
    )
    if not record or record.status != AttendanceStatus.checked_in:
        db.session.rollback()
        raise InvalidTransition("Athlete is not checked in", athlete_id=athlete_id)

    live = _live_token(camp_day.id, athlete_id, now)
    if live:
        db.session.commit()
        return live, False

    token, _ = _issue(camp_day, record, actor, now, expires_at, "expired before reissue")
    track("PICKUP_TOKEN_GENERATED", actor, f"day={camp_day.id} athlete={athlete_id} token={token.id}")
    db.session.commit()
    return token, True


def _lookup(secret):
    if not secret or not isinstance(secret, str):
        raise NotFound("Invalid pickup code")
    digest = digest_secret(secret.strip())
    token = PickupToken.query.filter_by(secret_hash=digest).first()
    if not token:
        raise NotFound("Invalid pickup code")
    return token


def _raise_for_state(token, now):
    if token.status == PickupTokenStatus.redeemed:
        raise AlreadyRedeemed(
            "This pickup code has already been used",
            redeemed_at=token.redeemed_at.isoformat() if token.redeemed_at else None,
        )
    if token.status == PickupTokenStatus.revoked:
        raise Revoked("This pickup code was replaced by a newer one")
    if token.status == PickupTokenStatus.expired or token.expires_at <= now:
        raise Expired("This pickup code has expired")


def validate_token(secret):
    """Checks a code without using it."""
    token = _lookup(secret)
    _raise_for_state(token, clock.utcnow())
    return token


def redeem_token(secret, actor=None, pickup_person=None):
    """
    Uses a code: marks it redeemed and checks the athlete out with method
    token_redemption in one transaction. The code itself is the capability.
    """
    token = _lookup(secret)
    now = clock.utcnow()
    _raise_for_state(token, now)

    result = db.session.execute(
        update(PickupToken)
        .where(
            PickupToken.id == token.id,
            PickupToken.status == PickupTokenStatus.active,
            PickupToken.expires_at > now,
        )
        .values(status=PickupTokenStatus.redeemed, redeemed_at=now, redeemed_by=actor)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        db.session.refresh(token)
        _raise_for_state(token, now)
        raise AlreadyRedeemed("This pickup code has already been used")

    if pickup_person is None:
        pickup_person = PickupPerson("Pickup code holder")
    try:
        record = attendance.check_out(
            token.camp_day_id, token.athlete_id,
            pickup_person=pickup_person,
            verification=CheckOutMethod.token_redemption,
            actor=actor,
            notes=f"Pickup token {token.id}",
            commit=False,
        )
    except InvalidTransition:
        db.session.rollback()
        log_event(
            "PICKUP_TOKEN_REJECTED", user_id=actor,
            description=f"token={token.id} athlete={token.athlete_id}: athlete not checked in", level="WARNING",
        )
        raise

    track("PICKUP_TOKEN_REDEEMED", actor, f"token={token.id} day={token.camp_day_id} athlete={token.athlete_id}")
    db.session.commit()
    db.session.refresh(token)
    return token, record


def manual_checkout(camp_day_id, athlete_id, actor=None, reason=None, pickup_person=None):
    """Staff release without a code, for lost or undeliverable tokens."""
    if not reason or not reason.strip():
        raise InvalidRequest("A reason is required for a manual checkout")

    record = attendance.check_out(
        camp_day_id, athlete_id,
        pickup_person=pickup_person,
        verification=CheckOutMethod.manual_override,
        actor=actor,
        notes=reason.strip(),
    )
    log_event(
        "MANUAL_CHECKOUT_OVERRIDE", user_id=actor,
        description=f"day={camp_day_id} athlete={athlete_id} reason={reason.strip()}", level="WARNING",
    )
    return record


def expire_stale_tokens():
    """Sweep: marks live tokens past their expiry as expired. Safe to repeat."""
    now = clock.utcnow()
    result = db.session.execute(
        update(PickupToken)
        .where(PickupToken.status == PickupTokenStatus.active, PickupToken.expires_at <= now)
        .values(status=PickupTokenStatus.expired)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    if result.rowcount:
        current_app.logger.info("Expired %s pickup token(s)", result.rowcount)
    return result.rowcount


def _live_token(camp_day_id, athlete_id, now):
    return (
        PickupToken.query.filter(
            PickupToken.camp_day_id == camp_day_id,
            PickupToken.athlete_id == athlete_id,
            PickupToken.status == PickupTokenStatus.active,
            PickupToken.expires_at > now,
        )
        .order_by(PickupToken.issued_at.desc(), PickupToken.id.desc())
        .first()
    )


def get_active_token(camp_day_id, athlete_id):
    token = _live_token(camp_day_id, athlete_id, clock.utcnow())
    if not token:
        raise NotFound("No active pickup code for this athlete", athlete_id=athlete_id)
    return token


def list_tokens(camp_day_id):
    attendance.get_camp_day(camp_day_id)
    return (
        PickupToken.query.filter_by(camp_day_id=camp_day_id)
        .order_by(PickupToken.status, PickupToken.athlete_id, PickupToken.issued_at.desc())
        .all()
    )
