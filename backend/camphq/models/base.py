import enum
from camphq.extensions import db
from utils import clock


def _now():
    return clock.utcnow()


class SoftDeleteMixin:
    """Retired rows stay for the audit trail; lookups treat them as missing."""
    deleted = db.Column(db.Boolean, default=False, nullable=False)
    deleted_at = db.Column(db.DateTime)


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=_now, onupdate=_now, nullable=False)


class CampDayStatus(enum.Enum):
    not_started = "not_started"
    in_progress = "in_progress"
    finished = "finished"
    cancelled = "cancelled"


class AttendanceStatus(enum.Enum):
    not_arrived = "not_arrived"
    checked_in = "checked_in"
    checked_out = "checked_out"
    absent = "absent"


class CheckInMethod(enum.Enum):
    manual = "manual"
    kiosk = "kiosk"
    token_redemption = "token_redemption"


class CheckOutMethod(enum.Enum):
    typed_name = "typed_name"
    token_redemption = "token_redemption"
    manual_override = "manual_override"
    day_end_sweep = "day_end_sweep"


class PickupTokenStatus(enum.Enum):
    active = "active"
    redeemed = "redeemed"
    expired = "expired"
    revoked = "revoked"


class RegistrationStatus(enum.Enum):
    confirmed = "confirmed"
    cancelled = "cancelled"
    waitlisted = "waitlisted"
    offered = "offered"
    accepted = "accepted"
    expired = "expired"
    removed = "removed"


class PaymentStatus(enum.Enum):
    pending = "pending"
    paid = "paid"
    failed = "failed"
    refunded = "refunded"


# Registrations that hold one unit of Camp.slots_held
SLOT_HOLDING_STATUSES = (
    RegistrationStatus.confirmed,
    RegistrationStatus.offered,
    RegistrationStatus.accepted,
)
