from camphq.extensions import db
from .base import TimestampMixin, RegistrationStatus, PaymentStatus


class Registration(db.Model, TimestampMixin):
    """A camp enrollment. Waitlist entries are registrations in a waitlist status
    and turn into confirmed registrations in place."""
    __tablename__ = 'registrations'

    id = db.Column(db.Integer, primary_key=True)
    camp_id = db.Column(db.Integer, db.ForeignKey('camps.id'), nullable=False, index=True)
    athlete_id = db.Column(db.Integer, db.ForeignKey('athletes.id'), nullable=False, index=True)
    status = db.Column(db.Enum(RegistrationStatus), nullable=False, index=True)
    payment_status = db.Column(db.Enum(PaymentStatus), nullable=False, default=PaymentStatus.pending)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)
    special_considerations = db.Column(db.Text, nullable=True)

    # FIFO key for the waitlist; ties fall back to id (insertion order)
    queued_at = db.Column(db.DateTime, nullable=True, index=True)
    offer_token = db.Column(db.String(64), unique=True, nullable=True)
    offer_issued_at = db.Column(db.DateTime, nullable=True)
    offer_expires_at = db.Column(db.DateTime, nullable=True, index=True)
    accepted_at = db.Column(db.DateTime, nullable=True)
    checkout_reference = db.Column(db.String(120), nullable=True)
    checkout_failed_at = db.Column(db.DateTime, nullable=True)

    confirmed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    removed_at = db.Column(db.DateTime, nullable=True)
    removed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    removal_reason = db.Column(db.String(255), nullable=True)

    camp = db.relationship('Camp', back_populates='registrations')
    athlete = db.relationship('Athlete', back_populates='registrations')

    def to_dict(self):
        return {
            "id": self.id,
            "camp_id": self.camp_id,
            "athlete_id": self.athlete_id,
            "athlete_name": self.athlete.full_name if self.athlete else None,
            "status": self.status.value,
            "payment_status": self.payment_status.value if self.payment_status else None,
            "total_price_cents": self.total_price_cents,
            "queued_at": self.queued_at.isoformat() if self.queued_at else None,
            "offer_issued_at": self.offer_issued_at.isoformat() if self.offer_issued_at else None,
            "offer_expires_at": self.offer_expires_at.isoformat() if self.offer_expires_at else None,
            "checkout_failed_at": self.checkout_failed_at.isoformat() if self.checkout_failed_at else None,
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "removal_reason": self.removal_reason,
        }
