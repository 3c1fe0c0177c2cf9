import hashlib
from camphq.extensions import db
from .base import PickupTokenStatus, _now


def digest_secret(secret):
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


class PickupToken(db.Model):
    __tablename__ = 'pickup_tokens'

    id = db.Column(db.Integer, primary_key=True)
    camp_day_id = db.Column(db.Integer, db.ForeignKey('camp_days.id'), nullable=False, index=True)
    athlete_id = db.Column(db.Integer, db.ForeignKey('athletes.id'), nullable=False, index=True)
    attendance_id = db.Column(db.Integer, db.ForeignKey('attendance_records.id'), nullable=False)
    secret = db.Column(db.String(64), nullable=False)
    secret_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)
    status = db.Column(db.Enum(PickupTokenStatus), nullable=False, default=PickupTokenStatus.active)

    issued_at = db.Column(db.DateTime, nullable=False, default=_now)
    issued_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    redeemed_at = db.Column(db.DateTime, nullable=True)
    redeemed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    revoked_at = db.Column(db.DateTime, nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    athlete = db.relationship('Athlete')
    camp_day = db.relationship('CampDay')

    # at most one live code per athlete and day
    __table_args__ = (
        db.Index(
            'uq_pickup_tokens_live', 'camp_day_id', 'athlete_id', unique=True,
            postgresql_where=db.text("status = 'active'"),
            sqlite_where=db.text("status = 'active'"),
        ),
    )

    @classmethod
    def revoke_active(cls, camp_day_id, athlete_id, reason, now):
        """Revoke every live token of one athlete on one day; returns the count."""
        result = db.session.execute(
            db.update(cls)
            .where(
                cls.camp_day_id == camp_day_id,
                cls.athlete_id == athlete_id,
                cls.status == PickupTokenStatus.active,
            )
            .values(status=PickupTokenStatus.revoked, revoked_at=now, revoked_reason=reason)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def to_dict(self, include_secret=False):
        data = {
            "id": self.id,
            "camp_day_id": self.camp_day_id,
            "athlete_id": self.athlete_id,
            "athlete_name": self.athlete.full_name if self.athlete else None,
            "status": self.status.value,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "redeemed_at": self.redeemed_at.isoformat() if self.redeemed_at else None,
            "redeemed_by": self.redeemed_by,
        }
        if include_secret:
            data["secret"] = self.secret
        return data
