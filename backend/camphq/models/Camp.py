from camphq.extensions import db
from .base import TimestampMixin


class Camp(db.Model, TimestampMixin):
    __tablename__ = 'camps'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    capacity = db.Column(db.Integer, nullable=False)
    # confirmed + accepted + live offers; only changed by conditional UPDATEs
    slots_held = db.Column(db.Integer, nullable=False, default=0)
    is_locked = db.Column(db.Boolean, nullable=False, default=False)

    days = db.relationship('CampDay', back_populates='camp', lazy=True, order_by='CampDay.day_number')
    registrations = db.relationship('Registration', back_populates='camp', lazy=True)

    __table_args__ = (
        db.CheckConstraint('slots_held >= 0', name='ck_camp_slots_non_negative'),
        db.CheckConstraint('slots_held <= capacity', name='ck_camp_slots_within_capacity'),
    )

    @property
    def total_days(self):
        return (self.end_date - self.start_date).days + 1

    def runs_on(self, day):
        return self.start_date <= day <= self.end_date

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "capacity": self.capacity,
            "slots_held": self.slots_held,
            "is_locked": self.is_locked,
        }
