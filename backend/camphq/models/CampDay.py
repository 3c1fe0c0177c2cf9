from camphq.extensions import db
from .base import SoftDeleteMixin, TimestampMixin, CampDayStatus


class CampDay(db.Model, SoftDeleteMixin, TimestampMixin):
    __tablename__ = 'camp_days'

    id = db.Column(db.Integer, primary_key=True)
    camp_id = db.Column(db.Integer, db.ForeignKey('camps.id'), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    day_number = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(120), nullable=True)
    status = db.Column(db.Enum(CampDayStatus), nullable=False, default=CampDayStatus.not_started)
    notes = db.Column(db.Text, nullable=True)
    recap = db.Column(db.JSON, nullable=True)

    started_at = db.Column(db.DateTime, nullable=True)
    started_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    completed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    camp = db.relationship('Camp', back_populates='days')
    attendance_records = db.relationship('AttendanceRecord', back_populates='camp_day', lazy=True)

    __table_args__ = (
        db.UniqueConstraint('camp_id', 'date', name='uq_camp_day_date'),
    )

    @property
    def is_last_day(self):
        return self.date == self.camp.end_date

    def to_dict(self):
        return {
            "id": self.id,
            "camp_id": self.camp_id,
            "date": self.date.isoformat(),
            "day_number": self.day_number,
            "title": self.title,
            "status": self.status.value,
            "notes": self.notes,
            "recap": self.recap,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
