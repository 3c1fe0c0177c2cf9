from camphq.extensions import db
from .base import TimestampMixin, AttendanceStatus, CheckInMethod, CheckOutMethod


class AttendanceRecord(db.Model, TimestampMixin):
    __tablename__ = 'attendance_records'

    id = db.Column(db.Integer, primary_key=True)
    camp_day_id = db.Column(db.Integer, db.ForeignKey('camp_days.id'), nullable=False, index=True)
    athlete_id = db.Column(db.Integer, db.ForeignKey('athletes.id'), nullable=False)
    registration_id = db.Column(db.Integer, db.ForeignKey('registrations.id'), nullable=False)
    status = db.Column(db.Enum(AttendanceStatus), nullable=False, default=AttendanceStatus.not_arrived)

    check_in_at = db.Column(db.DateTime, nullable=True)
    check_in_method = db.Column(db.Enum(CheckInMethod), nullable=True)
    check_in_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    check_out_at = db.Column(db.DateTime, nullable=True)
    check_out_method = db.Column(db.Enum(CheckOutMethod), nullable=True)
    check_out_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    check_out_notes = db.Column(db.Text, nullable=True)
    pickup_person_name = db.Column(db.String(120), nullable=True)
    pickup_relationship = db.Column(db.String(80), nullable=True)
    pickup_identifier = db.Column(db.String(120), nullable=True)

    marked_absent_at = db.Column(db.DateTime, nullable=True)
    marked_absent_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    camp_day = db.relationship('CampDay', back_populates='attendance_records')
    athlete = db.relationship('Athlete')

    __table_args__ = (
        db.UniqueConstraint('camp_day_id', 'athlete_id', name='uq_attendance_day_athlete'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "camp_day_id": self.camp_day_id,
            "athlete_id": self.athlete_id,
            "athlete_name": self.athlete.full_name if self.athlete else None,
            "registration_id": self.registration_id,
            "status": self.status.value,
            "check_in_at": self.check_in_at.isoformat() if self.check_in_at else None,
            "check_in_method": self.check_in_method.value if self.check_in_method else None,
            "check_in_by": self.check_in_by,
            "check_out_at": self.check_out_at.isoformat() if self.check_out_at else None,
            "check_out_method": self.check_out_method.value if self.check_out_method else None,
            "check_out_by": self.check_out_by,
            "check_out_notes": self.check_out_notes,
            "pickup_person_name": self.pickup_person_name,
            "pickup_relationship": self.pickup_relationship,
            "pickup_identifier": self.pickup_identifier,
            "notes": self.notes,
        }
