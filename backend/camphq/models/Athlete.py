from camphq.extensions import db
from .base import SoftDeleteMixin, TimestampMixin


class Athlete(db.Model, SoftDeleteMixin, TimestampMixin):
    __tablename__ = 'athletes'

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=False)
    date_of_birth = db.Column(db.Date, nullable=True)
    photo = db.Column(db.String(255), nullable=True)
    parent_name = db.Column(db.String(120), nullable=True)
    parent_email = db.Column(db.String(120), nullable=True)

    registrations = db.relationship('Registration', back_populates='athlete', lazy=True)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def to_dict(self):
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "photo": self.photo,
            "parent_name": self.parent_name,
            "parent_email": self.parent_email,
        }
