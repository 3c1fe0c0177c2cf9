from datetime import date, datetime, timedelta
import itertools

import pytest
from flask_jwt_extended import create_access_token

from camphq import create_app
from camphq.config import TestConfig
from camphq.collaborators import Notifier, PaymentGateway, ReportGenerator
from camphq.extensions import db
from camphq.models import Athlete, Camp, Role, User
from camphq.services import camp_days, registrations
from utils import clock

CAMP_START = date(2026, 7, 6)
CAMP_END = date(2026, 7, 10)


class FrozenClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now

    def at(self, hour, minute=0):
        self.now = self.now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        return self.now


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent = []

    def send(self, template, recipient, **context):
        self.sent.append((template, recipient, context))

    def templates(self):
        return [template for template, _, _ in self.sent]


class FakePayments(PaymentGateway):
    def __init__(self):
        self.fail = False
        self.created = []

    def create_checkout(self, registration, success_url, cancel_url):
        if self.fail:
            raise RuntimeError("gateway unavailable")
        reference = f"chk_test_{registration.id}"
        self.created.append(reference)
        return {"reference": reference, "checkout_url": f"https://pay.example.com/{reference}"}


class RecordingReports(ReportGenerator):
    def __init__(self):
        self.days = []

    def day_report(self, camp_day, records):
        self.days.append((camp_day.id, len(records)))
        return f"reports/day{camp_day.id}.csv"


@pytest.fixture(autouse=True)
def frozen_clock(monkeypatch):
    frozen = FrozenClock(datetime(2026, 7, 6, 8, 0))
    monkeypatch.setattr(clock, "utcnow", frozen)
    return frozen


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def reports():
    return RecordingReports()


@pytest.fixture
def app(tmp_path, frozen_clock, notifier, payments, reports):
    config = type("LocalTestConfig", (TestConfig,), {
        "AUDIT_LOG_FILE": str(tmp_path / "audit.log"),
        "REPORT_FOLDER": str(tmp_path / "reports"),
    })
    app = create_app(config, notifier=notifier, payments=payments, reports=reports)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def users(app):
    staff = {}
    for role_name in ("superuser", "admin", "director", "coach", "scheduler"):
        role = Role(name=role_name)
        db.session.add(role)
        db.session.flush()
        user = User(username=f"{role_name}_user", full_name=role_name.title(), role_id=role.id)
        user.set_password(f"{role_name}-pass")
        db.session.add(user)
        staff[role_name] = user
    db.session.commit()
    return staff


@pytest.fixture
def auth_headers(users):
    def _headers(role_name):
        token = create_access_token(identity=str(users[role_name].id))
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def camp(app):
    camp = Camp(name="Summer Multi-Sport Week", start_date=CAMP_START, end_date=CAMP_END, capacity=10)
    db.session.add(camp)
    db.session.commit()
    return camp


@pytest.fixture
def make_athlete(app):
    counter = itertools.count(1)

    def _make(first_name=None, last_name="Camper"):
        n = next(counter)
        athlete = Athlete(
            first_name=first_name or f"Kid{n}",
            last_name=last_name,
            parent_name=f"Parent {n}",
            parent_email=f"parent{n}@example.com",
        )
        db.session.add(athlete)
        db.session.commit()
        return athlete
    return _make


@pytest.fixture
def enroll(camp, make_athlete):
    """Creates ``count`` athletes with confirmed registrations on the camp."""
    def _enroll(count=1):
        enrolled = []
        for _ in range(count):
            athlete = make_athlete()
            registration = registrations.create_registration(camp.id, athlete.id, total_price_cents=25000)
            enrolled.append((athlete, registration))
        return enrolled
    return _enroll


@pytest.fixture
def camp_day(camp):
    return camp_days.get_or_create_camp_day(camp.id, CAMP_START)


@pytest.fixture
def last_camp_day(camp):
    return camp_days.get_or_create_camp_day(camp.id, CAMP_END)
