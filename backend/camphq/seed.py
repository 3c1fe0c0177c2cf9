import os
from datetime import date, timedelta
from camphq.models import Role, User, Camp, Athlete
from camphq.extensions import db
from camphq.services import registrations

ROLES = ['superuser', 'admin', 'director', 'coach', 'scheduler']


def get_role_id(role_name):
    role = Role.query.filter_by(name=role_name).first()
    return role.id if role else None


def seed_roles():
    for role_name in ROLES:
        if not Role.query.filter_by(name=role_name).first():
            db.session.add(Role(name=role_name))
    db.session.commit()


def seed_user(username, role_name, password, full_name=None):
    user = User.query.filter_by(username=username).first()
    if user:
        return user
    user = User(username=username, full_name=full_name, role_id=get_role_id(role_name))
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def seed_data():
    seed_roles()

    admin_password = os.getenv("ADMIN_PASSWORD", "your_secure_password")
    seed_user("admin", "superuser", admin_password, "Camp Admin")
    director = seed_user("director", "director", os.getenv("DIRECTOR_PASSWORD", "directorpass"), "Camp Director")
    seed_user("coach", "coach", os.getenv("COACH_PASSWORD", "coachpass"), "Head Coach")
    seed_user("scheduler", "scheduler", os.getenv("SCHEDULER_PASSWORD", "schedulerpass"), "Cron")

    if Camp.query.filter_by(name="Summer Multi-Sport Week").first():
        print("Sample camp already present, skipping.")
        return

    start = date.today() + timedelta(days=7)
    camp = Camp(name="Summer Multi-Sport Week", start_date=start, end_date=start + timedelta(days=4), capacity=10)
    db.session.add(camp)
    db.session.commit()

    campers = [
        ("Ava", "Nkosi"), ("Liam", "Botha"), ("Zoe", "Daniels"), ("Noah", "Peters"),
        ("Mia", "Jacobs"), ("Ethan", "Mokoena"), ("Lily", "Smith"), ("Jack", "van Wyk"),
    ]
    for first_name, last_name in campers:
        athlete = Athlete(
            first_name=first_name,
            last_name=last_name,
            parent_name=f"Parent of {first_name}",
            parent_email=f"{first_name.lower()}.{last_name.lower().replace(' ', '')}@example.com",
        )
        db.session.add(athlete)
        db.session.commit()
        registrations.create_registration(camp.id, athlete.id, total_price_cents=25000, actor=director.id)

    print(f"Seeded camp {camp.id} with {len(campers)} confirmed registrations.")
