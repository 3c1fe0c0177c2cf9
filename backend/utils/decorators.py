from functools import wraps
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from camphq.extensions import db
from camphq.errors import Unauthorized
from camphq.models import User
from utils import clock

STAFF_ROLES = ("superuser", "admin", "director", "coach")
DIRECTOR_ROLES = ("superuser", "admin", "director")
SCHEDULER_ROLES = ("superuser", "scheduler")


def current_user():
    """Resolves the acting staff member from the JWT identity, or None."""
    user_id = get_jwt_identity()
    if not user_id:
        return None
    user = db.session.get(User, int(user_id))
    if not user or user.deleted:
        return None
    if user.expires_at and user.expires_at < clock.utcnow():
        return None
    return user


def current_actor_id():
    user = current_user()
    return user.id if user else None


def role_required(*allowed_roles):
    """
    Restrict access to users with specific roles.
    Usage: @role_required("admin", "superuser")
    """
    allowed_roles = set(role.lower() for role in allowed_roles)

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            user = current_user()
            if not user:
                raise Unauthorized("User not found or no longer active")

            user_role_name = user.role.name.lower() if user.role else ""
            if user_role_name not in allowed_roles:
                raise Unauthorized()

            return fn(*args, **kwargs)
        return wrapper
    return decorator
