from datetime import date
from flask import request
from camphq.errors import InvalidRequest


def json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object")
    return data


def require(data, *fields):
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise InvalidRequest(f"Missing required fields: {', '.join(missing)}", fields=missing)
    return [data[f] for f in fields]


def as_int(value, field):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{field} must be an integer")


def as_date(value, field="date"):
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{field} must be an ISO date (YYYY-MM-DD)")


def as_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("true", "1", "yes")
