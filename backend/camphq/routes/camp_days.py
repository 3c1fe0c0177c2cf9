from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required
from camphq.models import CheckInMethod, CheckOutMethod
from camphq.errors import InvalidRequest
from camphq.services import attendance, camp_days
from utils.decorators import role_required, current_actor_id, STAFF_ROLES, DIRECTOR_ROLES
from utils.serialization import batch_to_dict
from utils.payload import json_body, require, as_int, as_bool

camp_days_bp = Blueprint('camp_days', __name__)


def _athlete_id(data):
    athlete_id, = require(data, 'athlete_id')
    return as_int(athlete_id, 'athlete_id')


@camp_days_bp.route('/<int:camp_day_id>', methods=['GET'])
@jwt_required()
@role_required(*STAFF_ROLES)
def summary(camp_day_id):
    return jsonify(camp_days.get_summary(camp_day_id)), 200


@camp_days_bp.route('/<int:camp_day_id>/roster', methods=['GET'])
@jwt_required()
@role_required(*STAFF_ROLES)
def roster(camp_day_id):
    records = attendance.get_roster(camp_day_id)
    return jsonify([r.to_dict() for r in records]), 200


@camp_days_bp.route('/<int:camp_day_id>/stats', methods=['GET'])
@jwt_required()
@role_required(*STAFF_ROLES)
def stats(camp_day_id):
    return jsonify(attendance.get_stats(camp_day_id)), 200


@camp_days_bp.route('/<int:camp_day_id>/start', methods=['POST'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def start(camp_day_id):
    camp_day, roster = camp_days.start_day(camp_day_id, actor=current_actor_id())
    return jsonify({"camp_day": camp_day.to_dict(), "roster": batch_to_dict(roster)}), 200


@camp_days_bp.route('/<int:camp_day_id>/end', methods=['POST'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def end(camp_day_id):
    data = json_body()
    outcome = camp_days.end_day(
        camp_day_id,
        actor=current_actor_id(),
        auto_checkout=as_bool(data.get('auto_checkout'), default=None),
        generate_report=as_bool(data.get('generate_report')),
        send_notifications=as_bool(data.get('send_notifications')),
        recap=data.get('recap'),
        notes=data.get('notes'),
        force=as_bool(data.get('force')),
    )
    return jsonify({
        "camp_day": outcome["camp_day"].to_dict(),
        "checkouts": batch_to_dict(outcome["checkouts"]),
        "absences": batch_to_dict(outcome["absences"]),
        "report": outcome["report"],
    }), 200


@camp_days_bp.route('/<int:camp_day_id>/cancel', methods=['POST'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def cancel(camp_day_id):
    data = json_body()
    camp_day = camp_days.cancel_day(camp_day_id, actor=current_actor_id(), reason=data.get('reason'))
    return jsonify(camp_day.to_dict()), 200


@camp_days_bp.route('/<int:camp_day_id>/notes', methods=['PUT'])
@jwt_required()
@role_required(*STAFF_ROLES)
def notes(camp_day_id):
    data = json_body()
    camp_day = camp_days.update_notes(camp_day_id, data.get('notes'), actor=current_actor_id())
    return jsonify(camp_day.to_dict()), 200


@camp_days_bp.route('/<int:camp_day_id>/check-in', methods=['POST'])
@jwt_required()
@role_required(*STAFF_ROLES)
def check_in(camp_day_id):
    data = json_body()
    try:
        method = CheckInMethod(data.get('method', 'manual'))
    except ValueError:
        raise InvalidRequest("Unknown check-in method")
    record = attendance.check_in(
        camp_day_id, _athlete_id(data), method=method, actor=current_actor_id(), notes=data.get('notes')
    )
    return jsonify(record.to_dict()), 200


@camp_days_bp.route('/<int:camp_day_id>/check-out', methods=['POST'])
@jwt_required()
@role_required(*STAFF_ROLES)
def check_out(camp_day_id):
    """Typed-name release: the adult's name is entered at the pickup table."""
    data = json_body()
    person = data.get('pickup_person')
    if not isinstance(person, dict):
        person = {"name": data.get('pickup_person_name') or person}
    record = attendance.check_out(
        camp_day_id,
        _athlete_id(data),
        pickup_person=person,
        verification=CheckOutMethod.typed_name,
        actor=current_actor_id(),
        notes=data.get('notes'),
    )
    return jsonify(record.to_dict()), 200


@camp_days_bp.route('/<int:camp_day_id>/absent', methods=['POST'])
@jwt_required()
@role_required(*STAFF_ROLES)
def absent(camp_day_id):
    data = json_body()
    record = attendance.mark_absent(camp_day_id, _athlete_id(data), actor=current_actor_id(), notes=data.get('notes'))
    return jsonify(record.to_dict()), 200
