from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required
from camphq.models import Camp
from camphq.services import registrations, camp_days
from utils.decorators import role_required, current_actor_id, STAFF_ROLES, DIRECTOR_ROLES
from utils.pagination import paginated_response
from utils.payload import json_body, require, as_int, as_date

camps_bp = Blueprint('camps', __name__)


@camps_bp.route('', methods=['GET'])
@jwt_required()
@role_required(*STAFF_ROLES)
def list_camps():
    query = Camp.query.order_by(Camp.start_date.desc())
    return jsonify(paginated_response(query, Camp, ["name"])), 200


@camps_bp.route('/<int:camp_id>/capacity', methods=['GET'])
@jwt_required()
@role_required(*STAFF_ROLES)
def capacity(camp_id):
    return jsonify(registrations.capacity_summary(camp_id)), 200


@camps_bp.route('/<int:camp_id>/registrations', methods=['POST'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def create_registration(camp_id):
    data = json_body()
    athlete_id, = require(data, 'athlete_id')
    registration = registrations.create_registration(
        camp_id,
        as_int(athlete_id, 'athlete_id'),
        total_price_cents=as_int(data.get('total_price_cents', 0), 'total_price_cents'),
        special_considerations=data.get('special_considerations'),
        actor=current_actor_id(),
    )
    return jsonify(registration.to_dict()), 201


@camps_bp.route('/registrations/<int:registration_id>/cancel', methods=['POST'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def cancel_registration(registration_id):
    data = json_body()
    registration = registrations.cancel_registration(
        registration_id, actor=current_actor_id(), reason=data.get('reason')
    )
    return jsonify(registration.to_dict()), 200


@camps_bp.route('/<int:camp_id>/days/<day>', methods=['GET'])
@jwt_required()
@role_required(*STAFF_ROLES)
def camp_day_for_date(camp_id, day):
    camp_day = camp_days.get_or_create_camp_day(camp_id, as_date(day))
    return jsonify(camp_days.get_summary(camp_day.id)), 200
