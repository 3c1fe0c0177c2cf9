from flask import Blueprint, jsonify, current_app
from flask_jwt_extended import jwt_required
from camphq.extensions import limiter
from camphq.services import pickup
from utils.decorators import (
    role_required, current_actor_id, STAFF_ROLES, DIRECTOR_ROLES, SCHEDULER_ROLES,
)
from utils.serialization import batch_to_dict
from utils.payload import json_body, require, as_int

pickup_bp = Blueprint('pickup', __name__)


def _redeem_limit():
    return current_app.config["PICKUP_REDEEM_LIMIT"]


def _pickup_person(data):
    person = data.get('pickup_person')
    if isinstance(person, dict):
        return person
    if data.get('pickup_person_name'):
        return {"name": data.get('pickup_person_name'), "relationship": data.get('pickup_relationship')}
    return None


@pickup_bp.route('/days/<int:camp_day_id>/tokens', methods=['POST'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def generate(camp_day_id):
    result = pickup.generate_tokens(camp_day_id, actor=current_actor_id())
    return jsonify(batch_to_dict(result)), 201


@pickup_bp.route('/days/<int:camp_day_id>/tokens', methods=['GET'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def list_tokens(camp_day_id):
    tokens = pickup.list_tokens(camp_day_id)
    return jsonify([t.to_dict() for t in tokens]), 200


@pickup_bp.route('/days/<int:camp_day_id>/athletes/<int:athlete_id>/token', methods=['GET'])
@jwt_required()
@role_required(*STAFF_ROLES)
def athlete_token(camp_day_id, athlete_id):
    token = pickup.get_active_token(camp_day_id, athlete_id)
    return jsonify(token.to_dict(include_secret=True)), 200


@pickup_bp.route('/days/<int:camp_day_id>/athletes/<int:athlete_id>/token', methods=['POST'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def issue_athlete_token(camp_day_id, athlete_id):
    token, created = pickup.generate_token_for_athlete(camp_day_id, athlete_id, actor=current_actor_id())
    return jsonify(token.to_dict(include_secret=True)), 201 if created else 200


@pickup_bp.route('/validate', methods=['POST'])
@limiter.limit(_redeem_limit)
@jwt_required()
@role_required(*STAFF_ROLES)
def validate():
    data = json_body()
    secret, = require(data, 'token')
    token = pickup.validate_token(secret)
    return jsonify({"valid": True, "token": token.to_dict()}), 200


@pickup_bp.route('/redeem', methods=['POST'])
@limiter.limit(_redeem_limit)
@jwt_required()
@role_required(*STAFF_ROLES)
def redeem():
    data = json_body()
    secret, = require(data, 'token')
    token, record = pickup.redeem_token(secret, actor=current_actor_id(), pickup_person=_pickup_person(data))
    return jsonify({"token": token.to_dict(), "attendance": record.to_dict()}), 200


@pickup_bp.route('/days/<int:camp_day_id>/manual-checkout', methods=['POST'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def manual_checkout(camp_day_id):
    data = json_body()
    athlete_id, = require(data, 'athlete_id')
    record = pickup.manual_checkout(
        camp_day_id,
        as_int(athlete_id, 'athlete_id'),
        actor=current_actor_id(),
        reason=data.get('reason'),
        pickup_person=_pickup_person(data),
    )
    return jsonify(record.to_dict()), 200


@pickup_bp.route('/sweep', methods=['POST'])
@jwt_required()
@role_required(*SCHEDULER_ROLES)
def sweep():
    expired = pickup.expire_stale_tokens()
    return jsonify({"expired": expired}), 200
