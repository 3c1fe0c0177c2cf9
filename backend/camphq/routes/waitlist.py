from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required
from camphq.extensions import limiter
from camphq.services import waitlist
from utils.decorators import (
    role_required, current_actor_id, STAFF_ROLES, DIRECTOR_ROLES, SCHEDULER_ROLES,
)
from utils.serialization import batch_to_dict
from utils.payload import json_body, require, as_int

waitlist_bp = Blueprint('waitlist', __name__)


@waitlist_bp.route('/camps/<int:camp_id>', methods=['POST'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def join(camp_id):
    data = json_body()
    athlete_id, = require(data, 'athlete_id')
    registration, position = waitlist.join_waitlist(
        camp_id,
        as_int(athlete_id, 'athlete_id'),
        total_price_cents=as_int(data.get('total_price_cents', 0), 'total_price_cents'),
        special_considerations=data.get('special_considerations'),
        actor=current_actor_id(),
    )
    return jsonify({"registration": registration.to_dict(), "position": position}), 201


@waitlist_bp.route('/camps/<int:camp_id>', methods=['GET'])
@jwt_required()
@role_required(*STAFF_ROLES)
def camp_waitlist(camp_id):
    return jsonify(waitlist.get_waitlist(camp_id)), 200


@waitlist_bp.route('/<int:registration_id>/position', methods=['GET'])
@jwt_required()
@role_required(*STAFF_ROLES)
def position(registration_id):
    return jsonify(waitlist.get_position(registration_id)), 200


@waitlist_bp.route('/<int:registration_id>/offer', methods=['POST'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def send_offer(registration_id):
    registration = waitlist.send_offer(registration_id, actor=current_actor_id())
    return jsonify(registration.to_dict()), 200


@waitlist_bp.route('/<int:registration_id>/remove', methods=['POST'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def remove(registration_id):
    data = json_body()
    registration = waitlist.remove(registration_id, actor=current_actor_id(), reason=data.get('reason'))
    return jsonify(registration.to_dict()), 200


@waitlist_bp.route('/<int:registration_id>/requeue', methods=['POST'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def requeue(registration_id):
    registration = waitlist.requeue(registration_id, actor=current_actor_id())
    return jsonify(registration.to_dict()), 200


@waitlist_bp.route('/<int:registration_id>/checkout-failed', methods=['POST'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def checkout_failed(registration_id):
    data = json_body()
    registration = waitlist.mark_checkout_failed(registration_id, actor=current_actor_id(), reason=data.get('reason'))
    return jsonify(registration.to_dict()), 200


@waitlist_bp.route('/<int:registration_id>/payment-confirmed', methods=['POST'])
@jwt_required()
@role_required(*DIRECTOR_ROLES)
def payment_confirmed(registration_id):
    data = json_body()
    registration = waitlist.complete_registration(
        registration_id, actor=current_actor_id(), checkout_reference=data.get('checkout_reference')
    )
    return jsonify(registration.to_dict()), 200


@waitlist_bp.route('/sweep', methods=['POST'])
@jwt_required()
@role_required(*SCHEDULER_ROLES)
def sweep():
    outcome = waitlist.expire_stale_offers(actor=current_actor_id())
    return jsonify({
        "expired": batch_to_dict(outcome["expired"]),
        "offers": batch_to_dict(outcome["offers"]),
    }), 200


# Family-facing offer pages; the offer token is the credential.

@waitlist_bp.route('/offer/<token>', methods=['GET'])
@limiter.limit("30 per minute")
def offer_details(token):
    return jsonify(waitlist.get_offer_details(token)), 200


@waitlist_bp.route('/offer/<token>/accept', methods=['POST'])
@limiter.limit("10 per minute")
def accept(token):
    data = json_body()
    registration, checkout = waitlist.accept_offer(
        token, success_url=data.get('success_url'), cancel_url=data.get('cancel_url')
    )
    return jsonify({"registration": registration.to_dict(), "checkout": checkout}), 200


@waitlist_bp.route('/offer/<token>/decline', methods=['POST'])
@limiter.limit("10 per minute")
def decline(token):
    registration = waitlist.decline_offer(token)
    return jsonify(registration.to_dict()), 200
