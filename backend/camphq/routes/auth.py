from flask import Blueprint, request, jsonify, current_app, make_response
from flask_jwt_extended import (
    create_access_token, create_refresh_token, jwt_required,
    get_jwt_identity, get_jwt
)
from camphq.models import User, TokenBlocklist
from camphq.extensions import db, limiter
from utils.audit import log_event
from utils import clock
from datetime import datetime, timezone
import re

auth_bp = Blueprint('auth', __name__)


def _set_cookie(response, name, value, max_age, path="/"):
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        httponly=True,
        secure=current_app.config["JWT_COOKIE_SECURE"],
        samesite=current_app.config["JWT_COOKIE_SAMESITE"],
        path=path
    )


@auth_bp.route('/login', methods=['POST'])
@limiter.limit("5 per minute", override_defaults=False)
def login():
    data = request.get_json() or {}
    username = data.get('username', '').strip()
    password = data.get('password', '')
    ip = request.remote_addr

    if not username or not password:
        return jsonify({"error": "Username and password are required"}), 400

    if not re.match(r'^[\w.@+-]{3,}$', username):
        return jsonify({"error": "Invalid username format"}), 400

    user = User.query.filter_by(username=username, deleted=False).first()
    expired = user is not None and user.expires_at is not None and user.expires_at < clock.utcnow()

    if user and not expired and user.check_password(password):
        role = user.role.name if user.role else None
        access_token = create_access_token(identity=str(user.id), additional_claims={"role": role})
        refresh_token = create_refresh_token(identity=str(user.id))

        response = make_response(jsonify({"message": "Login successful", "access_token": access_token, "role": role}))
        _set_cookie(response, "access_token_cookie", access_token, 60 * 60)  # 1 hour
        _set_cookie(response, "refresh_token_cookie", refresh_token, 60 * 60 * 24, path="/auth/refresh")

        log_event("LOGIN_SUCCESS", user_id=user.id, ip=ip, description=f"{username} logged in")
        return response

    log_event("LOGIN_FAILED", ip=ip, description=f"Failed login attempt for {username}", level="WARNING")
    return jsonify({"error": "Invalid username or password"}), 401


@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def get_current_user():
    user = db.session.get(User, int(get_jwt_identity()))
    if not user or user.deleted:
        return jsonify({"error": "User not found"}), 404
    return jsonify(user.to_dict()), 200


@auth_bp.route('/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh_access_token():
    user = db.session.get(User, int(get_jwt_identity()))
    if not user or user.deleted:
        return jsonify({"error": "User not found"}), 404

    role = user.role.name if user.role else None
    access_token = create_access_token(identity=str(user.id), additional_claims={"role": role})

    response = make_response(jsonify({"message": "Token refreshed", "access_token": access_token}))
    _set_cookie(response, "access_token_cookie", access_token, 60 * 60)

    log_event("REFRESH_TOKEN", user_id=user.id, ip=request.remote_addr)
    return response


@auth_bp.route("/logout", methods=["POST"])
@jwt_required()
def logout():
    claims = get_jwt()
    user_id = get_jwt_identity()
    expires = datetime.fromtimestamp(claims["exp"], tz=timezone.utc).replace(tzinfo=None)

    db.session.add(TokenBlocklist(
        jti=claims["jti"], token_type=claims.get("type", "access"), user_id=int(user_id), expires_at=expires
    ))
    db.session.commit()

    response = make_response(jsonify({"message": "Successfully logged out"}))
    response.delete_cookie("access_token_cookie", path="/")
    response.delete_cookie("refresh_token_cookie", path="/auth/refresh")

    log_event("LOGOUT", user_id=user_id, ip=request.remote_addr)
    return response
