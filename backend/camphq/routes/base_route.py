from flask import Blueprint, jsonify
from sqlalchemy.exc import SQLAlchemyError

base_bp = Blueprint("base", __name__)

@base_bp.route("/")
def home():
    return jsonify({"message": "Camp HQ API"})

@base_bp.route("/api/test-db")
def test_db():
    from camphq.models import Camp
    try:
        count = Camp.query.count()
        return {"status": "success", "camps": count}
    except SQLAlchemyError as e:
        return {"status": "error", "message": str(e)}, 500
