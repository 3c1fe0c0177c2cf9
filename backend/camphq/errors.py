from flask import jsonify


class CampOpsError(Exception):
    """Base for every expected, caller-facing failure of a camp-day operation.

    Staff screens show ``message`` directly, so keep it actionable
    ("already checked out", "offer already used").
    """
    code = "error"
    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message=None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        data = {"error": self.code, "message": self.message}
        data.update(self.details)
        return data


class InvalidRequest(CampOpsError):
    code = "invalid_request"
    status_code = 400
    default_message = "Invalid or missing fields"


class NotFound(CampOpsError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class InvalidTransition(CampOpsError):
    code = "invalid_transition"
    status_code = 409
    default_message = "Action not allowed in the current state"


class NotRegistered(CampOpsError):
    code = "not_registered"
    status_code = 409
    default_message = "Athlete has no confirmed registration for this camp"


class CapacityUnavailable(CampOpsError):
    code = "capacity_unavailable"
    status_code = 409
    default_message = "No free spot is available for this camp"


class Expired(CampOpsError):
    code = "expired"
    status_code = 410
    default_message = "This code has expired"


class AlreadyRedeemed(CampOpsError):
    code = "already_redeemed"
    status_code = 409
    default_message = "This code has already been used"


class Revoked(CampOpsError):
    code = "revoked"
    status_code = 410
    default_message = "This code was replaced by a newer one"


class Unauthorized(CampOpsError):
    code = "unauthorized"
    status_code = 403
    default_message = "Access forbidden: insufficient permissions"


class PaymentError(CampOpsError):
    code = "payment_failed"
    status_code = 502
    default_message = "Checkout could not be started"


def register_error_handlers(app):
    @app.errorhandler(CampOpsError)
    def handle_camp_ops_error(error):
        return jsonify(error.to_dict()), error.status_code
