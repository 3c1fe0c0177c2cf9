from flask import Flask
from flask_cors import CORS
from .config import Config
from camphq.routes import register_routes
from camphq.models import TokenBlocklist
from camphq.extensions import db, jwt, limiter, migrate
from camphq.errors import register_error_handlers
from camphq.collaborators import init_collaborators


def create_app(config_object=Config, notifier=None, payments=None, reports=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    db.init_app(app)
    jwt.init_app(app)
    CORS(app, origins=app.config["CORS_ORIGINS"], supports_credentials=True)
    limiter.init_app(app)
    migrate.init_app(app, db)

    init_collaborators(app, notifier=notifier, payments=payments, reports=reports)
    register_routes(app)
    register_error_handlers(app)

    @jwt.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        jti = jwt_payload["jti"]
        token = db.session.query(TokenBlocklist).filter_by(jti=jti).first()
        return token is not None

    with app.app_context():
        db.create_all()

    return app
