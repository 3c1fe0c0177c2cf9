from .auth import auth_bp
from .base_route import base_bp
from .camps import camps_bp
from .camp_days import camp_days_bp
from .pickup import pickup_bp
from .waitlist import waitlist_bp

def register_routes(app):
    app.register_blueprint(base_bp)
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(camps_bp, url_prefix='/camps')
    app.register_blueprint(camp_days_bp, url_prefix='/camp-days')
    app.register_blueprint(pickup_bp, url_prefix='/pickup')
    app.register_blueprint(waitlist_bp, url_prefix='/waitlist')
