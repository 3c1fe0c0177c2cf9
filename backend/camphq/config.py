import os
from datetime import timedelta
from dotenv import load_dotenv


load_dotenv()


def _flag(name, default="false"):
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Config:
    SECRET_KEY = os.getenv("JWT_SECRET_KEY")  # used for both Flask and JWT
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "fallback-jwt")
    SQLALCHEMY_DATABASE_URI = os.getenv("SQLALCHEMY_DATABASE_URI", "sqlite:///camphq.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    REDIS_URL = os.getenv("REDIS_URL")
    RATELIMIT_STORAGE_URI = REDIS_URL or "memory://"
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    APP_URL = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")

    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=1)
    JWT_TOKEN_LOCATION = ["cookies", "headers"]
    JWT_COOKIE_SECURE = True  # only over HTTPS
    JWT_COOKIE_SAMESITE = "Lax"
    JWT_COOKIE_CSRF_PROTECT = False

    # Camp-day operations
    PICKUP_TOKEN_TTL_HOURS = int(os.getenv("PICKUP_TOKEN_TTL_HOURS", 10))
    END_DAY_AUTO_CHECKOUT = _flag("END_DAY_AUTO_CHECKOUT", "true")
    WAITLIST_OFFER_HOURS = int(os.getenv("WAITLIST_OFFER_HOURS", 48))
    WAITLIST_REQUEUE_EXPIRED = _flag("WAITLIST_REQUEUE_EXPIRED")
    WAITLIST_PROMOTE_ON_CANCEL = _flag("WAITLIST_PROMOTE_ON_CANCEL", "true")
    PICKUP_REDEEM_LIMIT = os.getenv("PICKUP_REDEEM_LIMIT", "30 per minute")

    AUDIT_LOG_FILE = os.getenv("AUDIT_LOG_FILE", os.path.join("logs", "audit.log"))
    REPORT_FOLDER = os.getenv("REPORT_FOLDER", "reports")


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    JWT_SECRET_KEY = "test-jwt-secret-key-that-is-long-enough"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    RATELIMIT_STORAGE_URI = "memory://"
    JWT_TOKEN_LOCATION = ["headers"]
    JWT_COOKIE_SECURE = False
    WAITLIST_OFFER_HOURS = 24
    WAITLIST_REQUEUE_EXPIRED = False
