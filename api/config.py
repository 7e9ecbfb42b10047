"""
Environment-aware configuration.
Values come from the process environment (and .env via python-dotenv).
validate_config() enforces the secret requirements before the app starts.
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present

# Development conveniences only. A production app refuses to start with any of these.
DEV_SECRET_KEY = "dev-secret-key-change-in-production"
DEV_JWT_SECRET = "dev-jwt-secret-change-in-production"
DEV_REFRESH_TOKEN_SECRET = "dev-refresh-secret-change-in-prod"
KNOWN_DEFAULT_SECRETS = {DEV_SECRET_KEY, DEV_JWT_SECRET, DEV_REFRESH_TOKEN_SECRET, "CHANGE_ME_IN_PRODUCTION"}

SECRET_SETTINGS = ("SECRET_KEY", "JWT_SECRET", "REFRESH_TOKEN_SECRET")
MIN_SECRET_LENGTH = 16


class ConfigError(RuntimeError):
    pass


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", DEV_SECRET_KEY)
    DEBUG = False
    TESTING = False
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///portal.db")
    SQL_ECHO = False
    # Comma-separated list; credentials are allowed so '*' is not usable here
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")

    # Access tokens
    JWT_SECRET = os.getenv("JWT_SECRET", DEV_JWT_SECRET)
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "municipal-portal")
    ACCESS_TOKEN_EXPIRES = timedelta(hours=1)

    # Refresh tokens; the cookie value is signed with REFRESH_TOKEN_SECRET
    REFRESH_TOKEN_SECRET = os.getenv("REFRESH_TOKEN_SECRET", DEV_REFRESH_TOKEN_SECRET)
    REFRESH_TOKEN_EXPIRES = timedelta(days=7)
    TOKEN_SWEEP_INTERVAL_SECONDS = int(os.getenv("TOKEN_SWEEP_INTERVAL_SECONDS", "3600"))
    TOKEN_SWEEPER_ENABLED = True

    CSRF_TOKEN_EXPIRES = timedelta(hours=4)

    COOKIE_DOMAIN = os.getenv("COOKIE_DOMAIN") or None
    COOKIE_SECURE = False
    HSTS_MAX_AGE = int(os.getenv("HSTS_MAX_AGE", "15552000"))

    # Per client IP; RATELIMIT_* keys are read by Flask-Limiter itself
    RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", "200"))
    RATE_LIMIT_LOGIN = os.getenv("RATE_LIMIT_LOGIN", "10 per minute")
    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_HEADERS_ENABLED = True

    DEFAULT_ADMIN_EMAIL = os.getenv("DEFAULT_ADMIN_EMAIL", "admin@example.com")
    DEFAULT_ADMIN_NAME = os.getenv("DEFAULT_ADMIN_NAME", "Admin User")
    DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "ChangeMe123!")


class DevelopmentConfig(BaseConfig):
    DEBUG = True


class TestingConfig(BaseConfig):
    TESTING = True
    APP_ENV = "test"
    DATABASE_URL = "sqlite://"
    TOKEN_SWEEPER_ENABLED = False
    RATELIMIT_ENABLED = False


class ProductionConfig(BaseConfig):
    DEBUG = False
    APP_ENV = "prod"
    COOKIE_SECURE = True


def is_production(config) -> bool:
    return str(config.get("APP_ENV", "")).lower() in ("prod", "production")


def validate_config(config) -> None:
    """
    Startup invariant for signing secrets:
    - always at least MIN_SECRET_LENGTH characters
    - in production, never one of the known development defaults
    Raises ConfigError; create_app calls this before building anything.
    """
    production = is_production(config)
    for key in SECRET_SETTINGS:
        value = config.get(key) or ""
        if len(value) < MIN_SECRET_LENGTH:
            raise ConfigError(f"{key} must be at least {MIN_SECRET_LENGTH} characters")
        if production and value in KNOWN_DEFAULT_SECRETS:
            raise ConfigError(f"{key} is using a development default; set it in the environment")
    if production and not config.get("COOKIE_SECURE"):
        raise ConfigError("COOKIE_SECURE must be enabled in production")


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig
