import logging

from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .config import get_config, validate_config
from .errors import register_error_handlers
from .headers import register_security_headers
from .limits import limiter
from models.db_storage import DBStorage
from services import build_services
from utils.csrf import CSRF_HEADER

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "Municipal Portal Auth API",
        "version": "1.0.0",
        "description": "Authentication, sessions and identity verification for the municipal citizen portal.",
    },
    "basePath": "/",
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        },
        "CSRF": {
            "type": "apiKey",
            "name": CSRF_HEADER,
            "in": "header",
            "description": "Value of the csrf_token cookie (see GET /auth/csrf-token)."
        },
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def create_app(config_name: str | None = None, config_overrides: dict | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.
    Refuses to start (ConfigError) when signing secrets are weak or, in production, left at
    their development defaults.
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    if config_overrides:
        app.config.update(config_overrides)
    validate_config(app.config)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Cookies travel cross-origin, so origins must be listed explicitly
    origins = [o.strip() for o in app.config["CORS_ORIGINS"].split(",") if o.strip()]
    CORS(
        app,
        resources={r"/*": {"origins": origins}},
        supports_credentials=True,
        allow_headers=["Content-Type", "Authorization", CSRF_HEADER],
    )

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    # Per-IP rate limits and response hardening
    limiter.init_app(app)
    register_security_headers(app)

    storage = DBStorage(app.config["DATABASE_URL"], echo=app.config.get("SQL_ECHO", False))
    storage.reload()
    services = build_services(storage, app.config)
    app.extensions["portal"] = services

    services.accounts.ensure_default_admin(
        app.config["DEFAULT_ADMIN_EMAIL"],
        app.config["DEFAULT_ADMIN_NAME"],
        app.config["DEFAULT_ADMIN_PASSWORD"],
    )
    storage.close()

    if app.config.get("TOKEN_SWEEPER_ENABLED"):
        services.sweeper.start()
    else:
        services.sweeper.run_once()

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .registration import bp as registration_bp
    from .validator import bp as validator_bp
    from .users import bp as users_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(registration_bp)
    app.register_blueprint(validator_bp)
    app.register_blueprint(users_bp)

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to the Municipal Portal Auth API",
            "docs": "/apidocs/",
            "health": "/health",
        }, 200

    return app
