from flask import Flask
from flasgger import Swagger
from flask_cors import CORS
import logging

from .config import get_config
from .errors import register_error_handlers
from models import DBStorage
from services import build_auth_service

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "Votive Auth API",
        "version": "1.0.0",
        "description": "Registration, login, session refresh, password reset and email verification.",
    },
    "basePath": "/",  # Blueprints are mounted under /api/v1
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the access token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        },
        "CSRF": {
            "type": "apiKey",
            "name": "X-CSRF-Token",
            "in": "header",
            "description": "Value of the csrf-token cookie."
        }
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


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(config_name: str | None = None, config_overrides: dict | None = None,
               storage: DBStorage | None = None, mailer=None, clock=None) -> Flask:
    """
    Application factory: creates and configures the Flask app.

    Services are composed here once and kept in app.extensions; tests pass
    their own storage, mailer or clock instead of patching globals.
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    config_cls = get_config(config_name)
    config_cls.validate()
    app.config.from_object(config_cls)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app.config["LOG_LEVEL"])

    # Cross-Origin Resource Sharing; credentials (the refresh cookie) only for explicit origins
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins != "*":
        origins = [o.strip() for o in origins.split(",") if o.strip()]
    CORS(app, resources={r"/*": {"origins": origins}}, supports_credentials=origins != "*")

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    if storage is None:
        storage = DBStorage(app.config["DATABASE_URL"], echo=app.config["SQL_ECHO"])
        storage.reload()
    service_kwargs = {"mailer": mailer}
    if clock is not None:
        service_kwargs["clock"] = clock
    app.extensions["storage"] = storage
    app.extensions["auth_service"] = build_auth_service(app.config, storage, **service_kwargs)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp, url_prefix="/api/v1/users")

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        # scoped_session.remove(), preventing connection leaks
        storage.close()

    @app.cli.command("cleanup-expired")
    def cleanup_expired():
        """Delete expired refresh, reset and verification tokens."""
        counts = app.extensions["auth_service"].cleanup_expired()
        for table, count in counts.items():
            print(f"{table}: {count} removed")

    @app.route("/")
    def root():
        return {
            "message": "Welcome to Votive Auth API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
