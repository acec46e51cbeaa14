from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from flask import Flask, request
from flasgger import Swagger
from flask_cors import CORS

from .config import get_config, validate_config
from .errors import register_error_handlers
from models.db_storage import DBStorage
from services.mail import Mailer
from services.password_reset import PasswordResetManager
from services.session import SessionManager
from utils.csrf import CsrfGuard
from utils.security import TokenSigner, build_password_hasher, utcnow

# Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "Vidshare API",
        "version": "1.0.0",
        "description": "Accounts, sessions, CSRF protection and password recovery.",
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
        "CsrfToken": {
            "type": "apiKey",
            "name": "X-CSRF-Token",
            "in": "header",
            "description": "Token returned by GET /csrf-token.",
        },
    },
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,
            "model_filter": lambda tag: True,
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}

# Baseline security headers for every response
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "X-DNS-Prefetch-Control": "off",
    "X-Permitted-Cross-Domain-Policies": "none",
}


def create_app(
    config_name: str | None = None,
    *,
    storage: DBStorage | None = None,
    mailer: Mailer | None = None,
    clock: Callable[[], datetime] = utcnow,
    overrides: dict | None = None,
) -> Flask:
    """
    Application factory: creates and configures the Flask app.

    The database storage and the mail transport are built here once (or
    injected by the caller) and handed to the managers, which are published
    on app.extensions.
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)
    validate_config(app.config)

    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))

    CORS(
        app,
        resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*").split(",")}},
        supports_credentials=True,
        allow_headers=["Accept", "Authorization", "Content-Type", app.config["CSRF_HEADER_NAME"]],
    )

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    if storage is None:
        storage = DBStorage(app.config["DATABASE_URL"], echo=app.config.get("SQL_ECHO", False))
    storage.reload()
    if mailer is None:
        mailer = Mailer.from_config(app.config)

    hasher = build_password_hasher(app.config)
    signer = TokenSigner.from_config(app.config, clock=clock)
    csrf_guard = CsrfGuard.from_config(app.config)

    app.extensions["storage"] = storage
    app.extensions["mailer"] = mailer
    app.extensions["token_signer"] = signer
    app.extensions["csrf_guard"] = csrf_guard
    app.extensions["session_manager"] = SessionManager(storage, signer, hasher)
    app.extensions["reset_manager"] = PasswordResetManager(
        storage,
        mailer,
        app_url=app.config["APP_URL"],
        token_ttl=app.config["RESET_PASSWORD_TOKEN_EXPIRES"],
        cooldown=app.config["RESET_PASSWORD_COOLDOWN"],
        hasher=hasher,
        clock=clock,
    )

    # State-changing requests must echo a CSRF token bound to their secret cookie.
    # Unrouted requests fall through to the 404/405 handlers.
    @app.before_request
    def csrf_protect():
        if request.url_rule is None:
            return None
        csrf_guard.protect(request)

    @app.after_request
    def set_security_headers(response):
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        if app.config.get("JWT_COOKIE_SECURE"):
            response.headers.setdefault("Strict-Transport-Security", "max-age=15552000; includeSubDomains")
        return response

    from .health import bp as health_bp
    from .csrf import bp as csrf_bp
    from .auth import bp as auth_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(csrf_bp)
    app.register_blueprint(auth_bp)

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to Vidshare API",
            "docs": "/apidocs/",
            "csrf": "/csrf-token",
            "health": "/health",
        }, 200

    return app
