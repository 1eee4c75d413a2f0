"""
app/__init__.py — Flask application factory.

create_app(config_name) builds and returns a configured app. Nothing is
initialised at import time, so tests can create isolated app instances and
Alembic can import the models without starting a server.

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure logging from LOG_LEVEL
  3. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  4. Register all route blueprints under /api/v1
  5. Register global error handlers (AppError → JSON, Exception → 500)
  6. Register a custom JSON provider that serialises Decimal as string

Model classes are imported inside create_app() so SQLAlchemy's metadata is
populated before Alembic inspects it.
"""

from __future__ import annotations

import logging
import traceback
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from billsplit.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────
# Monetary amounts are transmitted as strings, never JSON numbers.

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Extends Flask's default JSON provider to serialise Decimal as str.

    Example: Decimal("10.50") → "10.50" (not 10.5 or 10.500000001)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Unknown names fall back to "development".
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    from billsplit.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    with app.app_context():
        from billsplit.app.models import (  # noqa: F401
            expense,
            group,
            membership,
            settlement,
            split,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _configure_logging(app: Flask) -> None:
    """
    Applies LOG_LEVEL to the app logger and the billsplit package loggers.

    Services log through logging.getLogger(__name__) (no Flask imports), so
    the package logger gets a handler of its own when none is configured.
    """
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    app.logger.setLevel(level)

    package_logger = logging.getLogger("billsplit")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")
        )
        package_logger.addHandler(handler)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    expenses_bp and settlements_bp sit at /api/v1 because each owns both a
    group-scoped path (/groups/<id>/...) and a resource-ID path.
    """
    from billsplit.app.routes.balances import balances_bp
    from billsplit.app.routes.expenses import expenses_bp
    from billsplit.app.routes.groups import groups_bp
    from billsplit.app.routes.settlements import settlements_bp

    app.register_blueprint(groups_bp,      url_prefix="/api/v1/groups")
    app.register_blueprint(balances_bp,    url_prefix="/api/v1/groups")
    app.register_blueprint(expenses_bp,    url_prefix="/api/v1")
    app.register_blueprint(settlements_bp, url_prefix="/api/v1")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with its HTTP status;
                        5xx errors are logged with their detail
      ValidationError → first marshmallow error as MISSING_FIELD /
                        INVALID_FIELD / a registered code (400)
      Exception       → generic INTERNAL_ERROR (500); traceback logged

    Stack traces and integrity details never leave the server.
    """
    from billsplit.app.errors import AppError, ErrorCode

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        if error.http_status >= 500:
            app.logger.error(
                "%s on %s %s: %s (group_id=%s)",
                error.code,
                request.method,
                request.path,
                getattr(error, "detail", error.message),
                getattr(error, "group_id", None),
            )
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Converts marshmallow ValidationError into the standard error envelope.

        Only the FIRST error is returned. Nested messages (e.g. splits.0.amount)
        are walked down to the first leaf; the top-level key is reported as
        the field. A message that is itself a registered ErrorCode is used as
        the code, with a readable default message.
        """
        field, raw_message = _first_validation_error(error.messages)

        known_codes = set(vars(ErrorCode).values())
        if raw_message in known_codes:
            code = raw_message
            message = _code_to_message(code)
        elif raw_message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        payload = AppError(code, message, 400, field=field).to_dict()
        return jsonify(payload), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.

        The full traceback is logged; it is never put in the response body.
        """
        if isinstance(error, HTTPException):
            # Routing errors (404, 405) keep their own status and body.
            return error

        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _first_validation_error(messages) -> tuple[str | None, str]:
    """
    Returns (field, message) for the first leaf of a marshmallow messages
    structure. `_schema` errors have no field.
    """
    field = None
    current = messages
    top_level = True

    while True:
        if isinstance(current, dict):
            if not current:
                return field, "Invalid input."
            key, current = next(iter(current.items()))
            if top_level:
                field = None if key == "_schema" else str(key)
                top_level = False
        elif isinstance(current, list):
            if not current:
                return field, "Invalid input."
            current = current[0]
        else:
            return field, str(current)


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _code_to_message(code: str) -> str:
    """
    Default message for a registered code raised as a ValidationError
    message from a schema.
    """
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amount has too many decimal places.",
        "INVALID_CURRENCY": "Currency must be a supported ISO 4217 code, e.g. 'USD'.",
        "INVALID_SPLIT_TYPE": "Split type must be equal, exact, or percentage.",
        "INVALID_PARTICIPANTS": "At least one participant is required.",
        "NO_UPDATE_FIELDS": "No valid fields to update.",
    }
    return _messages.get(code, "Invalid input.")
