"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time, so tests can build isolated
         app instances against their own database.

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Initialise the SQLAlchemy extension via init_app()
  3. Register all route blueprints under /api/v1
  4. Register global error handlers (AppError → JSON, Exception → 500)
  5. Register a custom JSON provider to serialise Decimal as string
  6. Register the `flask init-db` command (db.create_all(), for local
     databases; PostgreSQL deployments use the Alembic migrations)

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is complete before create_all() runs.
"""

from __future__ import annotations

import traceback
from decimal import Decimal

import click
from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from backend.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Serialises Decimal as str so monetary amounts keep their exact value.

    Example: Decimal("33334.00") → "33334.00" (not 33334.0)
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
                     Resolved via config_by_name in config.py.
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    # ── Extensions ─────────────────────────────────────────────────────────
    from backend.app.extensions import db
    db.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    with app.app_context():
        from backend.app.models import (  # noqa: F401
            bill,
            item,
            participant,
            refresh_token,
            user,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)
    _register_commands(app)

    return app


def _register_blueprints(app: Flask) -> None:
    """Registers all route blueprints under the /api/v1 prefix."""
    from backend.app.routes.auth import auth_bp
    from backend.app.routes.bills import bills_bp
    from backend.app.routes.users import users_bp

    app.register_blueprint(auth_bp,  url_prefix="/api/v1/auth")
    app.register_blueprint(bills_bp, url_prefix="/api/v1/bills")
    app.register_blueprint(users_bp, url_prefix="/api/v1/users")


def _first_error(messages, path: str = "") -> tuple[str | None, str]:
    """
    Walks a marshmallow messages structure down to its first leaf.

    Returns (field_path, message). Nested list positions are rendered as
    `participants[1].user_id`; "_schema" keys do not add a path segment.
    """
    if isinstance(messages, dict):
        for key, value in messages.items():
            if key == "_schema":
                sub = path
            elif isinstance(key, int):
                sub = f"{path}[{key}]"
            else:
                sub = f"{path}.{key}" if path else str(key)
            return _first_error(value, sub)
        return path or None, "Invalid input."
    if isinstance(messages, list):
        if not messages:
            return path or None, "Invalid value."
        return _first_error(messages[0], path)
    return path or None, str(messages)


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct HTTP status
      ValidationError → marshmallow schema errors as MISSING_FIELD /
                        INVALID_FIELD / a registered code (400)
      HTTPException   → the same envelope for routing errors (404, 405, ...)
      Exception       → generic INTERNAL_ERROR (500); full traceback logged

    Stack traces never leave the server.
    """
    from backend.app.errors import AppError, ErrorCode

    known_codes = set(vars(ErrorCode).values())

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """Routes never catch AppError — they let it propagate here."""
        app.logger.info(
            "%s %s → %s %s",
            request.method, request.path, error.http_status, error.code,
        )
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Returns the FIRST schema error only: one error, not many.

        If the message is itself a registered ErrorCode it becomes the code;
        marshmallow's "Missing data for required field." maps to MISSING_FIELD;
        anything else is INVALID_FIELD.
        """
        field, raw_message = _first_error(error.messages)

        if raw_message in known_codes:
            code = raw_message
            message = _code_to_message(code)
        elif raw_message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        response_body = {"error": {"code": code, "message": message}}
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        code = ErrorCode.INVALID_FIELD if error.code == 400 else error.name.upper().replace(" ", "_")
        return jsonify({
            "error": {
                "code": code,
                "message": error.description,
            }
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
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


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if app.config.get("DEBUG") or app.config.get("TESTING"):
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
        return response


def _register_commands(app: Flask) -> None:

    @app.cli.command("init-db")
    @click.option("--drop", is_flag=True, help="Drop all tables first.")
    def init_db(drop: bool) -> None:
        """Create all tables."""
        from backend.app.extensions import db

        if drop:
            db.drop_all()
        db.create_all()
        click.echo("Database initialised.")


def _code_to_message(code: str) -> str:
    """
    Returns a human-readable default message for a known error code.
    Used when a ValidationError message IS the error code constant itself.
    """
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amount must have at most 2 decimal places.",
        "INVALID_SPLIT_METHOD": "split_method must be 'equal' or 'per_product'.",
        "SPLITS_SENT_FOR_EQUAL_METHOD": "Do not send split lists when split_method is 'equal'.",
        "AMBIGUOUS_PARTICIPANT_REF": (
            "A participant reference must name exactly one of user_id, username "
            "or external_name."
        ),
    }
    return _messages.get(code, "Invalid input.")
