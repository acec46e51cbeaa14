from flask import jsonify
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError
from sqlalchemy.exc import IntegrityError
import logging

from utils.exceptions import ServiceError

logger = logging.getLogger(__name__)


def error_response(error: str, message: str, status: int, details: dict | None = None):
    payload = {"error": error, "message": message, "status": status}
    if details:
        payload["details"] = details
    return jsonify(payload), status


def _http_error_code(err: HTTPException) -> str:
    name = (err.name or "Bad Request").upper()
    return "".join(ch if ch.isalnum() else "_" for ch in name)


def register_error_handlers(app):
    # Domain failures raised by services and guards
    @app.errorhandler(ServiceError)
    def handle_service_error(err: ServiceError):
        return error_response(err.error, err.message, err.status)

    # Marshmallow validation errors map to 400 with field-level details
    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        messages = err.messages if isinstance(err.messages, dict) else {"_schema": err.messages}
        return error_response("VALIDATION_ERROR", "Please fix the following errors", 400, details=messages)

    # Integrity errors (a unique constraint lost a race with the validation layer).
    # Database text never reaches the client.
    @app.errorhandler(IntegrityError)
    def handle_integrity_error(err: IntegrityError):
        logger.warning("Integrity error: %s", err.__class__.__name__)
        message = str(getattr(err, "orig", err)).lower()
        if "unique" in message:
            return error_response(
                "VALIDATION_ERROR",
                "Please fix the following errors",
                400,
                details={"_schema": ["Username or email has already been taken."]},
            )
        return error_response("BAD_REQUEST", "Integrity error.", 400)

    # Werkzeug HTTPExceptions map to their status codes
    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        return error_response(_http_error_code(err), err.description, err.code or 400)

    # 500 Internal Error (catch-all)
    @app.errorhandler(Exception)
    def internal_error(err: Exception):
        logger.exception("Unhandled exception", exc_info=err)
        return error_response("INTERNAL_ERROR", "An unexpected error occurred", 500)
