import logging

from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from qconnect.models import StorageUnavailable, storage

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base for errors raised at the API boundary; carries its HTTP mapping."""
    status = 500
    error = "INTERNAL_ERROR"
    message = "An unexpected error occurred"

    def __init__(self, message: str | None = None, reason: str | None = None, details: dict | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.reason = reason
        self.details = details


class ValidationFailed(ApiError):
    status = 400
    error = "VALIDATION_ERROR"
    message = "Invalid input"


class Unauthorized(ApiError):
    """Missing, bad or expired credential. `reason` tells the client whether a refresh is worth trying."""
    status = 401
    error = "UNAUTHORIZED"
    message = "Authentication required"


class Forbidden(ApiError):
    status = 403
    error = "FORBIDDEN"
    message = "Insufficient role"


class NotFound(ApiError):
    status = 404
    error = "NOT_FOUND"
    message = "Resource not found"


class Conflict(ApiError):
    status = 409
    error = "CONFLICT"
    message = "Conflict"


def error_response(error: str, message: str, status: int, details: dict | None = None, reason: str | None = None):
    payload = {"error": error, "message": message, "status": status}
    if reason:
        payload["reason"] = reason
    if details:
        payload["details"] = details
    response = jsonify(payload)
    response.status_code = status
    if status == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(err: ApiError):
        logger.info("request rejected: %s %s", err.status, err.reason or err.error)
        return error_response(err.error, err.message, err.status, details=err.details, reason=err.reason)

    # Marshmallow validation errors map to 400
    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        return error_response("VALIDATION_ERROR", "Invalid input", 400, details=err.messages)

    # 404 Not Found (unknown routes)
    @app.errorhandler(404)
    def not_found(e):
        return error_response("NOT_FOUND", "Resource not found", 404)

    # Integrity errors (unique constraints, FK violations)
    @app.errorhandler(IntegrityError)
    def handle_integrity_error(err: IntegrityError):
        storage.rollback()
        message = str(getattr(err, "orig", err)).lower()
        if "unique" in message:
            return error_response("CONFLICT", "Unique constraint violated.", 409)
        return error_response("VALIDATION_ERROR", "Integrity error.", 400)

    @app.errorhandler(StorageUnavailable)
    def handle_storage_unavailable(err: StorageUnavailable):
        logger.error("storage unavailable: %s", err, exc_info=err)
        return error_response("SERVICE_UNAVAILABLE", "Service temporarily unavailable", 503)

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(err: SQLAlchemyError):
        storage.rollback()
        logger.error("database error", exc_info=err)
        return error_response("SERVICE_UNAVAILABLE", "Service temporarily unavailable", 503)

    # Werkzeug HTTPExceptions map to their status codes
    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        code = err.code or 400
        error = "VALIDATION_ERROR" if code == 400 else err.name.upper().replace(" ", "_")
        response = error_response(error, err.description, code)
        allow = err.get_response().headers.get("Allow")
        if allow:
            response.headers["Allow"] = allow
        return response

    # 500 Internal Error (catch-all)
    @app.errorhandler(Exception)
    def internal_error(err: Exception):
        logger.exception("Unhandled exception", exc_info=err)
        # In dev, include exception details to speed up debugging
        details = None
        if current_app and current_app.debug:
            details = {"type": err.__class__.__name__, "message": str(err)}
        return error_response("INTERNAL_ERROR", "An unexpected error occurred", 500, details=details)
