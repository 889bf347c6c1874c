"""
Error taxonomy shared by services and routes.

Services raise these; a single Flask error handler renders them as
{"success": false, "error_code": ..., "message": ...}.
"""

import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    401: "unauthenticated",
    403: "permission-denied",
    404: "not-found",
    405: "method-not-allowed",
    413: "invalid-argument",
    429: "resource-exhausted",
}


class ApiError(Exception):
    code = "internal"
    status_code = 500
    default_message = "An unexpected error occurred. Please try again."

    def __init__(self, message=None, details=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self):
        body = {
            "success": False,
            "error_code": self.code,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ApiError):
    code = "invalid-argument"
    status_code = 400
    default_message = "Invalid request"


class UnauthenticatedError(ApiError):
    code = "unauthenticated"
    status_code = 401
    default_message = "User not authenticated"


class PermissionDeniedError(ApiError):
    code = "permission-denied"
    status_code = 403
    default_message = "Permission denied"


class NotFoundError(ApiError):
    code = "not-found"
    status_code = 404
    default_message = "Not found"


class FailedPreconditionError(ApiError):
    code = "failed-precondition"
    status_code = 409
    default_message = "Operation not allowed in the current state"


class ConfigurationError(FailedPreconditionError):
    default_message = "Invalid price configuration. Please contact admin."


class RateLimitError(ApiError):
    code = "resource-exhausted"
    status_code = 429
    default_message = "Too many requests. Please try again later."


class InternalError(ApiError):
    pass


class NotificationError(Exception):
    """Delivery to the operator channel failed."""


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(error):
        if isinstance(error, InternalError):
            # detail stays in the log, the caller gets the generic text
            logger.error("Internal error: %s", error.message)
            body = InternalError().to_dict()
            return jsonify(body), 500
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        code = HTTP_ERROR_CODES.get(error.code, "invalid-argument" if error.code < 500 else "internal")
        return jsonify({
            "success": False,
            "error_code": code,
            "message": error.description or error.name,
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        app.logger.exception("Unhandled error: %s", error)
        return jsonify(InternalError().to_dict()), 500
