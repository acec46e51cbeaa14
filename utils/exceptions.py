"""
Domain exceptions raised by the services and the request guards.

Each class carries the HTTP status and error code used by api.errors to build
the uniform error envelope, so services never need to import Flask.
Validation failures use marshmallow.ValidationError instead.
"""
from __future__ import annotations


class ServiceError(Exception):
    status = 500
    error = "INTERNAL_ERROR"
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidToken(ServiceError):
    status = 400
    error = "INVALID_TOKEN"
    default_message = "Invalid token"


class Unauthorized(ServiceError):
    status = 401
    error = "UNAUTHORIZED"
    default_message = "Unauthenticated"


class Forbidden(ServiceError):
    status = 403
    error = "FORBIDDEN"
    default_message = "Forbidden"


class NotFound(ServiceError):
    status = 404
    error = "NOT_FOUND"
    default_message = "Resource not found"


class DependencyFailure(ServiceError):
    status = 424
    error = "FAILED_DEPENDENCY"
    default_message = "A downstream service rejected the request"


class TooManyRequests(ServiceError):
    status = 429
    error = "TOO_MANY_REQUESTS"
    default_message = "Please wait before retrying"
