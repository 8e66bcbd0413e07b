"""
Error taxonomy for the access core.

Every error carries the HTTP status it maps to and a stable machine-readable code.
The app factory renders them as JSON; services only raise.
"""
from __future__ import annotations


class AccessError(Exception):
    status_code = 500
    code = "access_error"
    default_message = "Access error."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class AuthenticationError(AccessError):
    status_code = 401
    code = "authentication_required"
    default_message = "Authentication required."


class AuthorizationError(AccessError):
    status_code = 403
    code = "forbidden"
    default_message = "You are not allowed to perform this action."


class ResourceNotFound(AccessError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found."


class ScopeViolation(ResourceNotFound):
    """
    A referenced resource exists but lies outside the principal's tenant scope.

    Rendered exactly like ResourceNotFound so existence is never revealed.
    """


class InvalidRequest(AccessError):
    status_code = 400
    code = "invalid_request"
    default_message = "Invalid request."


class TokenError(AccessError):
    status_code = 401
    code = "invalid_token"


class TokenNotFound(TokenError):
    code = "token_not_found"
    default_message = "Access token not found or inactive."


class TokenExpired(TokenError):
    code = "token_expired"
    default_message = "Access token has expired."


class CapabilityDenied(TokenError):
    status_code = 403
    code = "capability_denied"
    default_message = "Access token does not grant this capability."
