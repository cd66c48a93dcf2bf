"""
Exceptions for the form builder backend.

Every error raised by the crud layer derives from ``FormBuilderError`` and
carries the HTTP status it maps to. The handler registered in ``main.py``
renders them as ``{"success": false, "message": ..., "code": ...}``.
"""

from typing import Any, Dict, Optional


class FormBuilderError(Exception):
    """Base exception for all form builder errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"success": False, "message": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


# ============================================
# Authentication & Authorization Errors
# ============================================


class AuthenticationError(FormBuilderError):
    """Missing or invalid credential"""

    status_code = 401

    def __init__(self, message: str = "User must be logged in."):
        super().__init__(message, code="AUTH_FAILED")


class TokenExpiredError(AuthenticationError):
    def __init__(self):
        super().__init__("Token has expired")
        self.code = "TOKEN_EXPIRED"


class InvalidTokenError(AuthenticationError):
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)
        self.code = "INVALID_TOKEN"


class AuthorizationError(FormBuilderError):
    """Authenticated but not allowed to perform the action"""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


# ============================================
# Resource Errors
# ============================================


class ResourceNotFoundError(FormBuilderError):
    status_code = 404

    def __init__(self, resource_type: str, resource_id: Any = None, message: Optional[str] = None):
        if message is None:
            message = (
                f"{resource_type} with ID '{resource_id}' not found"
                if resource_id is not None
                else f"{resource_type} not found"
            )
        super().__init__(
            message,
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class ConflictError(FormBuilderError):
    status_code = 409

    def __init__(self, message: str):
        super().__init__(message, code="CONFLICT")


class ExpiredError(FormBuilderError):
    """A business time window (e.g. response edit window) has passed"""

    status_code = 403

    def __init__(self, message: str):
        super().__init__(message, code="EXPIRED")


class ValidationError(FormBuilderError):
    status_code = 422

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


# ============================================
# Infrastructure Errors
# ============================================


class DependencyFailure(FormBuilderError):
    """Database or notifier unavailable"""

    status_code = 503

    def __init__(self, message: str = "A backing service is unavailable"):
        super().__init__(message, code="DEPENDENCY_FAILURE")
