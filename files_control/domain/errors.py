"""
Error Handling Module

Defines domain exceptions and error categories for the control plane.
Domain exceptions are pure and have no external dependencies.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Error category enumeration for structured error handling."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    EXPIRED = "expired"
    CONFIG = "config"
    MISMATCH = "mismatch"
    SYSTEM_ERROR = "system_error"


# User-facing error messages with actionable guidance
ERROR_MESSAGES: Dict[ErrorCategory, Dict[str, str]] = {
    ErrorCategory.NOT_FOUND: {
        "title": "Not Found",
        "message": "The requested file, grant or upload ticket does not exist.",
        "action": "Check the identifier and try again.",
    },
    ErrorCategory.CONFLICT: {
        "title": "Conflict",
        "message": "The request conflicts with the current state of the file.",
        "action": "Refresh the file state and retry with different values.",
    },
    ErrorCategory.VALIDATION: {
        "title": "Invalid Request",
        "message": "The request is missing required information or contains invalid data.",
        "action": "Please check your input and try again.",
    },
    ErrorCategory.EXPIRED: {
        "title": "Expired",
        "message": "The upload ticket or file is past its expiration time.",
        "action": "Start a new upload or request a new link.",
    },
    ErrorCategory.CONFIG: {
        "title": "Storage Not Configured",
        "message": "The remote storage backend is not configured.",
        "action": "Set the S3 bucket and credentials and try again.",
    },
    ErrorCategory.MISMATCH: {
        "title": "Storage ID Mismatch",
        "message": "The storage ID does not match the one issued for this upload.",
        "action": "Finalize the upload with the storage ID returned at issuance.",
    },
    ErrorCategory.SYSTEM_ERROR: {
        "title": "System Error",
        "message": "An unexpected error occurred while processing your request.",
        "action": "Please try again later. If the problem persists, contact support.",
    },
}

HTTP_STATUS_CODES: Dict[ErrorCategory, int] = {
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.EXPIRED: 410,
    ErrorCategory.CONFIG: 500,
    ErrorCategory.MISMATCH: 409,
    ErrorCategory.SYSTEM_ERROR: 500,
}


# ============================================================================
# Domain Exceptions (Pure - No External Dependencies)
# ============================================================================

class DomainError(Exception):
    """
    Base exception for all domain errors.

    Domain exceptions are pure and have no external dependencies.
    They can optionally wrap original errors for context.
    """

    category = ErrorCategory.SYSTEM_ERROR

    def __init__(self, message: str, original_error: Exception = None):
        """
        Initialize domain error.

        Args:
            message: Error message
            original_error: Optional original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class NotFoundError(DomainError):
    """Raised when a referenced file, grant or upload ticket is absent."""

    category = ErrorCategory.NOT_FOUND


class ConflictError(DomainError):
    """Raised on a uniqueness violation or an illegal no-op."""

    category = ErrorCategory.CONFLICT


class ValidationError(DomainError):
    """Raised for malformed or empty input and bad numeric ranges."""

    category = ErrorCategory.VALIDATION


class ExpiredError(DomainError):
    """Raised when an upload ticket or file is already past its deadline."""

    category = ErrorCategory.EXPIRED


class ConfigError(DomainError):
    """Raised when the remote storage backend credentials are missing."""

    category = ErrorCategory.CONFIG


class MismatchError(DomainError):
    """
    Raised when a finalize call names a different storage ID than the one
    chosen when the upload ticket was issued.
    """

    category = ErrorCategory.MISMATCH


def create_error_response(
    error: DomainError,
    context: Optional[Dict[str, Any]] = None,
) -> tuple[Dict[str, Any], int]:
    """
    Create a structured error response for an outer route layer.

    Args:
        error: Domain error raised by a control-plane operation
        context: Additional context information

    Returns:
        Tuple of (error_dict, status_code)
    """
    category = getattr(error, "category", ErrorCategory.SYSTEM_ERROR)
    error_info = ERROR_MESSAGES.get(category, ERROR_MESSAGES[ErrorCategory.SYSTEM_ERROR])

    body = {
        "error": category.value,
        "title": error_info["title"],
        "message": error_info["message"],
        "action": error_info["action"],
        "detail": str(error),
    }
    if context:
        body["context"] = context

    return body, HTTP_STATUS_CODES.get(category, 500)
