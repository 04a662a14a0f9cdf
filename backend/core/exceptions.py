"""Custom exceptions for the warehouse admin API."""

from typing import Optional, Sequence


class AppException(Exception):
    """Base exception for the resource access layer."""

    def __init__(self, message: str, status_code: int = 500, code: Optional[str] = None):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
            code: Machine-readable error code
        """
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(self.message)


class InvalidParameterError(AppException):
    """Malformed id, pagination, filter or body."""

    def __init__(self, message: str = "Invalid parameter"):
        """Initialize InvalidParameterError with 400 status code."""
        super().__init__(message, 400, "invalid_parameter")


class InvalidFilterError(InvalidParameterError):
    """Filter tree with an unknown operator or unusable operand."""


class UnauthorizedError(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize UnauthorizedError with 401 status code."""
        super().__init__(message, 401, "unauthorized")


class ScopeViolationError(AppException):
    """A warehouse or ownership guard rejected the row."""

    def __init__(self, message: str = "forbidden_out_of_scope", code: Optional[str] = None):
        """Initialize ScopeViolationError with 403 status code."""
        super().__init__(message, 403, code or message)


class ForbiddenError(AppException):
    """The caller lacks a permission the operation requires."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize ForbiddenError with 403 status code."""
        super().__init__(message, 403, "forbidden_missing_permission")


class NotFoundError(AppException):
    """Resource row not found exception."""

    def __init__(self, message: str = "Not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404, "not_found")


class UnknownResourceError(NotFoundError):
    """No config registered under the requested key."""

    def __init__(self, key: str, known: Sequence[str] = ()):
        self.key = key
        self.known = tuple(known)
        super().__init__("Unknown resource")
        self.code = "unknown_resource"

    def describe(self) -> str:
        known = ", ".join(sorted(self.known)) or "(none)"
        return f'Unknown resource "{self.key}". Known resources: {known}'


class UpstreamFailureError(AppException):
    """The underlying store failed."""

    def __init__(self, message: str = "Upstream store failure"):
        """Initialize UpstreamFailureError with 500 status code."""
        super().__init__(message, 500, "upstream_failure")


class ConfigurationError(AppException):
    """Invalid resource configuration."""

    def __init__(self, message: str = "Invalid resource configuration"):
        """Initialize ConfigurationError with 500 status code."""
        super().__init__(message, 500, "configuration_error")


class FilterEvaluationError(ConfigurationError):
    """A compiled filter could not be evaluated against a record."""
