"""
Exception classes for session stores.

Every error surfaced by an adapter is a SessionStoreError carrying a code
from the ErrorCode catalog. Client library exceptions are chained as the
``__cause__`` so the original failure stays inspectable.
"""

from typing import Any, Optional

from sessionstores.errors.codes import ErrorCode, is_retryable


class SessionStoreError(Exception):
    """
    Base exception class for all session store errors.

    This exception provides structured error information including:
    - error_code: A standardized error code from the ErrorCode enum
    - message: A human-readable error message
    - details: Optional additional context (e.g., the failing backend)

    Example:
        raise BackendError(
            "Redis SET failed",
            details={"backend": "redis", "operation": "create"}
        )
    """

    default_error_code = ErrorCode.BACKEND_ERROR

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        error_code: Optional[ErrorCode] = None,
    ):
        """
        Initialize a SessionStoreError.

        Args:
            message: A human-readable error message
            details: Optional dictionary with additional error context
            error_code: Overrides the class's default error code
        """
        self.error_code = error_code or self.default_error_code
        self.message = message
        self.details = details
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """Whether the failed operation may succeed if the caller retries it."""
        return is_retryable(self.error_code)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for JSON serialization.

        Returns:
            Dictionary containing error_code, message, and details
        """
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(error_code={self.error_code.value!r}, "
            f"message={self.message!r}, details={self.details!r})"
        )


class BackendError(SessionStoreError):
    """The underlying storage engine rejected or failed an operation."""

    default_error_code = ErrorCode.BACKEND_ERROR


class NotConnectedError(BackendError):
    """An operation was attempted before the adapter's client was connected."""

    default_error_code = ErrorCode.NOT_CONNECTED


class EncodeError(SessionStoreError):
    """A record's data could not be serialized."""

    default_error_code = ErrorCode.ENCODE_ERROR


class DecodeError(SessionStoreError):
    """Stored bytes could not be deserialized back into a record."""

    default_error_code = ErrorCode.DECODE_ERROR


class IdentifierExhaustedError(SessionStoreError):
    """
    Raised when create() could not find a free identifier.

    With 128 random bits per identifier this is practically unreachable;
    it exists so the create loop always terminates.
    """

    default_error_code = ErrorCode.IDENTIFIER_EXHAUSTED

    def __init__(self, attempts: int, details: Optional[dict[str, Any]] = None):
        self.attempts = attempts
        super().__init__(
            f"No free session identifier found after {attempts} attempts",
            details={"attempts": attempts, **(details or {})},
        )


class ConfigurationError(SessionStoreError):
    """
    Exception raised when configuration validation fails.

    Raised at setup time, before any storage call is made: for invalid
    destination names and for settings that fail to load.
    """

    default_error_code = ErrorCode.CONFIGURATION_ERROR

    def __init__(
        self,
        message: str,
        missing_fields: Optional[list[str]] = None,
        invalid_fields: Optional[dict[str, str]] = None,
    ):
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        details = None
        if self.missing_fields or self.invalid_fields:
            details = {
                "missing_fields": self.missing_fields,
                "invalid_fields": self.invalid_fields,
            }
        super().__init__(message, details=details)
        # Keep str(exc) descriptive for startup failures
        self.args = (self.format_error_message(),)

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)
