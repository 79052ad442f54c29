"""
Error code catalog for session stores.

This module defines the error codes shared by every backend adapter,
covering backend failures, record serialization failures and
configuration problems.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes raised by session stores.

    Each error code belongs to one category:
    - Backend errors: the storage engine rejected or failed an operation
    - Codec errors: a record could not be encoded or decoded
    - Configuration errors: invalid setup, detected before any I/O
    """

    # Backend errors
    BACKEND_ERROR = "BACKEND_ERROR"
    """The storage engine rejected or failed an operation"""

    NOT_CONNECTED = "NOT_CONNECTED"
    """The adapter's client has not been connected yet"""

    # Codec errors
    ENCODE_ERROR = "ENCODE_ERROR"
    """Session data could not be serialized"""

    DECODE_ERROR = "DECODE_ERROR"
    """Stored bytes could not be deserialized into a record"""

    # Configuration errors
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """Invalid destination name or settings"""

    # Identifier assignment
    IDENTIFIER_EXHAUSTED = "IDENTIFIER_EXHAUSTED"
    """No free session identifier found within the attempt budget"""


# Codes a caller may reasonably retry after a delay
RETRYABLE_ERROR_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.BACKEND_ERROR,
    ErrorCode.IDENTIFIER_EXHAUSTED,
})


def is_retryable(error_code: ErrorCode) -> bool:
    """
    Tell whether an operation that failed with this code may succeed on retry.

    The stores never retry on their own; this is a hint for callers.

    Args:
        error_code: The error code to look up

    Returns:
        True if retrying the same operation later can succeed
    """
    return error_code in RETRYABLE_ERROR_CODES
