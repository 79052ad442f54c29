"""
Error handling module for session stores.

This module provides structured error handling with:
- ErrorCode enum for standardized error codes
- SessionStoreError and its subclasses, one per failure category
"""

from sessionstores.errors.codes import ErrorCode, is_retryable
from sessionstores.errors.exceptions import (
    BackendError,
    ConfigurationError,
    DecodeError,
    EncodeError,
    IdentifierExhaustedError,
    NotConnectedError,
    SessionStoreError,
)

__all__ = [
    "ErrorCode",
    "is_retryable",
    "SessionStoreError",
    "BackendError",
    "NotConnectedError",
    "EncodeError",
    "DecodeError",
    "IdentifierExhaustedError",
    "ConfigurationError",
]
