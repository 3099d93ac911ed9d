"""
Lib package for the Confidential Investment Club.

Contains shared utilities:
- errors.py: Centralized error codes and i18n messages
- exceptions.py: Exception hierarchy carrying those codes
- logging.py: structlog configuration
"""

from src.lib.errors import (
    CONFLICT,
    CREATION_FAILED,
    DECRYPTION_FAILED,
    ENCRYPTION_FAILED,
    INTERNAL_ERROR,
    NOT_CONNECTED,
    NOT_FOUND,
    SERVICE_UNAVAILABLE,
    TRANSACTION_REJECTED,
    VALIDATION_ERROR,
    VERIFICATION_FAILED,
    build_error_response,
    get_error_message,
)
from src.lib.exceptions import ClubException
from src.lib.logging import setup_logging

__all__ = [
    # Errors
    "VALIDATION_ERROR",
    "NOT_CONNECTED",
    "ENCRYPTION_FAILED",
    "CONFLICT",
    "TRANSACTION_REJECTED",
    "CREATION_FAILED",
    "VERIFICATION_FAILED",
    "DECRYPTION_FAILED",
    "NOT_FOUND",
    "SERVICE_UNAVAILABLE",
    "INTERNAL_ERROR",
    "get_error_message",
    "build_error_response",
    # Exceptions
    "ClubException",
    # Logging
    "setup_logging",
]
