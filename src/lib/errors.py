"""
Centralized Error Response Builder for the Confidential Investment Club.

Provides consistent error codes, messages, and i18n-ready error responses
for use across the lifecycle controller, status notifications and the API.

Error codes are constants that map to translatable message strings.
The builder returns structured error dicts compatible with the API
response envelope (see src/api/schemas.py).
"""

from __future__ import annotations

from typing import Any

# =============================================================================
# Error Code Constants
# =============================================================================

VALIDATION_ERROR = "VALIDATION_ERROR"
NOT_CONNECTED = "NOT_CONNECTED"
ENCRYPTION_FAILED = "ENCRYPTION_FAILED"
CONFLICT = "CONFLICT"
TRANSACTION_REJECTED = "TRANSACTION_REJECTED"
CREATION_FAILED = "CREATION_FAILED"
VERIFICATION_FAILED = "VERIFICATION_FAILED"
DECRYPTION_FAILED = "DECRYPTION_FAILED"
NOT_FOUND = "NOT_FOUND"
SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"

# =============================================================================
# i18n Message Registry
#
# Maps (error_code, language) -> translated message string.
# Extend this dict to add new languages. Falls back to "en" if a
# translation is missing for the requested language.
# =============================================================================

_ERROR_MESSAGES: dict[str, dict[str, str]] = {
    VALIDATION_ERROR: {
        "en": "Invalid input. Please check the proposal fields.",
        "de": "Ungueltige Eingabe. Bitte die Felder des Vorschlags pruefen.",
    },
    NOT_CONNECTED: {
        "en": "Please connect wallet",
        "de": "Bitte Wallet verbinden",
    },
    ENCRYPTION_FAILED: {
        "en": "Encryption failed. Please try again.",
        "de": "Verschluesselung fehlgeschlagen. Bitte erneut versuchen.",
    },
    CONFLICT: {
        "en": "Another transaction is still pending. Please wait.",
        "de": "Eine andere Transaktion laeuft noch. Bitte warten.",
    },
    TRANSACTION_REJECTED: {
        "en": "Transaction rejected",
        "de": "Transaktion abgelehnt",
    },
    CREATION_FAILED: {
        "en": "Creation failed",
        "de": "Erstellung fehlgeschlagen",
    },
    VERIFICATION_FAILED: {
        "en": "Verification failed",
        "de": "Verifizierung fehlgeschlagen",
    },
    DECRYPTION_FAILED: {
        "en": "Decryption failed. Please try again.",
        "de": "Entschluesselung fehlgeschlagen. Bitte erneut versuchen.",
    },
    NOT_FOUND: {
        "en": "The requested investment was not found.",
        "de": "Die angeforderte Investition wurde nicht gefunden.",
    },
    SERVICE_UNAVAILABLE: {
        "en": "The FHE system is not available.",
        "de": "Das FHE-System ist nicht verfuegbar.",
    },
    CONFIGURATION_ERROR: {
        "en": "The service is misconfigured.",
        "de": "Der Dienst ist falsch konfiguriert.",
    },
    INTERNAL_ERROR: {
        "en": "An internal error occurred. Please try again.",
        "de": "Ein interner Fehler ist aufgetreten. Bitte erneut versuchen.",
    },
}

# Default fallback language
_DEFAULT_LANG = "en"


# =============================================================================
# Error Response Builder
# =============================================================================


def get_error_message(code: str, lang: str = "en") -> str:
    """
    Get a translated error message for a given error code.

    Falls back to English if the requested language is not available.
    Falls back to a generic message if the error code is unknown.

    Args:
        code: Error code constant (e.g. CONFLICT, TRANSACTION_REJECTED)
        lang: ISO 639-1 language code (e.g. "en", "de")

    Returns:
        Translated error message string
    """
    messages = _ERROR_MESSAGES.get(code, {})
    return messages.get(lang, messages.get(_DEFAULT_LANG, "An error occurred."))


def build_error_response(
    code: str,
    message: str | None = None,
    details: dict[str, Any] | None = None,
    lang: str = "en",
) -> dict[str, Any]:
    """
    Build a structured error response dict.

    If no message is provided, the i18n-translated message for the error code
    and language is used automatically.

    Returns:
        Structured error dict: {"code": str, "message": str, "details": dict | None}
    """
    resolved_message = message if message is not None else get_error_message(code, lang)
    error: dict[str, Any] = {
        "code": code,
        "message": resolved_message,
    }
    if details is not None:
        error["details"] = details
    return error


__all__ = [
    # Error code constants
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
    "CONFIGURATION_ERROR",
    "INTERNAL_ERROR",
    # Functions
    "get_error_message",
    "build_error_response",
]
