"""
Tests for the centralized error response builder.
"""

from __future__ import annotations

from src.lib.errors import (
    CONFLICT,
    NOT_CONNECTED,
    SERVICE_UNAVAILABLE,
    TRANSACTION_REJECTED,
    build_error_response,
    get_error_message,
)


class TestGetErrorMessage:

    def test_english_messages(self) -> None:
        assert get_error_message(NOT_CONNECTED) == "Please connect wallet"
        assert get_error_message(TRANSACTION_REJECTED) == "Transaction rejected"
        assert get_error_message(SERVICE_UNAVAILABLE) == "The FHE system is not available."

    def test_german_translation(self) -> None:
        assert get_error_message(NOT_CONNECTED, "de") == "Bitte Wallet verbinden"

    def test_unknown_language_falls_back_to_english(self) -> None:
        assert get_error_message(CONFLICT, "fr") == get_error_message(CONFLICT, "en")

    def test_unknown_code(self) -> None:
        assert get_error_message("NOPE") == "An error occurred."


class TestBuildErrorResponse:

    def test_translated_message_by_default(self) -> None:
        assert build_error_response(NOT_CONNECTED) == {
            "code": NOT_CONNECTED,
            "message": "Please connect wallet",
        }

    def test_explicit_message_and_details(self) -> None:
        response = build_error_response(CONFLICT, "busy", details={"record_id": "r1"})
        assert response["message"] == "busy"
        assert response["details"] == {"record_id": "r1"}
