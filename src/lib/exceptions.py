"""
Custom exception hierarchy for the Confidential Investment Club.

Provides structured exception types for the record lifecycle:
- Input validation and wallet connection
- Encryption gateway, ledger submission, decryption verification
- In-flight conflicts and state invariants

All exceptions inherit from ClubException, enabling catch-all for
club-specific errors while keeping the ability to catch specific
error types. Every class carries the error code used for status
messages (see src/lib/errors.py) and whether a retry is meaningful.
"""

from __future__ import annotations

from src.lib import errors


class ClubException(Exception):
    """Base exception for all Confidential Investment Club errors."""

    code: str = errors.INTERNAL_ERROR
    retryable: bool = False


class ConfigurationError(ClubException):
    """Missing environment variables, invalid config values, or startup failures."""

    code = errors.CONFIGURATION_ERROR


class ValidationError(ClubException):
    """Bad input. Raised before any side effect, always recoverable locally."""

    code = errors.VALIDATION_ERROR


class NotConnectedError(ValidationError):
    """No submitter identity (wallet) is connected to the session."""

    code = errors.NOT_CONNECTED


class EncryptionError(ClubException):
    """Encryption gateway failure. Happens before any ledger write."""

    code = errors.ENCRYPTION_FAILED
    retryable = True


class ConflictError(ClubException):
    """An overlapping create or verify attempt is already in flight."""

    code = errors.CONFLICT
    retryable = True


class LedgerError(ClubException):
    """Ledger submission did not go through."""

    code = errors.CREATION_FAILED


class LedgerRejected(LedgerError):
    """The signer declined the transaction. Terminal for that attempt."""

    code = errors.TRANSACTION_REJECTED


class LedgerFailed(LedgerError):
    """Submission failed for reasons other than the signer declining."""

    code = errors.CREATION_FAILED
    retryable = True


class DecryptionError(ClubException):
    """Decryption verifier failure. The record stays unverified."""

    code = errors.DECRYPTION_FAILED
    retryable = True


class RecordNotFoundError(ClubException):
    """The ledger has no record with the requested id."""

    code = errors.NOT_FOUND


class ServiceUnavailableError(ClubException):
    """The ledger service reports it is not available."""

    code = errors.SERVICE_UNAVAILABLE
    retryable = True


class StateError(ClubException):
    """Invalid state transitions, id collisions, broken record invariants."""

    code = errors.INTERNAL_ERROR
