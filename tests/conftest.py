"""
Shared test fixtures for the Confidential Investment Club.

This module provides common fixtures used across all test modules:
- Environment setup (dev mode)
- Local FHE backend with a fixed key
- In-memory ledger and a wallet-bound controller
- A second member's controller on the same ledger

Usage:
    All fixtures are automatically available to any test in the tests/ directory.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# 1. Environment setup -- must run before any application imports
# ---------------------------------------------------------------------------

os.environ.setdefault("CLUB_DEV_MODE", "1")

# ---------------------------------------------------------------------------
# Application imports (after env vars are set)
# ---------------------------------------------------------------------------

from src.config.settings import ClubSettings  # noqa: E402
from src.core.notifications import StatusNotifier  # noqa: E402
from src.services.investment_controller import InvestmentLifecycleController  # noqa: E402
from src.services.ledger_memory import InMemoryLedger  # noqa: E402
from src.services.local_fhe import (  # noqa: E402
    LocalDecryptionVerifier,
    LocalEncryptionGateway,
    LocalFheBackend,
)

ALICE = "0x00000000000000000000000000000000000a11ce"
BOB = "0x0000000000000000000000000000000000000b0b"

TEST_KEY = bytes(range(32))


# ---------------------------------------------------------------------------
# 2. Settings
# ---------------------------------------------------------------------------

@pytest.fixture()
def settings() -> ClubSettings:
    """Settings with a short call timeout so hanging fakes fail fast."""
    return ClubSettings(call_timeout_seconds=1.0, simulation_key=TEST_KEY)


# ---------------------------------------------------------------------------
# 3. Local simulation backend
# ---------------------------------------------------------------------------

@pytest.fixture()
def backend() -> LocalFheBackend:
    """LocalFheBackend with a fixed key."""
    return LocalFheBackend(key=TEST_KEY)


@pytest.fixture()
def ledger(backend: LocalFheBackend, settings: ClubSettings) -> InMemoryLedger:
    """Fresh in-memory ledger bound to the default contract address."""
    return InMemoryLedger(backend, settings.contract_address, clock=lambda: 1_700_000_000.0)


# ---------------------------------------------------------------------------
# 4. Controllers
# ---------------------------------------------------------------------------

@pytest.fixture()
def make_controller(
    ledger: InMemoryLedger,
    backend: LocalFheBackend,
    settings: ClubSettings,
) -> Callable[..., InvestmentLifecycleController]:
    """
    Factory building a controller on the local backend.

    Keyword overrides replace any constructor argument (gateway, ledger,
    verifier, settings, notifier, id_factory).
    """

    def factory(submitter: str | None = ALICE, **overrides: Any) -> InvestmentLifecycleController:
        kwargs: dict[str, Any] = {
            "gateway": LocalEncryptionGateway(backend),
            "ledger": ledger.client(submitter or ""),
            "verifier": LocalDecryptionVerifier(backend),
            "submitter": submitter,
            "settings": settings,
            "notifier": StatusNotifier(),
        }
        kwargs.update(overrides)
        return InvestmentLifecycleController(**kwargs)

    return factory


@pytest.fixture()
def controller(make_controller) -> InvestmentLifecycleController:
    """Controller for ALICE on the local backend."""
    return make_controller(ALICE)


@pytest.fixture()
def bob_controller(make_controller) -> InvestmentLifecycleController:
    """Controller for BOB on the same ledger."""
    return make_controller(BOB)
