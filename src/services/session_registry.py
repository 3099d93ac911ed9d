"""
Wallet Session Registry.

One InvestmentLifecycleController per connected wallet. Sessions share the
ledger (it is the external system) but nothing else: each has its own
record cache, in-flight slots and status notifier.

The registry is bounded: when full, the least recently used session without
an operation in flight is evicted.

Usage:
    registry = build_local_registry(settings)
    controller = registry.controller_for("0xAbC...")
"""

from __future__ import annotations

from collections import OrderedDict

import structlog

from src.config.settings import ClubSettings
from src.core.notifications import StatusNotifier
from src.services.gateways import DecryptionVerifier, EncryptionGateway
from src.services.investment_controller import InvestmentLifecycleController
from src.services.ledger_memory import InMemoryLedger
from src.services.local_fhe import LocalDecryptionVerifier, LocalEncryptionGateway, LocalFheBackend

logger = structlog.get_logger(__name__)


def normalize_wallet(address: str | None) -> str:
    """Lower-case, stripped wallet address ('' when absent)."""
    return (address or "").strip().lower()


class SessionRegistry:
    """
    Bounded map of wallet address -> controller.

    Args:
        settings: Runtime settings shared by every session
        ledger: Shared in-memory ledger
        gateway: Encryption gateway
        verifier: Decryption verifier
        max_sessions: Maximum number of live sessions
    """

    MAX_SESSIONS = 1000

    def __init__(
        self,
        settings: ClubSettings,
        ledger: InMemoryLedger,
        gateway: EncryptionGateway,
        verifier: DecryptionVerifier,
        max_sessions: int = MAX_SESSIONS,
    ) -> None:
        self.settings = settings
        self.ledger = ledger
        self._gateway = gateway
        self._verifier = verifier
        self._max_sessions = max_sessions
        self._sessions: OrderedDict[str, InvestmentLifecycleController] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def controller_for(self, wallet: str | None) -> InvestmentLifecycleController:
        """Return the session controller for `wallet`, creating it on first use."""
        key = normalize_wallet(wallet)
        controller = self._sessions.get(key)
        if controller is not None:
            self._sessions.move_to_end(key)
            return controller

        if len(self._sessions) >= self._max_sessions:
            self._evict_idle()

        submitter = key or None
        controller = InvestmentLifecycleController(
            gateway=self._gateway,
            ledger=self.ledger.client(key),
            verifier=self._verifier,
            submitter=submitter,
            settings=self.settings,
            notifier=StatusNotifier(
                success_clear_seconds=self.settings.success_clear_seconds,
                error_clear_seconds=self.settings.error_clear_seconds,
            ),
        )
        self._sessions[key] = controller
        logger.info("session_opened", wallet=submitter, sessions=len(self._sessions))
        return controller

    def _evict_idle(self) -> None:
        for key, controller in self._sessions.items():
            if not controller.is_busy:
                del self._sessions[key]
                logger.info("session_evicted", wallet=key or None)
                return
        logger.warning("session_registry_full", sessions=len(self._sessions))


def build_local_registry(settings: ClubSettings) -> SessionRegistry:
    """Wire a registry against the local simulation backend."""
    backend = LocalFheBackend(key=settings.simulation_key)
    ledger = InMemoryLedger(backend, settings.contract_address)
    return SessionRegistry(
        settings=settings,
        ledger=ledger,
        gateway=LocalEncryptionGateway(backend),
        verifier=LocalDecryptionVerifier(backend),
    )
