"""
Services for the Confidential Investment Club.

- investment_controller: Create / verify / load lifecycle of records
- statistics: Pure club statistics aggregation
- gateways: Collaborator protocols (encryption, ledger, decryption)
- local_fhe, ledger_memory: Local simulation of those collaborators
- session_registry: One controller per connected wallet
"""

from src.services.investment_controller import InvestmentLifecycleController
from src.services.session_registry import SessionRegistry, build_local_registry
from src.services.statistics import compute_statistics

__all__ = [
    "InvestmentLifecycleController",
    "SessionRegistry",
    "build_local_registry",
    "compute_statistics",
]
