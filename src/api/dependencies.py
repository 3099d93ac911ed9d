"""
FastAPI Dependencies for wallet sessions.

The connected wallet is identified by the X-Wallet-Address header. Requests
without it get a read-only session (creating or verifying fails with
NOT_CONNECTED).
"""

from __future__ import annotations

import re

from fastapi import Depends, Header, Request

from src.lib.exceptions import ValidationError
from src.services.investment_controller import InvestmentLifecycleController
from src.services.session_registry import SessionRegistry

WALLET_HEADER = "X-Wallet-Address"

_WALLET_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def get_registry(request: Request) -> SessionRegistry:
    """Session registry stored on the application state by create_app()."""
    return request.app.state.registry


async def get_wallet(
    x_wallet_address: str | None = Header(default=None, alias=WALLET_HEADER),
) -> str | None:
    """
    Validated wallet address from the request header.

    Raises ValidationError for a malformed address.
    """
    if x_wallet_address is None or not x_wallet_address.strip():
        return None
    address = x_wallet_address.strip()
    if not _WALLET_PATTERN.match(address):
        raise ValidationError(f"{WALLET_HEADER} must be a 0x-prefixed 20-byte hex address")
    return address


async def get_controller(
    wallet: str | None = Depends(get_wallet),
    registry: SessionRegistry = Depends(get_registry),
) -> InvestmentLifecycleController:
    """Lifecycle controller of the caller's wallet session."""
    return registry.controller_for(wallet)
