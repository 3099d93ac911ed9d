"""
Runtime Settings for the Confidential Investment Club.

All settings come from environment variables with the CLUB_ prefix.
Values are parsed once into an immutable ClubSettings instance.

Variables:
    CLUB_CONTRACT_ADDRESS              Target contract the amounts are bound to
    CLUB_CALL_TIMEOUT_SECONDS          Bound on every collaborator call (0 = none)
    CLUB_STATUS_SUCCESS_CLEAR_SECONDS  Delay before a success status is cleared
    CLUB_STATUS_ERROR_CLEAR_SECONDS    Delay before an error status is cleared
    CLUB_RECORD_ID_PREFIX              Prefix of generated record ids
    CLUB_ENVIRONMENT                   development | production
    CLUB_DEV_MODE                      "1" enables console logging and dev keys
    CLUB_CORS_ORIGINS                  Comma-separated list of allowed origins
    CLUB_HOST / CLUB_PORT              Bind address for the API server
    CLUB_SIMULATION_KEY                Base64 32-byte key for the local backend
"""

from __future__ import annotations

import base64
import binascii
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import lru_cache

from src.lib.exceptions import ConfigurationError

DEFAULT_CONTRACT_ADDRESS = "0x0000000000000000000000000000000000c1ab01"


def _parse_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {raw!r}")
    return value


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _parse_key(env: Mapping[str, str], name: str) -> bytes | None:
    raw = env.get(name)
    if not raw:
        return None
    try:
        key = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError(f"{name} must be base64 encoded") from exc
    if len(key) != 32:
        raise ConfigurationError(f"{name} must decode to 32 bytes, got {len(key)}")
    return key


@dataclass(frozen=True)
class ClubSettings:
    """Immutable runtime configuration."""

    contract_address: str = DEFAULT_CONTRACT_ADDRESS
    call_timeout_seconds: float | None = 60.0
    success_clear_seconds: float = 2.0
    error_clear_seconds: float = 3.0
    record_id_prefix: str = "investment-"
    environment: str = "development"
    dev_mode: bool = False
    cors_origins: tuple[str, ...] = field(default_factory=tuple)
    host: str = "0.0.0.0"
    port: int = 8000
    simulation_key: bytes | None = None

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ClubSettings:
        """
        Build settings from environment variables.

        Args:
            env: Mapping to read from (defaults to os.environ)

        Raises:
            ConfigurationError: If a value cannot be parsed or is unsafe
        """
        env = os.environ if env is None else env

        timeout = _parse_float(env, "CLUB_CALL_TIMEOUT_SECONDS", 60.0)
        environment = env.get("CLUB_ENVIRONMENT", "development").strip() or "development"
        cors_origins = tuple(
            origin.strip()
            for origin in env.get("CLUB_CORS_ORIGINS", "").split(",")
            if origin.strip()
        )

        if environment == "production" and "*" in cors_origins:
            raise ConfigurationError(
                "CLUB_CORS_ORIGINS contains wildcard '*' which is forbidden in production."
            )

        prefix = env.get("CLUB_RECORD_ID_PREFIX", "investment-")
        if not prefix:
            raise ConfigurationError("CLUB_RECORD_ID_PREFIX must not be empty")

        return cls(
            contract_address=env.get("CLUB_CONTRACT_ADDRESS", DEFAULT_CONTRACT_ADDRESS),
            call_timeout_seconds=timeout or None,
            success_clear_seconds=_parse_float(env, "CLUB_STATUS_SUCCESS_CLEAR_SECONDS", 2.0),
            error_clear_seconds=_parse_float(env, "CLUB_STATUS_ERROR_CLEAR_SECONDS", 3.0),
            record_id_prefix=prefix,
            environment=environment,
            dev_mode=env.get("CLUB_DEV_MODE") == "1",
            cors_origins=cors_origins,
            host=env.get("CLUB_HOST", "0.0.0.0"),
            port=_parse_int(env, "CLUB_PORT", 8000),
            simulation_key=_parse_key(env, "CLUB_SIMULATION_KEY"),
        )


@lru_cache(maxsize=1)
def get_settings() -> ClubSettings:
    """Return the process-wide settings (parsed once)."""
    return ClubSettings.from_env()
