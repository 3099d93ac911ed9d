"""
Structured logging for the Confidential Investment Club.

structlog renders through a stdlib ProcessorFormatter, so records from
`logging.getLogger()` (uvicorn, httpx) and `structlog.get_logger()` share
one handler and one format: JSON lines in production, colored console
output when CLUB_DEV_MODE=1.

Values that must never reach a log sink (keys, proofs, decrypted amounts
the ledger has not confirmed) are masked by `mask_confidential_values`
before rendering, whatever the output format.

Usage:
    from src.lib.logging import setup_logging

    setup_logging()  # once, at startup
"""

import logging
import os
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog

MASK = "***"

# Event keys whose values are secret or not yet public on the ledger
CONFIDENTIAL_KEYS: frozenset[str] = frozenset({
    "decrypted",
    "plaintext",
    "proof",
    "simulation_key",
})

_NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "uvicorn.access", "asyncio")


def mask_confidential_values(
    logger: Any,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """structlog processor replacing confidential values with MASK."""
    for key in CONFIDENTIAL_KEYS.intersection(event_dict):
        event_dict[key] = MASK
    return event_dict


def _renderer_chain(dev_mode: bool) -> list[structlog.types.Processor]:
    if dev_mode:
        return [structlog.dev.ConsoleRenderer()]
    return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]


def setup_logging(dev_mode: bool | None = None, log_level: str | None = None) -> None:
    """
    Configure structlog and stdlib logging for the application.

    Args:
        dev_mode: Console output instead of JSON (defaults to CLUB_DEV_MODE=1)
        log_level: Root level name (defaults to LOG_LEVEL, then INFO)
    """
    if dev_mode is None:
        dev_mode = os.environ.get("CLUB_DEV_MODE") == "1"
    level = getattr(logging, (log_level or os.environ.get("LOG_LEVEL", "INFO")).upper(), None)
    if not isinstance(level, int):
        level = logging.INFO

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        mask_confidential_values,
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *_renderer_chain(dev_mode),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
