"""
Tests for structlog configuration.
"""

from __future__ import annotations

import logging

import structlog

from src.lib.logging import MASK, mask_confidential_values, setup_logging


class TestSetupLogging:

    def test_installs_single_structlog_handler(self) -> None:
        setup_logging(dev_mode=False, log_level="debug")
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)
        assert root.level == logging.DEBUG

    def test_quiets_noisy_loggers(self) -> None:
        setup_logging(dev_mode=True)
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self) -> None:
        setup_logging(dev_mode=False, log_level="chatty")
        assert logging.getLogger().level == logging.INFO


class TestMaskConfidentialValues:

    def test_masks_secret_keys(self) -> None:
        event = {"event": "verified_amount_mismatch", "decrypted": 1000, "stored": 999, "proof": b"\x01"}
        masked = mask_confidential_values(None, "warning", event)
        assert masked["decrypted"] == MASK
        assert masked["proof"] == MASK
        assert masked["stored"] == 999

    def test_leaves_other_events_untouched(self) -> None:
        event = {"event": "records_loaded", "total": 3}
        assert mask_confidential_values(None, "info", dict(event)) == event

    def test_processor_installed(self) -> None:
        setup_logging(dev_mode=False)
        assert mask_confidential_values in structlog.get_config()["processors"]
