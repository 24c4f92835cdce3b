"""Tests for structured logging setup."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from contactsync.core.logging import (
    add_device_context,
    configure_logging,
    get_device_context,
    set_device_context,
)

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    for name in ("httpx", "httpcore"):
        noisy = logging.getLogger(name)
        for handler in noisy.handlers:
            handler.close()
        noisy.handlers.clear()


def test_sets_root_level_and_quiets_http_loggers():
    configure_logging(level="debug")

    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("httpcore").level == logging.WARNING


def test_reconfiguration_does_not_duplicate_handlers():
    configure_logging()
    configure_logging()

    assert len(logging.getLogger().handlers) == 1


def test_device_context_is_injected():
    set_device_context("laptop")

    assert get_device_context() == "laptop"
    assert add_device_context(None, "info", {})["device"] == "laptop"


def test_log_root_writes_json_files(tmp_path: Path):
    configure_logging(log_root=tmp_path, device="phone")

    logging.getLogger("contactsync.engine").info("reconcile finished")
    logging.getLogger("httpx").warning("slow response")
    for handler in logging.getLogger().handlers + logging.getLogger("httpx").handlers:
        handler.flush()

    app_log = tmp_path / "contactsync" / "phone.log"
    http_log = tmp_path / "http" / "phone.log"
    assert app_log.exists()
    assert http_log.exists()

    records = [json.loads(line) for line in app_log.read_text().splitlines()]
    finished = next(r for r in records if r["event"] == "reconcile finished")
    assert finished["device"] == "phone"
    assert finished["level"] == "info"
    assert "slow response" in http_log.read_text()
