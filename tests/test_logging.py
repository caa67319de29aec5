"""Tests for structured logging."""

from __future__ import annotations

import logging

import pytest

from order_processing import (
    LogContext,
    config_from_dict,
    configure_logging,
    log_debug,
    log_error,
    log_info,
    log_trace,
    log_warn,
)
from order_processing.logging import LOGGER_NAME, TRACE


class TestLogFunctions:
    @pytest.mark.parametrize(
        ("log_fn", "level"),
        [
            (log_error, logging.ERROR),
            (log_warn, logging.WARNING),
            (log_info, logging.INFO),
            (log_debug, logging.DEBUG),
            (log_trace, TRACE),
        ],
    )
    def test_levels(self, caplog, log_fn, level):
        with caplog.at_level(TRACE, logger=LOGGER_NAME):
            log_fn("message")

        assert [record.levelno for record in caplog.records] == [level]
        assert caplog.records[0].name == LOGGER_NAME

    def test_fields_are_rendered_and_attached(self, caplog):
        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            log_info("Order created", {"order_id": "ord-1", "items": 3})

        record = caplog.records[0]
        assert record.getMessage() == "Order created [order_id=ord-1 items=3]"
        assert record.fields == {"order_id": "ord-1", "items": "3"}

    def test_log_context_drops_unset_fields(self, caplog):
        context = LogContext(order_id="ord-1", operation="process_order")

        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            log_info("Processing", context)

        assert caplog.records[0].fields == {"order_id": "ord-1", "operation": "process_order"}

    def test_disabled_level_is_skipped(self, caplog):
        with caplog.at_level(logging.WARNING, logger=LOGGER_NAME):
            log_debug("hidden", {"order_id": "ord-1"})

        assert caplog.records == []

    def test_trace_level_name(self):
        assert logging.getLevelName(TRACE) == "TRACE"


class TestConfigureLogging:
    @pytest.mark.parametrize(
        ("name", "level"),
        [
            ("trace", TRACE),
            ("debug", logging.DEBUG),
            ("info", logging.INFO),
            ("warn", logging.WARNING),
            ("ERROR", logging.ERROR),
            ("bogus", logging.INFO),
        ],
    )
    def test_level_names(self, monkeypatch, name, level):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

        configure_logging(name)

        assert calls[0]["level"] == level

    def test_configured_log_level(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

        configure_logging(config_from_dict({"log_level": "debug"}).log_level)

        assert calls[0]["level"] == logging.DEBUG
