"""Tests for the structured logging utilities."""

import logging

from utils.logging import (
    LogContext,
    StructuredLogFormatter,
    StructuredLogger,
    clear_context,
    configure_logging,
    get_extra_context,
    get_logger,
    get_request_id,
    get_sheet_id,
)


class TestStructuredLogger:
    def test_message_without_fields(self) -> None:
        logger = StructuredLogger("test")
        assert logger._build_message("Saved") == "Saved"

    def test_message_with_fields(self) -> None:
        logger = StructuredLogger("test")
        assert logger._build_message("Saved", revision=3, sheet="a") == "Saved | revision=3, sheet=a"

    def test_get_logger_wraps_named_logger(self) -> None:
        logger = get_logger("engine.grid")
        assert isinstance(logger, StructuredLogger)
        assert logger.logger.name == "engine.grid"

    def test_writes_through_standard_logging(self, caplog) -> None:
        logger = get_logger("tests.logging")
        with caplog.at_level(logging.INFO, logger="tests.logging"):
            logger.info("Cell updated", address="B2")
        assert "Cell updated | address=B2" in caplog.text


class TestLogContext:
    def setup_method(self) -> None:
        clear_context()

    def teardown_method(self) -> None:
        clear_context()

    def test_binds_and_restores(self) -> None:
        with LogContext(sheet_id=4, request_id="req-1", op="save"):
            assert get_sheet_id() == 4
            assert get_request_id() == "req-1"
            assert get_extra_context() == {"op": "save"}
        assert get_sheet_id() is None
        assert get_request_id() is None
        assert get_extra_context() == {}

    def test_nested_contexts(self) -> None:
        with LogContext(sheet_id=1):
            with LogContext(sheet_id=2, step="recalc"):
                assert get_sheet_id() == 2
            assert get_sheet_id() == 1
            assert get_extra_context() == {}

    def test_formatter_prefixes_context(self) -> None:
        formatter = StructuredLogFormatter("%(message)s")
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "Recalculated", None, None)
        with LogContext(sheet_id=9, request_id="abc"):
            assert formatter.format(record) == "[request_id=abc sheet_id=9] Recalculated"
        assert formatter.format(record) == "Recalculated"


class TestConfigureLogging:
    def test_installs_single_handler(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging("DEBUG")
            configure_logging("WARNING")
            structured = [h for h in root.handlers if isinstance(h.formatter, StructuredLogFormatter)]
            assert len(structured) == 1
            assert root.level == logging.WARNING
        finally:
            for handler in root.handlers[:]:
                root.removeHandler(handler)
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)
