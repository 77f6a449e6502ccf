"""Tests for logging configuration."""

import io
import logging

import pytest

from cti_record.observability import configure_logging, get_logger


@pytest.fixture
def root_logger():
    """Restore root handlers and level replaced by configure_logging()."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_single_stream_handler(self, root_logger: logging.Logger) -> None:
        """Repeated calls do not stack handlers."""
        configure_logging("debug")
        configure_logging("debug")

        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0], logging.StreamHandler)
        assert root_logger.level == logging.DEBUG

    def test_level_from_settings(self, root_logger: logging.Logger, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CTI_LOG_LEVEL", "WARNING")

        configure_logging()

        assert root_logger.level == logging.WARNING

    def test_pool_logger_is_quiet(self, root_logger: logging.Logger) -> None:
        configure_logging("debug")

        assert logging.getLogger("sqlalchemy.pool").level == logging.WARNING


def test_get_logger_returns_named_logger() -> None:
    assert get_logger("cti_record.records").name == "cti_record.records"


def test_records_are_written_with_format(root_logger: logging.Logger) -> None:
    stream = io.StringIO()
    configure_logging("info", stream=stream)

    logging.getLogger("cti_record.records").info("Saved %s", "Article")

    assert " - cti_record.records - INFO - Saved Article" in stream.getvalue()
