"""Tests for logging utility."""

import logging
from io import StringIO


class TestLoggerConfiguration:
    """Test that logger configures correctly."""

    def test_configure_logging_creates_logger(self):
        """configure_logging should return the package logger."""
        from apptrail.utils.logging import configure_logging

        logger = configure_logging()
        assert isinstance(logger, logging.Logger)
        assert logger.name == "apptrail"

    def test_configure_logging_respects_level(self):
        from apptrail.utils.logging import configure_logging

        logger = configure_logging(level="DEBUG")
        assert logger.level == logging.DEBUG

        logger = configure_logging(level="WARNING")
        assert logger.level == logging.WARNING

    def test_configure_logging_default_level_is_info(self):
        from apptrail.utils.logging import configure_logging

        logger = configure_logging()
        assert logger.level == logging.INFO

    def test_reconfiguring_keeps_one_handler(self):
        from apptrail.utils.logging import configure_logging

        configure_logging()
        logger = configure_logging(level="DEBUG")
        assert len(logger.handlers) == 1

    def test_third_party_loggers_are_quieted(self):
        from apptrail.utils.logging import configure_logging

        configure_logging(level="INFO")
        assert logging.getLogger("LiteLLM").level == logging.WARNING

        configure_logging(level="DEBUG")
        assert logging.getLogger("LiteLLM").level == logging.DEBUG


class TestLogOutput:
    """Test that log output format is correct."""

    def test_module_loggers_reach_package_handler(self):
        """Loggers named after modules inherit the package configuration."""
        from apptrail.utils.logging import configure_logging, get_logger

        logger = configure_logging(level="INFO")
        buffer = StringIO()
        handler = logging.StreamHandler(buffer)
        handler.setFormatter(logger.handlers[0].formatter)
        logger.addHandler(handler)

        get_logger("reconciler.engine").info("merged")

        output = buffer.getvalue()
        assert "INFO" in output
        assert "apptrail.reconciler.engine" in output
        assert "merged" in output

    def test_reset_logging_clears_handlers(self):
        from apptrail.utils.logging import configure_logging, reset_logging

        logger = configure_logging()
        reset_logging()
        assert logger.handlers == []
        assert logger.propagate is True


class TestLogFile:
    """Test mirroring log output to a file."""

    def test_log_file_receives_records(self, tmp_path):
        from apptrail.utils.logging import configure_logging, get_logger

        log_file = tmp_path / "logs" / "apptrail.log"
        logger = configure_logging(level="INFO", log_file=log_file)
        get_logger("reconciler.engine").info("Created record rec-1")
        for handler in logger.handlers:
            handler.flush()

        assert len(logger.handlers) == 2
        assert "Created record rec-1" in log_file.read_text(encoding="utf-8")

    def test_changing_log_file_rebuilds_handlers(self, tmp_path):
        from apptrail.utils.logging import configure_logging

        configure_logging(log_file=tmp_path / "first.log")
        logger = configure_logging(log_file=tmp_path / "second.log")

        files = [
            h.baseFilename for h in logger.handlers if isinstance(h, logging.FileHandler)
        ]
        assert files == [str(tmp_path / "second.log")]

    def test_unknown_level_falls_back_to_info(self):
        from apptrail.utils.logging import configure_logging

        assert configure_logging(level="chatty").level == logging.INFO
