"""
Tests for logging setup, formatters and the spam filter.
"""

import json
import logging
import warnings

import pytest

from ie_demos.config import LoggingConfig as LoggingSettings
from ie_demos.utils.logging import (
    ColoredFormatter, JSONFormatter, LogFormat, LoggingConfig, LogLevel, MetricsCollector, SpamFilter,
    get_logger, performance_context, setup_logging
)


def make_record(message="Image out0.png created!", level=logging.INFO):
    return logging.LogRecord("ie_demos.test", level, __file__, 10, message, None, None)


class TestLoggingConfig:
    """Test building logging setup from application settings."""

    def test_from_settings(self, temp_dir):
        settings = LoggingSettings(level="warning", format="json", log_file=str(temp_dir / "logs" / "demo.log"))

        config = LoggingConfig.from_settings(settings)

        assert config.level == LogLevel.WARNING
        assert config.format == LogFormat.JSON
        assert config.log_file.endswith("demo.log")

    def test_log_file_is_created(self, temp_dir):
        log_file = temp_dir / "logs" / "demo.log"
        setup_logging(LoggingConfig(level=LogLevel.INFO, log_file=str(log_file), console_output=False))

        get_logger("ie_demos.test").info("Image out0.png created!")
        for handler in logging.getLogger().handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().splitlines()[-1])
        assert "Image out0.png created!" in entry['message']
        assert entry['level'] == "info"


class TestFormatters:
    """Test record formatting."""

    def test_json_formatter_with_metrics(self):
        collector = MetricsCollector()
        collector.update_latency(12.5)

        entry = json.loads(JSONFormatter(collector).format(make_record()))

        assert entry['logger'] == "ie_demos.test"
        assert entry['message'] == "Image out0.png created!"
        assert entry['metrics']['latency_ms'] == 12.5

    def test_colored_formatter(self):
        collector = MetricsCollector()
        collector.update_frames(3)

        line = ColoredFormatter(collector).format(make_record())

        assert "[ INFO ]" in line
        assert line.index("Image out0.png created!") > line.index("[ INFO ]")
        assert "3 frames" in line


class TestSpamFilter:
    """Test rate limiting of repeated messages."""

    def test_distinct_messages_pass(self):
        spam_filter = SpamFilter()
        assert spam_filter.filter(make_record("frame 1"))
        assert spam_filter.filter(make_record("frame 2"))

    def test_repeated_message_is_limited(self):
        spam_filter = SpamFilter(rate_limit_per_minute=5)
        passed = sum(spam_filter.filter(make_record()) for _ in range(100))
        assert passed < 100


class TestPerformanceContext:
    """Test operation timing."""

    def test_reraises_errors(self):
        with pytest.raises(ValueError):
            with performance_context("failing_operation"):
                raise ValueError("boom")

    def test_records_latency(self):
        logger = setup_logging(LoggingConfig(level=LogLevel.DEBUG))
        with performance_context("operation"):
            pass
        assert logger.metrics_collector.get_current_metrics().latency_ms is not None


class TestStructlogSetup:
    """Test structlog processor configuration."""

    def test_console_renderer_emits_no_warnings(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            setup_logging(LoggingConfig(level=LogLevel.INFO, format=LogFormat.TEXT, console_output=False))
            get_logger("ie_demos.test").info("Image out0.png created!")
