"""
Structured logging system for the inference demos.

This module provides structlog-based logging with JSON or colored console
output, an optional rotating log file, spam filtering for per-frame messages
and optional process metrics attached to each record.
"""

import json
import logging
import logging.handlers
import sys
import threading
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import psutil
import structlog


class LogLevel(Enum):
    """Log levels for structured logging."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class LogFormat(Enum):
    """Available log formats."""
    JSON = "json"
    TEXT = "text"
    COLORED = "colored"


@dataclass
class ProcessMetrics:
    """Process metrics to include in logs."""
    timestamp: float
    latency_ms: Optional[float] = None
    cpu_percent: Optional[float] = None
    memory_mb: Optional[float] = None
    frames: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary, excluding None values."""
        return {k: v for k, v in asdict(self).items() if v is not None}


class MetricsCollector:
    """Collects process metrics for logging."""

    def __init__(self):
        self._process = psutil.Process()
        self._metrics_lock = threading.Lock()
        self._current_metrics = ProcessMetrics(timestamp=time.time())

    def update_latency(self, latency_ms: float):
        """Update latency metric."""
        with self._metrics_lock:
            self._current_metrics.latency_ms = latency_ms
            self._current_metrics.timestamp = time.time()

    def update_frames(self, frames: int):
        """Update processed frame count."""
        with self._metrics_lock:
            self._current_metrics.frames = frames
            self._current_metrics.timestamp = time.time()

    def get_current_metrics(self) -> ProcessMetrics:
        """Get current process metrics."""
        with self._metrics_lock:
            try:
                self._current_metrics.cpu_percent = self._process.cpu_percent()
                self._current_metrics.memory_mb = self._process.memory_info().rss / 1024 / 1024
            except psutil.Error:
                pass  # process metrics are best effort

            return ProcessMetrics(**asdict(self._current_metrics))


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    RESERVED = (
        'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
        'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
        'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
        'processName', 'process', 'message', 'taskName'
    )

    def __init__(self, metrics_collector: Optional[MetricsCollector] = None):
        super().__init__()
        self.metrics_collector = metrics_collector

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_obj = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname.lower(),
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'process': record.process
        }

        if record.exc_info:
            log_obj['exception'] = self.formatException(record.exc_info)

        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in self.RESERVED
        }
        if extra_fields:
            log_obj['extra'] = extra_fields

        if self.metrics_collector is not None:
            log_obj['metrics'] = self.metrics_collector.get_current_metrics().to_dict()

        return json.dumps(log_obj, default=str, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """Console formatter in the "[ INFO ] message" style with a coloured level tag."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, metrics_collector: Optional[MetricsCollector] = None):
        super().__init__()
        self.metrics_collector = metrics_collector

    def format(self, record: logging.LogRecord) -> str:
        tag = f"{self.COLORS.get(record.levelname, '')}[ {record.levelname} ]{self.RESET}"
        line = f"{tag} {record.getMessage()}"

        if record.levelno >= logging.ERROR:
            line += f" ({record.name}:{record.lineno})"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        if self.metrics_collector is not None:
            metrics = self.metrics_collector.get_current_metrics()
            extras = []
            if metrics.latency_ms is not None:
                extras.append(f"{metrics.latency_ms:.1f} ms")
            if metrics.frames is not None:
                extras.append(f"{metrics.frames} frames")
            if metrics.memory_mb is not None:
                extras.append(f"{metrics.memory_mb:.0f} MB")
            if extras:
                line += f" <{', '.join(extras)}>"

        return line


class LoggingConfig:
    """Configuration for the logging system."""

    def __init__(
        self,
        level: LogLevel = LogLevel.INFO,
        format: LogFormat = LogFormat.COLORED,
        include_metrics: bool = False,
        log_file: Optional[str] = None,
        max_file_size_mb: int = 10,
        backup_count: int = 3,
        console_output: bool = True,
        filter_spam: bool = True,
        rate_limit_per_minute: int = 600
    ):
        self.level = level
        self.format = format
        self.include_metrics = include_metrics
        self.log_file = log_file
        self.max_file_size_mb = max_file_size_mb
        self.backup_count = backup_count
        self.console_output = console_output
        self.filter_spam = filter_spam
        self.rate_limit_per_minute = rate_limit_per_minute

    @classmethod
    def from_settings(cls, settings: Any) -> 'LoggingConfig':
        """Build from the `logging` section of the application configuration."""
        return cls(
            level=LogLevel(settings.level.value if isinstance(settings.level, Enum) else settings.level),
            format=LogFormat(settings.format),
            include_metrics=settings.include_metrics,
            log_file=settings.log_file,
            max_file_size_mb=settings.max_file_size_mb,
            backup_count=settings.backup_count,
            console_output=settings.console_output,
            filter_spam=settings.filter_spam
        )


class SpamFilter(logging.Filter):
    """Filter to prevent log spam by rate limiting identical messages."""

    def __init__(self, rate_limit_per_minute: int = 600):
        super().__init__()
        self.rate_limit_per_minute = rate_limit_per_minute
        self.message_counts: Dict[str, Dict[str, float]] = {}
        self.last_cleanup = time.time()
        self.cleanup_interval = 60

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter log records to prevent spam."""
        now = time.time()

        if now - self.last_cleanup > self.cleanup_interval:
            self._cleanup_old_counts(now)
            self.last_cleanup = now

        msg_key = f"{record.levelname}:{record.name}:{record.getMessage()[:100]}"

        if msg_key not in self.message_counts:
            self.message_counts[msg_key] = {'count': 0, 'first_seen': now, 'last_seen': now}

        msg_info = self.message_counts[msg_key]
        msg_info['count'] += 1
        msg_info['last_seen'] = now

        time_span = max(now - msg_info['first_seen'], 1)
        rate = (msg_info['count'] / time_span) * 60

        if rate <= self.rate_limit_per_minute:
            return True

        # let every Nth repeat through so a stuck message stays visible
        nth_occurrence = max(1, int(rate / self.rate_limit_per_minute))
        return msg_info['count'] % nth_occurrence == 0

    def _cleanup_old_counts(self, now: float):
        """Remove old message counts to prevent memory growth."""
        cutoff_time = now - 300
        stale = [key for key, info in self.message_counts.items() if info['last_seen'] < cutoff_time]
        for key in stale:
            del self.message_counts[key]


class DemoLogger:
    """Main logging interface for the demos."""

    def __init__(self, config: Optional[LoggingConfig] = None):
        self.config = config or LoggingConfig()
        self.metrics_collector = MetricsCollector()
        self._setup_logging()

    def _setup_logging(self):
        """Set up structured logging based on configuration."""
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.JSONRenderer()
                if self.config.format == LogFormat.JSON
                else structlog.dev.ConsoleRenderer(colors=False, pad_event_to=0),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=False,
        )

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, self.config.level.value.upper()))
        root_logger.handlers.clear()

        metrics = self.metrics_collector if self.config.include_metrics else None

        if self.config.console_output:
            console_handler = logging.StreamHandler(sys.stderr)

            if self.config.format == LogFormat.JSON:
                formatter = JSONFormatter(metrics)
            elif self.config.format == LogFormat.COLORED:
                formatter = ColoredFormatter(metrics)
            else:
                formatter = logging.Formatter('[ %(levelname)s ] %(name)s: %(message)s')

            console_handler.setFormatter(formatter)
            if self.config.filter_spam:
                console_handler.addFilter(SpamFilter(self.config.rate_limit_per_minute))
            root_logger.addHandler(console_handler)

        if self.config.log_file:
            log_path = Path(self.config.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                self.config.log_file,
                maxBytes=self.config.max_file_size_mb * 1024 * 1024,
                backupCount=self.config.backup_count
            )
            # file output is always JSON
            file_handler.setFormatter(JSONFormatter(metrics))
            root_logger.addHandler(file_handler)

    def get_logger(self, name: str) -> structlog.stdlib.BoundLogger:
        """Get a structured logger instance."""
        return structlog.get_logger(name)

    def update_metrics(self, latency_ms: Optional[float] = None, frames: Optional[int] = None):
        """Update process metrics attached to log records."""
        if latency_ms is not None:
            self.metrics_collector.update_latency(latency_ms)
        if frames is not None:
            self.metrics_collector.update_frames(frames)

    @contextmanager
    def performance_context(self, operation_name: str):
        """Context manager for measuring operation duration."""
        start_time = time.perf_counter()
        logger = structlog.get_logger("performance")

        try:
            logger.debug("Operation started", operation=operation_name)
            yield
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "Operation failed",
                operation=operation_name,
                duration_ms=round(duration_ms, 2),
                error=str(e)
            )
            raise
        else:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.debug(
                "Operation completed",
                operation=operation_name,
                duration_ms=round(duration_ms, 2)
            )
            self.update_metrics(latency_ms=duration_ms)


_global_logger: Optional[DemoLogger] = None


def setup_logging(config: Optional[LoggingConfig] = None) -> DemoLogger:
    """Set up global logging configuration."""
    global _global_logger
    _global_logger = DemoLogger(config)
    return _global_logger


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance with the given name."""
    if _global_logger is None:
        setup_logging()
    return _global_logger.get_logger(name)


def update_metrics(**kwargs):
    """Update process metrics in the global logger."""
    if _global_logger is not None:
        _global_logger.update_metrics(**kwargs)


def performance_context(operation_name: str):
    """Context manager for measuring performance."""
    if _global_logger is None:
        setup_logging()
    return _global_logger.performance_context(operation_name)


def log_inference_event(
    logger: structlog.stdlib.BoundLogger,
    demo: str,
    result_count: int,
    batch_size: int,
    **context
):
    """Log a decoded inference result with standard context."""
    logger.info(
        "Inference event",
        event_type='inference',
        demo=demo,
        result_count=result_count,
        batch_size=batch_size,
        **context
    )
