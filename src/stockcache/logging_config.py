"""
Logging configuration for the stockcache engine.

Provides component-aware logging with correlation IDs, centralized configuration,
and multiple output formats for different environments.
"""

import logging
import json
import sys
import traceback
from datetime import datetime, timezone
from typing import Optional, Union
from uuid import uuid4
from contextvars import ContextVar
from pathlib import Path

from .config import CacheSettings, get_settings


# Context variables for correlation tracking
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
cache_store: ContextVar[Optional[str]] = ContextVar('cache_store', default=None)


class CorrelationFilter(logging.Filter):
    """Add correlation IDs and cache context to log records."""

    def filter(self, record):
        record.correlation_id = correlation_id.get() or 'unknown'
        record.cache_store = getattr(record, 'cache_store', None) or cache_store.get() or '-'
        record.component = getattr(record, 'component', 'unknown')
        record.operation = getattr(record, 'operation', 'unknown')
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    RESERVED = set(logging.LogRecord('', 0, '', 0, '', (), None).__dict__) | {'message', 'asctime'}

    def __init__(self, include_extra=True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record):
        """Format log record as JSON."""
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', 'unknown'),
            'cache_store': getattr(record, 'cache_store', '-'),
            'component': getattr(record, 'component', 'unknown'),
            'operation': getattr(record, 'operation', 'unknown'),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        if self.include_extra:
            for key, value in record.__dict__.items():
                if key in log_entry or key in self.RESERVED or key.startswith('_'):
                    continue
                try:
                    json.dumps(value)
                    log_entry[key] = value
                except (TypeError, ValueError):
                    log_entry[key] = str(value)

        return json.dumps(log_entry, default=str)


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level and appends cache context."""

    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelno, '')
        correlation = getattr(record, 'correlation_id', 'unknown')[:8]
        store = getattr(record, 'cache_store', '-')
        return f"{color}{super().format(record)}{self.RESET} [{correlation}] [{store}]"


class CacheLogger:
    """Logger wrapper that attaches component and operation context."""

    def __init__(self, name: str, component: str = None):
        self.logger = logging.getLogger(name)
        self.component = component or name.split('.')[-1]

    def _log(self, log_level: int, message: str, operation: str = None, exc_info=False, **kwargs):
        extra = {
            'component': self.component,
            'operation': operation or 'unknown',
            **kwargs
        }
        self.logger.log(log_level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, operation: str = None, **kwargs):
        self._log(logging.DEBUG, message, operation, **kwargs)

    def info(self, message: str, operation: str = None, **kwargs):
        self._log(logging.INFO, message, operation, **kwargs)

    def warning(self, message: str, operation: str = None, **kwargs):
        self._log(logging.WARNING, message, operation, **kwargs)

    def error(self, message: str, operation: str = None, **kwargs):
        self._log(logging.ERROR, message, operation, **kwargs)

    def exception(self, message: str, operation: str = None, **kwargs):
        """Log an error together with the active traceback."""
        self._log(logging.ERROR, message, operation or 'exception', exc_info=True, **kwargs)


class LoggingConfig:
    """Centralized logging configuration."""

    DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    @classmethod
    def setup_logging(
        cls,
        level: Union[str, int] = logging.INFO,
        format_type: str = 'colored',
        log_file: Optional[str] = None,
        console_output: bool = True,
        correlation_tracking: bool = True
    ):
        """
        Setup logging for the cache engine.

        Args:
            level: Logging level
            format_type: 'json', 'colored', or 'standard'
            log_file: Optional log file path (always JSON)
            console_output: Enable console output
            correlation_tracking: Enable correlation ID tracking
        """
        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        engine_logger = logging.getLogger('stockcache')
        engine_logger.setLevel(level)
        engine_logger.handlers.clear()

        correlation_filter = CorrelationFilter() if correlation_tracking else None

        if console_output:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(level)
            console_handler.setFormatter(cls._build_formatter(format_type))
            if correlation_filter:
                console_handler.addFilter(correlation_filter)
            engine_logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(JSONFormatter())
            if correlation_filter:
                file_handler.addFilter(correlation_filter)
            engine_logger.addHandler(file_handler)

        logger = CacheLogger(__name__, 'logging_config')
        logger.info(
            "Logging system initialized",
            operation="setup_logging",
            format_type=format_type,
            log_file=log_file,
            correlation_tracking=correlation_tracking
        )

    @classmethod
    def _build_formatter(cls, format_type: str) -> logging.Formatter:
        if format_type == 'json':
            return JSONFormatter()
        if format_type == 'colored':
            return ColoredFormatter(cls.DEFAULT_FORMAT)
        return logging.Formatter(cls.DEFAULT_FORMAT)


class CorrelationContext:
    """
    Bind a correlation ID, and optionally a cache store name, to log records
    emitted inside the block.
    """

    def __init__(self, correlation_id_value: str = None, store_value: str = None):
        self.correlation_id_value = correlation_id_value or str(uuid4())
        self.store_value = store_value
        self._tokens = []

    def __enter__(self):
        self._tokens.append((correlation_id, correlation_id.set(self.correlation_id_value)))
        if self.store_value:
            self._tokens.append((cache_store, cache_store.set(self.store_value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def get_logger(name: str, component: str = None) -> CacheLogger:
    """Get a cache engine logger instance."""
    return CacheLogger(name, component)


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID."""
    return correlation_id.get()


def initialize_logging(settings: CacheSettings = None):
    """Initialize logging from cache settings."""
    settings = settings or get_settings()
    LoggingConfig.setup_logging(
        level=settings.log_level.value,
        format_type=settings.log_format.value,
        console_output=True,
        correlation_tracking=True
    )
