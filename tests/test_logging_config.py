"""
Tests for the logging system.

Tests component loggers, correlation IDs, formatters and handler setup.
"""

import json
import logging
import sys

import pytest

from stockcache.config import CacheSettings, LogFormat
from stockcache.logging_config import (
    CacheLogger,
    ColoredFormatter,
    CorrelationContext,
    CorrelationFilter,
    JSONFormatter,
    LoggingConfig,
    get_correlation_id,
    get_logger,
    initialize_logging
)


def make_record(msg='Test message', level=logging.INFO, exc_info=None):
    return logging.LogRecord(
        name='stockcache.test',
        level=level,
        pathname='test.py',
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info
    )


@pytest.fixture
def restore_engine_logger():
    """Restore the 'stockcache' logger after a test reconfigures it."""
    engine_logger = logging.getLogger('stockcache')
    handlers = list(engine_logger.handlers)
    level = engine_logger.level
    yield engine_logger
    engine_logger.handlers[:] = handlers
    engine_logger.setLevel(level)


class TestCacheLogger:
    """Test the component logger wrapper."""

    def test_logger_creation(self):
        logger = CacheLogger('stockcache.test', 'test_component')

        assert logger.component == 'test_component'
        assert logger.logger.name == 'stockcache.test'

    def test_component_defaults_to_module_name(self):
        assert get_logger('stockcache.caching.eviction').component == 'eviction'

    def test_context_passed_as_extra(self, caplog):
        logger = get_logger('stockcache.test', 'cache_manager')

        with caplog.at_level(logging.INFO, logger='stockcache'):
            logger.info("Store created", operation="create_store", cache_store="dashboard")

        record = caplog.records[-1]
        assert record.component == 'cache_manager'
        assert record.operation == 'create_store'
        assert record.cache_store == 'dashboard'

    def test_exception_includes_traceback(self, caplog):
        logger = get_logger('stockcache.test', 'cache_manager')

        with caplog.at_level(logging.ERROR, logger='stockcache'):
            try:
                raise RuntimeError("boom")
            except RuntimeError:
                logger.exception("Operation failed")

        record = caplog.records[-1]
        assert record.exc_info[0] is RuntimeError
        assert record.operation == 'exception'


class TestCorrelation:
    """Test correlation tracking."""

    def test_correlation_context(self):
        with CorrelationContext('corr-123', 'dashboard') as context:
            assert get_correlation_id() == 'corr-123'
            assert context.store_value == 'dashboard'

        assert get_correlation_id() is None

    def test_generated_correlation_id(self):
        with CorrelationContext() as context:
            assert get_correlation_id() == context.correlation_id_value
            assert len(context.correlation_id_value) == 36

    def test_correlation_filter(self):
        record = make_record()

        with CorrelationContext('corr-456', 'users'):
            assert CorrelationFilter().filter(record)

        assert record.correlation_id == 'corr-456'
        assert record.cache_store == 'users'
        assert record.component == 'unknown'
        assert record.operation == 'unknown'

    def test_filter_keeps_explicit_store(self):
        record = make_record()
        record.cache_store = 'api'

        with CorrelationContext('corr-789', 'users'):
            CorrelationFilter().filter(record)

        assert record.cache_store == 'api'


class TestFormatters:
    """Test log formatters."""

    def test_json_formatter(self):
        record = make_record()
        record.correlation_id = 'test-correlation'
        record.cache_store = 'dashboard'
        record.component = 'test_component'
        record.operation = 'test_operation'
        record.freed_bytes = 128

        log_data = json.loads(JSONFormatter().format(record))

        assert log_data['level'] == 'INFO'
        assert log_data['logger'] == 'stockcache.test'
        assert log_data['message'] == 'Test message'
        assert log_data['correlation_id'] == 'test-correlation'
        assert log_data['cache_store'] == 'dashboard'
        assert log_data['component'] == 'test_component'
        assert log_data['operation'] == 'test_operation'
        assert log_data['line'] == 42
        assert log_data['freed_bytes'] == 128
        assert 'timestamp' in log_data

    def test_json_formatter_without_extra(self):
        record = make_record()
        record.freed_bytes = 128

        log_data = json.loads(JSONFormatter(include_extra=False).format(record))

        assert 'freed_bytes' not in log_data

    def test_json_formatter_exception(self):
        try:
            raise ValueError("bad value")
        except ValueError:
            record = make_record(level=logging.ERROR, exc_info=sys.exc_info())

        log_data = json.loads(JSONFormatter().format(record))

        assert log_data['exception']['type'] == 'ValueError'
        assert log_data['exception']['message'] == 'bad value'

    def test_colored_formatter(self):
        formatter = ColoredFormatter('%(levelname)s - %(message)s')
        record = make_record(level=logging.WARNING)
        record.correlation_id = 'abcdef123456'
        record.cache_store = 'api'

        formatted = formatter.format(record)

        assert '\033[33m' in formatted
        assert 'Test message' in formatted
        assert '[abcdef12]' in formatted
        assert '[api]' in formatted


class TestLoggingSetup:
    """Test handler configuration."""

    def test_setup_console_logging(self, restore_engine_logger):
        LoggingConfig.setup_logging(level='DEBUG', format_type='json')

        handlers = restore_engine_logger.handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, JSONFormatter)
        assert restore_engine_logger.level == logging.DEBUG

    def test_setup_file_logging(self, restore_engine_logger, tmp_path):
        log_file = tmp_path / 'logs' / 'cache.log'

        LoggingConfig.setup_logging(log_file=str(log_file), console_output=False)
        get_logger('stockcache.test').info("Written to file", operation="test")
        for handler in restore_engine_logger.handlers:
            handler.flush()

        lines = log_file.read_text().strip().splitlines()
        assert json.loads(lines[-1])['message'] == 'Written to file'

        for handler in restore_engine_logger.handlers:
            handler.close()

    def test_initialize_from_settings(self, restore_engine_logger):
        initialize_logging(CacheSettings(log_level='WARNING', log_format=LogFormat.STANDARD))

        assert restore_engine_logger.level == logging.WARNING
        assert type(restore_engine_logger.handlers[0].formatter) is logging.Formatter
