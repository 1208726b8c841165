"""
Unit tests for utility modules.

Tests for error_handling, advanced_logging, resource_manager and redis_client.
"""

import logging
from unittest.mock import Mock, patch

import pytest
import redis
import structlog

from hclust.config.settings_loader import ConfigManager, Settings
from hclust.utils.advanced_logging import (
    BatchLogger,
    LogContext,
    MetricsLogger,
    PerformanceLogger,
    configure_logging,
    get_logger,
    timed,
)
from hclust.utils.error_handling import (
    CancellationBackendError,
    ClusteringCancelledError,
    ClusteringError,
    HClustError,
    InvalidInputError,
    ResourceExhaustedError,
    RetryConfig,
    retry,
)
from hclust.utils.redis_client import get_redis_client
from hclust.utils.resource_manager import ResourceManager, estimate_memory_bytes


@pytest.mark.unit
class TestErrorHandling:
    """Test error handling utilities."""

    def test_error_hierarchy(self):
        assert issubclass(InvalidInputError, ClusteringError)
        assert issubclass(ClusteringCancelledError, HClustError)
        assert issubclass(ResourceExhaustedError, HClustError)

    def test_to_dict(self):
        error = InvalidInputError("bad row", details={"index": 3})
        data = error.to_dict()

        assert str(error) == "bad row"
        assert data["error_type"] == "InvalidInputError"
        assert data["error_code"] == "InvalidInputError"
        assert data["details"] == {"index": 3}

    def test_cancelled_defaults(self):
        error = ClusteringCancelledError()

        assert error.message == "Clustering aborted"
        assert error.error_code == "CANCELLED"

    @patch("hclust.utils.error_handling.time.sleep")
    def test_retry_until_success(self, mock_sleep):
        calls = Mock(side_effect=[ConnectionError("blip"), ConnectionError("blip"), "ok"])

        @retry(max_attempts=3, jitter=False)
        def flaky():
            return calls()

        assert flaky() == "ok"
        assert calls.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.05, 0.1]

    @patch("hclust.utils.error_handling.time.sleep")
    def test_retry_exhausted(self, mock_sleep):
        @retry(config=RetryConfig(max_attempts=2, retriable_exceptions=(CancellationBackendError,)))
        def always_down():
            raise CancellationBackendError("down")

        with pytest.raises(CancellationBackendError):
            always_down()
        assert mock_sleep.call_count == 1

    def test_non_retriable_propagates(self):
        calls = Mock(side_effect=ValueError("not transient"))

        @retry(max_attempts=5)
        def broken():
            return calls()

        with pytest.raises(ValueError):
            broken()
        assert calls.call_count == 1


@pytest.mark.unit
class TestAdvancedLogging:
    """Test advanced logging utilities."""

    def test_configure_logging_json(self, tmp_path):
        log_file = tmp_path / "logs" / "hclust.log"
        root = logging.getLogger()
        handlers_before = list(root.handlers)

        try:
            configure_logging(log_level="INFO", log_format="json", log_file=str(log_file))
            get_logger("test").info("configured", answer=42)
            assert log_file.parent.exists()
        finally:
            for handler in list(root.handlers):
                if handler not in handlers_before:
                    root.removeHandler(handler)
                    handler.close()

    def test_configure_logging_console(self):
        configure_logging(log_level="DEBUG", log_format="console")
        assert structlog.is_configured()

    def test_correlation_context(self):
        assert LogContext.get_correlation_id() is None

        with LogContext.correlation_context("run-1"):
            assert LogContext.get_correlation_id() == "run-1"
            with LogContext.correlation_context("run-2"):
                assert LogContext.get_correlation_id() == "run-2"
            assert LogContext.get_correlation_id() == "run-1"

        assert LogContext.get_correlation_id() is None

    def test_set_and_clear_correlation_id(self):
        LogContext.set_correlation_id("abc")
        assert LogContext.get_correlation_id() == "abc"
        LogContext.clear_correlation_id()
        assert LogContext.get_correlation_id() is None

    def test_performance_logger(self):
        logger = Mock()

        with PerformanceLogger("distance_matrix", logger=logger, item_count=10) as perf:
            pass

        assert perf.elapsed_time >= 0
        event, = logger.info.call_args.args
        assert event == "operation_completed"
        assert logger.info.call_args.kwargs["operation"] == "distance_matrix"

    def test_performance_logger_failure(self):
        logger = Mock()

        with pytest.raises(RuntimeError):
            with PerformanceLogger("average_linkage", logger=logger):
                raise RuntimeError("boom")

        assert logger.error.call_args.kwargs["error_type"] == "RuntimeError"

    def test_performance_logger_cancellation(self):
        logger = Mock()

        with pytest.raises(ClusteringCancelledError):
            with PerformanceLogger("average_linkage", logger=logger):
                raise ClusteringCancelledError()

        logger.error.assert_not_called()
        assert logger.info.call_args.args == ("operation_cancelled",)
        assert logger.info.call_args.kwargs["operation"] == "average_linkage"

    def test_timed_decorator(self):
        @timed(operation="double")
        def double(x):
            return 2 * x

        assert double(4) == 8

    def test_batch_logger(self):
        logger = Mock()
        batch = BatchLogger(total_items=5, operation="merges", log_interval=2, logger=logger)

        emitted = [batch.update() for _ in range(5)]

        assert emitted == [False, True, False, True, True]
        assert batch.remaining_items == 0
        batch.complete()
        assert logger.info.call_args.args == ("batch_completed",)

    def test_metrics_logger(self):
        metrics = MetricsLogger(logger=Mock()).log_cpu_memory(context="test")

        assert metrics["context"] == "test"
        assert metrics["memory_mb"] > 0


@pytest.mark.unit
class TestResourceManager:
    """Test memory checks."""

    def test_estimate(self):
        assert estimate_memory_bytes(0) == 0
        assert estimate_memory_bytes(10) == 100 * 12

    @patch("hclust.utils.resource_manager.psutil.virtual_memory")
    def test_within_budget(self, mock_memory):
        mock_memory.return_value = Mock(available=10 * 1024**3)
        assert ResourceManager().check_capacity(100) == estimate_memory_bytes(100)

    @patch("hclust.utils.resource_manager.psutil.virtual_memory")
    def test_over_budget(self, mock_memory):
        mock_memory.return_value = Mock(available=1000)

        with pytest.raises(ResourceExhaustedError) as exc_info:
            ResourceManager(max_memory_fraction=0.5).check_capacity(100)

        assert exc_info.value.error_code == "MEMORY_BUDGET_EXCEEDED"
        assert exc_info.value.details["budget_bytes"] == 500

    def test_zero_samples_skip_memory_query(self):
        with patch("hclust.utils.resource_manager.psutil.virtual_memory") as mock_memory:
            assert ResourceManager().check_capacity(0) == 0
        mock_memory.assert_not_called()


@pytest.mark.unit
class TestRedisClient:
    """Test the Redis client factory."""

    def test_connects_and_pings(self, mock_redis):
        with patch("hclust.utils.redis_client.redis.from_url", return_value=mock_redis) as from_url:
            client = get_redis_client("redis://example:6379/1")

        assert client is mock_redis
        mock_redis.ping.assert_called_once()
        assert from_url.call_args.args == ("redis://example:6379/1",)
        assert from_url.call_args.kwargs["socket_timeout"] == 5.0

    def test_defaults_to_settings_url(self, mock_redis):
        ConfigManager._settings = Settings()

        with patch("hclust.utils.redis_client.redis.from_url", return_value=mock_redis) as from_url:
            get_redis_client()

        assert from_url.call_args.args == ("redis://localhost:6379/0",)

    def test_unreachable(self, mock_redis):
        mock_redis.ping.side_effect = redis.ConnectionError("refused")

        with patch("hclust.utils.redis_client.redis.from_url", return_value=mock_redis):
            with pytest.raises(CancellationBackendError):
                get_redis_client("redis://nowhere:6379/0")
