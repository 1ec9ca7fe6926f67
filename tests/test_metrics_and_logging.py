"""
Unit tests for in-process metrics and logging configuration.
"""
import json
import logging

import pytest

from src.shared.logging_config import (
    JsonLogFormatter, RequestContext, RequestContextFilter,
    configure_logging, get_logger, get_request_id
)
from src.shared.metrics_collector import Counter, MetricsCollector, Timer, get_metrics_collector


class TestCounter:

    def test_increment_with_labels(self):
        counter = Counter("store_operations_total")

        counter.increment(operation="create", status="success")
        counter.increment(2, operation="create", status="conflict")

        assert counter.get_value(operation="create", status="success") == 1
        assert counter.get_value(status="conflict", operation="create") == 2
        assert counter.get_value() == 3

    def test_to_dict(self):
        counter = Counter("cache_hits_total", "Cache hits")
        counter.increment()

        data = counter.to_dict()

        assert data["type"] == "counter"
        assert data["total"] == 1
        assert data["values"] == {"total": 1}


class TestTimer:

    def test_records_durations(self):
        timer = Timer("store_scan_duration")

        timer.record(0.010)
        timer.record(0.030)

        data = timer.to_dict()
        assert data["count"] == 2
        assert data["avg_ms"] == pytest.approx(20.0)
        assert data["min_ms"] == pytest.approx(10.0)
        assert data["max_ms"] == pytest.approx(30.0)

    def test_context_manager(self):
        timer = Timer("work")

        with timer.time():
            pass

        assert timer.count == 1


class TestMetricsCollector:

    def test_singleton(self):
        assert get_metrics_collector() is MetricsCollector.get_instance()

    def test_summary_and_reset(self):
        collector = get_metrics_collector()
        collector.get_counter("cache_misses_total").increment()

        summary = collector.get_metrics_summary()
        assert summary["metrics"]["cache_misses_total"]["total"] == 1

        collector.reset()
        assert collector.get_counter("cache_misses_total").get_value() == 0


class TestLogging:

    def _record(self, **extra):
        record = logging.LogRecord("src.test", logging.INFO, __file__, 1, "hello", (), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_json_formatter_includes_context(self):
        record = self._record(component="redis_cache", operation="get", key="books:all")

        with RequestContext("req-1"):
            RequestContextFilter().filter(record)

        entry = json.loads(JsonLogFormatter().format(record))

        assert entry["message"] == "hello"
        assert entry["request_id"] == "req-1"
        assert entry["component"] == "redis_cache"
        assert entry["key"] == "books:all"
        assert "args" not in entry

    def test_request_context_resets(self):
        with RequestContext("req-2"):
            assert get_request_id() == "req-2"

        assert get_request_id() is None

    def test_component_logger_passes_fields(self, caplog):
        logger = get_logger("src.tests.logging", "tests")

        with caplog.at_level(logging.INFO, logger="src.tests.logging"):
            logger.info("Invalidated keys", operation="invalidate_namespace", reason="create")

        record = caplog.records[-1]
        assert record.component == "tests"
        assert record.operation == "invalidate_namespace"
        assert record.reason == "create"

    def test_configure_logging_json(self, tmp_path):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        log_file = tmp_path / "logs" / "inventory.log"

        try:
            configure_logging(level="INFO", format_type="json", log_file=str(log_file), console=False)
            logging.getLogger("src.tests").info("written")
            for handler in root.handlers:
                handler.flush()

            lines = [json.loads(line) for line in log_file.read_text().splitlines()]
            assert any(line["message"] == "written" for line in lines)
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = handlers
            root.setLevel(level)

    def test_default_component_and_missing_request(self):
        record = self._record()

        RequestContextFilter().filter(record)

        assert record.request_id == "-"
        assert record.component == "test"

    def test_unknown_format_rejected(self):
        with pytest.raises(ValueError):
            configure_logging(format_type="xml", console=False)
