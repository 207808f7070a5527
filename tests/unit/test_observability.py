"""
Unit Tests - Observability and Errors

Tests for structured logging, metrics export and the exception hierarchy.
"""

import json
from io import StringIO

import pytest

from ragengine.core.exceptions import (
    DocumentIngestionError,
    EmbeddingProviderError,
    EmbeddingRateLimitError,
    KnowledgeError,
    RAGEngineError,
    VectorStoreError,
)
from ragengine.observability.logging import (
    BufferHandler,
    ConsoleHandler,
    LogLevel,
    StructuredLogger,
)
from ragengine.observability.metrics import Counter, Histogram, MetricsCollector, Timer


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_level_filtering(self):
        buffer = BufferHandler()
        logger = StructuredLogger("test", level=LogLevel.INFO, handlers=[buffer])

        logger.debug("hidden")
        logger.info("shown")
        logger.warning("also shown")

        assert buffer.messages() == ["shown", "also shown"]
        assert buffer.messages(LogLevel.WARNING) == ["also shown"]

    def test_context_is_attached_and_reset(self):
        buffer = BufferHandler()
        logger = StructuredLogger("test", level=LogLevel.DEBUG, handlers=[buffer])

        with logger.context(knowledge_base_id="kb-1", operation="ingest"):
            with logger.context(document_id="doc-1"):
                logger.info("inside")
        logger.info("outside")

        inside, outside = buffer.records
        assert inside.knowledge_base_id == "kb-1"
        assert inside.document_id == "doc-1"
        assert inside.operation == "ingest"
        assert outside.knowledge_base_id is None

    def test_error_record_carries_code(self):
        buffer = BufferHandler()
        logger = StructuredLogger("test", handlers=[buffer])

        logger.error("embedding failed", error=EmbeddingProviderError("boom", provider="stub"))

        record = buffer.records[0]
        assert record.error == "boom"
        assert record.error_type == "EmbeddingProviderError"
        assert record.error_code == "EMBEDDING_PROVIDER_ERROR"

    def test_json_console_output(self):
        stream = StringIO()
        logger = StructuredLogger("test", level=LogLevel.INFO, handlers=[ConsoleHandler(stream=stream)])

        logger.info("stored", chunks=3)

        line = json.loads(stream.getvalue())
        assert line["message"] == "stored"
        assert line["logger"] == "test"
        assert line["data"] == {"chunks": 3}


class TestMetrics:
    """Tests for metric types and export."""

    def test_counter_labels(self):
        counter = Counter("requests")
        counter.inc(status="ok")
        counter.inc(2, status="ok")
        counter.inc(status="error")

        assert counter.get(status="ok") == 3
        assert counter.get(status="error") == 1
        with pytest.raises(ValueError):
            counter.inc(-1)

    def test_histogram_buckets_are_cumulative_on_export(self):
        histogram = Histogram("latency", buckets=(0.1, 1.0))
        for value in (0.05, 0.5, 0.7, 3.0):
            histogram.observe(value)

        buckets = {
            mv.labels["le"]: mv.value for mv in histogram.collect() if "le" in mv.labels
        }

        assert buckets == {"0.1": 1, "1.0": 3, "+Inf": 4}
        assert histogram.get_count() == 4
        assert histogram.get_sum() == pytest.approx(4.25)

    def test_timer_observes(self):
        histogram = Histogram("op_seconds")
        with Timer(histogram, op="embed") as timer:
            pass
        assert histogram.get_count(op="embed") == 1
        assert timer.elapsed >= 0

    def test_prometheus_export(self):
        collector = MetricsCollector(prefix="rag")
        collector.counter("search_requests_total").inc(status="success")

        text = collector.to_prometheus()

        assert "# TYPE rag_search_requests_total counter" in text
        assert 'rag_search_requests_total{status="success"} 1.0' in text
        assert "# TYPE rag_ann_orphaned_vectors gauge" in text

    def test_unknown_metric(self):
        collector = MetricsCollector()
        with pytest.raises(KeyError):
            collector.counter("ann_vectors")


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_to_dict(self):
        error = DocumentIngestionError("wrong knowledge base", document_id="doc-1")
        assert error.to_dict() == {
            "error": "DOCUMENT_INGESTION_ERROR",
            "message": "wrong knowledge base",
            "context": {"document_id": "doc-1"},
        }

    def test_cause_is_chained(self):
        original = TimeoutError("read timed out")
        error = EmbeddingRateLimitError("slow down", provider="openai", retry_after=2.0, cause=original)

        assert error.__cause__ is original
        assert error.retry_after == 2.0
        assert isinstance(error, EmbeddingProviderError)
        assert isinstance(error, KnowledgeError)
        assert isinstance(error, RAGEngineError)

    def test_dimension_context(self):
        error = VectorStoreError("bad vector", expected_dimension=4, actual_dimension=3)
        assert error.context == {"expected_dimension": 4, "actual_dimension": 3}
        assert error.code == "VECTOR_STORE_ERROR"
