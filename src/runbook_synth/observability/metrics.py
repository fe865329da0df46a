"""
Prometheus metrics collection for runbook-synth

Tracks pipeline runs, LLM usage, retrieval, ingestion and webhook delivery.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    generate_latest,
    start_http_server,
)

from .config import TelemetryConfig

logger = logging.getLogger(__name__)


@dataclass
class MetricsCollector:
    """
    Central metrics collector for runbook-synth operations

    Each collector owns its registry so several can coexist in tests.
    """

    config: TelemetryConfig
    registry: CollectorRegistry = field(default_factory=CollectorRegistry)

    pipeline_requests_total: Counter = field(init=False)
    pipeline_errors_total: Counter = field(init=False)
    pipeline_duration: Histogram = field(init=False)
    checklist_steps: Histogram = field(init=False)

    llm_requests_total: Counter = field(init=False)
    llm_errors_total: Counter = field(init=False)

    chunks_retrieved: Histogram = field(init=False)
    chunks_ingested_total: Counter = field(init=False)

    webhook_deliveries_total: Counter = field(init=False)
    webhook_retries_total: Counter = field(init=False)

    system_info: Info = field(init=False)

    def __post_init__(self):
        self._initialize_metrics()

        if self.config.should_start_metrics_server():
            self._start_metrics_server()

    def _initialize_metrics(self):
        labels = list(self.config.metrics.default_labels.keys())
        buckets = self.config.metrics.duration_buckets

        self.pipeline_requests_total = Counter(
            "runbook_synth_pipeline_requests_total",
            "Total number of alerts processed",
            labelnames=["severity"] + labels,
            registry=self.registry,
        )

        self.pipeline_errors_total = Counter(
            "runbook_synth_pipeline_errors_total",
            "Total number of failed pipeline runs",
            labelnames=["stage", "error_type"] + labels,
            registry=self.registry,
        )

        self.pipeline_duration = Histogram(
            "runbook_synth_pipeline_duration_seconds",
            "Duration of pipeline runs",
            labelnames=["severity"] + labels,
            buckets=buckets,
            registry=self.registry,
        )

        self.checklist_steps = Histogram(
            "runbook_synth_checklist_steps",
            "Number of steps in generated checklists",
            labelnames=["provider"] + labels,
            buckets=[0, 1, 3, 5, 10, 20],
            registry=self.registry,
        )

        self.llm_requests_total = Counter(
            "runbook_synth_llm_requests_total",
            "Total number of LLM requests",
            labelnames=["provider", "operation"] + labels,
            registry=self.registry,
        )

        self.llm_errors_total = Counter(
            "runbook_synth_llm_errors_total",
            "Total number of LLM errors",
            labelnames=["provider", "operation", "error_type"] + labels,
            registry=self.registry,
        )

        self.chunks_retrieved = Histogram(
            "runbook_synth_chunks_retrieved",
            "Number of chunks returned by the retriever",
            labelnames=labels,
            buckets=[0, 1, 2, 5, 10, 20, 50],
            registry=self.registry,
        )

        self.chunks_ingested_total = Counter(
            "runbook_synth_chunks_ingested_total",
            "Total number of chunks written to the vector store",
            labelnames=["bucket"] + labels,
            registry=self.registry,
        )

        self.webhook_deliveries_total = Counter(
            "runbook_synth_webhook_deliveries_total",
            "Total number of webhook deliveries by outcome",
            labelnames=["destination", "status"] + labels,
            registry=self.registry,
        )

        self.webhook_retries_total = Counter(
            "runbook_synth_webhook_retries_total",
            "Total number of webhook retry attempts",
            labelnames=["destination"] + labels,
            registry=self.registry,
        )

        self.system_info = Info(
            "runbook_synth_system", "System information", registry=self.registry
        )
        self.system_info.info(
            {
                "version": self.config.tracing.service_version,
                "environment": self.config.environment,
            }
        )

        logger.info("Prometheus metrics initialized")

    def _start_metrics_server(self):
        try:
            start_http_server(port=self.config.metrics.port, registry=self.registry)
            logger.info(f"Metrics server started on port {self.config.metrics.port}")
        except Exception as e:
            logger.error(f"Failed to start metrics server: {e}")

    def _labels(self, **labels: str) -> dict[str, str]:
        return {**self.config.metrics.default_labels, **labels}

    @contextmanager
    def time_pipeline(self, severity: str):
        """Context manager to time a pipeline run"""
        start_time = time.time()
        try:
            yield
        finally:
            self.pipeline_duration.labels(**self._labels(severity=severity)).observe(
                time.time() - start_time
            )

    def record_pipeline_request(self, severity: str):
        self.pipeline_requests_total.labels(**self._labels(severity=severity)).inc()

    def record_pipeline_error(self, stage: str, error_type: str):
        self.pipeline_errors_total.labels(
            **self._labels(stage=stage, error_type=error_type)
        ).inc()

    def record_checklist(self, provider: str, step_count: int):
        self.checklist_steps.labels(**self._labels(provider=provider)).observe(step_count)

    def record_llm_request(self, provider: str, operation: str):
        self.llm_requests_total.labels(
            **self._labels(provider=provider, operation=operation)
        ).inc()

    def record_llm_error(self, provider: str, operation: str, error_type: str):
        self.llm_errors_total.labels(
            **self._labels(provider=provider, operation=operation, error_type=error_type)
        ).inc()

    def record_chunks_retrieved(self, count: int):
        self.chunks_retrieved.labels(**self._labels()).observe(count)

    def record_chunks_ingested(self, bucket: str, count: int):
        self.chunks_ingested_total.labels(**self._labels(bucket=bucket)).inc(count)

    def record_webhook_delivery(self, destination: str, success: bool):
        status = "success" if success else "failure"
        self.webhook_deliveries_total.labels(
            **self._labels(destination=destination, status=status)
        ).inc()

    def record_webhook_retry(self, destination: str):
        self.webhook_retries_total.labels(**self._labels(destination=destination)).inc()

    def get_metrics_text(self) -> str:
        """Get metrics in Prometheus text format"""
        return generate_latest(self.registry).decode("utf-8")


_metrics: Optional[MetricsCollector] = None


def initialize_metrics(config: TelemetryConfig) -> None:
    """Initialize global metrics collector"""
    global _metrics
    _metrics = MetricsCollector(config)


def get_metrics() -> Optional[MetricsCollector]:
    """Get the global metrics collector (None when metrics are disabled)"""
    return _metrics


def reset_metrics() -> None:
    global _metrics
    _metrics = None
