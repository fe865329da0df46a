"""
Observability initialization

Provides centralized initialization for tracing, metrics, and logging.
"""

import logging
import logging.config
from typing import Optional

from opentelemetry import trace

from .config import TelemetryConfig
from .metrics import initialize_metrics, reset_metrics
from .tracer import initialize_tracing

logger = logging.getLogger(__name__)

_initialized = False
_config: Optional[TelemetryConfig] = None


class TraceContextFilter(logging.Filter):
    """Adds trace_id / span_id of the active span to every log record"""

    def filter(self, record: logging.LogRecord) -> bool:
        span = trace.get_current_span()
        if span.is_recording():
            span_context = span.get_span_context()
            record.trace_id = format(span_context.trace_id, "032x")
            record.span_id = format(span_context.span_id, "016x")
        else:
            record.trace_id = ""
            record.span_id = ""
        return True


def configure_logging(config: TelemetryConfig) -> None:
    """Configure root logging with text or JSON output"""
    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"trace_context": {"()": TraceContextFilter}},
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "fmt": "%(asctime)s %(name)s %(levelname)s %(message)s %(trace_id)s %(span_id)s",
            },
            "text": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": config.logging.level,
                "formatter": config.logging.format,
                "filters": ["trace_context"] if config.logging.include_trace_id else [],
                "stream": "ext://sys.stderr",
            }
        },
        "root": {"level": config.logging.level, "handlers": ["console"]},
        "loggers": {"runbook_synth": {"level": config.logging.level, "propagate": True}},
    }

    logging.config.dictConfig(log_config)


def initialize_observability(config: TelemetryConfig) -> None:
    """
    Initialize all observability features

    Args:
        config: Telemetry configuration
    """
    global _initialized, _config

    if _initialized:
        logger.warning("Observability already initialized, skipping")
        return

    _config = config

    if not config.enabled:
        logger.info("Observability is disabled")
        return

    if config.logging.enabled:
        configure_logging(config)

    logger.info(f"Initializing observability for environment: {config.environment}")

    if config.tracing.enabled:
        initialize_tracing(config)

    if config.metrics.enabled:
        initialize_metrics(config)

    _initialized = True
    logger.info("Observability initialization complete")


def is_observability_initialized() -> bool:
    return _initialized


def shutdown_observability() -> None:
    """Shutdown observability systems gracefully"""
    global _initialized

    if not _initialized:
        return

    logger.info("Shutting down observability systems")

    from opentelemetry.sdk.trace import TracerProvider

    provider = trace.get_tracer_provider()
    if isinstance(provider, TracerProvider):
        provider.shutdown()
        logger.debug("Tracing provider shutdown complete")

    reset_metrics()
    _initialized = False
    logger.info("Observability shutdown complete")
