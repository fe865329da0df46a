"""
Telemetry configuration for OpenTelemetry and Prometheus

Provides configuration options for tracing, metrics, and logging.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class TracingConfig(BaseModel):
    """OpenTelemetry tracing configuration"""

    enabled: bool = Field(default=False, description="Enable OpenTelemetry tracing")
    service_name: str = Field(default="runbook-synth", description="Service name for traces")
    service_version: str = Field(default="0.1.0", description="Service version")

    otlp_endpoint: Optional[str] = Field(
        default=None, description="OTLP endpoint URL (e.g., http://localhost:4317)"
    )
    otlp_headers: dict[str, str] = Field(
        default_factory=dict, description="OTLP headers for authentication"
    )
    otlp_insecure: bool = Field(
        default=True, description="Use insecure connection for OTLP"
    )

    sample_rate: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Trace sampling rate (0.0 = no traces, 1.0 = all traces)",
    )

    @field_validator("otlp_headers", mode="before")
    @classmethod
    def parse_headers(cls, value: Any) -> Any:
        """Accept OTLP headers in the `key=value,key2=value2` exporter format"""
        if not isinstance(value, str):
            return value
        headers = {}
        for header in value.split(","):
            if "=" in header:
                key, header_value = header.split("=", 1)
                headers[key.strip()] = header_value.strip()
        return headers


class MetricsConfig(BaseModel):
    """Prometheus metrics configuration"""

    enabled: bool = Field(default=False, description="Enable Prometheus metrics")
    serve: bool = Field(default=False, description="Expose an HTTP metrics endpoint")
    port: int = Field(
        default=9090, ge=1024, le=65535, description="Metrics server port"
    )
    default_labels: dict[str, str] = Field(
        default_factory=dict, description="Default labels added to all metrics"
    )
    duration_buckets: list[float] = Field(
        default_factory=lambda: [0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
        description="Histogram buckets for operation duration metrics (in seconds)",
    )


class LoggingConfig(BaseModel):
    """Logging configuration"""

    enabled: bool = Field(default=True, description="Configure root logging")
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format (json|text)")
    include_trace_id: bool = Field(
        default=True, description="Include trace and span IDs in log records"
    )


class TelemetryConfig(BaseModel):
    """Complete telemetry configuration"""

    enabled: bool = Field(default=True, description="Enable all telemetry features")

    tracing: TracingConfig = Field(default_factory=TracingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    environment: str = Field(
        default="development",
        description="Deployment environment (development|staging|production)",
    )

    def get_resource_attributes(self) -> dict[str, str]:
        """Get OpenTelemetry resource attributes"""
        return {
            "service.name": self.tracing.service_name,
            "service.version": self.tracing.service_version,
            "deployment.environment": self.environment,
        }

    def should_export_traces(self) -> bool:
        """Check if traces should be exported to external system"""
        return (
            self.enabled
            and self.tracing.enabled
            and self.tracing.otlp_endpoint is not None
        )

    def should_start_metrics_server(self) -> bool:
        """Check if metrics server should be started"""
        return self.enabled and self.metrics.enabled and self.metrics.serve
