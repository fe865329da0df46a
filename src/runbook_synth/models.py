"""
Core data models for runbook-synth

Defines alerts, enriched context, runbook chunks, checklists and delivery
results using Pydantic for validation and serialization.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(value: datetime) -> str:
    """ISO-8601 with a trailing Z for UTC timestamps"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class AlertSeverity(str, Enum):
    """Alert severity levels"""

    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"

    @classmethod
    def from_string(cls, value: str) -> "AlertSeverity":
        if value is None:
            raise ValidationError("Severity cannot be None")
        try:
            return cls(str(value).strip().upper())
        except ValueError as e:
            raise ValidationError(f"Unknown severity: {value}") from e


class StepPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Alert(BaseModel):
    """Normalized alert as received from a monitoring source"""

    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    message: str = ""
    severity: AlertSeverity
    source_service: str = ""
    dimensions: dict[str, str] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
    raw_payload: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def _parse_severity(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value


class ResourceMetadata(BaseModel):
    """Compute resource the alert fired on"""

    resource_id: str = Field(min_length=1)
    display_name: Optional[str] = None
    compartment_id: Optional[str] = None
    shape: Optional[str] = None
    availability_domain: Optional[str] = None
    freeform_tags: dict[str, str] = Field(default_factory=dict)
    defined_tags: dict[str, str] = Field(default_factory=dict)


class MetricSnapshot(BaseModel):
    metric_name: str
    namespace: str = ""
    value: float
    unit: str = ""
    timestamp: datetime = Field(default_factory=utc_now)


class LogEntry(BaseModel):
    id: str
    timestamp: datetime = Field(default_factory=utc_now)
    level: str = "INFO"
    message: str = ""
    metadata: dict[str, str] = Field(default_factory=dict)


class EnrichedContext(BaseModel):
    """Alert plus the infrastructure context gathered around it"""

    model_config = ConfigDict(frozen=True)

    alert: Alert
    resource: Optional[ResourceMetadata] = None
    recent_metrics: list[MetricSnapshot] = Field(default_factory=list)
    recent_logs: list[LogEntry] = Field(default_factory=list)
    custom_properties: dict[str, Any] = Field(default_factory=dict)


class RunbookChunk(BaseModel):
    """A stored excerpt of a runbook together with its embedding"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    source_path: str = Field(min_length=1)
    section_title: str = ""
    content: str
    tags: list[str] = Field(default_factory=list)
    applicable_shape_patterns: list[str] = Field(default_factory=list)
    embedding: list[float] = Field(default_factory=list)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("chunk content cannot be blank")
        return value

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))


class ScoredChunk(BaseModel):
    chunk: RunbookChunk
    similarity_score: float


class RetrievedChunk(BaseModel):
    """Chunk after metadata re-ranking"""

    chunk: RunbookChunk
    similarity_score: float
    metadata_boost: float = Field(default=0.0, ge=0.0)
    final_score: float

    @classmethod
    def from_scores(
        cls, chunk: RunbookChunk, similarity_score: float, metadata_boost: float
    ) -> "RetrievedChunk":
        return cls(
            chunk=chunk,
            similarity_score=similarity_score,
            metadata_boost=metadata_boost,
            final_score=similarity_score + metadata_boost,
        )


class GenerationConfig(BaseModel):
    """Sampling settings passed to the text-generation provider"""

    temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    max_tokens: int = Field(default=2000, gt=0)
    model_override: Optional[str] = None


class ChecklistStep(BaseModel):
    order: int = Field(ge=1)
    instruction: str
    rationale: Optional[str] = None
    current_value: Optional[str] = None
    expected_value: Optional[str] = None
    priority: StepPriority = StepPriority.MEDIUM
    commands: list[str] = Field(default_factory=list)

    @field_validator("instruction")
    @classmethod
    def _instruction_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("step instruction cannot be blank")
        return value

    def to_dict(self) -> dict[str, Any]:
        return {
            "order": self.order,
            "instruction": self.instruction,
            "rationale": self.rationale,
            "currentValue": self.current_value,
            "expectedValue": self.expected_value,
            "priority": self.priority.value,
            "commands": list(self.commands),
        }


class DynamicChecklist(BaseModel):
    """Troubleshooting checklist generated for one alert"""

    alert_id: str = Field(min_length=1)
    summary: str = ""
    steps: list[ChecklistStep] = Field(default_factory=list)
    source_runbooks: list[str] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utc_now)
    llm_provider_used: str = ""
    # Routing data for the dispatcher, not part of the emitted shape
    severity: Optional[AlertSeverity] = Field(default=None, exclude=True)
    labels: dict[str, str] = Field(default_factory=dict, exclude=True)

    @model_validator(mode="after")
    def _steps_are_sequential(self) -> "DynamicChecklist":
        for expected, step in enumerate(self.steps, start=1):
            if step.order != expected:
                raise ValueError(
                    f"checklist steps must be numbered 1..n, found {step.order} at position {expected}"
                )
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape consumed downstream"""
        return {
            "alertId": self.alert_id,
            "summary": self.summary,
            "steps": [step.to_dict() for step in self.steps],
            "sourceRunbooks": list(self.source_runbooks),
            "generatedAt": isoformat_utc(self.generated_at),
            "llmProviderUsed": self.llm_provider_used,
        }


class WebhookFilter(BaseModel):
    """Severity and label criteria a checklist must satisfy to be delivered"""

    severities: set[AlertSeverity] = Field(default_factory=set)
    required_labels: dict[str, str] = Field(default_factory=dict)

    @field_validator("severities", mode="before")
    @classmethod
    def _parse_severities(cls, value: Any) -> Any:
        if value is None:
            return set()
        if isinstance(value, str):
            value = [value]
        return {
            AlertSeverity.from_string(item) if isinstance(item, str) else item
            for item in value
        }

    @classmethod
    def allow_all(cls) -> "WebhookFilter":
        return cls()

    def matches(
        self, severity: Optional[AlertSeverity], labels: Optional[dict[str, str]]
    ) -> bool:
        if self.severities and severity not in self.severities:
            return False
        labels = labels or {}
        return all(labels.get(key) == value for key, value in self.required_labels.items())


class WebhookResult(BaseModel):
    """Outcome of delivering one checklist to one destination"""

    destination_name: str
    success: bool
    status_code: int = 0
    error_message: Optional[str] = None
    sent_at: datetime = Field(default_factory=utc_now)
    attempts: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _error_iff_failure(self) -> "WebhookResult":
        if self.success and self.error_message is not None:
            raise ValueError("successful result cannot carry an error message")
        if not self.success and not self.error_message:
            raise ValueError("failed result requires an error message")
        return self

    @classmethod
    def ok(cls, destination_name: str, status_code: int, attempts: int = 1) -> "WebhookResult":
        return cls(
            destination_name=destination_name,
            success=True,
            status_code=status_code,
            attempts=attempts,
        )

    @classmethod
    def failure(
        cls,
        destination_name: str,
        error_message: str,
        status_code: int = 0,
        attempts: int = 1,
    ) -> "WebhookResult":
        return cls(
            destination_name=destination_name,
            success=False,
            status_code=status_code,
            error_message=error_message or "unknown error",
            attempts=attempts,
        )
