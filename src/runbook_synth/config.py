"""
Configuration management for runbook-synth

Provides pydantic-based configuration with environment variable support
and YAML file loading capabilities.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import pydantic
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ValidationError
from .models import WebhookFilter
from .observability.config import TelemetryConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "runbook-synth.yml"


class RetrievalConfig(BaseModel):
    """Vector retrieval and re-ranking settings"""

    top_k: int = Field(default=5, ge=0)
    over_fetch_multiplier: int = Field(default=2, ge=1)
    tag_boost_weight: float = Field(default=0.1, ge=0.0)
    tag_boost_max: float = Field(default=0.3, ge=0.0)
    shape_boost_weight: float = Field(default=0.2, ge=0.0)


class GenerationSettings(BaseModel):
    """Checklist generation settings"""

    temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    max_tokens: int = Field(default=2000, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)
    prompt_template: str = "checklist:v1"


class ChunkingConfig(BaseModel):
    min_chunk_size: int = Field(default=100, ge=0)
    max_chunk_size: int = Field(default=2000, gt=0)

    @model_validator(mode="after")
    def _min_below_max(self) -> "ChunkingConfig":
        if self.min_chunk_size > self.max_chunk_size:
            raise ValueError("min_chunk_size cannot exceed max_chunk_size")
        return self


class LLMRouterConfig(BaseModel):
    """Single LLM router configuration"""

    provider: str = "openai"  # "openai", "ollama", "mock"
    model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    api_key: Optional[str] = "sk-placeholder-test-key"
    base_url: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0)
    embedding_dimensions: int = Field(default=384, gt=0)  # mock provider only


class LLMConfig(BaseModel):
    """LLM configuration"""

    default: str = "openai_default"
    routers: dict[str, LLMRouterConfig] = Field(
        default_factory=lambda: {"openai_default": LLMRouterConfig()}
    )


class RunbooksConfig(BaseModel):
    """Where runbook documents come from"""

    bucket: str = "runbook-synthesizer-runbooks"
    root_dir: str = "runbooks"
    ingest_on_startup: bool = True


class WebhookConfig(BaseModel):
    """Single delivery destination"""

    name: str = Field(min_length=1)
    type: str = Field(default="generic", min_length=1)
    url: str = Field(min_length=1)
    enabled: bool = True
    filter: WebhookFilter = Field(default_factory=WebhookFilter.allow_all)
    headers: dict[str, str] = Field(default_factory=dict)
    retry_count: int = Field(default=3, ge=0)
    retry_delay_ms: int = Field(default=1000, ge=0)

    @model_validator(mode="after")
    def _validate_url(self) -> "WebhookConfig":
        if self.type.lower() == "file":
            return self
        if not self.url.startswith(("http://", "https://")):
            raise ValueError(f"webhook '{self.name}' url must be a valid HTTP/HTTPS URL")
        return self


class OutputConfig(BaseModel):
    webhooks: list[WebhookConfig] = Field(default_factory=list)


class SynthConfig(BaseSettings):
    """Main runbook-synth configuration"""

    model_config = SettingsConfigDict(
        env_prefix="RUNBOOK_SYNTH_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    runbooks: RunbooksConfig = Field(default_factory=RunbooksConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    log_level: str = "INFO"
    prompts_dir: Optional[str] = None

    @classmethod
    def load_from_file(cls, config_path: str = DEFAULT_CONFIG_PATH) -> "SynthConfig":
        """Load configuration from YAML file with environment variable override"""
        import yaml

        config_file = Path(config_path)
        config_data: dict[str, Any] = {}

        if config_file.exists():
            with open(config_file, encoding="utf-8") as f:
                try:
                    config_data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ValidationError(f"Invalid YAML in {config_path}: {e}") from e
            if not isinstance(config_data, dict):
                raise ValidationError(f"{config_path} must contain a mapping")
        else:
            logger.debug(f"Config file {config_path} not found, using defaults")

        try:
            return cls(**config_data)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid configuration in {config_path}: {e}") from e

    def get_llm_router_config(
        self, router_name: Optional[str] = None
    ) -> LLMRouterConfig:
        """Get LLM router configuration"""
        router_name = router_name or self.llm.default
        if router_name not in self.llm.routers:
            raise ValidationError(f"LLM router '{router_name}' not found in configuration")
        return self.llm.routers[router_name]


def load_webhook_configs(
    config: SynthConfig, enabled_only: bool = False
) -> list[WebhookConfig]:
    """Return configured webhook destinations, optionally only enabled ones"""
    webhooks = list(config.output.webhooks)
    if not webhooks:
        logger.info("No webhooks configured")
        return []

    logger.info(f"Loaded {len(webhooks)} webhook configuration(s)")
    if enabled_only:
        return [webhook for webhook in webhooks if webhook.enabled]
    return webhooks


def parse_webhook_config(data: dict[str, Any]) -> WebhookConfig:
    """Validate a raw webhook mapping, raising ValidationError on bad input"""
    try:
        return WebhookConfig.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid webhook configuration: {e}") from e


# Global configuration instance
_config: Optional[SynthConfig] = None


def get_config() -> SynthConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        _config = SynthConfig.load_from_file()
    return _config


def set_config(config: SynthConfig) -> None:
    """Set the global configuration instance"""
    global _config
    _config = config
