"""
Pipeline orchestration - alert to checklist

Sequences enrichment, retrieval and generation for one alert.
"""

import logging
from contextlib import nullcontext
from typing import Optional

from ..config import SynthConfig
from ..enrichment import EnrichmentService
from ..errors import ValidationError
from ..models import Alert, DynamicChecklist
from ..observability.metrics import get_metrics
from ..observability.tracer import add_event, set_attribute, trace_operation
from .generator import ChecklistGenerator
from .retriever import RunbookRetriever

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """
    Main alert pipeline

    Every stage failure is logged, recorded on the active span and counted,
    then re-raised unchanged to the caller.
    """

    def __init__(
        self,
        enrichment: EnrichmentService,
        retriever: RunbookRetriever,
        generator: ChecklistGenerator,
        default_top_k: int = 5,
    ):
        if enrichment is None or retriever is None or generator is None:
            raise ValidationError("enrichment, retriever and generator are required")
        self.enrichment = enrichment
        self.retriever = retriever
        self.generator = generator
        self.default_top_k = default_top_k

    @classmethod
    def from_config(
        cls,
        config: SynthConfig,
        enrichment: EnrichmentService,
        retriever: RunbookRetriever,
        generator: ChecklistGenerator,
    ) -> "PipelineOrchestrator":
        return cls(enrichment, retriever, generator, default_top_k=config.retrieval.top_k)

    async def process_alert(
        self, alert: Alert, top_k: Optional[int] = None
    ) -> DynamicChecklist:
        """
        Produce a checklist for an alert

        Args:
            alert: Incoming alert
            top_k: Number of runbook chunks to ground the checklist on;
                defaults to the configured retrieval.top_k. Zero skips
                retrieval and generates from alert context alone.
        """
        if alert is None:
            raise ValidationError("alert cannot be None")
        top_k = self.default_top_k if top_k is None else top_k
        if top_k < 0:
            raise ValidationError(f"top_k must be non-negative, got {top_k}")

        metrics = get_metrics()
        severity = alert.severity.value
        if metrics:
            metrics.record_pipeline_request(severity)

        with trace_operation("pipeline.process_alert", {"alert.id": alert.id}):
            set_attribute("alert.severity", severity)
            set_attribute("retrieval.top_k", top_k)
            stage = "enrich"
            timer = metrics.time_pipeline(severity) if metrics else nullcontext()
            try:
                with timer:
                    context = await self.enrichment.enrich(alert)
                    stage = "retrieve"
                    chunks = await self.retriever.retrieve(context, top_k)
                    stage = "generate"
                    checklist = await self.generator.generate(context, chunks)
            except Exception as e:
                logger.error(f"Pipeline failed for alert {alert.id} at {stage}: {e}")
                add_event("pipeline_failed", {"stage": stage, "error": str(e)})
                if metrics:
                    metrics.record_pipeline_error(stage, type(e).__name__)
                raise

            if metrics:
                metrics.record_checklist(checklist.llm_provider_used, len(checklist.steps))
            return checklist

