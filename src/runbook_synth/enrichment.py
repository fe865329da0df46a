"""
Alert context enrichment

Turns a raw alert into an EnrichedContext. The static service resolves the
affected resource from a fixed inventory; a cloud-backed service would
fetch metadata, metrics and logs instead.
"""

import logging
from typing import Optional, Protocol, runtime_checkable

from .errors import ValidationError
from .models import Alert, EnrichedContext, LogEntry, MetricSnapshot, ResourceMetadata
from .observability.tracer import set_attribute, trace_async

logger = logging.getLogger(__name__)

DEFAULT_RESOURCE_DIMENSION = "resourceId"


@runtime_checkable
class EnrichmentService(Protocol):
    async def enrich(self, alert: Alert) -> EnrichedContext: ...


class StaticEnrichmentService:
    """Enriches alerts from an in-memory resource inventory"""

    def __init__(
        self,
        resources: Optional[dict[str, ResourceMetadata]] = None,
        resource_dimension: str = DEFAULT_RESOURCE_DIMENSION,
        metrics: Optional[dict[str, list[MetricSnapshot]]] = None,
        logs: Optional[dict[str, list[LogEntry]]] = None,
    ):
        self.resources = dict(resources or {})
        self.resource_dimension = resource_dimension
        self.metrics = dict(metrics or {})
        self.logs = dict(logs or {})

    def _resolve_resource(self, alert: Alert) -> Optional[ResourceMetadata]:
        resource_id = alert.dimensions.get(self.resource_dimension)
        if not resource_id:
            return None
        if resource_id in self.resources:
            return self.resources[resource_id]
        # Unknown to the inventory: keep what the alert itself tells us
        return ResourceMetadata(
            resource_id=resource_id,
            display_name=alert.dimensions.get("resourceDisplayName"),
            shape=alert.dimensions.get("shape"),
        )

    @trace_async("enrichment.enrich")
    async def enrich(self, alert: Alert) -> EnrichedContext:
        if alert is None:
            raise ValidationError("alert cannot be None")

        resource = self._resolve_resource(alert)
        resource_id = resource.resource_id if resource else None
        set_attribute("resource.id", resource_id)

        properties = {"source_service": alert.source_service} if alert.source_service else {}
        return EnrichedContext(
            alert=alert,
            resource=resource,
            recent_metrics=list(self.metrics.get(resource_id, [])) if resource_id else [],
            recent_logs=list(self.logs.get(resource_id, [])) if resource_id else [],
            custom_properties=properties,
        )
