"""
Runbook retrieval with metadata re-ranking

Candidates are over-fetched from the vector store by similarity and then
re-ranked with boosts for tags that match the alert and shape patterns
that match the resource.
"""

import logging
import re
from functools import lru_cache
from typing import Optional

from ..config import RetrievalConfig
from ..errors import ValidationError
from ..models import EnrichedContext, RetrievedChunk, RunbookChunk, ScoredChunk
from ..observability.metrics import get_metrics
from ..observability.tracer import set_attribute, trace_async
from .embeddings import EmbeddingService
from .vector_store import VectorStore

logger = logging.getLogger(__name__)

MATCH_ALL_SHAPES = "all"


@lru_cache(maxsize=512)
def compile_shape_pattern(pattern: str) -> re.Pattern:
    """Compile a shape glob to an anchored, case-insensitive regex

    Only ``*`` is a wildcard; every other character matches literally.
    """
    body = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.compile(f"^{body}$", re.IGNORECASE)


def matches_shape(pattern: str, shape: str) -> bool:
    if pattern.strip().lower() == MATCH_ALL_SHAPES:
        return True
    return compile_shape_pattern(pattern.strip()).match(shape) is not None


def count_tag_matches(chunk: RunbookChunk, context: EnrichedContext) -> int:
    """Tags found among the alert's dimension/label keys, label values or title"""
    alert = context.alert
    title = alert.title.lower()
    label_values = set(alert.labels.values())

    matches = 0
    for tag in chunk.tags:
        if (
            tag in alert.dimensions
            or tag in alert.labels
            or tag in label_values
            or tag.lower() in title
        ):
            matches += 1
    return matches


class RunbookRetriever:
    """Embeds alert context, searches the store and re-ranks the candidates"""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        config: Optional[RetrievalConfig] = None,
    ):
        if embedding_service is None or vector_store is None:
            raise ValidationError("embedding_service and vector_store are required")
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.config = config or RetrievalConfig()

    def calculate_boost(self, chunk: RunbookChunk, context: EnrichedContext) -> float:
        tag_boost = min(
            count_tag_matches(chunk, context) * self.config.tag_boost_weight,
            self.config.tag_boost_max,
        )

        shape_boost = 0.0
        resource = context.resource
        if resource is not None and resource.shape and chunk.applicable_shape_patterns:
            if any(matches_shape(p, resource.shape) for p in chunk.applicable_shape_patterns):
                shape_boost = self.config.shape_boost_weight

        return tag_boost + shape_boost

    def rerank(
        self, candidates: list[ScoredChunk], context: EnrichedContext, top_k: int
    ) -> list[RetrievedChunk]:
        """Apply metadata boosts and return the best top_k"""
        scored = [
            RetrievedChunk.from_scores(
                candidate.chunk,
                candidate.similarity_score,
                self.calculate_boost(candidate.chunk, context),
            )
            for candidate in candidates
        ]
        # Stable sort keeps original order for full ties
        scored.sort(key=lambda r: (r.final_score, r.similarity_score), reverse=True)
        return scored[:top_k]

    @trace_async("rag.retrieve")
    async def retrieve(self, context: EnrichedContext, top_k: int) -> list[RetrievedChunk]:
        """
        Retrieve the most relevant runbook chunks for an alert

        Args:
            context: Enriched alert context
            top_k: Maximum number of chunks to return

        Returns:
            Chunks ordered by final score, best first
        """
        if context is None:
            raise ValidationError("context cannot be None")
        if top_k < 0:
            raise ValidationError(f"top_k must be non-negative, got {top_k}")
        set_attribute("retrieval.top_k", top_k)
        if top_k == 0:
            return []

        query_embedding = await self.embedding_service.embed_context(context)
        fetch_count = top_k * self.config.over_fetch_multiplier
        candidates = await self.vector_store.search(query_embedding, fetch_count)

        results = self.rerank(candidates, context, top_k)

        set_attribute("retrieval.candidates", len(candidates))
        set_attribute("retrieval.returned", len(results))
        logger.info(
            f"Retrieved {len(results)} chunk(s) for alert {context.alert.id} "
            f"from {len(candidates)} candidate(s)"
        )

        metrics = get_metrics()
        if metrics:
            metrics.record_chunks_retrieved(len(results))

        return results
