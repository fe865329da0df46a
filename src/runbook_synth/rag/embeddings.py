"""
Embedding service backed by an LLM provider
"""

import logging
from typing import Protocol, runtime_checkable

from ..errors import ValidationError
from ..llm_client import LLMProvider
from ..models import EnrichedContext

logger = logging.getLogger(__name__)


@runtime_checkable
class EmbeddingService(Protocol):
    async def embed(self, text: str) -> list[float]: ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]: ...

    async def embed_context(self, context: EnrichedContext) -> list[float]: ...


def format_context_query(context: EnrichedContext) -> str:
    """Build the retrieval query text for an alert and its resource"""
    alert = context.alert
    lines = [f"Alert Title: {alert.title}", f"Alert Message: {alert.message}"]

    resource = context.resource
    if resource is not None:
        name = resource.display_name or resource.resource_id
        if resource.shape:
            lines.append(f"Resource: {name} (Shape: {resource.shape})")
        else:
            lines.append(f"Resource: {name}")

    return "\n".join(lines) + "\n"


class DefaultEmbeddingService:
    """Delegates embedding to the configured LLM provider"""

    def __init__(self, provider: LLMProvider):
        if provider is None:
            raise ValidationError("provider cannot be None")
        self.provider = provider

    async def embed(self, text: str) -> list[float]:
        if text is None:
            raise ValidationError("text cannot be None")
        return await self.provider.generate_embedding(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if texts is None:
            raise ValidationError("texts cannot be None")
        if not texts:
            return []
        return await self.provider.generate_embeddings(list(texts))

    async def embed_context(self, context: EnrichedContext) -> list[float]:
        if context is None:
            raise ValidationError("context cannot be None")
        return await self.provider.generate_embedding(format_context_query(context))
