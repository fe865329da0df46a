"""
Runbook ingestion

Fetches runbooks from a document source, chunks and embeds them and
writes the chunks to the vector store. Re-ingesting a document replaces
all of its previous chunks.
"""

import asyncio
import logging
import uuid
from typing import Optional

from ..errors import PermanentExternalError, ValidationError
from ..models import RunbookChunk
from ..observability.metrics import get_metrics
from ..observability.tracer import set_attribute, trace_async
from ..sources import DocumentSource
from .chunker import DocumentChunker, ParsedChunk
from .embeddings import EmbeddingService
from .vector_store import VectorStore

logger = logging.getLogger(__name__)

CHUNK_ID_NAMESPACE = uuid.UUID("6f1c2a8e-5b7d-4c1e-9a3f-2d8b7e4c6a10")


def chunk_id(source_path: str, index: int) -> str:
    """Stable id so re-ingesting unchanged content yields identical chunks"""
    return str(uuid.uuid5(CHUNK_ID_NAMESPACE, f"{source_path}#{index}"))


class IngestionService:
    def __init__(
        self,
        source: DocumentSource,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        chunker: Optional[DocumentChunker] = None,
    ):
        if source is None or embedding_service is None or vector_store is None:
            raise ValidationError("source, embedding_service and vector_store are required")
        self.source = source
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.chunker = chunker or DocumentChunker()

    async def _replace(self, source_path: str, chunks: list[RunbookChunk]) -> None:
        replace = getattr(self.vector_store, "replace", None)
        if replace is not None:
            await replace(source_path, chunks)
            return
        await self.vector_store.delete(source_path)
        if chunks:
            await self.vector_store.store_batch(chunks)

    async def _embed(self, source_path: str, parsed: list[ParsedChunk]) -> list[RunbookChunk]:
        embeddings = await self.embedding_service.embed_batch([p.content for p in parsed])
        if len(embeddings) != len(parsed):
            raise PermanentExternalError(
                f"Expected {len(parsed)} embeddings for {source_path}, got {len(embeddings)}"
            )
        return [
            RunbookChunk(
                id=chunk_id(source_path, index),
                source_path=source_path,
                section_title=item.section_title,
                content=item.content,
                tags=list(item.tags),
                applicable_shape_patterns=list(item.applicable_shapes),
                embedding=embedding,
            )
            for index, (item, embedding) in enumerate(zip(parsed, embeddings))
        ]

    @trace_async("ingestion.ingest", record_args=True)
    async def ingest(self, bucket: str, path: str) -> int:
        """
        Ingest one runbook

        Returns:
            Number of chunks stored; 0 when the document is missing or empty
        """
        content = await self.source.get_document_content(bucket, path)
        if content is None:
            logger.warning(f"Runbook {bucket}/{path} not found, nothing ingested")
            await self._replace(path, [])
            return 0

        parsed = self.chunker.chunk(content, path)
        chunks = await self._embed(path, parsed) if parsed else []
        await self._replace(path, chunks)

        set_attribute("ingestion.chunks", len(chunks))
        logger.info(f"Ingested {len(chunks)} chunk(s) from {bucket}/{path}")
        metrics = get_metrics()
        if metrics:
            metrics.record_chunks_ingested(bucket, len(chunks))
        return len(chunks)

    @trace_async("ingestion.ingest_all", record_args=True)
    async def ingest_all(self, bucket: str) -> int:
        """Ingest every runbook in a bucket concurrently; returns total chunks"""
        paths = await self.source.list_documents(bucket)
        if not paths:
            logger.info(f"No runbooks found in bucket {bucket}")
            return 0

        counts = await asyncio.gather(*(self.ingest(bucket, path) for path in paths))
        total = sum(counts)
        set_attribute("ingestion.documents", len(paths))
        logger.info(f"Ingested {total} chunk(s) from {len(paths)} runbook(s) in {bucket}")
        return total
