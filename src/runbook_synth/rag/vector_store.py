"""
Vector storage for runbook chunks

Provides the VectorStore protocol and an in-process implementation with
cosine similarity search.
"""

import logging
import threading
from typing import Iterable, Protocol, runtime_checkable

from ..errors import ValidationError
from ..models import RunbookChunk, ScoredChunk

logger = logging.getLogger(__name__)


@runtime_checkable
class VectorStore(Protocol):
    """Storage of chunk/embedding pairs answering nearest-neighbour queries"""

    @property
    def provider_type(self) -> str: ...

    async def store(self, chunk: RunbookChunk) -> None: ...

    async def store_batch(self, chunks: list[RunbookChunk]) -> None: ...

    async def search(self, query_embedding: list[float], top_k: int) -> list[ScoredChunk]: ...

    async def delete(self, source_path: str) -> int: ...

    async def count(self) -> int: ...


def cosine_similarity(embedding1: list[float], embedding2: list[float]) -> float:
    """Cosine similarity; 0.0 when either vector has zero magnitude"""
    if len(embedding1) != len(embedding2):
        raise ValidationError(
            f"Embedding dimension mismatch: {len(embedding1)} != {len(embedding2)}"
        )

    dot_product = sum(a * b for a, b in zip(embedding1, embedding2))
    magnitude1 = sum(a * a for a in embedding1) ** 0.5
    magnitude2 = sum(b * b for b in embedding2) ** 0.5

    if magnitude1 == 0 or magnitude2 == 0:
        return 0.0

    return dot_product / (magnitude1 * magnitude2)


class InMemoryVectorStore:
    """
    In-process vector store

    Chunks are kept by id in insertion order. All access goes through a
    re-entrant lock, so one store can be shared by pipelines running on
    different threads or event loops.
    """

    def __init__(self) -> None:
        self._chunks: dict[str, RunbookChunk] = {}
        self._lock = threading.RLock()

    @property
    def provider_type(self) -> str:
        return "local"

    async def store(self, chunk: RunbookChunk) -> None:
        with self._lock:
            self._chunks[chunk.id] = chunk

    async def store_batch(self, chunks: list[RunbookChunk]) -> None:
        with self._lock:
            for chunk in chunks:
                self._chunks[chunk.id] = chunk

    async def search(self, query_embedding: list[float], top_k: int) -> list[ScoredChunk]:
        """Return up to top_k chunks by descending cosine similarity"""
        if top_k < 0:
            raise ValidationError(f"top_k must be non-negative, got {top_k}")
        if top_k == 0:
            return []

        with self._lock:
            candidates = [chunk for chunk in self._chunks.values() if chunk.embedding]

        results = [
            ScoredChunk(chunk=chunk, similarity_score=cosine_similarity(query_embedding, chunk.embedding))
            for chunk in candidates
        ]
        # sort() is stable: equal scores keep insertion order
        results.sort(key=lambda result: result.similarity_score, reverse=True)
        return results[:top_k]

    def _delete_locked(self, source_path: str) -> int:
        doomed = [chunk_id for chunk_id, chunk in self._chunks.items() if chunk.source_path == source_path]
        for chunk_id in doomed:
            del self._chunks[chunk_id]
        return len(doomed)

    async def delete(self, source_path: str) -> int:
        """Remove every chunk for source_path; returns the number removed"""
        with self._lock:
            removed = self._delete_locked(source_path)
        if removed:
            logger.debug(f"Deleted {removed} chunk(s) for {source_path}")
        return removed

    async def replace(self, source_path: str, chunks: Iterable[RunbookChunk]) -> int:
        """Atomically swap the chunks stored for source_path"""
        chunks = list(chunks)
        with self._lock:
            self._delete_locked(source_path)
            for chunk in chunks:
                self._chunks[chunk.id] = chunk
        return len(chunks)

    async def count(self) -> int:
        with self._lock:
            return len(self._chunks)

    async def get_all(self) -> list[RunbookChunk]:
        with self._lock:
            return list(self._chunks.values())
