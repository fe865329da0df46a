"""
Retrieval-augmented generation: chunking, storage, retrieval and checklist
generation.
"""

from .chunker import DocumentChunker, ParsedChunk
from .embeddings import DefaultEmbeddingService, EmbeddingService
from .generator import ChecklistGenerator
from .ingestion import IngestionService
from .pipeline import PipelineOrchestrator
from .retriever import RunbookRetriever
from .vector_store import InMemoryVectorStore, VectorStore

__all__ = [
    "DocumentChunker",
    "ParsedChunk",
    "EmbeddingService",
    "DefaultEmbeddingService",
    "VectorStore",
    "InMemoryVectorStore",
    "RunbookRetriever",
    "ChecklistGenerator",
    "IngestionService",
    "PipelineOrchestrator",
]
