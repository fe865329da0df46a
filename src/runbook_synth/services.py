"""
Service wiring

Builds the ingestion, pipeline and dispatch services from configuration.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .config import SynthConfig, get_config, load_webhook_configs
from .enrichment import EnrichmentService, StaticEnrichmentService
from .llm_client import LLMProvider, create_provider
from .output.dispatcher import DispatchEngine
from .rag.chunker import DocumentChunker
from .rag.embeddings import DefaultEmbeddingService
from .rag.generator import ChecklistGenerator
from .rag.ingestion import IngestionService
from .rag.pipeline import PipelineOrchestrator
from .rag.prompts import PromptManager
from .rag.retriever import RunbookRetriever
from .rag.vector_store import InMemoryVectorStore, VectorStore
from .sources import DocumentSource, LocalDirectoryDocumentSource

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: SynthConfig
    provider: LLMProvider
    vector_store: VectorStore
    ingestion: IngestionService
    pipeline: PipelineOrchestrator
    dispatcher: DispatchEngine


def build_services(
    config: Optional[SynthConfig] = None,
    *,
    provider: Optional[LLMProvider] = None,
    vector_store: Optional[VectorStore] = None,
    source: Optional[DocumentSource] = None,
    enrichment: Optional[EnrichmentService] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Services:
    """Assemble all services; any collaborator can be overridden"""
    config = config or get_config()
    provider = provider or create_provider(config)
    vector_store = vector_store if vector_store is not None else InMemoryVectorStore()
    source = source or LocalDirectoryDocumentSource(config.runbooks.root_dir)
    enrichment = enrichment or StaticEnrichmentService()

    embedding_service = DefaultEmbeddingService(provider)
    chunker = DocumentChunker(
        min_chunk_size=config.chunking.min_chunk_size,
        max_chunk_size=config.chunking.max_chunk_size,
    )
    retriever = RunbookRetriever(embedding_service, vector_store, config.retrieval)
    generator = ChecklistGenerator(
        provider, PromptManager(config.prompts_dir), config.generation
    )

    logger.info(
        f"Services built with provider {provider.provider_id} "
        f"and {vector_store.provider_type} vector store"
    )
    return Services(
        config=config,
        provider=provider,
        vector_store=vector_store,
        ingestion=IngestionService(source, embedding_service, vector_store, chunker),
        pipeline=PipelineOrchestrator.from_config(config, enrichment, retriever, generator),
        dispatcher=DispatchEngine.from_configs(
            load_webhook_configs(config, enabled_only=True), transport=transport
        ),
    )
