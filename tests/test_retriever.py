"""
Test suite for runbook retrieval and metadata re-ranking
"""

from unittest.mock import AsyncMock

import pytest

from runbook_synth.config import RetrievalConfig
from runbook_synth.errors import ValidationError
from runbook_synth.models import Alert, EnrichedContext, ResourceMetadata, ScoredChunk
from runbook_synth.rag.embeddings import DefaultEmbeddingService, format_context_query
from runbook_synth.rag.retriever import (
    RunbookRetriever,
    compile_shape_pattern,
    count_tag_matches,
    matches_shape,
)
from runbook_synth.rag.vector_store import InMemoryVectorStore


def make_retriever(candidates, config=None):
    embedding_service = AsyncMock()
    embedding_service.embed_context.return_value = [1.0, 0.0]
    vector_store = AsyncMock()
    vector_store.search.return_value = candidates
    return RunbookRetriever(embedding_service, vector_store, config), embedding_service, vector_store


class TestShapePatterns:
    @pytest.mark.parametrize(
        "pattern,shape,expected",
        [
            ("VM.Standard.*", "VM.Standard.E4.Flex", True),
            ("vm.standard.*", "VM.Standard.E4.Flex", True),
            ("VM.Standard.*", "BM.Standard.E4", False),
            ("VM.Standard.E4.Flex", "VM.Standard.E4.Flex", True),
            ("VM.Standard.E4", "VM.Standard.E4.Flex", False),
            ("VM?Standard", "VM.Standard", False),
            ("*", "anything", True),
            ("all", "anything", True),
            ("ALL", "anything", True),
        ],
    )
    def test_matches_shape(self, pattern, shape, expected):
        assert matches_shape(pattern, shape) is expected

    def test_dot_is_literal(self):
        assert not matches_shape("VM.Standard", "VMxStandard")

    def test_compiled_patterns_are_cached(self):
        assert compile_shape_pattern("BM.*") is compile_shape_pattern("BM.*")


class TestTagMatching:
    def test_matches_dimension_and_label_keys_values_and_title(self, make_chunk, enriched_context):
        chunk = make_chunk(tags=["memory", "team", "prod", "utilization", "disk"])

        # memory: dimension key; team: label key; prod: label value;
        # utilization: title substring; disk: no match
        assert count_tag_matches(chunk, enriched_context) == 4

    def test_title_match_is_case_insensitive(self, make_chunk, enriched_context):
        chunk = make_chunk(tags=["HIGH MEMORY"])
        assert count_tag_matches(chunk, enriched_context) == 1


class TestRunbookRetriever:
    @pytest.mark.asyncio
    async def test_reranking_example(self, make_chunk):
        alert = Alert(
            id="a1",
            title="CPU alarm",
            severity="CRITICAL",
            dimensions={"cpu": "99"},
            labels={"team": "core"},
        )
        context = EnrichedContext(
            alert=alert,
            resource=ResourceMetadata(resource_id="r1", shape="VM.Standard.E4.Flex"),
        )
        chunk_b = make_chunk("B", content="unrelated")
        chunk_a = make_chunk(
            "A",
            content="cpu runbook",
            tags=["cpu", "team"],
            applicable_shape_patterns=["VM.Standard.*"],
        )
        retriever, _, vector_store = make_retriever(
            [ScoredChunk(chunk=chunk_b, similarity_score=0.5), ScoredChunk(chunk=chunk_a, similarity_score=0.5)]
        )

        results = await retriever.retrieve(context, top_k=2)

        assert [r.chunk.id for r in results] == ["A", "B"]
        assert results[0].metadata_boost == pytest.approx(0.4)
        assert results[0].final_score == pytest.approx(0.9)
        assert results[1].metadata_boost == 0.0
        assert results[1].final_score == pytest.approx(0.5)
        vector_store.search.assert_awaited_once_with([1.0, 0.0], 4)

    @pytest.mark.asyncio
    async def test_tag_boost_is_capped(self, make_chunk, enriched_context):
        chunk = make_chunk(tags=["memory", "team", "env", "prod", "platform"])
        retriever, _, _ = make_retriever([ScoredChunk(chunk=chunk, similarity_score=0.1)])

        results = await retriever.retrieve(enriched_context, top_k=1)

        assert results[0].metadata_boost == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_no_shape_boost_without_resource_shape(self, make_chunk, sample_alert):
        chunk = make_chunk(applicable_shape_patterns=["all"])
        retriever, _, _ = make_retriever([ScoredChunk(chunk=chunk, similarity_score=0.1)])

        results = await retriever.retrieve(EnrichedContext(alert=sample_alert), top_k=1)

        assert results[0].metadata_boost == 0.0

    @pytest.mark.asyncio
    async def test_ties_break_on_similarity_then_original_order(self, make_chunk, sample_alert):
        context = EnrichedContext(alert=sample_alert)
        # all three end at 0.5; the boosted one has the lowest similarity
        boosted = make_chunk("boosted", tags=["team"])
        plain_first = make_chunk("plain-first")
        plain_second = make_chunk("plain-second")
        retriever, _, _ = make_retriever(
            [
                ScoredChunk(chunk=boosted, similarity_score=0.4),
                ScoredChunk(chunk=plain_first, similarity_score=0.5),
                ScoredChunk(chunk=plain_second, similarity_score=0.5),
            ]
        )

        results = await retriever.retrieve(context, top_k=3)

        assert [r.chunk.id for r in results] == ["plain-first", "plain-second", "boosted"]

    @pytest.mark.asyncio
    async def test_more_matches_never_rank_lower_at_equal_similarity(self, make_chunk, enriched_context):
        plain = make_chunk("plain")
        tagged = make_chunk("tagged", tags=["memory"])
        retriever, _, _ = make_retriever(
            [ScoredChunk(chunk=plain, similarity_score=0.6), ScoredChunk(chunk=tagged, similarity_score=0.6)]
        )

        results = await retriever.retrieve(enriched_context, top_k=2)

        assert results[0].chunk.id == "tagged"

    @pytest.mark.asyncio
    async def test_top_k_zero_skips_search(self, enriched_context):
        retriever, embedding_service, vector_store = make_retriever([])

        assert await retriever.retrieve(enriched_context, top_k=0) == []
        embedding_service.embed_context.assert_not_awaited()
        vector_store.search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_negative_top_k_is_rejected(self, enriched_context):
        retriever, _, _ = make_retriever([])

        with pytest.raises(ValidationError):
            await retriever.retrieve(enriched_context, top_k=-1)

    @pytest.mark.asyncio
    async def test_custom_over_fetch_and_weights(self, make_chunk, enriched_context):
        config = RetrievalConfig(over_fetch_multiplier=3, tag_boost_weight=0.05, shape_boost_weight=0.5)
        chunk = make_chunk(tags=["memory"], applicable_shape_patterns=["VM.*"])
        retriever, _, vector_store = make_retriever([ScoredChunk(chunk=chunk, similarity_score=0.2)], config)

        results = await retriever.retrieve(enriched_context, top_k=2)

        vector_store.search.assert_awaited_once_with([1.0, 0.0], 6)
        assert results[0].metadata_boost == pytest.approx(0.55)

    @pytest.mark.asyncio
    async def test_end_to_end_with_mock_embeddings(self, mock_provider, make_chunk, enriched_context):
        embedding_service = DefaultEmbeddingService(mock_provider)
        store = InMemoryVectorStore()
        texts = {
            "memory": "High memory utilization app server memory usage",
            "disk": "Disk volume full cleanup of log files",
        }
        for chunk_id, text in texts.items():
            await store.store(
                make_chunk(chunk_id, content=text, embedding=await embedding_service.embed(text))
            )
        retriever = RunbookRetriever(embedding_service, store)

        results = await retriever.retrieve(enriched_context, top_k=1)

        assert [r.chunk.id for r in results] == ["memory"]


def test_context_query_includes_alert_and_resource(enriched_context):
    query = format_context_query(enriched_context)

    assert "Alert Title: High memory utilization on app-server-01" in query
    assert "Alert Message: Memory usage above 95% for 10 minutes" in query
    assert "Resource: app-server-01 (Shape: VM.Standard.E4.Flex)" in query
