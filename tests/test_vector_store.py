"""
Test suite for the in-memory vector store
"""

import asyncio
import threading

import pytest

from runbook_synth.errors import ValidationError
from runbook_synth.rag.vector_store import InMemoryVectorStore, VectorStore, cosine_similarity


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_zero_norm_vector_scores_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
        assert cosine_similarity([1.0, 0.0], [0.0, 0.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValidationError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestInMemoryVectorStore:
    def test_satisfies_protocol(self):
        store = InMemoryVectorStore()
        assert isinstance(store, VectorStore)
        assert store.provider_type == "local"

    @pytest.mark.asyncio
    async def test_store_is_idempotent_by_id(self, make_chunk):
        store = InMemoryVectorStore()
        chunk = make_chunk("c1", embedding=[1.0, 0.0])

        await store.store(chunk)
        await store.store(chunk)
        await store.store_batch([chunk, chunk])

        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_search_orders_by_similarity(self, make_chunk):
        store = InMemoryVectorStore()
        await store.store_batch(
            [
                make_chunk("far", embedding=[0.0, 1.0]),
                make_chunk("near", embedding=[1.0, 0.1]),
                make_chunk("mid", embedding=[1.0, 1.0]),
            ]
        )

        results = await store.search([1.0, 0.0], top_k=2)

        assert [r.chunk.id for r in results] == ["near", "mid"]
        assert results[0].similarity_score > results[1].similarity_score

    @pytest.mark.asyncio
    async def test_equal_scores_keep_insertion_order(self, make_chunk):
        store = InMemoryVectorStore()
        await store.store_batch(
            [make_chunk(f"c{i}", embedding=[1.0, 0.0]) for i in range(4)]
        )

        results = await store.search([2.0, 0.0], top_k=4)

        assert [r.chunk.id for r in results] == ["c0", "c1", "c2", "c3"]

    @pytest.mark.asyncio
    async def test_search_edge_cases(self, make_chunk):
        store = InMemoryVectorStore()
        assert await store.search([1.0, 0.0], top_k=5) == []

        await store.store(make_chunk("c1", embedding=[1.0, 0.0]))
        assert await store.search([1.0, 0.0], top_k=0) == []
        with pytest.raises(ValidationError):
            await store.search([1.0, 0.0], top_k=-1)

    @pytest.mark.asyncio
    async def test_zero_query_scores_zero(self, make_chunk):
        store = InMemoryVectorStore()
        await store.store(make_chunk("c1", embedding=[1.0, 0.0]))

        results = await store.search([0.0, 0.0], top_k=1)

        assert results[0].similarity_score == 0.0

    @pytest.mark.asyncio
    async def test_delete_removes_every_chunk_for_path(self, make_chunk):
        store = InMemoryVectorStore()
        await store.store_batch(
            [
                make_chunk("a1", source_path="a.md", embedding=[1.0]),
                make_chunk("a2", source_path="a.md", embedding=[1.0]),
                make_chunk("b1", source_path="b.md", embedding=[1.0]),
            ]
        )

        removed = await store.delete("a.md")

        assert removed == 2
        assert [c.id for c in await store.get_all()] == ["b1"]
        assert await store.delete("missing.md") == 0

    @pytest.mark.asyncio
    async def test_replace_swaps_chunks_for_path(self, make_chunk):
        store = InMemoryVectorStore()
        await store.store_batch(
            [
                make_chunk("old1", source_path="a.md", embedding=[1.0]),
                make_chunk("old2", source_path="a.md", embedding=[1.0]),
                make_chunk("b1", source_path="b.md", embedding=[1.0]),
            ]
        )

        stored = await store.replace("a.md", [make_chunk("new1", source_path="a.md", embedding=[1.0])])

        assert stored == 1
        assert sorted(c.id for c in await store.get_all()) == ["b1", "new1"]

    def test_concurrent_access_from_threads(self, make_chunk):
        store = InMemoryVectorStore()

        def writer(prefix: str):
            async def run():
                for i in range(50):
                    await store.store(make_chunk(f"{prefix}{i}", source_path=f"{prefix}.md", embedding=[1.0, float(i)]))
                    await store.search([1.0, 0.0], top_k=3)

            asyncio.run(run())

        threads = [threading.Thread(target=writer, args=(p,)) for p in ("a", "b", "c")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert asyncio.run(store.count()) == 150
