"""
Tests for the retrieval engine.
"""

import httpx
import pytest

from retrieval_engine.config import Config
from retrieval_engine.exceptions import DimensionMismatch, StoreError
from retrieval_engine.models import Chunk, Document, RankedChunk
from retrieval_engine.rag import (
    DocumentChunker,
    EmbeddingsManager,
    HashEmbeddingProvider,
    InMemoryChunkRepository,
    LocalVectorStore,
    PineconeVectorStore,
    RetrievalEngine,
    assemble_context,
)

from .conftest import (
    AddRecordingStore,
    CountingProvider,
    FlakyKeywordProvider,
    RecordingHandler,
    SlowHashProvider,
)


def _engine(provider, repository=None, chunker=None, store=None, concurrency=4) -> RetrievalEngine:
    repository = repository or InMemoryChunkRepository()
    manager = EmbeddingsManager(provider)
    return RetrievalEngine(
        embeddings_manager=manager,
        vector_store=store or LocalVectorStore(repository, manager),
        repository=repository,
        chunker=chunker or DocumentChunker(chunk_size=20, chunk_overlap=5, min_chunk_length=5),
        concurrency=concurrency,
    )


class TestIngest:
    """Tests for document ingestion."""

    @pytest.mark.asyncio
    async def test_ingest_stores_embedded_chunks(self, repository):
        """Test that ingestion chunks, embeds and stores a document."""
        engine = _engine(HashEmbeddingProvider(), repository=repository)
        document = Document(id="animals", content="Cats are great. Dogs are great too. Birds can fly.")

        chunks = await engine.ingest(document)

        assert [c.index for c in chunks] == [0, 1, 2]
        assert all(c.vector and len(c.vector) == 384 for c in chunks)
        assert repository.get_chunks("animals") == chunks

    @pytest.mark.asyncio
    async def test_vectors_match_chunks_under_concurrency(self):
        """Test that out-of-order completion still pairs each vector with its chunk."""
        provider = SlowHashProvider()
        engine = _engine(
            provider,
            chunker=DocumentChunker(chunk_size=30, chunk_overlap=5, min_chunk_length=1),
            concurrency=8,
        )
        content = " ".join(f"Sentence {i} has {'word ' * (i % 5)}end." for i in range(40))

        chunks = await engine.ingest(Document(id="long", content=content))

        assert [c.index for c in chunks] == list(range(len(chunks)))
        assert all(c.vector == HashEmbeddingProvider().embed(c.content) for c in chunks)
        assert provider.max_in_flight > 1

    @pytest.mark.asyncio
    async def test_reingest_uses_cache(self):
        """Test that ingesting twice produces identical vectors from the cache."""
        provider = CountingProvider()
        engine = _engine(provider)
        document = Document(id="animals", content="Cats are great. Dogs are great too. Birds can fly.")

        first = await engine.ingest(document)
        calls_after_first = provider.calls
        second = await engine.ingest(document)

        assert provider.calls == calls_after_first
        assert [c.vector for c in first] == [c.vector for c in second]

    @pytest.mark.asyncio
    async def test_reingest_replaces_chunks(self, repository):
        """Test that a second ingestion replaces the first chunk set."""
        engine = _engine(HashEmbeddingProvider(), repository=repository)

        await engine.ingest(Document(id="d", content="Cats are great. Dogs are great too. Birds can fly."))
        await engine.ingest(Document(id="d", content="Only one sentence."))

        assert [c.content for c in repository.get_chunks("d")] == ["Only one sentence."]

    @pytest.mark.asyncio
    async def test_store_failure_commits_nothing(self, repository):
        """Test that a rejected batch leaves no chunks behind."""

        class RejectingStore(LocalVectorStore):
            async def add(self, chunks):
                raise StoreError("index unavailable")

        manager = EmbeddingsManager(HashEmbeddingProvider())
        engine = RetrievalEngine(
            embeddings_manager=manager,
            vector_store=RejectingStore(repository, manager),
            repository=repository,
            chunker=DocumentChunker(chunk_size=20, chunk_overlap=5, min_chunk_length=5),
        )

        with pytest.raises(StoreError):
            await engine.ingest(Document(id="d", content="Cats are great. Dogs are great too."))

        assert repository.count() == 0
        assert engine.get_document("d") is None

    @pytest.mark.asyncio
    async def test_partial_fallback_commits_nothing(self, repository):
        """Test that chunks mixing provider and fallback vectors are rejected."""
        provider = FlakyKeywordProvider(fail_on="Dogs")
        manager = EmbeddingsManager(provider)
        store = AddRecordingStore(repository, manager)
        engine = RetrievalEngine(
            embeddings_manager=manager,
            vector_store=store,
            repository=repository,
            chunker=DocumentChunker(chunk_size=20, chunk_overlap=5, min_chunk_length=5),
        )

        with pytest.raises(DimensionMismatch):
            await engine.ingest(Document(id="d", content="Cats are great. Dogs are great too. Birds can fly."))

        assert repository.count() == 0
        assert store.added == []
        assert manager.fallback_count == 1

    @pytest.mark.asyncio
    async def test_outage_does_not_poison_index(self, repository, birds_document, cars_document):
        """Test that a document embedded during an outage is refused and queries keep working."""
        provider = FlakyKeywordProvider()
        manager = EmbeddingsManager(provider)
        store = AddRecordingStore(repository, manager)
        engine = RetrievalEngine(
            embeddings_manager=manager,
            vector_store=store,
            repository=repository,
            chunker=DocumentChunker(chunk_size=200, chunk_overlap=20, min_chunk_length=5),
        )
        await engine.ingest(birds_document)

        provider.down = True
        with pytest.raises(DimensionMismatch):
            await engine.ingest(cars_document)
        provider.down = False

        assert repository.document_ids() == ["doc-birds"]
        assert len(store.added) == 1
        assert engine.get_document("doc-cars") is None

        results = await engine.query("birds", k=5)
        assert [r.chunk.document_id for r in results] == ["doc-birds"]

    @pytest.mark.asyncio
    async def test_provider_switch_rejected_against_index(self, repository, birds_document, cars_document):
        """Test that a provider with a different dimension cannot extend an existing index."""
        manager = EmbeddingsManager(FlakyKeywordProvider())
        engine = RetrievalEngine(
            embeddings_manager=manager,
            vector_store=LocalVectorStore(repository, manager),
            repository=repository,
            chunker=DocumentChunker(chunk_size=200, chunk_overlap=20, min_chunk_length=5),
        )
        await engine.ingest(birds_document)

        manager.set_provider(HashEmbeddingProvider())

        with pytest.raises(DimensionMismatch):
            await engine.ingest(cars_document)
        assert repository.document_ids() == ["doc-birds"]

    @pytest.mark.asyncio
    async def test_ingest_many(self, repository, birds_document, cars_document):
        """Test ingesting several documents."""
        engine = _engine(HashEmbeddingProvider(), repository=repository)

        results = await engine.ingest_many([birds_document, cars_document])

        assert set(results) == {"doc-birds", "doc-cars"}
        assert sorted(repository.document_ids()) == ["doc-birds", "doc-cars"]


class TestQuery:
    """Tests for querying."""

    @pytest.mark.asyncio
    async def test_flight_query_ranks_birds_first(self, keyword_engine, birds_document, cars_document):
        """Test that a flight question ranks the birds document first."""
        await keyword_engine.ingest(cars_document)
        await keyword_engine.ingest(birds_document)

        results = await keyword_engine.query("which document mentions flight", k=2)

        assert results[0].chunk.document_id == "doc-birds"
        assert results[0].score > results[1].score

    @pytest.mark.asyncio
    async def test_query_limits_results(self, keyword_engine, birds_document, cars_document):
        """Test that at most k results are returned."""
        await keyword_engine.ingest_many([birds_document, cars_document])

        assert len(await keyword_engine.query("flight", k=1)) == 1
        assert await keyword_engine.query("flight", k=0) == []

    @pytest.mark.asyncio
    async def test_query_empty_index(self, keyword_engine):
        """Test querying before anything was ingested."""
        assert await keyword_engine.query("anything") == []

    @pytest.mark.asyncio
    async def test_relevant_context(self, keyword_engine, birds_document, cars_document):
        """Test attributed context for the best match."""
        await keyword_engine.ingest_many([birds_document, cars_document])

        context = await keyword_engine.get_relevant_context("flight", max_chunks=1)

        assert context.startswith("[From: Birds]\n")
        assert "birds fly" in context


class TestAssembleContext:
    """Tests for context assembly."""

    def test_blocks_joined_by_blank_line(self):
        """Test the block format and separator."""
        documents = {"a": Document(id="a", title="Alpha", content="x")}
        ranked = [
            RankedChunk(chunk=Chunk(document_id="a", content="first", index=0), score=0.9),
            RankedChunk(chunk=Chunk(document_id="a", content="second", index=1), score=0.5),
        ]

        assert assemble_context(ranked, documents) == "[From: Alpha]\nfirst\n\n[From: Alpha]\nsecond"

    def test_unknown_document(self):
        """Test the placeholder for missing or untitled documents."""
        documents = {"b": Document(id="b", content="x")}
        ranked = [
            RankedChunk(chunk=Chunk(document_id="gone", content="orphan", index=0), score=0.4),
            RankedChunk(chunk=Chunk(document_id="b", content="untitled", index=0), score=0.3),
        ]

        assert assemble_context(ranked, documents) == (
            "[From: Unknown Document]\norphan\n\n[From: Unknown Document]\nuntitled"
        )

    def test_empty(self):
        """Test that no chunks yields an empty string."""
        assert assemble_context([], {}) == ""

    @pytest.mark.asyncio
    async def test_engine_limits_chunks(self, keyword_engine, birds_document, cars_document):
        """Test that the engine keeps only the first k ranked chunks."""
        await keyword_engine.ingest_many([birds_document, cars_document])
        ranked = await keyword_engine.query("flight", k=2)

        assert keyword_engine.assemble_context(ranked, k=1) == (
            f"[From: Birds]\n{ranked[0].chunk.content}"
        )
        assert keyword_engine.assemble_context(ranked, k=0) == ""
        assert keyword_engine.assemble_context(ranked).count("[From: ") == 2


class TestIndexManagement:
    """Tests for removal, clearing and stats."""

    @pytest.mark.asyncio
    async def test_remove_document(self, keyword_engine, repository, birds_document, cars_document):
        """Test removing one document's chunks."""
        await keyword_engine.ingest_many([birds_document, cars_document])

        removed = await keyword_engine.remove_document("doc-birds")

        assert removed == len(keyword_engine.chunker.chunk_text(birds_document.content))
        assert repository.document_ids() == ["doc-cars"]
        assert keyword_engine.get_document("doc-birds") is None

    @pytest.mark.asyncio
    async def test_clear(self, keyword_engine, repository, birds_document):
        """Test clearing the index and cache."""
        await keyword_engine.ingest(birds_document)

        await keyword_engine.clear()

        assert repository.count() == 0
        assert keyword_engine.embeddings_manager.cache_size() == 0

    @pytest.mark.asyncio
    async def test_stats(self, keyword_engine, birds_document, cars_document):
        """Test index statistics."""
        await keyword_engine.ingest_many([birds_document, cars_document])

        stats = keyword_engine.get_index_stats()

        assert stats.total_documents == 2
        assert stats.total_chunks >= 2
        assert stats.embedding_dimension == 3
        assert stats.provider == "keyword"
        assert stats.vector_store == "local"
        assert stats.fallback_count == 0


class TestRemoteStoreEngine:
    """Tests for the engine over Pinecone."""

    @pytest.mark.asyncio
    async def test_ingest_and_remove(self, repository):
        """Test that ingestion upserts and removal deletes the tracked ids."""
        handler = RecordingHandler(lambda request, body: httpx.Response(200, json={}))
        manager = EmbeddingsManager(HashEmbeddingProvider())
        store = PineconeVectorStore(
            api_key="k",
            index_name="docs",
            host="https://docs.example.pinecone.io",
            embeddings_manager=manager,
            transport=httpx.MockTransport(handler),
        )
        engine = RetrievalEngine(
            embeddings_manager=manager,
            vector_store=store,
            repository=repository,
            chunker=DocumentChunker(chunk_size=20, chunk_overlap=5, min_chunk_length=5),
        )

        chunks = await engine.ingest(Document(id="d", content="Cats are great. Dogs are great too."))
        await engine.remove_document("d")

        paths = [r.url.path for r in handler.requests]
        assert paths == ["/vectors/upsert", "/vectors/delete"]
        assert handler.bodies()[1]["ids"] == [c.id for c in chunks]
        assert repository.count() == 0


class TestFromConfig:
    """Tests for building an engine from configuration."""

    @pytest.mark.asyncio
    async def test_default_config(self):
        """Test the default hash provider over a local store."""
        config = Config(chunking={"chunk_size": 100, "chunk_overlap": 10, "min_chunk_length": 5})

        engine = await RetrievalEngine.from_config(config)
        await engine.ingest(Document(id="d", title="Doc", content="Some text about birds."))

        assert engine.embeddings_manager.get_provider_name() == "hash"
        assert engine.vector_store.get_name() == "local"
        assert engine.chunker.chunk_size == 100
        assert await engine.get_relevant_context("birds") == "[From: Doc]\nSome text about birds."
