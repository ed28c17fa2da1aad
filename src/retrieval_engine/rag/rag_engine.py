"""
Retrieval engine: document ingestion, similarity queries and context assembly.
"""

import logging
import time
from typing import Dict, Iterable, List, Mapping, Optional

from ..config import Config
from ..exceptions import DimensionMismatch, StoreError
from ..models import Chunk, Document, IndexStats, RankedChunk
from .base import ChunkRepository, VectorStore
from .chunking import DocumentChunker
from .embeddings_manager import EmbeddingsManager, create_embeddings_manager
from .repository import InMemoryChunkRepository
from .vector_store import create_vector_store

logger = logging.getLogger(__name__)

UNKNOWN_DOCUMENT = "Unknown Document"


def assemble_context(
    ranked_chunks: Iterable[RankedChunk],
    documents_by_id: Mapping[str, Document],
) -> str:
    """
    Build an attributed context string from ranked chunks.

    Args:
        ranked_chunks: Search results, in the order they should appear
        documents_by_id: Known documents for title lookup

    Returns:
        "[From: <title>]\\n<content>" blocks separated by blank lines, or ""
        when there are no chunks
    """
    parts = []
    for ranked in ranked_chunks:
        document = documents_by_id.get(ranked.chunk.document_id)
        title = document.title if document and document.title else UNKNOWN_DOCUMENT
        parts.append(f"[From: {title}]\n{ranked.chunk.content}")

    return "\n\n".join(parts)


class RetrievalEngine:
    """Composes chunking, embeddings and a vector store into ingest and query."""

    def __init__(
        self,
        embeddings_manager: EmbeddingsManager,
        vector_store: VectorStore,
        repository: ChunkRepository,
        chunker: DocumentChunker,
        concurrency: int = 4,
        cache_embeddings: bool = True,
    ):
        """
        Initialize retrieval engine.

        Args:
            embeddings_manager: Embeddings manager instance
            vector_store: Vector store instance
            repository: Caller-owned chunk repository
            chunker: Document chunker instance
            concurrency: Embedding calls in flight while ingesting a document
            cache_embeddings: Whether ingestion uses the embedding cache
        """
        self.embeddings_manager = embeddings_manager
        self.vector_store = vector_store
        self.repository = repository
        self.chunker = chunker
        self.concurrency = concurrency
        self.cache_embeddings = cache_embeddings

        self._documents: Dict[str, Document] = {}

        logger.info(
            f"Initialized RetrievalEngine with provider "
            f"'{embeddings_manager.get_provider_name()}' and store '{vector_store.get_name()}'"
        )

    @classmethod
    async def from_config(
        cls, config: Config, repository: Optional[ChunkRepository] = None
    ) -> "RetrievalEngine":
        """
        Build an engine from configuration.

        Args:
            config: Loaded configuration
            repository: Chunk repository; an in-memory one is created if omitted

        Returns:
            Ready to use engine
        """
        repository = repository or InMemoryChunkRepository()
        emb = config.embeddings
        manager = await create_embeddings_manager(
            emb.provider,
            api_key=emb.api_key,
            model=emb.model,
            cache_enabled=emb.cache_enabled,
            cache_max_entries=emb.cache_max_entries,
            fallback_dimension=emb.fallback_dimension,
            timeout=emb.timeout,
            device=emb.device,
            dimensions=emb.dimensions,
        )

        vs = config.vector_store
        vector_store = create_vector_store(
            vs.type,
            embeddings_manager=manager,
            repository=repository,
            api_key=vs.api_key,
            environment=vs.environment,
            index_name=vs.index_name,
            namespace=vs.namespace,
            host=vs.host,
            timeout=vs.timeout,
        )

        chunker = DocumentChunker(
            chunk_size=config.chunking.chunk_size,
            chunk_overlap=config.chunking.chunk_overlap,
            min_chunk_length=config.chunking.min_chunk_length,
        )

        return cls(
            embeddings_manager=manager,
            vector_store=vector_store,
            repository=repository,
            chunker=chunker,
            concurrency=config.ingestion.concurrency,
            cache_embeddings=emb.cache_enabled,
        )

    def register_document(self, document: Document) -> None:
        """Remember a document for context attribution."""
        self._documents[document.id] = document

    def get_document(self, document_id: str) -> Optional[Document]:
        return self._documents.get(document_id)

    async def ingest(self, document: Document) -> List[Chunk]:
        """
        Chunk, embed and store a document, replacing any earlier ingestion of it.

        Nothing is written unless every chunk was embedded and accepted by the
        vector store.

        Args:
            document: Document to ingest

        Returns:
            Stored chunks ordered by index

        Raises:
            StoreError: If the vector store or repository rejects the chunks
            DimensionMismatch: If the chunk vectors do not share one dimension
        """
        start_time = time.time()
        log_extra = {"document_id": document.id, "operation": "ingest"}

        chunks = self.chunker.chunk_document(document)

        vectors = await self.embeddings_manager.get_embeddings(
            [chunk.content for chunk in chunks],
            use_cache=self.cache_embeddings,
            concurrency=self.concurrency,
        )

        self._check_dimensions(document.id, vectors)

        # gather() preserves input order, so vectors line up with chunk indices
        embedded = [
            chunk.model_copy(update={"vector": vector}) for chunk, vector in zip(chunks, vectors)
        ]

        await self.vector_store.add(embedded)

        try:
            previous = self.repository.replace_document_chunks(document.id, embedded)
        except Exception as e:
            logger.error(f"Error storing chunks for document {document.id}: {e}", extra=log_extra)
            await self._discard_vectors([chunk.id for chunk in embedded])
            raise StoreError(f"Failed to store chunks: {e}") from e

        self.register_document(document)

        if previous:
            await self._discard_vectors([chunk.id for chunk in previous])

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Ingested document {document.id}: {len(embedded)} chunks in {duration_ms:.2f}ms",
            extra={**log_extra, "duration_ms": round(duration_ms, 2)},
        )
        return embedded

    async def ingest_many(self, documents: Iterable[Document]) -> Dict[str, List[Chunk]]:
        """
        Ingest documents one after another.

        Args:
            documents: Documents to ingest

        Returns:
            Mapping of document id to its stored chunks

        Raises:
            RetrievalError: From the first document that fails; earlier documents stay ingested
        """
        results = {}
        for document in documents:
            results[document.id] = await self.ingest(document)

        logger.info(f"Ingested {len(results)} documents")
        return results

    async def query(self, text: str, k: int = 5) -> List[RankedChunk]:
        """
        Find the chunks most similar to a query.

        Args:
            text: Query text
            k: Maximum number of results

        Returns:
            Ranked chunks, highest score first
        """
        start_time = time.time()
        results = await self.vector_store.search(text, k)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Query completed: {len(results)} results in {duration_ms:.2f}ms",
            extra={"operation": "query", "duration_ms": round(duration_ms, 2)},
        )
        return results

    def assemble_context(self, ranked_chunks: Iterable[RankedChunk], k: Optional[int] = None) -> str:
        """
        Assemble context using the documents this engine has seen.

        Args:
            ranked_chunks: Search results, best first
            k: Use at most this many chunks; all of them when omitted
        """
        ranked = list(ranked_chunks)
        if k is not None:
            ranked = ranked[: max(k, 0)]
        return assemble_context(ranked, self._documents)

    async def get_relevant_context(self, text: str, max_chunks: int = 3) -> str:
        """
        Query and assemble the results into an attributed context string.

        Returns:
            Context text, or "" when nothing relevant was found
        """
        ranked = await self.query(text, max_chunks)
        return self.assemble_context(ranked)

    async def remove_document(self, document_id: str) -> int:
        """
        Remove a document's chunks from the store and the repository.

        Args:
            document_id: Document to remove

        Returns:
            Number of chunks removed
        """
        ids = [chunk.id for chunk in self.repository.get_chunks(document_id)]
        if ids:
            await self.vector_store.delete_vectors(ids)

        removed = self.repository.delete_document(document_id)
        self._documents.pop(document_id, None)

        logger.info(
            f"Removed {removed} chunks for document {document_id}",
            extra={"document_id": document_id, "operation": "remove"},
        )
        return removed

    async def clear(self) -> None:
        """Clear the store, the repository and the embedding cache."""
        await self.vector_store.clear()
        self.repository.clear()
        self.embeddings_manager.clear_cache()
        self._documents.clear()
        logger.info("Index cleared")

    def get_index_stats(self) -> IndexStats:
        """
        Get statistics about the index.

        Returns:
            Index statistics
        """
        return IndexStats(
            total_chunks=self.repository.count(),
            total_documents=len(self.repository.document_ids()),
            embedding_dimension=self.embeddings_manager.get_dimension(),
            provider=self.embeddings_manager.get_provider_name(),
            vector_store=self.vector_store.get_name(),
            cache_entries=self.embeddings_manager.cache_size(),
            fallback_count=self.embeddings_manager.fallback_count,
        )

    def _check_dimensions(self, document_id: str, vectors: List[List[float]]) -> None:
        """
        Reject vectors that do not match the active provider or the indexed chunks.

        Hash fallback vectors produced during a provider outage fail this check,
        so they never reach the index alongside provider vectors.

        Raises:
            DimensionMismatch: On the first vector with the wrong dimension
        """
        expected = self.embeddings_manager.get_dimension()

        for chunk in self.repository.all_chunks():
            if chunk.document_id != document_id and chunk.vector:
                if len(chunk.vector) != expected:
                    raise DimensionMismatch(len(chunk.vector), expected)
                break

        for vector in vectors:
            if len(vector) != expected:
                logger.error(
                    f"Refusing to ingest document {document_id}: got a {len(vector)}-d vector, "
                    f"index uses {expected}",
                    extra={"document_id": document_id, "operation": "ingest"},
                )
                raise DimensionMismatch(expected, len(vector))

    async def _discard_vectors(self, ids: List[str]) -> None:
        try:
            await self.vector_store.delete_vectors(ids)
        except StoreError as e:
            logger.error(f"Failed to delete {len(ids)} stale vectors: {e}")
