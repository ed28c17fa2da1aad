"""
Vector store implementations.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from ..exceptions import ConfigurationError, StoreError
from ..models import Chunk, RankedChunk, VectorStoreType
from .base import ChunkRepository, VectorStore
from .embeddings_manager import EmbeddingsManager
from .similarity import rank

logger = logging.getLogger(__name__)

PINECONE_MAX_BATCH = 100


class LocalVectorStore(VectorStore):
    """
    Vector store over a caller-owned chunk repository.

    The repository already persists chunks and their vectors, so add/remove
    only log. search() scores every chunk in the repository, which makes its
    cost linear in the number of stored chunks.
    """

    def __init__(self, repository: ChunkRepository, embeddings_manager: EmbeddingsManager):
        """
        Initialize local vector store.

        Args:
            repository: Chunk repository to search
            embeddings_manager: Manager used to embed queries
        """
        self.repository = repository
        self.embeddings_manager = embeddings_manager

        logger.info("Initialized LocalVectorStore")

    async def add(self, chunks: List[Chunk]) -> None:
        logger.debug(f"Added {len(chunks)} chunks to local vector store")

    async def search(self, query_text: str, k: int = 5) -> List[RankedChunk]:
        """
        Search for chunks similar to a query.

        Args:
            query_text: Free-form query text
            k: Maximum number of results

        Returns:
            Ranked chunks, highest score first
        """
        query_vector = await self.embeddings_manager.get_embedding(query_text)

        try:
            candidates = self.repository.all_chunks()
        except Exception as e:
            logger.error(f"Error reading chunk repository: {e}")
            raise StoreError(f"Search failed: {e}") from e

        results = rank(query_vector, candidates, k)
        logger.debug(f"Scanned {len(candidates)} chunks, returning {len(results)}")
        return results

    async def remove(self, document_id: str) -> None:
        logger.debug(f"Deleted chunks for document {document_id} from local vector store")

    async def delete_vectors(self, ids: List[str]) -> None:
        logger.debug(f"Deleted {len(ids)} vectors from local vector store")

    async def clear(self) -> None:
        logger.debug("Cleared local vector store")

    def get_name(self) -> str:
        return "local"


class PineconeVectorStore(VectorStore):
    """Pinecone vector store accessed over its REST API."""

    def __init__(
        self,
        api_key: str,
        index_name: str,
        embeddings_manager: EmbeddingsManager,
        environment: Optional[str] = None,
        host: Optional[str] = None,
        namespace: str = "default",
        timeout: float = 30.0,
        batch_size: int = PINECONE_MAX_BATCH,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Pinecone vector store.

        Args:
            api_key: Pinecone API key
            index_name: Index name
            embeddings_manager: Manager used to embed queries
            environment: Pinecone environment, used to derive the index host
            host: Explicit index host URL, overrides environment
            namespace: Namespace for all vectors of this store
            timeout: Request timeout in seconds
            batch_size: Vectors per upsert request, at most 100
            transport: Optional httpx transport, used by tests
        """
        if not host and not environment:
            raise ConfigurationError("Pinecone requires either a host or an environment")
        if not 1 <= batch_size <= PINECONE_MAX_BATCH:
            raise ConfigurationError(f"batch_size must be between 1 and {PINECONE_MAX_BATCH}")

        self.api_key = api_key
        self.index_name = index_name
        self.environment = environment
        self.namespace = namespace
        self.timeout = timeout
        self.batch_size = batch_size
        self.transport = transport
        self.embeddings_manager = embeddings_manager

        if host:
            self.base_url = host.rstrip("/")
            if not self.base_url.startswith("http"):
                self.base_url = f"https://{self.base_url}"
        else:
            self.base_url = f"https://{index_name}-{environment}.svc.{environment}.pinecone.io"

        logger.info(
            f"Initialized PineconeVectorStore for index '{index_name}' "
            f"with namespace '{namespace}'"
        )

    async def _request(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a JSON body to the index.

        Raises:
            StoreError: On timeout, transport failure, non-2xx status or invalid JSON
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}{path}",
                    headers={"Api-Key": self.api_key, "Content-Type": "application/json"},
                    json=body,
                )
                response.raise_for_status()
                return response.json() if response.content else {}
            except httpx.TimeoutException as e:
                logger.error(f"Pinecone request to {path} timed out after {self.timeout}s")
                raise StoreError(f"Pinecone request timed out: {e}") from e
            except httpx.HTTPStatusError as e:
                logger.error(f"Pinecone API returned HTTP {e.response.status_code} for {path}")
                raise StoreError(
                    f"Pinecone API error: HTTP {e.response.status_code} {e.response.reason_phrase}"
                ) from e
            except httpx.HTTPError as e:
                logger.error(f"Error calling Pinecone: {e}")
                raise StoreError(f"Pinecone request failed: {e}") from e
            except ValueError as e:
                raise StoreError("Pinecone returned a non-JSON response") from e

    @staticmethod
    def _to_vector(chunk: Chunk) -> Dict[str, Any]:
        if not chunk.vector:
            raise StoreError(f"Chunk {chunk.id} has no vector")
        return {
            "id": chunk.id,
            "values": chunk.vector,
            "metadata": {
                "content": chunk.content,
                "document_id": chunk.document_id,
                "chunk_index": chunk.index,
                "created_at": chunk.created_at.isoformat(),
            },
        }

    async def add(self, chunks: List[Chunk]) -> None:
        """
        Upsert chunks in batches.

        If a batch fails or the call is cancelled, vectors from earlier batches
        of this call are deleted again before the error propagates.

        Args:
            chunks: Chunks with their vector populated

        Raises:
            StoreError: If any chunk lacks a vector or a batch fails
        """
        if not chunks:
            return

        vectors = [self._to_vector(chunk) for chunk in chunks]
        upserted: List[str] = []

        for i in range(0, len(vectors), self.batch_size):
            batch = vectors[i : i + self.batch_size]
            try:
                await self._request("/vectors/upsert", {"vectors": batch, "namespace": self.namespace})
            except BaseException:
                if upserted:
                    # shielded so a cancelled ingestion still removes its partial upserts
                    await asyncio.shield(self._rollback(upserted))
                raise
            upserted.extend(v["id"] for v in batch)

        logger.info(f"Added {len(chunks)} chunks to Pinecone")

    async def _rollback(self, ids: List[str]) -> None:
        try:
            await self.delete_vectors(ids)
            logger.warning(f"Rolled back {len(ids)} vectors after a failed upsert")
        except StoreError as e:
            logger.error(f"Rollback of {len(ids)} vectors failed, index may hold orphans: {e}")

    async def search(self, query_text: str, k: int = 5) -> List[RankedChunk]:
        """
        Search for chunks similar to a query.

        Args:
            query_text: Free-form query text
            k: Maximum number of results

        Returns:
            Ranked chunks, highest score first
        """
        if k <= 0:
            return []

        query_vector = await self.embeddings_manager.get_embedding(query_text)
        response = await self._request(
            "/query",
            {
                "vector": query_vector,
                "topK": k,
                "includeMetadata": True,
                "namespace": self.namespace,
            },
        )

        matches = response.get("matches", []) if isinstance(response, dict) else None
        if not isinstance(matches, list):
            logger.error(f"Unexpected Pinecone query response: {type(response).__name__}")
            raise StoreError("Malformed Pinecone query response")

        results = []
        for match in matches:
            try:
                metadata = match.get("metadata") or {}
                created_at = metadata.get("created_at")
                chunk = Chunk(
                    id=match["id"],
                    document_id=metadata.get("document_id", ""),
                    content=metadata.get("content", ""),
                    index=int(metadata.get("chunk_index", 0)),
                    vector=match.get("values") or None,
                    created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
                )
                score = float(match.get("score", 0.0))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.error(f"Malformed Pinecone match: {e}")
                raise StoreError(f"Malformed Pinecone match: {e}") from e
            results.append(RankedChunk(chunk=chunk, score=score))

        logger.debug(f"Pinecone returned {len(results)} matches")
        return results[:k]

    async def remove(self, document_id: str) -> None:
        """
        Not supported: Pinecone cannot delete by document without tracked ids.

        Raises:
            StoreError: Always. Use delete_vectors() with the document's chunk ids.
        """
        raise StoreError(
            f"Pinecone cannot remove document {document_id} by metadata; "
            "delete its chunk ids with delete_vectors()"
        )

    async def delete_vectors(self, ids: List[str]) -> None:
        """
        Delete vectors by id.

        Args:
            ids: Chunk IDs to delete
        """
        for i in range(0, len(ids), PINECONE_MAX_BATCH):
            await self._request(
                "/vectors/delete",
                {"ids": ids[i : i + PINECONE_MAX_BATCH], "namespace": self.namespace},
            )
        if ids:
            logger.debug(f"Deleted {len(ids)} vectors from Pinecone")

    async def clear(self) -> None:
        """Delete every vector in this store's namespace."""
        await self._request("/vectors/delete", {"deleteAll": True, "namespace": self.namespace})
        logger.info(f"Cleared Pinecone namespace '{self.namespace}'")

    def get_name(self) -> str:
        return "pinecone"


def create_vector_store(
    store_type: VectorStoreType | str,
    embeddings_manager: EmbeddingsManager,
    repository: Optional[ChunkRepository] = None,
    api_key: Optional[str] = None,
    environment: Optional[str] = None,
    index_name: Optional[str] = None,
    namespace: str = "default",
    host: Optional[str] = None,
    timeout: float = 30.0,
) -> VectorStore:
    """
    Build a vector store from a store type.

    Raises:
        ConfigurationError: If the type is unknown or required settings are missing
    """
    try:
        store_type = VectorStoreType(store_type)
    except ValueError as e:
        raise ConfigurationError(f"Unsupported vector store: {store_type}") from e

    if store_type == VectorStoreType.PINECONE:
        if not api_key or not index_name or not (environment or host):
            raise ConfigurationError(
                "Pinecone configuration required: api_key, index_name and environment or host"
            )
        return PineconeVectorStore(
            api_key=api_key,
            index_name=index_name,
            embeddings_manager=embeddings_manager,
            environment=environment,
            host=host,
            namespace=namespace,
            timeout=timeout,
        )

    if repository is None:
        raise ConfigurationError("Local vector store requires a chunk repository")
    return LocalVectorStore(repository, embeddings_manager)
