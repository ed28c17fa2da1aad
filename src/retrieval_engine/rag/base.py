"""
Abstract base classes for RAG components.
"""

from abc import ABC, abstractmethod
from typing import List

from ..models import Chunk, RankedChunk


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    @abstractmethod
    async def embed_text(self, text: str) -> List[float]:
        """
        Embed a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as list of floats

        Raises:
            ProviderError: If the embedding could not be produced
        """
        pass

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Embed multiple texts, one provider call per text.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors
        """
        return [await self.embed_text(text) for text in texts]

    @abstractmethod
    def get_dimension(self) -> int:
        """
        Get embedding dimension.

        Returns:
            Dimension of embedding vectors
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """
        Get provider name.

        Returns:
            Name of the provider (e.g., "openai", "cohere")
        """
        pass


class ChunkRepository(ABC):
    """Caller-owned storage for chunk records and their vectors."""

    @abstractmethod
    def get_chunks(self, document_id: str) -> List[Chunk]:
        """Return the chunks of one document ordered by index."""
        pass

    @abstractmethod
    def all_chunks(self) -> List[Chunk]:
        """Return every stored chunk."""
        pass

    @abstractmethod
    def replace_document_chunks(self, document_id: str, chunks: List[Chunk]) -> List[Chunk]:
        """
        Atomically replace the chunk set of a document.

        Args:
            document_id: Document whose chunks are replaced
            chunks: The new chunk set

        Returns:
            The chunks that were replaced
        """
        pass

    @abstractmethod
    def delete_document(self, document_id: str) -> int:
        """Delete all chunks of a document and return how many were removed."""
        pass

    @abstractmethod
    def document_ids(self) -> List[str]:
        """IDs of documents that have at least one chunk."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove all chunks."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Total number of stored chunks."""
        pass


class VectorStore(ABC):
    """Abstract base class for vector stores."""

    @abstractmethod
    async def add(self, chunks: List[Chunk]) -> None:
        """
        Add embedded chunks to the vector store.

        Args:
            chunks: Chunks with their vector populated

        Raises:
            StoreError: If the chunks could not be stored
        """
        pass

    @abstractmethod
    async def search(self, query_text: str, k: int = 5) -> List[RankedChunk]:
        """
        Search for chunks similar to a query.

        Args:
            query_text: Free-form query text
            k: Maximum number of results

        Returns:
            Ranked chunks, highest score first
        """
        pass

    @abstractmethod
    async def remove(self, document_id: str) -> None:
        """
        Remove all vectors belonging to a document.

        Args:
            document_id: Document ID
        """
        pass

    @abstractmethod
    async def delete_vectors(self, ids: List[str]) -> None:
        """
        Delete vectors by chunk id.

        Args:
            ids: Chunk IDs to delete
        """
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Clear all vectors from the store."""
        pass

    @abstractmethod
    def get_name(self) -> str:
        """
        Get store name.

        Returns:
            Name of the store (e.g., "local", "pinecone")
        """
        pass
