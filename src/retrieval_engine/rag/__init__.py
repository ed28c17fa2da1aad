"""
RAG (Retrieval-Augmented Generation) module: chunking, embeddings and vector search.
"""

from .base import ChunkRepository, EmbeddingProvider, VectorStore
from .chunking import DocumentChunker
from .embedding_providers import (
    CohereEmbeddingProvider,
    HashEmbeddingProvider,
    OpenAIEmbeddingProvider,
    SentenceTransformerEmbeddingProvider,
)
from .embeddings_manager import (
    EmbeddingsManager,
    create_embedding_provider,
    create_embeddings_manager,
)
from .rag_engine import RetrievalEngine, assemble_context
from .repository import InMemoryChunkRepository
from .similarity import cosine_similarity, l2_normalize, rank
from .vector_store import LocalVectorStore, PineconeVectorStore, create_vector_store

__all__ = [
    "ChunkRepository",
    "EmbeddingProvider",
    "VectorStore",
    "DocumentChunker",
    "CohereEmbeddingProvider",
    "HashEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
    "EmbeddingsManager",
    "create_embedding_provider",
    "create_embeddings_manager",
    "RetrievalEngine",
    "assemble_context",
    "InMemoryChunkRepository",
    "cosine_similarity",
    "l2_normalize",
    "rank",
    "LocalVectorStore",
    "PineconeVectorStore",
    "create_vector_store",
]
