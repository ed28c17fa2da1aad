"""
Document retrieval engine: turns documents into searchable semantic chunks.
"""

from .config import Config, get_config
from .exceptions import (
    ChunkingError,
    ConfigurationError,
    DimensionMismatch,
    ProviderError,
    ProviderUnavailable,
    RetrievalError,
    StoreError,
)
from .models import (
    Chunk,
    Document,
    EmbeddingProviderType,
    IndexStats,
    RankedChunk,
    VectorStoreType,
)
from .rag import RetrievalEngine, assemble_context

__version__ = "0.1.0"

__all__ = [
    "Config",
    "get_config",
    "ChunkingError",
    "ConfigurationError",
    "DimensionMismatch",
    "ProviderError",
    "ProviderUnavailable",
    "RetrievalError",
    "StoreError",
    "Chunk",
    "Document",
    "EmbeddingProviderType",
    "IndexStats",
    "RankedChunk",
    "VectorStoreType",
    "RetrievalEngine",
    "assemble_context",
]
