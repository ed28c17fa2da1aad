"""
Data models for the retrieval engine using Pydantic v2.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


def _new_id() -> str:
    return uuid.uuid4().hex


class Document(BaseModel):
    """A caller-owned document submitted for ingestion."""

    id: str = Field(default_factory=_new_id, description="Document identifier")
    title: str = Field(default="", description="Human readable title")
    content: str = Field(..., description="Full text of the document")
    source: str = Field(default="", description="Where the document came from")
    doc_type: str = Field(default="text", description="Document type: pdf, doc, webpage, text")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Arbitrary metadata")
    created_at: datetime = Field(default_factory=datetime.now, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=datetime.now, description="Last update timestamp")

    @field_validator("doc_type")
    @classmethod
    def validate_doc_type(cls, v: str) -> str:
        """Validate document type."""
        valid_types = ["pdf", "doc", "webpage", "text"]
        v = v.lower()
        if v not in valid_types:
            raise ValueError(f"Document type must be one of {valid_types}")
        return v


class Chunk(BaseModel):
    """A segment of a document, the unit of retrieval."""

    id: str = Field(default_factory=_new_id, description="Chunk identifier")
    document_id: str = Field(..., description="ID of the parent document")
    content: str = Field(..., description="Chunk text")
    index: int = Field(..., ge=0, description="Ordinal position within the document")
    vector: Optional[List[float]] = Field(default=None, description="Embedding vector")
    created_at: datetime = Field(default_factory=datetime.now, description="Creation timestamp")


class RankedChunk(BaseModel):
    """A chunk returned by a similarity search."""

    chunk: Chunk
    score: float = Field(..., description="Similarity score")


class IndexStats(BaseModel):
    """Statistics about the indexed chunks."""

    total_chunks: int = Field(..., description="Chunks held by the repository")
    total_documents: int = Field(..., description="Documents with at least one chunk")
    embedding_dimension: int = Field(..., description="Embedding vector dimension")
    provider: str = Field(..., description="Embedding provider name")
    vector_store: str = Field(..., description="Vector store name")
    cache_entries: int = Field(default=0, description="Entries in the embedding cache")
    fallback_count: int = Field(default=0, description="Embeddings served by the hash fallback")


class EmbeddingProviderType(str, Enum):
    """Supported embedding providers."""

    OPENAI = "openai"
    COHERE = "cohere"
    LOCAL = "local"
    HASH = "hash"


class VectorStoreType(str, Enum):
    """Supported vector stores."""

    LOCAL = "local"
    PINECONE = "pinecone"
