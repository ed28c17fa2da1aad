"""
Pytest configuration and fixtures for tests.
"""

import asyncio
import json
from typing import Callable, Dict, List

import httpx
import pytest

from retrieval_engine.exceptions import ProviderError
from retrieval_engine.models import Document
from retrieval_engine.rag import (
    DocumentChunker,
    EmbeddingProvider,
    EmbeddingsManager,
    HashEmbeddingProvider,
    InMemoryChunkRepository,
    LocalVectorStore,
    RetrievalEngine,
)

FLIGHT_WORDS = ("fly", "flight", "bird", "wing")
DRIVE_WORDS = ("car", "drive", "road", "wheel")


class KeywordEmbeddingProvider(EmbeddingProvider):
    """Three-topic embeddings: flight, driving, everything else."""

    def __init__(self):
        self.calls = 0

    async def embed_text(self, text: str) -> List[float]:
        self.calls += 1
        vector = [0.0, 0.0, 0.1]
        for word in text.lower().split():
            if any(w in word for w in FLIGHT_WORDS):
                vector[0] += 1.0
            elif any(w in word for w in DRIVE_WORDS):
                vector[1] += 1.0
        return vector

    def get_dimension(self) -> int:
        return 3

    def get_provider_name(self) -> str:
        return "keyword"


class FlakyKeywordProvider(KeywordEmbeddingProvider):
    """Keyword provider that can be taken down, entirely or for texts containing a word."""

    def __init__(self, fail_on: str = ""):
        super().__init__()
        self.down = False
        self.fail_on = fail_on

    async def embed_text(self, text: str) -> List[float]:
        if self.down or (self.fail_on and self.fail_on in text):
            raise ProviderError("vendor unavailable")
        return await super().embed_text(text)


class AddRecordingStore(LocalVectorStore):
    """Local store that remembers every batch passed to add()."""

    def __init__(self, repository, embeddings_manager):
        super().__init__(repository, embeddings_manager)
        self.added: List[List] = []

    async def add(self, chunks):
        self.added.append(list(chunks))
        await super().add(chunks)


class CountingProvider(HashEmbeddingProvider):
    """Hash provider that records how often it was called."""

    def __init__(self, dimensions: int = 384):
        super().__init__(dimensions)
        self.calls = 0

    async def embed_text(self, text: str) -> List[float]:
        self.calls += 1
        return self.embed(text)

    def get_provider_name(self) -> str:
        return "counting"


class FailingProvider(EmbeddingProvider):
    """Provider whose every call fails."""

    def __init__(self, dimensions: int = 1536):
        self.dimensions = dimensions
        self.calls = 0

    async def embed_text(self, text: str) -> List[float]:
        self.calls += 1
        raise ProviderError("vendor unavailable")

    def get_dimension(self) -> int:
        return self.dimensions

    def get_provider_name(self) -> str:
        return "failing"


class SlowHashProvider(HashEmbeddingProvider):
    """Hash provider that finishes shorter texts later, to scramble completion order."""

    def __init__(self):
        super().__init__(384)
        self.in_flight = 0
        self.max_in_flight = 0

    async def embed_text(self, text: str) -> List[float]:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0.001 * (len(text) % 7))
        self.in_flight -= 1
        return self.embed(text)


class RecordingHandler:
    """httpx.MockTransport handler that records requests and replies from a callback."""

    def __init__(self, respond: Callable[[httpx.Request, Dict], httpx.Response]):
        self.respond = respond
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = json.loads(request.content) if request.content else {}
        return self.respond(request, body)

    def bodies(self) -> List[Dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def small_chunker() -> DocumentChunker:
    """Chunker sized for short test documents."""
    return DocumentChunker(chunk_size=20, chunk_overlap=5, min_chunk_length=5)


@pytest.fixture
def repository() -> InMemoryChunkRepository:
    return InMemoryChunkRepository()


@pytest.fixture
def keyword_manager() -> EmbeddingsManager:
    return EmbeddingsManager(KeywordEmbeddingProvider())


@pytest.fixture
def keyword_engine(keyword_manager, repository) -> RetrievalEngine:
    """Engine with keyword embeddings over a local store."""
    return RetrievalEngine(
        embeddings_manager=keyword_manager,
        vector_store=LocalVectorStore(repository, keyword_manager),
        repository=repository,
        chunker=DocumentChunker(chunk_size=200, chunk_overlap=20, min_chunk_length=5),
    )


@pytest.fixture
def birds_document() -> Document:
    return Document(
        id="doc-birds",
        title="Birds",
        content="Most birds fly south in winter. Their wings take them far.",
    )


@pytest.fixture
def cars_document() -> Document:
    return Document(
        id="doc-cars",
        title="Cars",
        content="Cars drive on the road every day. Wheels turn quickly.",
    )
