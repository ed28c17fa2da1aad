"""
Embedding provider implementations.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..exceptions import ProviderError, ProviderUnavailable
from .base import EmbeddingProvider
from .similarity import l2_normalize

logger = logging.getLogger(__name__)

DEFAULT_HASH_DIMENSIONS = 384


class RemoteEmbeddingProvider(EmbeddingProvider):
    """Shared HTTP handling for vendor embedding APIs."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a JSON payload and return the decoded response body.

        Raises:
            ProviderError: On timeout, transport failure, non-2xx status or invalid JSON
        """
        name = self.get_provider_name()
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}{path}",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
            except httpx.TimeoutException as e:
                logger.error(f"{name} embedding request timed out after {self.timeout}s")
                raise ProviderError(f"{name} request timed out: {e}") from e
            except httpx.HTTPStatusError as e:
                logger.error(f"{name} API returned HTTP {e.response.status_code}")
                raise ProviderError(
                    f"{name} API error: HTTP {e.response.status_code} {e.response.reason_phrase}"
                ) from e
            except httpx.HTTPError as e:
                logger.error(f"Error calling {name} API: {e}")
                raise ProviderError(f"{name} request failed: {e}") from e
            except ValueError as e:
                raise ProviderError(f"{name} returned a non-JSON response") from e

        if not isinstance(data, dict):
            raise ProviderError(f"{name} returned an unexpected response body")
        return data

    def _check_vector(self, vector: Any) -> List[float]:
        """Validate a vendor vector and return it unit-normalized."""
        name = self.get_provider_name()
        if not isinstance(vector, list) or not vector:
            raise ProviderError(f"No embedding returned from {name}")
        if len(vector) != self.get_dimension():
            raise ProviderError(
                f"{name} returned {len(vector)} dimensions, expected {self.get_dimension()}"
            )
        try:
            return l2_normalize([float(x) for x in vector])
        except (TypeError, ValueError) as e:
            raise ProviderError(f"{name} returned a non-numeric embedding") from e


class OpenAIEmbeddingProvider(RemoteEmbeddingProvider):
    """OpenAI embedding provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize OpenAI embedding provider.

        Args:
            api_key: OpenAI API key
            model: Embedding model name
            dimensions: Optional embedding dimensions (for models that support it)
            base_url: API base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        super().__init__(api_key, base_url, timeout, transport)
        self.model = model
        self.dimensions = dimensions

        logger.info(f"Initialized OpenAIEmbeddingProvider with model '{model}'")

    async def embed_text(self, text: str) -> List[float]:
        """
        Embed a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as list of floats
        """
        payload: Dict[str, Any] = {"input": text, "model": self.model}
        if self.dimensions:
            payload["dimensions"] = self.dimensions

        data = await self._post("/embeddings", payload)
        try:
            vector = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError("Malformed OpenAI response: missing data[0].embedding") from e

        return self._check_vector(vector)

    def get_dimension(self) -> int:
        """
        Get embedding dimension.

        Returns:
            Dimension of embedding vectors
        """
        if self.dimensions:
            return self.dimensions

        # Default dimensions for common models
        model_dimensions = {
            "text-embedding-3-small": 1536,
            "text-embedding-3-large": 3072,
            "text-embedding-ada-002": 1536,
        }
        return model_dimensions.get(self.model, 1536)

    def get_provider_name(self) -> str:
        return "openai"


class CohereEmbeddingProvider(RemoteEmbeddingProvider):
    """Cohere embedding provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "embed-english-v3.0",
        input_type: str = "search_document",
        base_url: str = "https://api.cohere.ai/v1",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Cohere embedding provider.

        Args:
            api_key: Cohere API key
            model: Embedding model name
            input_type: Cohere input type sent with every request
            base_url: API base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        super().__init__(api_key, base_url, timeout, transport)
        self.model = model
        self.input_type = input_type

        logger.info(f"Initialized CohereEmbeddingProvider with model '{model}'")

    async def embed_text(self, text: str) -> List[float]:
        """
        Embed a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as list of floats
        """
        data = await self._post(
            "/embed",
            {"texts": [text], "model": self.model, "input_type": self.input_type},
        )
        try:
            vector = data["embeddings"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError("Malformed Cohere response: missing embeddings[0]") from e

        return self._check_vector(vector)

    def get_dimension(self) -> int:
        """
        Get embedding dimension.

        Returns:
            Dimension of embedding vectors
        """
        if "light" in self.model:
            return 384
        return 1024

    def get_provider_name(self) -> str:
        return "cohere"


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Local embedding provider backed by a sentence-transformers model."""

    def __init__(
        self,
        model: str = "sentence-transformers/all-MiniLM-L6-v2",
        device: str = "cpu",
    ):
        """
        Initialize local embedding provider. The model is loaded by initialize().

        Args:
            model: Model name or path
            device: Torch device (cpu, cuda)
        """
        self.model_name = model
        self.device = device
        self._model = None
        self._dimension: int | None = None
        self._lock = asyncio.Lock()

        logger.info(f"Initialized SentenceTransformerEmbeddingProvider with model '{model}'")

    @property
    def is_initialized(self) -> bool:
        return self._model is not None

    async def initialize(self) -> None:
        """
        Load the model once. Later calls return immediately.

        Raises:
            ProviderUnavailable: If the model cannot be loaded
        """
        async with self._lock:
            if self._model is not None:
                return

            try:
                from sentence_transformers import SentenceTransformer

                model = await asyncio.to_thread(
                    SentenceTransformer, self.model_name, device=self.device
                )
            except Exception as e:
                logger.error(f"Failed to load local embeddings model '{self.model_name}': {e}")
                raise ProviderUnavailable(
                    f"Local embeddings model '{self.model_name}' is not available"
                ) from e

            self._model = model
            self._dimension = model.get_sentence_embedding_dimension()
            logger.info(f"Loaded local model '{self.model_name}' ({self._dimension} dimensions)")

    async def embed_text(self, text: str) -> List[float]:
        """
        Embed a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as list of floats
        """
        if self._model is None:
            await self.initialize()

        try:
            vector = await asyncio.to_thread(
                self._model.encode, [text], normalize_embeddings=True
            )
        except Exception as e:
            logger.error(f"Local embeddings error: {e}")
            raise ProviderError(f"Local model failed to embed text: {e}") from e

        return [float(x) for x in vector[0]]

    def get_dimension(self) -> int:
        return self._dimension or 384

    def get_provider_name(self) -> str:
        return "local"


def _string_hash(word: str) -> int:
    """Signed 32-bit rolling hash (h * 31 + code unit) over UTF-16 code units."""
    h = 0
    data = word.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


class HashEmbeddingProvider(EmbeddingProvider):
    """Deterministic bag-of-words hash embeddings. Needs no network or model."""

    def __init__(self, dimensions: int = DEFAULT_HASH_DIMENSIONS):
        if dimensions <= 0:
            raise ValueError(f"dimensions must be positive, got {dimensions}")
        self.dimensions = dimensions

    def embed(self, text: str) -> List[float]:
        """
        Synchronous embedding.

        Returns:
            Unit vector, or the zero vector when the text has no words
        """
        vector = [0.0] * self.dimensions
        for word in text.lower().split():
            vector[abs(_string_hash(word)) % self.dimensions] += 1.0

        return l2_normalize(vector)

    async def embed_text(self, text: str) -> List[float]:
        return self.embed(text)

    def get_dimension(self) -> int:
        return self.dimensions

    def get_provider_name(self) -> str:
        return "hash"
