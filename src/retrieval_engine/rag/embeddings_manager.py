"""
Embeddings manager: caching and hash fallback around a single provider.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import List, Optional

from ..exceptions import ConfigurationError
from ..models import EmbeddingProviderType
from .base import EmbeddingProvider
from .embedding_providers import (
    DEFAULT_HASH_DIMENSIONS,
    CohereEmbeddingProvider,
    HashEmbeddingProvider,
    OpenAIEmbeddingProvider,
    SentenceTransformerEmbeddingProvider,
)

logger = logging.getLogger(__name__)


class EmbeddingsManager:
    """
    Owns the active embedding provider and its in-memory cache.

    Cache keys are the first ``cache_key_prefix`` characters of the text plus
    its length. Two texts sharing that prefix and that exact length collide
    and receive the same vector. This is a known limitation of the key, not
    something callers may rely on.

    Provider failures never propagate out of get_embedding(). The text is
    embedded with a throwaway HashEmbeddingProvider instead and the active
    provider stays in place for the next call.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        cache_enabled: bool = True,
        cache_max_entries: int = 10000,
        fallback_dimension: int = DEFAULT_HASH_DIMENSIONS,
        cache_key_prefix: int = 100,
    ):
        """
        Initialize embeddings manager.

        Args:
            provider: Active embedding provider
            cache_enabled: Master switch for the cache
            cache_max_entries: LRU bound; 0 keeps nothing
            fallback_dimension: Dimension of hash fallback vectors
            cache_key_prefix: Characters of text used in the cache key
        """
        self.provider = provider
        self.cache_enabled = cache_enabled
        self.cache_max_entries = cache_max_entries
        self.fallback_dimension = fallback_dimension
        self.cache_key_prefix = cache_key_prefix
        self.fallback_count = 0

        self._cache: "OrderedDict[str, List[float]]" = OrderedDict()

        logger.info(
            f"Initialized EmbeddingsManager with provider '{provider.get_provider_name()}' "
            f"(cache={'on' if cache_enabled else 'off'}, max_entries={cache_max_entries})"
        )

    def _get_cache_key(self, text: str) -> str:
        """Generate cache key for text."""
        return f"{text[: self.cache_key_prefix]}_{len(text)}"

    def _cache_get(self, key: str) -> Optional[List[float]]:
        vector = self._cache.get(key)
        if vector is not None:
            self._cache.move_to_end(key)
        return vector

    def _cache_put(self, key: str, vector: List[float]) -> None:
        if self.cache_max_entries <= 0:
            return
        self._cache[key] = vector
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_max_entries:
            self._cache.popitem(last=False)

    async def get_embedding(self, text: str, use_cache: bool = True) -> List[float]:
        """
        Get the embedding for a text.

        Args:
            text: Text to embed
            use_cache: Read and populate the cache for this call

        Returns:
            Embedding vector. Falls back to hash embeddings if the provider fails.
        """
        use_cache = use_cache and self.cache_enabled
        cache_key = self._get_cache_key(text)

        if use_cache:
            cached = self._cache_get(cache_key)
            if cached is not None:
                logger.debug(f"Embedding cache hit for key of length {len(cache_key)}")
                return cached

        try:
            vector = await self.provider.embed_text(text)
        except Exception as e:
            self.fallback_count += 1
            provider_name = self.provider.get_provider_name()
            logger.warning(
                f"Embedding generation with '{provider_name}' failed, using hash fallback: {e}",
                extra={"provider": provider_name, "operation": "embed"},
            )
            return HashEmbeddingProvider(self.fallback_dimension).embed(text)

        if use_cache:
            self._cache_put(cache_key, vector)

        return vector

    async def get_embeddings(
        self, texts: List[str], use_cache: bool = True, concurrency: int = 4
    ) -> List[List[float]]:
        """
        Embed many texts with bounded concurrency.

        Args:
            texts: Texts to embed
            use_cache: Read and populate the cache
            concurrency: Maximum provider calls in flight

        Returns:
            Vectors in the same order as texts
        """
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def _embed(text: str) -> List[float]:
            async with semaphore:
                return await self.get_embedding(text, use_cache=use_cache)

        return list(await asyncio.gather(*(_embed(text) for text in texts)))

    def set_provider(self, provider: EmbeddingProvider) -> None:
        """Switch the active provider. Cached vectors of the old provider are dropped."""
        old_name = self.provider.get_provider_name()
        self.provider = provider
        self.clear_cache()
        logger.info(f"Switched embedding provider from '{old_name}' to '{provider.get_provider_name()}'")

    def get_provider_name(self) -> str:
        return self.provider.get_provider_name()

    def get_dimension(self) -> int:
        return self.provider.get_dimension()

    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        """Drop every cached embedding."""
        self._cache.clear()
        logger.debug("Embedding cache cleared")


def create_embedding_provider(
    provider_type: EmbeddingProviderType | str,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    timeout: float = 30.0,
    device: str = "cpu",
    dimensions: Optional[int] = None,
) -> EmbeddingProvider:
    """
    Build an embedding provider from a provider type.

    Args:
        provider_type: Which provider to build
        api_key: API key for remote providers
        model: Optional model name override
        timeout: Request timeout for remote providers
        device: Device for the local model
        dimensions: Output dimension (OpenAI models that support it, hash provider)

    Returns:
        Embedding provider instance

    Raises:
        ConfigurationError: If the type is unknown or a required API key is missing
    """
    try:
        provider_type = EmbeddingProviderType(provider_type)
    except ValueError as e:
        raise ConfigurationError(f"Unsupported embedding provider: {provider_type}") from e

    if provider_type == EmbeddingProviderType.OPENAI:
        if not api_key:
            raise ConfigurationError("OpenAI API key required")
        kwargs = {"model": model} if model else {}
        return OpenAIEmbeddingProvider(api_key, dimensions=dimensions, timeout=timeout, **kwargs)

    if provider_type == EmbeddingProviderType.COHERE:
        if not api_key:
            raise ConfigurationError("Cohere API key required")
        kwargs = {"model": model} if model else {}
        return CohereEmbeddingProvider(api_key, timeout=timeout, **kwargs)

    if provider_type == EmbeddingProviderType.LOCAL:
        kwargs = {"model": model} if model else {}
        return SentenceTransformerEmbeddingProvider(device=device, **kwargs)

    return HashEmbeddingProvider(dimensions or DEFAULT_HASH_DIMENSIONS)


async def create_embeddings_manager(
    provider_type: EmbeddingProviderType | str,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    cache_enabled: bool = True,
    cache_max_entries: int = 10000,
    fallback_dimension: int = DEFAULT_HASH_DIMENSIONS,
    timeout: float = 30.0,
    device: str = "cpu",
    dimensions: Optional[int] = None,
) -> EmbeddingsManager:
    """
    Build an EmbeddingsManager. A local model is loaded before returning.

    Raises:
        ConfigurationError: If the provider cannot be configured
        ProviderUnavailable: If the local model cannot be loaded
    """
    provider = create_embedding_provider(
        provider_type,
        api_key=api_key,
        model=model,
        timeout=timeout,
        device=device,
        dimensions=dimensions,
    )

    if isinstance(provider, SentenceTransformerEmbeddingProvider):
        await provider.initialize()

    return EmbeddingsManager(
        provider,
        cache_enabled=cache_enabled,
        cache_max_entries=cache_max_entries,
        fallback_dimension=fallback_dimension,
    )
