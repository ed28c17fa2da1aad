"""
Exception hierarchy for the retrieval engine.
"""


class RetrievalError(Exception):
    """Base class for all retrieval engine errors."""

    pass


class ConfigurationError(RetrievalError):
    """Raised when a component is constructed with invalid settings."""

    pass


class ChunkingError(ConfigurationError):
    """Raised for an invalid chunk size / overlap combination."""

    pass


class ProviderError(RetrievalError):
    """Raised when an embedding provider call fails."""

    pass


class ProviderUnavailable(ProviderError):
    """Raised when a local embedding model cannot be loaded."""

    pass


class StoreError(RetrievalError):
    """Raised when a vector store or chunk repository operation fails."""

    pass


class DimensionMismatch(RetrievalError):
    """Raised when vectors of different dimensions are compared."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}"
        )
