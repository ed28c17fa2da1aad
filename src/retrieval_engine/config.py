"""
Configuration management for the retrieval engine.
Supports YAML config files and environment variables.
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import EmbeddingProviderType, VectorStoreType


class EmbeddingConfig(BaseSettings):
    """Embedding provider configuration."""

    provider: EmbeddingProviderType = Field(
        default=EmbeddingProviderType.HASH, description="Embedding provider"
    )
    api_key: Optional[str] = Field(default=None, description="API key for remote providers")
    model: Optional[str] = Field(default=None, description="Model name override")
    dimensions: Optional[int] = Field(
        default=None, ge=1, description="Output dimension for providers that support it"
    )
    timeout: float = Field(default=30.0, gt=0, le=300, description="Request timeout in seconds")
    device: str = Field(default="cpu", description="Device for the local model")
    cache_enabled: bool = Field(default=True, description="Enable embedding cache")
    cache_max_entries: int = Field(
        default=10000, ge=0, description="Maximum cached embeddings (LRU)"
    )
    fallback_dimension: int = Field(
        default=384, ge=1, description="Dimension of hash fallback embeddings"
    )


class VectorStoreConfig(BaseSettings):
    """Vector store configuration."""

    type: VectorStoreType = Field(default=VectorStoreType.LOCAL, description="Vector store")
    api_key: Optional[str] = Field(default=None, description="Pinecone API key")
    environment: Optional[str] = Field(default=None, description="Pinecone environment")
    index_name: Optional[str] = Field(default=None, description="Pinecone index name")
    host: Optional[str] = Field(default=None, description="Pinecone index host override")
    namespace: str = Field(default="default", description="Pinecone namespace")
    timeout: float = Field(default=30.0, gt=0, le=300, description="Request timeout in seconds")


class ChunkingConfig(BaseSettings):
    """Chunking configuration."""

    chunk_size: int = Field(default=1000, ge=1, description="Chunk size in characters")
    chunk_overlap: int = Field(default=200, ge=0, description="Overlap in characters")
    min_chunk_length: int = Field(default=50, ge=0, description="Minimum chunk length")

    @model_validator(mode="after")
    def validate_overlap(self) -> "ChunkingConfig":
        """Overlap must be smaller than the chunk size."""
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self


class IngestionConfig(BaseSettings):
    """Ingestion configuration."""

    concurrency: int = Field(
        default=4, ge=1, le=32, description="Embedding calls in flight per document"
    )


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Logging level")
    file: Optional[str] = Field(default=None, description="Log file path")
    format: str = Field(default="json", description="Log format: json or text")

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        if v not in ["json", "text"]:
            raise ValueError("Log format must be 'json' or 'text'")
        return v


class Config(BaseSettings):
    """Main configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RETRIEVAL_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    embeddings: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, config_path: str) -> "Config":
        """Load configuration from YAML file."""
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """
        Load configuration from file and environment variables.
        Environment variables are used when no config file exists.
        """
        if config_path is None:
            config_path = os.getenv("RETRIEVAL_CONFIG_PATH", "config/config.yaml")

        if Path(config_path).exists():
            return cls.from_yaml(config_path)

        return cls()


def get_config(config_path: Optional[str] = None) -> Config:
    """Get application configuration."""
    return Config.load(config_path)
