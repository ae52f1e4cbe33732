"""Configuration models for the retrieval-fusion engine."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator


class CacheConfig(BaseModel):
    """Configures the adaptive-TTL embedding cache."""

    max_size: int = Field(default=500, ge=1)
    base_ttl_seconds: float = Field(default=15 * 60, gt=0.0)
    max_ttl_seconds: float = Field(default=60 * 60, gt=0.0)
    max_key_chars: int = Field(default=1000, ge=1)

    @model_validator(mode="after")
    def _check_ttl_bounds(self) -> "CacheConfig":
        if self.max_ttl_seconds < self.base_ttl_seconds:
            raise ValueError("max_ttl_seconds must be >= base_ttl_seconds")
        return self


class EmbeddingConfig(BaseModel):
    """Configures embedding calls: input length, timeout and retry schedule."""

    max_input_chars: int = Field(default=2048, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    max_attempts: int = Field(default=4, ge=1)
    backoff_seconds: float = Field(default=1.0, ge=0.0)


class RetrievalConfig(BaseModel):
    """Configures retrieval strategies and fusion heuristics."""

    rrf_k: float = Field(default=60.0, gt=0.0)
    vector_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    batch_size: int = Field(default=5, ge=1)
    candidate_multiplier: int = Field(default=2, ge=1)
    hybrid_oversample: int = Field(default=4, ge=1)
    max_query_variants: int = Field(default=3, ge=1)
    search_timeout_seconds: float = Field(default=10.0, gt=0.0)
    fast_path_strategy: Literal["vector", "hybrid"] = "vector"


class HydeConfig(BaseModel):
    """Configures hypothetical-answer generation."""

    enabled: bool = True
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=150, ge=1)
    timeout_seconds: float = Field(default=20.0, gt=0.0)
    history_turns: int = Field(default=3, ge=0)


class CircuitBreakerConfig(BaseModel):
    """Configures failure isolation for one named dependency."""

    failure_threshold: int = Field(default=5, ge=1)
    success_threshold: int = Field(default=2, ge=1)
    timeout_seconds: float = Field(default=60.0, ge=0.0)
    monitoring_period_seconds: float = Field(default=120.0, gt=0.0)


class ContextConfig(BaseModel):
    """Configures context assembly defaults."""

    max_chunks: int = Field(default=5, ge=1)
    similarity_threshold: float = Field(default=0.3, ge=-1.0, le=1.0)
    use_reranking: bool = True
    use_compression: bool = False
    merge_consecutive: bool = True
    adapt_chunk_limit: bool = False
    # Widen the fast-path search query with earlier user turns.
    momentum_query: bool = False


class ContextBuilderConfig(BaseModel):
    """Aggregate configuration handed to `ContextBuilder`."""

    cache: CacheConfig = Field(default_factory=CacheConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    hyde: HydeConfig = Field(default_factory=HydeConfig)
    breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
