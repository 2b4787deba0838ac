"""
Citewise Configuration System
==============================

Central configuration using Pydantic Settings. Supports:
- Environment variables (CITEWISE_ prefix, ``__`` for nested fields)
- .env file loading
- YAML config file overrides
- Two embedding modes: "lite" (OpenAI API) and "full" (local model)

Usage:
    from citewise.config import get_config
    cfg = get_config()                       # loads from env / .env
    cfg = get_config("configs/prod.yaml")    # loads with YAML overrides
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ── Execution Mode ─────────────────────────────────────────────────
class ExecutionMode(str, Enum):
    """
    Controls which embedding backend is used.

    - LITE: OpenAI embeddings API (text-embedding-3-small). Matches the
            1536-dim vectors the ingestion side writes.
    - FULL: Local sentence-transformers model. The store must have been
            populated with the same model.
    """
    LITE = "lite"
    FULL = "full"


# ── Sub-configs ────────────────────────────────────────────────────
class RetrievalConfig(BaseModel):
    """Configuration for dual-channel retrieval and rank fusion."""
    rrf_k: int = Field(default=60, ge=0, description="RRF constant (larger flattens top-rank influence)")
    overfetch_factor: int = Field(
        default=2, ge=1,
        description="Each channel fetches overfetch_factor * limit candidates before fusion",
    )
    search_limit: int = Field(default=10, ge=1, description="Default result count for search()")
    answer_limit: int = Field(default=5, ge=1, description="Default evidence count for answer()")
    min_similarity: float = Field(
        default=0.2, ge=0.0, le=1.0,
        description="Threshold applied to normalized fused (or cosine) scores",
    )
    use_hybrid: bool = Field(default=True, description="Fuse semantic + lexical; False = vector only")
    channel_timeout_s: float = Field(
        default=30.0, gt=0.0,
        description="Deadline for both retrieval channels together",
    )
    partial_channel_policy: Literal["fail", "degrade"] = Field(
        default="fail",
        description=(
            "What to do when exactly one channel's store query fails: "
            "'fail' raises RetrievalUnavailable, 'degrade' fuses the surviving channel"
        ),
    )


class EmbeddingConfig(BaseModel):
    """Configuration for the query embedding service."""
    openai_model: str = Field(default="text-embedding-3-small", description="OpenAI embedding model")
    local_model: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="sentence-transformers model (FULL mode)",
    )
    dimension: Optional[int] = Field(
        default=1536,
        description="Dimension of stored embeddings; query vectors of another length are rejected (None skips the check)",
    )


class GenerationConfig(BaseModel):
    """Configuration for the relevance gate and answer synthesis calls."""
    answer_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    judge_temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=800, ge=1)
    relevance_max_snippets: int = Field(default=10, ge=1, description="Snippets shown to the gate")
    relevance_snippet_chars: int = Field(default=500, ge=1, description="Per-snippet truncation")
    judgment_fallback: Literal["irrelevant", "relevant", "raise"] = Field(
        default="irrelevant",
        description="Outcome used when the relevance judgment call itself fails",
    )


class StoreConfig(BaseModel):
    """Configuration for the evidence store backend."""
    backend: Literal["memory", "postgres"] = Field(default="memory")
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy URL, e.g. postgresql+psycopg://user:pw@host/db",
    )
    fragments_path: Optional[Path] = Field(
        default=None,
        description="JSONL file of fragments for the memory backend",
    )
    pool_size: int = Field(default=5, ge=1)
    text_search_config: str = Field(default="english", description="Postgres text search configuration")


# ── Main Config ────────────────────────────────────────────────────
class CitewiseConfig(BaseSettings):
    """
    Root configuration for Citewise.

    Example:
        export CITEWISE_OPENAI_API_KEY=sk-...
        export CITEWISE_RETRIEVAL__RRF_K=30
        export CITEWISE_STORE__BACKEND=postgres
    """
    model_config = SettingsConfigDict(
        env_prefix="CITEWISE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Top-level settings ─────────────────────────────────────────
    mode: ExecutionMode = Field(
        default=ExecutionMode.LITE,
        description="Embedding backend: 'lite' (OpenAI API) or 'full' (local model)",
    )
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: 'json' or 'text'")

    # ── OpenAI API ─────────────────────────────────────────────────
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI model for generation")

    # ── Google Gemini API ──────────────────────────────────────────
    gemini_api_key: Optional[str] = Field(default=None, description="Google Gemini API key")
    gemini_model: str = Field(default="gemini-2.0-flash", description="Gemini model for generation")

    # ── Sub-configs ────────────────────────────────────────────────
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)

    @property
    def is_lite(self) -> bool:
        """Check if embeddings come from the OpenAI API."""
        return self.mode == ExecutionMode.LITE

    @property
    def is_full(self) -> bool:
        """Check if embeddings come from a local model."""
        return self.mode == ExecutionMode.FULL


# ── Config Loading ─────────────────────────────────────────────────
def get_config(yaml_path: Optional[str] = None) -> CitewiseConfig:
    """
    Load Citewise configuration.

    Priority (highest to lowest):
        1. Values from the YAML file (if provided)
        2. Environment variables (CITEWISE_ prefix)
        3. .env file
        4. Default values

    Args:
        yaml_path: Optional path to a YAML config file for overrides.

    Returns:
        Fully resolved CitewiseConfig instance.
    """
    if yaml_path:
        import yaml
        with open(yaml_path) as f:
            overrides = yaml.safe_load(f) or {}
        return CitewiseConfig(**overrides)
    return CitewiseConfig()
