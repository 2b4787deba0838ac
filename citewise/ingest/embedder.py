"""
Embedding Service
==================

Dense embedding generation for queries (and, on the ingestion side,
fragments).

Two Modes:
    - LITE mode: OpenAI embeddings API (text-embedding-3-small, 1536-d)
    - FULL mode: sentence-transformers model loaded locally

Provider failures raise EmbeddingError. A failed embedding is never
replaced by a zero vector: the retriever fails closed instead.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import numpy as np

from citewise.errors import EmbeddingError

logger = logging.getLogger("citewise.ingest.embedder")


class EmbeddingService(Protocol):
    """Anything that maps text to a fixed-length vector."""

    def embed(self, text: str) -> list[float]:
        ...


class Embedder:
    """
    Generates dense vectors with OpenAI or sentence-transformers.

    Usage:
        # LITE mode (API-based)
        embedder = Embedder(mode="lite", api_key="sk-...")
        vector = embedder.embed("how do we roll back a deploy?")

        # FULL mode (local model)
        embedder = Embedder(mode="full", model_name="sentence-transformers/all-MiniLM-L6-v2")

    Args:
        mode: "lite" (API) or "full" (local model).
        model_name: OpenAI model name (lite) or HuggingFace model ID (full).
        api_key: OpenAI API key (lite mode only).
        device: PyTorch device for full mode ("cuda", "cpu", "auto").
        dimension: Expected vector length, matching the store. None skips the check.
    """

    def __init__(
        self,
        mode: str = "lite",
        model_name: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        device: str = "auto",
        dimension: Optional[int] = None,
    ):
        self.mode = mode
        self.model_name = model_name
        self.api_key = api_key
        self.device = device
        self.dimension = dimension
        self._client = None
        self._model = None

    @classmethod
    def from_config(cls, config) -> "Embedder":
        """Create an Embedder from CitewiseConfig."""
        if config.is_full:
            return cls(
                mode="full",
                model_name=config.embedding.local_model,
                dimension=config.embedding.dimension,
            )
        return cls(
            mode="lite",
            model_name=config.embedding.openai_model,
            api_key=config.openai_api_key,
            dimension=config.embedding.dimension,
        )

    def _get_client(self):
        """Lazy-initialize the OpenAI client (LITE mode)."""
        if self._client is None:
            if not self.api_key:
                raise EmbeddingError("OpenAI API key required for LITE mode embedding")
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    def _load_model(self):
        """Lazy-load the sentence-transformers model (FULL mode)."""
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as e:
                raise EmbeddingError(
                    "sentence-transformers required for FULL mode. "
                    "Install with: pip install sentence-transformers"
                ) from e

            device = self.device
            if device == "auto":
                import torch
                device = "cuda" if torch.cuda.is_available() else "cpu"

            logger.info(f"Loading embedding model: {self.model_name} on {device}")
            self._model = SentenceTransformer(self.model_name, device=device)
        return self._model

    def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            EmbeddingError: On provider failure, an empty vector, or a vector
                whose length differs from ``dimension``.
        """
        try:
            if self.mode == "lite":
                vector = self._embed_openai(text)
            else:
                vector = self._embed_local(text)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding provider failed: {e}") from e

        if not vector:
            raise EmbeddingError("Embedding provider returned an empty vector")
        if self.dimension is not None and len(vector) != self.dimension:
            raise EmbeddingError(
                f"{self.model_name} returned a {len(vector)}-d vector, "
                f"store expects dimension {self.dimension}"
            )
        return vector

    def _embed_openai(self, text: str) -> list[float]:
        client = self._get_client()
        response = client.embeddings.create(model=self.model_name, input=text)
        return list(response.data[0].embedding)

    def _embed_local(self, text: str) -> list[float]:
        model = self._load_model()
        emb = model.encode([text], normalize_embeddings=True)
        return np.asarray(emb, dtype=np.float32)[0].tolist()
