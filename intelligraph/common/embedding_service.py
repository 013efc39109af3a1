"""
Embedding Service

Wraps a text -> vector embedding provider.
Supports Gemini (default, 768 dimensions), OpenAI, and on-device fastembed.
"""

import logging
from typing import List, Optional

import numpy as np

logger = logging.getLogger("intelligraph.common.embedding_service")

SUPPORTED_MODES = ("google", "openai", "femb")


class EmbeddingService:
    """
    Embedding service for the retrieval pipeline and the backfill script.

    The provider SDK is created eagerly; a missing key or package leaves the
    service unavailable instead of failing at import time.
    """

    def __init__(
        self,
        mode: str = "google",
        model: str = "models/text-embedding-004",
        api_key: Optional[str] = None,
        timeout: float = 15.0,
    ):
        self._mode = (mode or "google").lower()
        self._model = model
        self._timeout = timeout
        self._backend = None
        self._init_backend(api_key)

    def _init_backend(self, api_key: Optional[str]) -> None:
        """Initialize the underlying provider SDK"""
        if self._mode not in SUPPORTED_MODES:
            logger.warning("Unsupported embedding mode: %s", self._mode)
            return

        if self._mode in ("google", "openai") and not api_key:
            logger.info("%s API key not provided, embedding service unavailable", self._mode)
            return

        try:
            if self._mode == "google":
                import google.generativeai as genai
                genai.configure(api_key=api_key)
                self._backend = genai
            elif self._mode == "openai":
                from openai import OpenAI
                self._backend = OpenAI(api_key=api_key)
            else:
                from fastembed import TextEmbedding
                self._backend = TextEmbedding(model_name=self._model)
            logger.info("Embedding service initialized with mode=%s, model=%s", self._mode, self._model)
        except ImportError as e:
            logger.warning("Could not import %s embedding backend: %s", self._mode, e)
            self._backend = None
        except Exception as e:
            logger.warning("Failed to initialize %s embedding backend: %s", self._mode, e)
            self._backend = None

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def model(self) -> str:
        return self._model

    @property
    def is_available(self) -> bool:
        """Check if embedding service is available"""
        return self._backend is not None

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors, one per text
        """
        if not self._backend:
            raise RuntimeError("Embedding backend not initialized")

        if not texts:
            return []

        if self._mode == "google":
            response = self._backend.embed_content(
                model=self._model,
                content=texts,
                request_options={"timeout": self._timeout},
            )
            embeddings = response["embedding"]
        elif self._mode == "openai":
            response = self._backend.embeddings.create(
                model=self._model,
                input=texts,
                timeout=self._timeout,
            )
            embeddings = [item.embedding for item in response.data]
        else:
            embeddings = list(self._backend.embed(texts))

        # Ensure consistent return type
        return [
            vec.tolist() if isinstance(vec, np.ndarray) else list(vec)
            for vec in embeddings
        ]

    def embed_single(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: String to embed

        Returns:
            Embedding vector (may be empty if the provider returned nothing)
        """
        if not text:
            raise ValueError("Cannot embed empty text")

        embeddings = self.embed([text])
        return embeddings[0] if embeddings else []

    @staticmethod
    def is_degenerate(vector: Optional[List[float]]) -> bool:
        """True for empty, all-zero or non-finite vectors.

        Similarity search against such a vector is meaningless.
        """
        if vector is None or len(vector) == 0:
            return True
        arr = np.asarray(vector, dtype=float)
        if not np.all(np.isfinite(arr)):
            return True
        return not np.any(arr)


def get_embedding_service(config) -> EmbeddingService:
    """
    Build an EmbeddingService from an IntelliGraphConfig.

    Args:
        config: Loaded IntelliGraphConfig

    Returns:
        EmbeddingService instance
    """
    return EmbeddingService(
        mode=config.embedding.mode,
        model=config.embedding.model,
        api_key=config.embedding_api_key or None,
        timeout=config.retriever.embedding_timeout,
    )
