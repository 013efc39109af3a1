"""Tests for EmbeddingService backends and degenerate vector detection."""

import math

import numpy as np
import pytest
from unittest.mock import MagicMock

from intelligraph.common.embedding_service import EmbeddingService, get_embedding_service


def _service(mode, backend):
    """Service in the given mode with a mocked provider SDK"""
    service = EmbeddingService(mode="google", api_key=None)
    service._mode = mode
    service._backend = backend
    return service


class TestEmbeddingServiceInit:
    def test_google_without_key_unavailable(self, caplog):
        import logging
        with caplog.at_level(logging.INFO, logger="intelligraph.common.embedding_service"):
            service = EmbeddingService(mode="google")
        assert not service.is_available
        assert "API key not provided" in caplog.text

    def test_openai_without_key_unavailable(self):
        assert not EmbeddingService(mode="openai").is_available

    def test_unsupported_mode(self, caplog):
        import logging
        with caplog.at_level(logging.WARNING, logger="intelligraph.common.embedding_service"):
            service = EmbeddingService(mode="word2vec", api_key="k")
        assert not service.is_available
        assert "Unsupported embedding mode" in caplog.text

    def test_mode_normalized(self):
        assert EmbeddingService(mode="GOOGLE").mode == "google"

    def test_embed_without_backend_raises(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            EmbeddingService(mode="google").embed(["x"])

    def test_get_embedding_service_from_config(self):
        from intelligraph.common.config import IntelliGraphConfig
        cfg = IntelliGraphConfig()
        cfg.embedding.mode = "openai"
        cfg.retriever.embedding_timeout = 3.0
        service = get_embedding_service(cfg)
        assert service.mode == "openai"
        assert service._timeout == 3.0


class TestEmbed:
    def test_google_backend(self):
        genai = MagicMock()
        genai.embed_content.return_value = {"embedding": [[0.1, 0.2], [0.3, 0.4]]}
        service = _service("google", genai)

        assert service.embed(["a", "b"]) == [[0.1, 0.2], [0.3, 0.4]]
        kwargs = genai.embed_content.call_args.kwargs
        assert kwargs["model"] == "models/text-embedding-004"
        assert kwargs["content"] == ["a", "b"]
        assert kwargs["request_options"] == {"timeout": 15.0}

    def test_openai_backend(self):
        client = MagicMock()
        client.embeddings.create.return_value.data = [MagicMock(embedding=[1.0, 0.0])]
        service = _service("openai", client)

        assert service.embed(["a"]) == [[1.0, 0.0]]
        assert client.embeddings.create.call_args.kwargs["input"] == ["a"]

    def test_femb_backend_numpy_converted(self):
        model = MagicMock()
        model.embed.return_value = iter([np.array([0.5, 0.5], dtype=np.float32)])
        service = _service("femb", model)

        result = service.embed(["a"])
        assert isinstance(result[0], list)
        assert result[0] == pytest.approx([0.5, 0.5])

    def test_empty_batch(self):
        backend = MagicMock()
        service = _service("google", backend)
        assert service.embed([]) == []
        backend.embed_content.assert_not_called()

    def test_embed_single(self):
        genai = MagicMock()
        genai.embed_content.return_value = {"embedding": [[0.1, 0.2]]}
        assert _service("google", genai).embed_single("q") == [0.1, 0.2]

    def test_embed_single_empty_text_raises(self):
        with pytest.raises(ValueError):
            _service("google", MagicMock()).embed_single("")

    def test_embed_single_no_vectors_returns_empty(self):
        genai = MagicMock()
        genai.embed_content.return_value = {"embedding": []}
        assert _service("google", genai).embed_single("q") == []


class TestIsDegenerate:
    @pytest.mark.parametrize("vector", [
        None,
        [],
        [0.0, 0.0, 0.0],
        [0.1, math.nan],
        [math.inf, 0.2],
    ])
    def test_degenerate(self, vector):
        assert EmbeddingService.is_degenerate(vector)

    def test_normal_vector(self):
        assert not EmbeddingService.is_degenerate([0.0, 0.3, -0.1])
