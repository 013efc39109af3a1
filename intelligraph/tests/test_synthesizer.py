"""Tests for answer synthesis."""

import pytest
from unittest.mock import Mock

from intelligraph.common.errors import UpstreamUnavailableError
from intelligraph.retriever.query_processor import RefinedQuery
from intelligraph.retriever.searcher import ResultType, SearchResult
from intelligraph.retriever.synthesizer import SynthesizedAnswer, Synthesizer


@pytest.fixture
def llm():
    client = Mock()
    client.is_available = True
    client.generate.return_value = "  Here are two matches.  "
    return client


class TestSynthesizer:
    @pytest.mark.asyncio
    async def test_returns_stripped_answer(self, llm):
        answer = await Synthesizer(llm, timeout=12.0, max_tokens=512).synthesize("prompt")

        assert answer == "Here are two matches."
        llm.generate.assert_called_once_with("prompt", max_tokens=512, timeout=12.0)

    @pytest.mark.asyncio
    async def test_no_llm(self):
        with pytest.raises(UpstreamUnavailableError, match="not configured"):
            await Synthesizer(None).synthesize("prompt")

    @pytest.mark.asyncio
    async def test_unavailable_llm(self, llm):
        llm.is_available = False
        with pytest.raises(UpstreamUnavailableError):
            await Synthesizer(llm).synthesize("prompt")
        llm.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_provider_error(self, llm, caplog):
        import logging
        llm.generate.side_effect = ConnectionError("503 from provider")

        with caplog.at_level(logging.ERROR, logger="intelligraph.retriever.synthesizer"):
            with pytest.raises(UpstreamUnavailableError, match="AI generation service error"):
                await Synthesizer(llm).synthesize("prompt")

        assert "503 from provider" in caplog.text
        assert llm.generate.call_count == 1

    @pytest.mark.asyncio
    async def test_timeout(self, llm):
        import time

        def slow(*args, **kwargs):
            time.sleep(0.5)
            return "late"

        llm.generate.side_effect = slow
        with pytest.raises(UpstreamUnavailableError):
            await Synthesizer(llm, timeout=0.05).synthesize("prompt")

    @pytest.mark.asyncio
    async def test_empty_answer(self, llm):
        llm.generate.return_value = "   "
        with pytest.raises(UpstreamUnavailableError, match="empty"):
            await Synthesizer(llm).synthesize("prompt")


class TestSynthesizedAnswer:
    def test_to_dict_shape(self):
        result = SearchResult(
            result_type=ResultType.RESEARCHER, id="u1", title="Ayse Demir", description="",
            source="METU", status=None, score=0.8, matched_by="keyword",
        )
        answer = SynthesizedAnswer(
            answer="text",
            results=[result],
            refined_query=RefinedQuery(original="x", text="x"),
        )

        data = answer.to_dict()
        assert set(data) == {"answer", "results"}
        assert data["results"][0]["type"] == "RESEARCHER"
        assert data["results"][0]["source"] == "METU"
