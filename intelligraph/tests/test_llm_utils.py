"""Tests for shared LLM response and blocking-call utilities."""

import asyncio
import time

import pytest
from intelligraph.common.llm_utils import clean_llm_text, run_blocking


class TestCleanLlmText:
    def test_plain_text(self):
        assert clean_llm_text("deep learning for crop yield") == "deep learning for crop yield"

    def test_strips_quotes(self):
        assert clean_llm_text('"renewable energy funding"') == "renewable energy funding"

    def test_strips_nested_quotes(self):
        assert clean_llm_text("'\"quantum sensors\"'") == "quantum sensors"

    def test_strips_label(self):
        assert clean_llm_text("Search query: protein folding") == "protein folding"
        assert clean_llm_text("Query: \"protein folding\"") == "protein folding"

    def test_first_line_only(self):
        raw = "graphene batteries\nThis query focuses on energy storage."
        assert clean_llm_text(raw) == "graphene batteries"

    def test_code_fences_dropped(self):
        raw = "```\nsoil microbiome\n```"
        assert clean_llm_text(raw) == "soil microbiome"

    def test_empty_inputs(self):
        assert clean_llm_text("") == ""
        assert clean_llm_text(None) == ""
        assert clean_llm_text("   \n  ") == ""
        assert clean_llm_text('""') == ""


class TestRunBlocking:
    @pytest.mark.asyncio
    async def test_returns_result(self):
        def add(a, b, scale=1):
            return (a + b) * scale

        assert await run_blocking(add, 1, 2, scale=3, deadline=1.0) == 9

    @pytest.mark.asyncio
    async def test_deadline_raises_timeout(self):
        with pytest.raises(asyncio.TimeoutError):
            await run_blocking(time.sleep, 0.5, deadline=0.05)

    @pytest.mark.asyncio
    async def test_exception_propagates(self):
        def boom():
            raise ConnectionError("down")

        with pytest.raises(ConnectionError, match="down"):
            await run_blocking(boom, deadline=1.0)
