"""
Query Processor

Validates raw user input and distils long, conversational queries into a
concise search query with the generative service.
Short queries are already intent-dense and pass through unchanged.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from ..common.errors import InvalidInputError
from ..common.llm_client import LLMClient
from ..common.llm_utils import clean_llm_text, run_blocking

logger = logging.getLogger("intelligraph.retriever.query_processor")


@dataclass(frozen=True)
class RefinedQuery:
    """Search intent derived from a raw query"""
    original: str
    text: str  # what gets embedded and keyword-matched

    @property
    def was_refined(self) -> bool:
        return self.text != self.original


def validate_query(query: Any, min_length: int = 2) -> str:
    """
    Check a raw query before any upstream call.

    Returns:
        The query with surrounding whitespace removed

    Raises:
        InvalidInputError: missing, non-string, or shorter than min_length
    """
    if query is None:
        raise InvalidInputError("Query is required.")
    if not isinstance(query, str):
        raise InvalidInputError("Query must be a string.")

    cleaned = query.strip()
    if len(cleaned) < min_length:
        raise InvalidInputError(f"Search query must be at least {min_length} characters long.")
    return cleaned


class QueryRefiner:
    """
    Rewrites long queries into a concise search query.

    Refinement is an optimisation: any failure falls back to the raw query.
    """

    REFINEMENT_PROMPT = """TASK: Analyze the following user input and convert it into the most appropriate, concise "search query" for a database of research projects, funding calls and researchers.

USER INPUT: "{query}"

RULES:
1. Remove conversational phrases, greetings and filler.
2. Capture the user's core intent (project topic, academic field, funding needs).
3. Output ONLY the new query sentence. Write nothing else: no quotes, labels or commentary."""

    def __init__(
        self,
        llm_client: Optional[LLMClient],
        max_chars: int = 50,
        max_words: int = 10,
        timeout: float = 30.0,
        enabled: bool = True,
    ):
        """
        Initialize query refiner.

        Args:
            llm_client: Generative client used for refinement
            max_chars: Queries longer than this are refined
            max_words: Queries with more words than this are refined
            timeout: Seconds allowed for the refinement call
            enabled: Disable to always pass queries through
        """
        self._llm = llm_client
        self._max_chars = max_chars
        self._max_words = max_words
        self._timeout = timeout
        self._enabled = enabled

    def needs_refinement(self, query: str) -> bool:
        """Long or wordy queries carry filler worth stripping"""
        return len(query) > self._max_chars or len(re.findall(r"\S+", query)) > self._max_words

    async def refine(self, query: str) -> RefinedQuery:
        """
        Produce the search text for a validated query.

        Args:
            query: Validated raw query

        Returns:
            RefinedQuery; ``text == original`` when skipped or on failure
        """
        unrefined = RefinedQuery(original=query, text=query)

        if not self._enabled or not self.needs_refinement(query):
            return unrefined

        if self._llm is None or not self._llm.is_available:
            logger.warning("Refinement skipped: generative service unavailable")
            return unrefined

        prompt = self.REFINEMENT_PROMPT.format(query=query)
        try:
            raw = await run_blocking(
                self._llm.generate,
                prompt,
                max_tokens=128,
                timeout=self._timeout,
                deadline=self._timeout,
            )
        except Exception as e:
            logger.warning("Query refinement failed, using raw query: %s", e or type(e).__name__)
            return unrefined

        refined = clean_llm_text(raw)
        if not refined:
            logger.warning("Query refinement returned no text, using raw query")
            return unrefined

        logger.info("Refined query: %r -> %r", query, refined)
        return RefinedQuery(original=query, text=refined)
