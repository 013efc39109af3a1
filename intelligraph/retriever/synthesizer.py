"""
Synthesizer

LLM-based answer synthesis from the grounding or fallback prompt.

Key principle: one generative call per request, no retries.
A failed call is fatal for the request; transport retries belong to the
provider SDK.
"""

import logging
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

from ..common.errors import UpstreamUnavailableError
from ..common.llm_client import LLMClient
from ..common.llm_utils import run_blocking
from .query_processor import RefinedQuery
from .searcher import SearchResult

logger = logging.getLogger("intelligraph.retriever.synthesizer")


@dataclass
class SynthesizedAnswer:
    """Final answer bundled with the ranked results it was grounded on"""
    answer: str
    results: List[SearchResult] = field(default_factory=list)
    refined_query: Optional[RefinedQuery] = None
    used_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "results": [r.to_dict() for r in self.results],
        }


class Synthesizer:
    """
    Sends the composed prompt to the generative service.
    """

    def __init__(
        self,
        llm_client: Optional[LLMClient],
        timeout: float = 30.0,
        max_tokens: int = 1024,
    ):
        """
        Initialize synthesizer.

        Args:
            llm_client: Generative client
            timeout: Seconds allowed for the synthesis call
            max_tokens: Output budget for the answer
        """
        self._llm = llm_client
        self._timeout = timeout
        self._max_tokens = max_tokens

    @property
    def has_llm(self) -> bool:
        """Check if LLM is available"""
        return self._llm is not None and self._llm.is_available

    async def synthesize(self, prompt: str) -> str:
        """
        Generate the answer text for a prompt.

        Raises:
            UpstreamUnavailableError: provider missing, failing, timing out,
                or returning an empty answer
        """
        if not self.has_llm:
            raise UpstreamUnavailableError("AI generation service is not configured.")

        try:
            answer = await run_blocking(
                self._llm.generate,
                prompt,
                max_tokens=self._max_tokens,
                timeout=self._timeout,
                deadline=self._timeout,
            )
        except Exception as e:
            logger.error("Answer synthesis failed: %s", e or type(e).__name__, exc_info=True)
            raise UpstreamUnavailableError("AI generation service error.") from e

        if not answer or not answer.strip():
            raise UpstreamUnavailableError("AI generation service returned an empty answer.")
        return answer.strip()
