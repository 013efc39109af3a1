"""
Retriever - Hybrid Semantic Search and Answer Synthesis

Searches the IntelliGraph graph and synthesizes grounded answers using an LLM.

Key Components:
- QueryRefiner: Distils long conversational queries into a search query
- HybridSearcher: Vector search on projects/calls + keyword search on researchers
- ContextBuilder: Formats results and composes grounding/fallback prompts
- Synthesizer: LLM answer synthesis
- ResearchAssistant: The pipeline tying them together

Pipeline:
1. Validate and refine the user query
2. Embed the refined query
3. Retrieve, merge and rank matches above the relevance threshold
4. Synthesize an answer grounded in the matches (or a polite fallback)
"""

from .query_processor import QueryRefiner, RefinedQuery, validate_query
from .searcher import HybridSearcher, KeywordSearcher, ResultType, SearchResult, merge_results
from .context_builder import ContextBuilder
from .synthesizer import Synthesizer, SynthesizedAnswer
from .pipeline import ResearchAssistant

__all__ = [
    "QueryRefiner",
    "RefinedQuery",
    "validate_query",
    "HybridSearcher",
    "KeywordSearcher",
    "ResultType",
    "SearchResult",
    "merge_results",
    "ContextBuilder",
    "Synthesizer",
    "SynthesizedAnswer",
    "ResearchAssistant",
]
