"""
IntelliGraph Retrieval

Hybrid semantic search and answer synthesis for the IntelliGraph
research-collaboration platform.

Philosophy:
- Answers are grounded only in records retrieved for the request
- Projects and Funding Calls are matched by embedding similarity
- Researchers are matched by keyword (they carry no embedding)
- Nothing is cached between requests

Usage:
    from intelligraph.common import load_config, EmbeddingService, GraphClient, LLMClient
    from intelligraph.retriever import ResearchAssistant, HybridSearcher, Synthesizer
"""

__version__ = "0.1.0"
