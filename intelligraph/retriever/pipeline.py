"""
Research Assistant Pipeline

Pipeline:
1. Validate the raw query (reject before any upstream call)
2. Refine long queries into a concise search query (non-fatal)
3. Embed the refined query (fatal on failure)
4. Hybrid retrieval over projects, calls and researchers
5. Build the grounding prompt, or the fallback prompt when nothing matched
6. Synthesize the answer (fatal on failure)
"""

import logging
from typing import Optional, Union

from ..common.config import IntelliGraphConfig, RetrievalProfile, RetrieverConfig
from ..common.embedding_service import EmbeddingService, get_embedding_service
from ..common.errors import UpstreamUnavailableError
from ..common.graph_client import GraphClient
from ..common.llm_client import LLMClient
from ..common.llm_utils import run_blocking
from .context_builder import ContextBuilder
from .query_processor import QueryRefiner, RefinedQuery, validate_query
from .searcher import HybridSearcher, default_branches
from .synthesizer import SynthesizedAnswer, Synthesizer

logger = logging.getLogger("intelligraph.retriever.pipeline")


class ResearchAssistant:
    """
    One configurable pipeline behind every search-and-answer endpoint.

    Endpoints differ only by the RetrievalProfile they select.
    """

    def __init__(
        self,
        refiner: QueryRefiner,
        embedding_service: EmbeddingService,
        searcher: HybridSearcher,
        context_builder: ContextBuilder,
        synthesizer: Synthesizer,
        config: Optional[RetrieverConfig] = None,
    ):
        self._refiner = refiner
        self._embedding = embedding_service
        self._searcher = searcher
        self._context_builder = context_builder
        self._synthesizer = synthesizer
        self._config = config or RetrieverConfig()

    @classmethod
    def from_config(
        cls,
        config: IntelliGraphConfig,
        graph_client: GraphClient,
        llm_client: Optional[LLMClient] = None,
        embedding_service: Optional[EmbeddingService] = None,
    ) -> "ResearchAssistant":
        """Wire the pipeline from loaded configuration"""
        retriever = config.retriever
        llm_client = llm_client or LLMClient.from_config(config.llm)
        embedding_service = embedding_service or get_embedding_service(config)
        vector_branches, keyword_branches = default_branches(config.graph)

        return cls(
            refiner=QueryRefiner(
                llm_client,
                max_chars=retriever.refine_max_chars,
                max_words=retriever.refine_max_words,
                timeout=retriever.llm_timeout,
                enabled=retriever.refinement_enabled,
            ),
            embedding_service=embedding_service,
            searcher=HybridSearcher(
                graph_client,
                vector_branches=vector_branches,
                keyword_branches=keyword_branches,
                store_timeout=retriever.store_timeout,
            ),
            context_builder=ContextBuilder(currency=retriever.currency),
            synthesizer=Synthesizer(llm_client, timeout=retriever.llm_timeout),
            config=retriever,
        )

    @property
    def config(self) -> RetrieverConfig:
        return self._config

    def resolve_profile(self, profile: Union[str, RetrievalProfile, None]) -> RetrievalProfile:
        if isinstance(profile, RetrievalProfile):
            return profile
        return self._config.get_profile(profile)

    async def answer(
        self,
        query,
        profile: Union[str, RetrievalProfile, None] = None,
    ) -> SynthesizedAnswer:
        """
        Answer a free-form query from the graph.

        Args:
            query: Raw user input (untrusted)
            profile: Profile name or object (default from config)

        Returns:
            SynthesizedAnswer with answer text and ranked results

        Raises:
            InvalidInputError: missing or too-short query
            UpstreamUnavailableError: embedding or synthesis failure
            StoreError: graph store failure
        """
        profile = self.resolve_profile(profile)
        raw = validate_query(query, self._config.min_query_length)

        refined = await self._refiner.refine(raw)
        vector = await self._embed(refined)

        results = await self._searcher.retrieve(vector, refined.text, profile)

        builder = self._context_builder.with_metadata_fields(profile.metadata_fields)
        context = builder.assemble(results)
        if context is None:
            prompt = builder.build_fallback_prompt(refined, profile.relevance_threshold)
        else:
            prompt = builder.build_grounding_prompt(refined, context, len(results))

        answer = await self._synthesizer.synthesize(prompt)

        return SynthesizedAnswer(
            answer=answer,
            results=results,
            refined_query=refined,
            used_fallback=context is None,
        )

    async def _embed(self, refined: RefinedQuery):
        """Embed the refined query; any failure aborts the request."""
        if not self._embedding.is_available:
            raise UpstreamUnavailableError("AI embedding service is not configured.")
        try:
            return await run_blocking(
                self._embedding.embed_single,
                refined.text,
                deadline=self._config.embedding_timeout,
            )
        except Exception as e:
            logger.error("Embedding failed for %r: %s", refined.text, e or type(e).__name__, exc_info=True)
            raise UpstreamUnavailableError("AI embedding service error.") from e
