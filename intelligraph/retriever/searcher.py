"""
Searcher

Hybrid retrieval over the IntelliGraph graph store.
Projects and Funding Calls are matched by vector similarity, Researchers by
keyword containment. Branches run concurrently, are joined, then merged and
ranked by score.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..common.config import GraphConfig, RetrievalProfile
from ..common.embedding_service import EmbeddingService
from ..common.errors import InvalidInputError, StoreError
from ..common.graph_client import GraphClient, Relation
from ..common.llm_utils import run_blocking

logger = logging.getLogger("intelligraph.retriever.searcher")


class ResultType(str, Enum):
    """Record types a search can return"""
    PROJECT = "PROJECT"
    FUNDING_CALL = "FUNDING CALL"
    RESEARCHER = "RESEARCHER"


@dataclass
class SearchResult:
    """A single ranked match, normalised across record types"""
    result_type: ResultType
    id: Optional[str]
    title: str
    description: str
    source: str  # author(s), issuing institution, or researcher's institution
    status: Optional[str]
    score: float
    matched_by: str = "vector"  # "vector" or "keyword"
    budget: Optional[float] = None
    deadline: Optional[str] = None
    website: Optional[str] = None
    keywords: List[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        """Short summary for display"""
        return f"{self.title} ({self.result_type.value}, {self.score:.2f})"

    def to_dict(self) -> Dict[str, Any]:
        """JSON shape returned to the UI"""
        return {
            "type": self.result_type.value,
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "source": self.source,
            "status": self.status,
            "score": self.score,
            "budget": self.budget,
            "website": self.website,
            "keywords": self.keywords or None,
            "deadline": self.deadline,
        }


@dataclass(frozen=True)
class VectorBranch:
    """A record type searched through its embedding index"""
    name: str
    result_type: ResultType
    index_name: str
    id_field: str
    body_field: str
    relation: Relation


@dataclass(frozen=True)
class KeywordBranch:
    """A record type without embeddings, matched by substring"""
    name: str
    result_type: ResultType
    label: str
    fields: Tuple[str, ...]
    id_field: str
    title_field: str
    body_field: str
    source_field: str


def default_branches(graph_config: Optional[GraphConfig] = None) -> Tuple[List[VectorBranch], List[KeywordBranch]]:
    """Project / Call vector branches and the Researcher keyword branch"""
    graph_config = graph_config or GraphConfig()
    vector_branches = [
        VectorBranch(
            name="projects",
            result_type=ResultType.PROJECT,
            index_name=graph_config.project_index,
            id_field="projectId",
            body_field="summary",
            relation=Relation(rel_type="IS_AUTHOR_OF", label="Academic"),
        ),
        VectorBranch(
            name="calls",
            result_type=ResultType.FUNDING_CALL,
            index_name=graph_config.call_index,
            id_field="callId",
            body_field="description",
            relation=Relation(rel_type="OPENS_CALL", label="Institution"),
        ),
    ]
    keyword_branches = [
        KeywordBranch(
            name="researchers",
            result_type=ResultType.RESEARCHER,
            label="Academic",
            fields=("name", "bio"),
            id_field="userId",
            title_field="name",
            body_field="bio",
            source_field="institution",
        ),
    ]
    return vector_branches, keyword_branches


def _normalize_keywords(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [k.strip() for k in value.split(",") if k.strip()]
    return [str(k) for k in value if k]


def _clamp_score(score: float) -> float:
    return max(0.0, min(1.0, float(score)))


def merge_results(
    branch_results: Sequence[List[SearchResult]],
    result_cap: Optional[int] = None,
) -> List[SearchResult]:
    """
    Concatenate branch results, rank by score, and apply the global cap.

    The sort is stable, so equal scores keep branch order
    (projects, calls, researchers).
    """
    merged = [r for results in branch_results for r in results]
    merged.sort(key=lambda r: r.score, reverse=True)
    if result_cap is not None:
        merged = merged[:result_cap]
    return merged


class HybridSearcher:
    """
    Searches projects, funding calls and researchers for one query.

    Failure policy:
    - A vector branch that errors or times out contributes no results
    - A keyword branch failure aborts retrieval with StoreError
    - An empty overall result is a valid outcome, not an error
    """

    def __init__(
        self,
        graph_client: GraphClient,
        vector_branches: Optional[List[VectorBranch]] = None,
        keyword_branches: Optional[List[KeywordBranch]] = None,
        store_timeout: float = 10.0,
    ):
        """
        Initialize searcher.

        Args:
            graph_client: Graph store client
            vector_branches: Embedding-indexed record types (default: projects, calls)
            keyword_branches: Keyword-matched record types (default: researchers)
            store_timeout: Seconds allowed per branch query
        """
        defaults = default_branches()
        self._graph = graph_client
        self._vector_branches = defaults[0] if vector_branches is None else vector_branches
        self._keyword_branches = defaults[1] if keyword_branches is None else keyword_branches
        self._store_timeout = store_timeout

    async def retrieve(
        self,
        vector: Optional[List[float]],
        refined_query: str,
        profile: Optional[RetrievalProfile] = None,
    ) -> List[SearchResult]:
        """
        Run all branches and return the merged ranking.

        Args:
            vector: Query embedding (degenerate vectors skip vector branches)
            refined_query: Text for keyword matching
            profile: Limits and threshold (default RetrievalProfile())

        Returns:
            SearchResults sorted by score descending, at most result_cap

        Raises:
            StoreError: if a keyword branch fails
        """
        profile = profile or RetrievalProfile()

        branches: List[Any] = []
        tasks = []

        if EmbeddingService.is_degenerate(vector):
            logger.info("Degenerate query vector, skipping vector branches")
        else:
            for branch in self._vector_branches:
                branches.append(branch)
                tasks.append(self._search_vector_branch(branch, vector, profile))

        for branch in self._keyword_branches:
            branches.append(branch)
            tasks.append(self._search_keyword_branch(branch, refined_query, profile))

        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        branch_results: List[List[SearchResult]] = []
        for branch, outcome in zip(branches, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(branch, VectorBranch):
                    logger.warning(
                        "Vector branch '%s' failed, contributing no results: %s",
                        branch.name, outcome or type(outcome).__name__,
                    )
                    branch_results.append([])
                    continue
                if isinstance(outcome, StoreError):
                    raise outcome
                raise StoreError(f"Keyword search '{branch.name}' failed: {outcome or type(outcome).__name__}") from outcome
            branch_results.append(outcome)

        results = merge_results(branch_results, profile.result_cap)
        logger.info(
            "Retrieved %d result(s) (%s)",
            len(results),
            ", ".join(f"{b.name}={len(r)}" for b, r in zip(branches, branch_results)),
        )
        if results:
            logger.debug("Top matches: %s", "; ".join(r.summary for r in results[:3]))
        return results

    async def _search_vector_branch(
        self,
        branch: VectorBranch,
        vector: List[float],
        profile: RetrievalProfile,
    ) -> List[SearchResult]:
        """Similarity search on one index, thresholded and joined to its source"""
        rows = await run_blocking(
            self._graph.similarity_search,
            branch.index_name,
            vector,
            profile.branch_topk,
            min_score=profile.relevance_threshold,
            relation=branch.relation,
            deadline=self._store_timeout,
        )

        results = [
            self._to_vector_result(branch, row, profile)
            for row in rows
            if row.get("score", 0.0) >= profile.relevance_threshold
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        if profile.branch_limit is not None:
            results = results[:profile.branch_limit]
        return results

    async def _search_keyword_branch(
        self,
        branch: KeywordBranch,
        text: str,
        profile: RetrievalProfile,
    ) -> List[SearchResult]:
        """Substring match on the branch fields with a sentinel score"""
        # never fetch more rows than the merge can keep
        limit = profile.branch_limit if profile.branch_limit is not None else profile.result_cap
        rows = await run_blocking(
            self._graph.substring_search,
            branch.label,
            branch.fields,
            text,
            limit=limit,
            deadline=self._store_timeout,
        )
        return [self._to_keyword_result(branch, row, profile) for row in rows]

    def _to_vector_result(
        self,
        branch: VectorBranch,
        row: Dict[str, Any],
        profile: RetrievalProfile,
    ) -> SearchResult:
        """Convert a similarity row to SearchResult"""
        node = row.get("node", {})
        related = row.get("related") or []
        result = SearchResult(
            result_type=branch.result_type,
            id=node.get(branch.id_field),
            title=node.get("title") or "Untitled",
            description=node.get(branch.body_field) or "",
            source=", ".join(related) if related else "Unknown",
            status=node.get("status"),
            score=_clamp_score(row.get("score", 0.0)),
            matched_by="vector",
        )
        self._fill_metadata(result, node, profile.metadata_fields)
        return result

    def _to_keyword_result(
        self,
        branch: KeywordBranch,
        row: Dict[str, Any],
        profile: RetrievalProfile,
    ) -> SearchResult:
        """Convert a substring-match row to SearchResult"""
        node = row.get("node", {})
        return SearchResult(
            result_type=branch.result_type,
            id=node.get(branch.id_field),
            title=node.get(branch.title_field) or "Unnamed",
            description=node.get(branch.body_field) or "",
            source=node.get(branch.source_field) or "Unknown",
            status=None,
            score=_clamp_score(profile.keyword_score),
            matched_by="keyword",
        )

    @staticmethod
    def _fill_metadata(result: SearchResult, node: Dict[str, Any], fields: Sequence[str]) -> None:
        if "budget" in fields and node.get("budget") is not None:
            result.budget = node["budget"]
        if "deadline" in fields:
            result.deadline = node.get("deadline")
        if "website" in fields:
            result.website = node.get("website")
        if "keywords" in fields:
            result.keywords = _normalize_keywords(node.get("keywords"))


class KeywordSearcher:
    """
    Plain text search over Projects and Calls (no embedding, no LLM).

    Matches are ranked in the store by where the term appears: title, then
    keywords, then body; newest first within a rank.
    """

    SEARCH_TYPES = ("all", "projects", "funding-calls")

    def __init__(
        self,
        graph_client: GraphClient,
        limit: int = 20,
        store_timeout: float = 10.0,
        min_length: int = 2,
    ):
        self._graph = graph_client
        self._limit = limit
        self._store_timeout = store_timeout
        self._min_length = min_length

    async def search(self, query: Optional[str], search_type: str = "all") -> Dict[str, Any]:
        """
        Search projects and/or funding calls.

        Returns:
            {"projects": [...], "fundingCalls": [...], "totalResults": n}
            plus "combined" when search_type is "all"

        Raises:
            InvalidInputError: short query or unknown search type
            StoreError: graph store failure
        """
        if not query or len(query.strip()) < self._min_length:
            raise InvalidInputError(f"Search query must be at least {self._min_length} characters long.")
        if search_type not in self.SEARCH_TYPES:
            raise InvalidInputError(f"Unknown search type: {search_type}")
        query = query.strip()

        results: Dict[str, Any] = {"projects": [], "fundingCalls": [], "totalResults": 0}

        if search_type in ("projects", "all"):
            rows = await self._scan(
                "Project", ("title", "summary", "fieldOfStudy"), query,
                Relation(rel_type="IS_AUTHOR_OF", label="Academic"),
                body_field="summary",
            )
            results["projects"] = [
                {**row["node"], "authorName": ", ".join(row["related"]) or None, "type": "project"}
                for row in rows
            ]

        if search_type in ("funding-calls", "all"):
            rows = await self._scan(
                "Call", ("title", "description", "eligibility"), query,
                Relation(rel_type="OPENS_CALL", label="Institution"),
                body_field="description",
            )
            results["fundingCalls"] = [
                {**row["node"], "institutionName": ", ".join(row["related"]) or None, "type": "funding-call"}
                for row in rows
            ]

        results["totalResults"] = len(results["projects"]) + len(results["fundingCalls"])

        if search_type == "all":
            combined = results["projects"] + results["fundingCalls"]
            combined.sort(key=lambda item: str(item.get("createdAt") or ""), reverse=True)
            combined.sort(key=lambda item: query.lower() not in str(item.get("title") or "").lower())
            results["combined"] = combined[:self._limit]

        return results

    async def _scan(
        self,
        label: str,
        fields: Tuple[str, ...],
        query: str,
        relation: Relation,
        body_field: str,
    ) -> List[Dict[str, Any]]:
        """Top matches for one label, ranked title > keywords > body, newest first"""
        try:
            return await run_blocking(
                self._graph.substring_search,
                label,
                fields,
                query,
                limit=self._limit,
                relation=relation,
                list_fields=("keywords",),
                rank_by=("title", "keywords", body_field),
                newest_first="createdAt",
                deadline=self._store_timeout,
            )
        except asyncio.TimeoutError as e:
            raise StoreError(f"Search on {label} timed out") from e
