"""
Context Builder

Turns ranked search results into the context block given to the
generative model, and composes the grounding and fallback prompts.
"""

from typing import List, Optional, Sequence

from ..common.config import METADATA_FIELDS
from .query_processor import RefinedQuery
from .searcher import SearchResult

CONTEXT_SEPARATOR = "\n---\n"


# Grounding prompt template
GROUNDING_PROMPT = """ROLE: You are an expert Academic Research Assistant for the 'IntelliGraph' platform. You help users find funding, collaborators and research projects using only the database records provided below.

USER INPUT: "{query}"
{refinement_note}
CONTEXT FROM DATABASE (Top {count} matches):
{context}

INSTRUCTIONS:
1. Use ONLY the records above. Do NOT add projects, calls, people or facts that are not in the context.
2. Answer the user's question directly.
3. Synthesize connections: when a Project fits a Funding Call, or a Researcher fits either, say so and explain why they match.
{metadata_instruction}4. Cite exact titles and sources: when mentioning a Project, Funding Call or Researcher, use its exact Title and Source so the user can find it in the results list.
5. If the context only partially answers the question, answer as well as the records allow, then suggest broadening the search.
6. Format: short paragraphs or bullet points. Keep it professional but encouraging."""


METADATA_INSTRUCTION = """   Use metadata where present: mention urgency for a Deadline, note high-value Budgets, group similar results by Keywords.
"""


REFINEMENT_NOTE = """(System note: the user is actually looking for the topic "{refined}")
"""


# Fallback prompt template (nothing cleared the threshold)
FALLBACK_PROMPT = """The user searched for: "{query}". No records matching over {threshold_pct}% were found in the database.
Politely tell the user that nothing relevant was found and invite them to try different or broader terms.
Do not suggest or invent any specific projects, funding calls or researchers."""


class ContextBuilder:
    """
    Formats results for the generative model.

    Only the metadata fields enabled for the active profile are rendered.
    """

    def __init__(
        self,
        currency: str = "TL",
        metadata_fields: Sequence[str] = METADATA_FIELDS,
    ):
        """
        Args:
            currency: Unit appended to budgets
            metadata_fields: Optional fields to render when present
        """
        self._currency = currency
        self._metadata_fields = tuple(metadata_fields)

    def with_metadata_fields(self, metadata_fields: Sequence[str]) -> "ContextBuilder":
        """Same formatting with a different metadata field set"""
        return ContextBuilder(currency=self._currency, metadata_fields=metadata_fields)

    def format_result(self, result: SearchResult) -> str:
        """Render one result as a fixed-format block"""
        lines = [
            f"[TYPE: {result.result_type.value}]",
            f"Title: {result.title}",
            f"Status: {result.status or 'N/A'}",
            f"Source (Person/Inst): {result.source}",
            f"Detail: {result.description}",
        ]

        fields = self._metadata_fields
        if "budget" in fields and result.budget is not None:
            lines.append(f"Budget: {self._format_budget(result.budget)}")
        if "website" in fields and result.website:
            lines.append(f"Website: {result.website}")
        if "keywords" in fields and result.keywords:
            lines.append(f"Keywords: {', '.join(result.keywords)}")
        if "deadline" in fields and result.deadline:
            lines.append(f"Deadline: {result.deadline}")

        return "\n".join(lines)

    def _format_budget(self, budget) -> str:
        if isinstance(budget, (int, float)):
            amount = f"{budget:,.0f}" if float(budget).is_integer() else f"{budget:,.2f}"
        else:
            amount = str(budget)
        return f"{amount} {self._currency}"

    def assemble(self, results: List[SearchResult]) -> Optional[str]:
        """
        Build the context document.

        Returns:
            Blocks joined by a separator, or None when there are no results
        """
        if not results:
            return None
        return CONTEXT_SEPARATOR.join(self.format_result(r) for r in results)

    def build_grounding_prompt(self, query: RefinedQuery, context: str, count: int) -> str:
        """Prompt that restricts the model to the supplied context"""
        refinement_note = ""
        if query.was_refined:
            refinement_note = REFINEMENT_NOTE.format(refined=query.text)

        return GROUNDING_PROMPT.format(
            query=query.original,
            refinement_note=refinement_note,
            count=count,
            context=context,
            metadata_instruction=METADATA_INSTRUCTION if self._metadata_fields else "",
        )

    def build_fallback_prompt(self, query: RefinedQuery, threshold: float) -> str:
        """Prompt for a polite no-results reply"""
        return FALLBACK_PROMPT.format(
            query=query.text,
            threshold_pct=round(threshold * 100),
        )
