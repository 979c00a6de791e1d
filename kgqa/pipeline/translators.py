"""External Translator Adapters - LLM-backed stages 3 and 4.

DirectTranslator:
    One LLM call that turns the question into a graph query (JSON reply).
    The orchestrator executes the query itself.

SchemaQAChain:
    Schema-aware question answering: fetch the live schema, generate a
    Cypher query, execute it, then have the LLM answer from the top rows.
    Transient failures are retried with linear backoff.
"""

import json
import logging
import re
import time

from kgqa.graph import GraphClient
from kgqa.llm import BaseLLMClient
from kgqa.utils import retry_with_backoff

from .models import QAResult, Translation

logger = logging.getLogger(__name__)


class TranslationError(Exception):
    """An external translator could not produce a usable query or answer."""


class TranslatorUnavailableError(TranslationError):
    """The backing LLM client is disabled."""


_CODE_FENCE = re.compile(r"^```(?:json|cypher)?\s*|\s*```$", re.IGNORECASE)


def _strip_fences(text: str) -> str:
    return _CODE_FENCE.sub("", text.strip()).strip()


# ============================================================================
# Direct translator
# ============================================================================

DEFAULT_VOCABULARY = """\
- Nodes with labels: Person, Equipment, Process, Concept, Material, Organization, Location
- Common relationships: USES, CONTROLS, PRODUCES, PART_OF, MANAGES, CONTAINS, REQUIRES, AFFECTS, RELATED_TO
- Node properties: name, description, type, confidence
- Relationship properties: description, confidence"""

TRANSLATE_PROMPT = """You are a Neo4j Cypher query translator. Convert the following natural language query into a valid Cypher query.

The graph database contains:
{vocabulary}

Natural language query: "{question}"

Return ONLY a valid JSON object with this structure:
{{
  "graphQuery": "MATCH (n) WHERE n.name CONTAINS 'example' RETURN n LIMIT 10",
  "queryType": "search|analysis|relationship",
  "explanation": "This query searches for nodes containing the term 'example'"
}}"""


class DirectTranslator:
    """Single-shot natural language → graph query translation."""

    __slots__ = ("_llm", "_vocabulary")

    def __init__(self, llm: BaseLLMClient, vocabulary: str = DEFAULT_VOCABULARY):
        self._llm = llm
        self._vocabulary = vocabulary

    @property
    def available(self) -> bool:
        return self._llm.available

    async def translate(self, question: str) -> Translation:
        """Translate a question into a graph query.

        Raises:
            TranslationError: LLM disabled, call failed, or reply unusable.
        """
        if not self.available:
            raise TranslatorUnavailableError("Direct translator has no LLM provider")

        prompt = TRANSLATE_PROMPT.format(vocabulary=self._vocabulary, question=question)
        response = await self._llm.generate(prompt)
        if not response.success:
            raise TranslationError(f"Failed to translate query: {response.error}")

        try:
            payload = json.loads(_strip_fences(response.text))
        except json.JSONDecodeError as e:
            raise TranslationError(f"Failed to translate query: invalid JSON reply ({e})") from e
        if not isinstance(payload, dict):
            raise TranslationError("Failed to translate query: reply is not a JSON object")

        graph_query = str(payload.get("graphQuery") or "").strip()
        if not graph_query:
            raise TranslationError("Failed to translate query: empty graphQuery")

        return Translation(
            translated_query=graph_query,
            query_kind=str(payload.get("queryType") or "search").lower(),
            explanation=str(payload.get("explanation") or "").strip(),
        )


# ============================================================================
# Schema-aware QA chain
# ============================================================================

CYPHER_PROMPT = """Task: Generate a Cypher query to retrieve information from a Neo4j graph database based on the user's question.

IMPORTANT CONTEXT:
- Nodes have BOTH dynamic labels (like :recipe, :entity, :process) AND a 'type' property
- All nodes have these properties: id, name, description, type
- The 'type' property value matches the node label (in lowercase)
- You can query by label: MATCH (n:recipe) or by property: MATCH (n) WHERE n.type = 'recipe'

Instructions:
1. Use the provided schema for node labels and relationship types
2. For general "show nodes" queries, return comprehensive data: name, type, description
3. Use case-insensitive matching with toLower() for text comparisons
4. Default LIMIT 25 for general queries, more for specific searches
5. Return meaningful aliases for clarity

Common Patterns:
- Show all nodes: MATCH (n) RETURN n.name as name, n.type as type, n.description as description LIMIT 25
- Find by type: MATCH (n:ingredient) RETURN n OR MATCH (n) WHERE n.type = 'ingredient' RETURN n
- Find by name: MATCH (n) WHERE toLower(n.name) CONTAINS toLower('search') RETURN n
- Count by type: MATCH (n) RETURN n.type as type, count(*) as count ORDER BY count DESC

Schema:
{schema}

User Question: {question}

Return ONLY the Cypher query, no explanation.
Cypher Query:"""

ANSWER_PROMPT = """You answer questions using only the information retrieved from a knowledge graph.
If the information is empty, say that nothing relevant was found. Do not mention the query.

Information:
{context}

Question: {question}

Helpful Answer:"""

DOMAIN_CONTEXT = {
    "recipe": "In the context of recipes, ingredients, and cooking: ",
    "technical": "In the context of technical systems and components: ",
    "process": "In the context of processes and procedures: ",
}

DETAIL_INSTRUCTION = "\nProvide specific details and include all relevant relationships."

# (substring of lowercased error, suggestion) in priority order
ERROR_SUGGESTIONS = (
    (("syntax",), "Try rephrasing your question more clearly or use simpler terms"),
    (("timeout", "timed out"), "Your query might be too complex. Try breaking it into smaller questions"),
    (("rate limit",), "API rate limit reached. Please wait a moment before trying again"),
    (("connection", "driver"), "Database connection issue. Please try again in a moment"),
    (("schema",), "The query structure might not match the database. Try using different entity names"),
)
DEFAULT_SUGGESTION = "Please try rephrasing your question or contact support if the issue persists"


def suggestion_for_error(error: BaseException | str | None) -> str:
    """Map an error message onto a user-facing hint."""
    if not error:
        return "Please try rephrasing your question"
    message = str(error).lower()
    for needles, suggestion in ERROR_SUGGESTIONS:
        if any(needle in message for needle in needles):
            return suggestion
    return DEFAULT_SUGGESTION


class SchemaQAChain:
    """Generate → execute → answer, grounded on the live graph schema."""

    __slots__ = ("_llm", "_graph", "_top_k", "_backoff_base")

    def __init__(
        self,
        llm: BaseLLMClient,
        graph: GraphClient,
        top_k: int = 10,
        backoff_base: float = 1.0,
    ):
        """Initialize SchemaQAChain.

        Args:
            llm: Client used for both query generation and answering.
            graph: Graph collaborator for schema and execution.
            top_k: Rows passed to the answer step.
            backoff_base: Seconds; the n-th retry waits backoff_base * n.
        """
        self._llm = llm
        self._graph = graph
        self._top_k = top_k
        self._backoff_base = backoff_base

    @property
    def available(self) -> bool:
        return self._llm.available

    @staticmethod
    def enhance_question(question: str, domain: str | None = None) -> str:
        """Prefix a domain hint and ask for relationship details."""
        return DOMAIN_CONTEXT.get(domain or "", "") + question + DETAIL_INSTRUCTION

    async def ask(self, question: str, domain: str | None = None, max_retries: int = 2) -> QAResult:
        """Answer a question from the graph.

        Args:
            question: Natural-language question.
            domain: Optional hint (recipe, technical, process).
            max_retries: Total attempts (at least one).

        Returns:
            QAResult; failures carry an error and a suggestion.
        """
        if not self.available:
            return QAResult(
                success=False,
                error="Schema QA chain has no LLM provider",
                suggestion=suggestion_for_error(None),
            )

        start = time.time()
        enhanced = self.enhance_question(question, domain)
        attempts = max(1, max_retries)

        try:
            answer, cypher, row_count = await retry_with_backoff(
                self._run_once,
                enhanced,
                max_retries=attempts - 1,
                backoff_base=self._backoff_base,
                retryable_exceptions=(Exception,),
            )
        except Exception as e:
            logger.warning(f"SchemaQAChain: all {attempts} attempts failed: {e}")
            return QAResult(
                success=False,
                error=str(e) or type(e).__name__,
                suggestion=suggestion_for_error(e),
                metadata={"attempts": attempts, "latency_ms": int((time.time() - start) * 1000)},
            )

        return QAResult(
            success=True,
            answer=answer,
            translated_query=cypher,
            metadata={
                "question": enhanced,
                "row_count": row_count,
                "llm_model": self._llm.config.model,
                "latency_ms": int((time.time() - start) * 1000),
            },
        )

    async def _run_once(self, question: str) -> tuple[str, str, int]:
        schema = await self._graph.get_schema()

        generated = await self._llm.generate(CYPHER_PROMPT.format(schema=schema, question=question))
        if not generated.success:
            raise TranslationError(f"Cypher generation failed: {generated.error}")
        cypher = _strip_fences(generated.text)
        if not cypher:
            raise TranslationError("Cypher generation returned an empty query")

        rows = await self._graph.execute_query(cypher)
        context = json.dumps(rows[: self._top_k], default=str, indent=2)

        answered = await self._llm.generate(ANSWER_PROMPT.format(context=context, question=question))
        if not answered.success:
            raise TranslationError(f"Answer generation failed: {answered.error}")

        return answered.text.strip() or "No results found", cypher, len(rows)
