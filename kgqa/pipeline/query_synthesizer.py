"""Query Synthesizer - Builds a graph query from an NLP analysis.

One builder per Intent. The dispatch table must cover every Intent member;
UNKNOWN maps to None (no query can be derived).
"""

import logging
from typing import Any, Callable

from kgqa.graph import GraphClient

from .models import Intent, NLPResult, SynthesisResult, SynthesizedQuery

logger = logging.getLogger(__name__)

# Words that name the question rather than its target
QUERY_WORDS = frozenset([
    "what", "which", "show", "list", "find", "get", "give", "tell", "how",
    "many", "much", "all", "display", "me", "do", "you", "have", "there",
    "need", "needed", "use", "used", "using", "contain", "containing", "with",
])


def _q(text: str) -> str:
    return " ".join(text.split())


NODE_OVERVIEW = _q("""
    MATCH (n)
    WITH n.type AS type, count(*) AS type_count, collect(n)[..5] AS samples
    RETURN type, type_count,
           [s IN samples | {name: s.name, description: s.description}] AS examples
    ORDER BY type_count DESC
""")

ALL_INGREDIENTS = _q("""
    MATCH (n)
    WHERE n.type = 'ingredient'
    RETURN DISTINCT n.name AS name, n.description AS description
    ORDER BY name
    LIMIT 50
""")


def _list_ingredients(nlp: NLPResult) -> SynthesizedQuery:
    return SynthesizedQuery(ALL_INGREDIENTS)


def _list_recipes(nlp: NLPResult) -> SynthesizedQuery:
    return SynthesizedQuery(_q("""
        MATCH (n)
        WHERE n.type IN ['recipe', 'dish', 'meal']
        RETURN DISTINCT n.name AS name, n.description AS description, n.type AS type
        ORDER BY name
        LIMIT 50
    """))


def _find_ingredients(nlp: NLPResult) -> SynthesizedQuery:
    target = nlp.first_entity(skip_terms=("ingredient",), ignore=QUERY_WORDS)
    if target is None:
        return SynthesizedQuery(ALL_INGREDIENTS)
    return SynthesizedQuery(
        _q("""
            MATCH (ingredient)-[r]->(dish)
            WHERE type(r) IN ['PART_OF', 'CONTAINS']
                  AND toLower(dish.name) CONTAINS toLower($entity_name)
                  AND ingredient.type = 'ingredient'
            RETURN DISTINCT dish.name AS entity,
                   ingredient.name AS name,
                   ingredient.description AS description,
                   ingredient.type AS type
            ORDER BY name
        """),
        {"entity_name": target},
    )


def _find_recipes(nlp: NLPResult) -> SynthesizedQuery | None:
    target = nlp.first_entity(skip_terms=("recipe", "dish", "meal"), ignore=QUERY_WORDS)
    if target is None:
        return None
    return SynthesizedQuery(
        _q("""
            MATCH (ingredient)-[r]->(recipe)
            WHERE type(r) IN ['PART_OF', 'CONTAINS']
                  AND toLower(ingredient.name) CONTAINS toLower($ingredient_name)
                  AND ingredient.type = 'ingredient'
                  AND recipe.type IN ['recipe', 'dish', 'meal']
            RETURN DISTINCT ingredient.name AS ingredient,
                   recipe.name AS name,
                   recipe.description AS description
            ORDER BY name
        """),
        {"ingredient_name": target},
    )


def _count_entities(nlp: NLPResult) -> SynthesizedQuery | None:
    if not nlp.keywords:
        return None
    return SynthesizedQuery(
        _q("""
            MATCH (n)
            WHERE any(keyword IN $keywords WHERE
                  toLower(n.type) CONTAINS keyword OR toLower(n.name) CONTAINS keyword)
            RETURN n.type AS type, count(n) AS count
            ORDER BY count DESC
        """),
        {"keywords": nlp.keywords},
    )


def _list_entities(nlp: NLPResult) -> SynthesizedQuery | None:
    text = nlp.original_query.lower()
    keywords = nlp.keywords

    # "which nodes do you have", "what nodes exist"
    if "node" in text and ("have" in text or "exist" in text or "do you" in text):
        return SynthesizedQuery(NODE_OVERVIEW)

    # "list all recipes", "all ingredients"
    if ("all" in keywords or "list" in keywords) and len(keywords) > 1:
        node_type = next((k for k in keywords if k not in QUERY_WORDS), None)
        if node_type is None:
            return SynthesizedQuery(NODE_OVERVIEW)
        return SynthesizedQuery(
            _q("""
                MATCH (n)
                WITH n, toLower(coalesce(n.type, '')) AS t, toLower(labels(n)[0]) AS label
                WHERE t = $node_type OR t + 's' = $node_type OR t = $node_type + 's'
                      OR label = $node_type OR label + 's' = $node_type OR label = $node_type + 's'
                RETURN n.type AS type,
                       collect(DISTINCT {name: n.name, description: n.description}) AS entities
                LIMIT 100
            """),
            {"node_type": node_type},
        )

    if not keywords:
        return None
    return SynthesizedQuery(
        _q("""
            MATCH (n)
            WHERE any(keyword IN $keywords WHERE
                  toLower(n.type) CONTAINS keyword OR toLower(n.name) CONTAINS keyword)
            RETURN n.type AS type, collect(DISTINCT n.name)[..20] AS entities
        """),
        {"keywords": keywords},
    )


def _keyword_search(nlp: NLPResult) -> SynthesizedQuery | None:
    if not nlp.keywords:
        return None
    return SynthesizedQuery(
        _q("""
            MATCH (n)
            WHERE any(keyword IN $keywords WHERE
                  toLower(n.name) CONTAINS keyword OR toLower(n.description) CONTAINS keyword)
            RETURN n.name AS name, labels(n) AS labels, n.type AS type, n.description AS description
            LIMIT 10
        """),
        {"keywords": nlp.keywords},
    )


QueryBuilder = Callable[[NLPResult], SynthesizedQuery | None]

INTENT_BUILDERS: dict[Intent, QueryBuilder | None] = {
    Intent.LIST_INGREDIENTS: _list_ingredients,
    Intent.LIST_RECIPES: _list_recipes,
    Intent.FIND_INGREDIENTS: _find_ingredients,
    Intent.FIND_RECIPES: _find_recipes,
    Intent.COUNT_ENTITIES: _count_entities,
    Intent.LIST_ENTITIES: _list_entities,
    Intent.FIND_PROCEDURES: _keyword_search,
    Intent.FIND_PROPERTIES: _keyword_search,
    Intent.FIND_RELATIONSHIPS: _keyword_search,
    Intent.DESCRIBE_ENTITY: _keyword_search,
    Intent.FIND_COMPONENTS: _keyword_search,
    Intent.ANALYZE_NETWORK: _keyword_search,
    Intent.UNKNOWN: None,
}

_missing = set(Intent) - set(INTENT_BUILDERS)
if _missing:
    raise RuntimeError(f"INTENT_BUILDERS missing intents: {sorted(i.value for i in _missing)}")


class QuerySynthesizer:
    """Builds and executes the stage-2 query for an NLP analysis."""

    __slots__ = ("_graph",)

    def __init__(self, graph: GraphClient):
        self._graph = graph

    @staticmethod
    def build(nlp: NLPResult) -> SynthesizedQuery | None:
        """Build a query without executing it. None if nothing can be derived."""
        builder = INTENT_BUILDERS[nlp.intent.name]
        if builder is None:
            return None
        return builder(nlp)

    async def synthesize(self, nlp: NLPResult) -> SynthesisResult:
        synthesized = self.build(nlp)
        if synthesized is None:
            return SynthesisResult(
                success=False,
                error=f"Could not generate query from NLP analysis (intent={nlp.intent.name.value})",
            )

        try:
            rows: list[dict[str, Any]] = await self._graph.execute_query(
                synthesized.query, synthesized.parameters
            )
        except Exception as e:
            logger.warning(f"QuerySynthesizer: execution failed for intent {nlp.intent.name.value}: {e}")
            return SynthesisResult(
                success=False,
                query=synthesized.query,
                parameters=synthesized.parameters,
                error=str(e),
            )

        return SynthesisResult(
            success=True,
            query=synthesized.query,
            parameters=synthesized.parameters,
            rows=rows,
        )
