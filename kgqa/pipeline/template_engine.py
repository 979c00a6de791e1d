"""Pattern Template Engine - Deterministic regex → Cypher translation.

Stage 1 of the pipeline. Each TemplateRule pairs a structural pattern with a
parameterized query. Rules are tried in declaration order and the first one
whose query executes wins, so specific phrasings must be registered before
the generic catch-alls below them.
"""

import logging
import re
from typing import Any, Callable

from kgqa.graph import GraphClient

from .models import TemplateMatch, TemplateRule

logger = logging.getLogger(__name__)

GENERIC_SUGGESTION = (
    'Try rephrasing your query using terms like: "show me", "list all", '
    '"ingredients for", "components of", etc.'
)

_TRAILING_PUNCT = re.compile(r"[?!.,;:]+$")


def _clean(text: str) -> str:
    """Trim whitespace and trailing punctuation from a captured phrase."""
    return _TRAILING_PUNCT.sub("", text.strip()).strip()


def _capture(*names: str) -> Callable[[re.Match], dict[str, Any]]:
    """Build an extractor mapping capture groups 1..n onto parameter names."""
    def extract(match: re.Match) -> dict[str, Any]:
        return {name: _clean(match.group(i)) for i, name in enumerate(names, start=1)}
    return extract


def _no_params(match: re.Match) -> dict[str, Any]:
    return {}


def _rule(
    pattern: str,
    domain: str,
    description: str,
    template: str,
    extract_params: Callable[[re.Match], dict[str, Any]] = _no_params,
) -> TemplateRule:
    return TemplateRule(
        pattern=re.compile(pattern, re.IGNORECASE),
        domain=domain,
        description=description,
        template=" ".join(template.split()),
        extract_params=extract_params,
    )


# ============================================================================
# Default rules (ORDER MATTERS: specific first, generic last)
# ============================================================================

DEFAULT_RULES: tuple[TemplateRule, ...] = (
    # ---- Recipe domain ----
    _rule(
        r"(?:\b(?:what|which|show me|list|find|get)|^)\s*(?:are\s+)?(?:the\s+)?ingredients?\s+"
        r"(?:are\s+)?(?:for|of|in)\s+(.+)",
        "recipe",
        "Find ingredients for a specific recipe/dish",
        """
        MATCH (ingredient)-[r]->(dish)
        WHERE type(r) IN ['PART_OF', 'CONTAINS']
              AND toLower(dish.name) CONTAINS toLower($entity_name)
              AND ingredient.type = 'ingredient'
        RETURN DISTINCT dish.name AS entity,
               ingredient.name AS name,
               ingredient.description AS description,
               ingredient.type AS type
        ORDER BY name
        """,
        _capture("entity_name"),
    ),
    _rule(
        r"(?:\b(?:what|which|show me|list|find|get)|^)\s*(?:recipes?|dishes?|meals?)\s+"
        r"(?:with|containing|using|that have|use)\s+(.+)",
        "recipe",
        "Find recipes containing a specific ingredient",
        """
        MATCH (ingredient)-[r]->(recipe)
        WHERE type(r) IN ['PART_OF', 'CONTAINS']
              AND toLower(ingredient.name) CONTAINS toLower($ingredient_name)
              AND ingredient.type = 'ingredient'
              AND recipe.type IN ['recipe', 'dish', 'meal']
        RETURN DISTINCT ingredient.name AS ingredient,
               recipe.name AS name,
               recipe.description AS description,
               recipe.type AS type
        ORDER BY name
        """,
        _capture("ingredient_name"),
    ),
    # ---- Technical domain ----
    _rule(
        r"\b(?:what|which|show me|list)\s+(?:are\s+)?(?:the\s+)?(?:components?|parts?)\s+(?:of|in|for)\s+(.+)",
        "technical",
        "Find components of a system",
        """
        MATCH (system)
        WHERE toLower(system.name) CONTAINS toLower($system_name)
        OPTIONAL MATCH (system)-[r:HAS_COMPONENT|PART_OF|CONTAINS]-(component)
        RETURN system.name AS system_name,
               system.type AS system_type,
               collect(DISTINCT {
                 name: component.name,
                 type: component.type,
                 description: component.description
               }) AS components
        """,
        _capture("system_name"),
    ),
    # ---- Relationships ----
    _rule(
        r"\b(?:how|what)\s+(?:does|is)\s+(.+?)\s+(?:connected to|related to|linked to|associated with)\s+(.+)",
        "relationship",
        "Find relationship between two entities",
        """
        MATCH (n1), (n2)
        WHERE toLower(n1.name) CONTAINS toLower($source_name)
              AND toLower(n2.name) CONTAINS toLower($target_name)
              AND n1 <> n2
        MATCH path = shortestPath((n1)-[*..3]-(n2))
        RETURN n1.name AS source,
               n2.name AS target,
               [rel IN relationships(path) | type(rel)] AS relationship_path,
               length(path) AS path_length
        LIMIT 10
        """,
        _capture("source_name", "target_name"),
    ),
    # ---- Graph overview ----
    _rule(
        r"^(?:what|which|show me|list)\s+types?\s+(?:of\s+)?nodes?",
        "general",
        "Show node types",
        """
        MATCH (n)
        RETURN n.type AS node_type, count(*) AS count
        ORDER BY count DESC
        """,
    ),
    _rule(
        r"^(?:show|list|get|what are|which are)\s*(?:all\s*)?(?:the\s*)?nodes?$",
        "general",
        "Show all nodes simple",
        """
        MATCH (n)
        RETURN n.name AS name, n.type AS type, n.description AS description
        LIMIT 50
        """,
    ),
    _rule(
        r"^(?:which|what|show me|list all|show all|get all)?\s*nodes?\s*"
        r"(?:do you have|exist|are there|in the graph)?.*$",
        "general",
        "Show all nodes in the graph",
        """
        MATCH (n)
        WITH n.type AS type, count(*) AS type_count, collect(n)[..5] AS samples
        RETURN type, type_count,
               [s IN samples | {name: s.name, description: s.description}] AS examples
        ORDER BY type_count DESC
        """,
    ),
    # ---- Generic catch-alls ----
    _rule(
        r"\b(?:what is|describe|tell me about|explain)\s+(.+)",
        "general",
        "Find specific entity by name",
        """
        MATCH (n)
        WHERE toLower(n.name) CONTAINS toLower($entity_name)
        OPTIONAL MATCH (n)-[r]-(related)
        RETURN n.name AS name, n.type AS type, n.description AS description,
               collect(DISTINCT {
                 relationship: type(r),
                 node: related.name,
                 node_type: related.type
               }) AS relationships
        LIMIT 5
        """,
        _capture("entity_name"),
    ),
    _rule(
        r"\b(?:how to|steps to|process for|procedure for)\s+(.+)",
        "process",
        "Find process or steps",
        """
        MATCH (process)
        WHERE toLower(process.name) CONTAINS toLower($process_name)
              OR toLower(process.description) CONTAINS toLower($process_name)
        OPTIONAL MATCH (process)-[r:REQUIRES|USES|PRODUCES]-(related)
        RETURN process.name AS process_name,
               process.description AS description,
               collect(DISTINCT {
                 relationship: type(r),
                 name: related.name,
                 type: related.type
               }) AS related_entities
        """,
        _capture("process_name"),
    ),
    _rule(
        r"\b(?:how many|count|number of)\s+(.+)",
        "statistics",
        "Count entities",
        """
        MATCH (n)
        WHERE toLower(n.type) CONTAINS toLower($entity_type)
              OR toLower(n.name) CONTAINS toLower($entity_type)
        RETURN n.type AS type, count(n) AS count,
               collect(DISTINCT n.name)[..10] AS examples
        ORDER BY count DESC
        """,
        _capture("entity_type"),
    ),
)


class TemplateQueryEngine:
    """Runs a query through the ordered template rules.

    A structural match whose execution raises is logged and skipped so the
    next matching rule gets a chance. An empty result set is a success.
    """

    __slots__ = ("_graph", "_rules")

    def __init__(self, graph: GraphClient, rules: tuple[TemplateRule, ...] | list[TemplateRule] = DEFAULT_RULES):
        self._graph = graph
        self._rules = tuple(rules)
        logger.info(f"TemplateQueryEngine initialized with {len(self._rules)} rules")

    def descriptions(self) -> list[str]:
        """Human-readable rule descriptions, in match order."""
        return [rule.description for rule in self._rules]

    async def process(self, query: str) -> TemplateMatch:
        """Match and execute the first applicable template.

        Args:
            query: Raw natural-language query.

        Returns:
            TemplateMatch with rows on success, or a generic suggestion.
        """
        text = query.strip()
        failed: list[str] = []

        for rule in self._rules:
            match = rule.match(text)
            if match is None:
                continue

            try:
                parameters = rule.extract_params(match)
                logger.debug(f"TemplateEngine: matched '{rule.description}' params={parameters}")
                rows = await self._graph.execute_query(rule.template, parameters)
            except Exception as e:
                logger.warning(f"TemplateEngine: rule '{rule.description}' failed: {e}")
                failed.append(rule.description)
                continue

            logger.info(f"TemplateEngine: '{rule.description}' returned {len(rows)} rows")
            return TemplateMatch(
                success=True,
                domain=rule.domain,
                template=rule.template,
                parameters=parameters,
                rows=rows,
                matched_description=rule.description,
            )

        return TemplateMatch(
            success=False,
            error="no matching template",
            suggestion=GENERIC_SUGGESTION,
            failed_rules=failed,
        )
