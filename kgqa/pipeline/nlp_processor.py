"""NLP Processor - Heuristic intent, entity and keyword extraction.

Stage 2 of the pipeline analyses the query without any model:
1. Classify intent by keyword overlap (with two ingredient overrides)
2. Extract entities into typed buckets (proper nouns, quantities, ...)
3. Extract keywords (stopword-filtered, order-preserving)
4. Combine the three into a single confidence

The QuerySynthesizer turns the result into a graph query; the orchestrator
only runs it when confidence clears its threshold.
"""

import logging
import re

from .models import EntityCategory, Intent, IntentMatch, NLPResult

logger = logging.getLogger(__name__)

STOPWORDS = frozenset([
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "be", "has", "had", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "can", "shall",
])

# Scored in this order; ties keep the earlier intent
INTENT_KEYWORDS: dict[Intent, tuple[str, ...]] = {
    Intent.LIST_INGREDIENTS: ("ingredient", "ingredients"),
    Intent.LIST_RECIPES: ("recipe", "recipes", "dish", "dishes", "meal", "meals"),
    Intent.FIND_PROCEDURES: (
        "step", "steps", "instruction", "instructions", "how",
        "procedure", "process", "method", "way",
    ),
    Intent.FIND_PROPERTIES: (
        "time", "duration", "temperature", "size", "weight",
        "amount", "quantity", "measure",
    ),
    Intent.FIND_RELATIONSHIPS: (
        "connected", "related", "linked", "depends", "requires",
        "uses", "produces", "affects",
    ),
    Intent.COUNT_ENTITIES: ("count", "number", "many", "much", "total"),
    Intent.LIST_ENTITIES: (
        "list", "show", "display", "all", "every", "each", "get", "find",
        "which", "what", "nodes", "have", "exist", "see",
    ),
    Intent.DESCRIBE_ENTITY: ("describe", "explain", "tell", "about", "details", "information"),
    Intent.FIND_COMPONENTS: (
        "component", "part", "module", "system", "unit", "element",
        "piece", "contains", "made", "consists", "includes",
    ),
    Intent.ANALYZE_NETWORK: ("network", "graph", "connection", "path", "route", "chain", "link"),
}

OVERRIDE_CONFIDENCE = 0.9
LISTING_WORDS = frozenset(["list", "show", "all"])
TARGET_WORDS = frozenset(["for", "in", "of"])
RECIPE_WORDS = ("recipe", "dish", "meal")
CONTAINMENT_WORDS = frozenset(["with", "containing", "using", "contain", "use"])

INTENT_EXAMPLES: dict[Intent, str] = {
    Intent.FIND_INGREDIENTS: 'Example: "What ingredients are in chocolate cake?"',
    Intent.LIST_INGREDIENTS: 'Example: "List all ingredients"',
    Intent.LIST_RECIPES: 'Example: "Show me all recipes"',
    Intent.FIND_RECIPES: 'Example: "Show me recipes with tomatoes"',
    Intent.FIND_PROCEDURES: 'Example: "How to make pizza dough"',
    Intent.FIND_PROPERTIES: 'Example: "What temperature is bread baked at?"',
    Intent.FIND_RELATIONSHIPS: 'Example: "How is flour related to bread?"',
    Intent.COUNT_ENTITIES: 'Example: "How many ingredients do we have?"',
    Intent.LIST_ENTITIES: 'Example: "Which nodes do you have?"',
    Intent.DESCRIBE_ENTITY: 'Example: "Tell me about sourdough"',
    Intent.FIND_COMPONENTS: 'Example: "What are the components of the engine?"',
    Intent.ANALYZE_NETWORK: 'Example: "Show the path from flour to bread"',
}

_TOKEN = re.compile(r"[A-Za-z0-9_]+")


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens."""
    return _TOKEN.findall(text.lower())


class NLPProcessor:
    """Keyword-overlap intent classifier and regex entity extractor.

    Every step is its own method so callers (and tests) can use them
    separately; ``process`` chains them.
    """

    __slots__ = ("_intent_keywords", "_stopwords")

    ENTITY_PATTERNS: dict[EntityCategory, re.Pattern] = {
        EntityCategory.PROPER_NOUNS: re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)\b"),
        EntityCategory.QUOTED: re.compile(r"[\"']([^\"']+)[\"']"),
        EntityCategory.QUANTITIES: re.compile(
            r"\b\d+(?:\.\d+)?\s*(?:cup|tablespoon|tbsp|teaspoon|tsp|pound|lb|ounce|oz|"
            r"gram|g|kilogram|kg|ml|liter|l)s?\b",
            re.IGNORECASE,
        ),
        EntityCategory.TIME_UNITS: re.compile(
            r"\b\d+\s*(?:minute|hour|second|day)s?\b", re.IGNORECASE
        ),
        EntityCategory.TEMPERATURES: re.compile(
            r"\b\d+\s*(?:°|degrees?)\s*(?:[CF]\b|celsius\b|fahrenheit\b)?", re.IGNORECASE
        ),
        EntityCategory.IDENTIFIERS: re.compile(r"\b([A-Z0-9]{2,}(?:[-_][A-Z0-9]+)*)\b"),
    }

    # Buckets that report the captured group rather than the full match
    _GROUP_BUCKETS = frozenset([
        EntityCategory.PROPER_NOUNS,
        EntityCategory.QUOTED,
        EntityCategory.IDENTIFIERS,
    ])

    def __init__(
        self,
        intent_keywords: dict[Intent, tuple[str, ...]] | None = None,
        stopwords: frozenset[str] = STOPWORDS,
    ):
        self._intent_keywords = intent_keywords or INTENT_KEYWORDS
        self._stopwords = stopwords

    def process(self, query: str) -> NLPResult:
        """Run the full analysis on a query."""
        intent = self.classify_intent(query)
        entities = self.extract_entities(query)
        keywords = self.extract_keywords(query)
        confidence = self.calculate_confidence(intent, entities, keywords)

        logger.debug(
            f"NLPProcessor: intent={intent.name.value} ({intent.confidence:.2f}), "
            f"buckets={[b.value for b in entities]}, confidence={confidence:.2f}"
        )
        return NLPResult(
            original_query=query,
            intent=intent,
            entities=entities,
            keywords=keywords,
            confidence=confidence,
        )

    # ------------------------------------------------------------------
    # Intent
    # ------------------------------------------------------------------

    def classify_intent(self, query: str) -> IntentMatch:
        tokens = tokenize(query)
        token_set = set(tokens)

        override = self._classify_override(query, tokens, token_set)
        if override is not None:
            return override

        best, best_score = Intent.UNKNOWN, 0.0
        for intent, keywords in self._intent_keywords.items():
            matches = sum(
                1 for keyword in keywords
                if any(keyword in token or token in keyword for token in tokens)
            )
            score = matches / len(keywords)
            if score > best_score:
                best, best_score = intent, score

        return IntentMatch(name=best, confidence=min(best_score, 1.0))

    def _classify_override(self, query: str, tokens: list[str], token_set: set[str]) -> IntentMatch | None:
        has_ingredient = any(token.startswith("ingredient") for token in tokens)

        if has_ingredient:
            words = query.split()
            capitalized_later = any(word[:1].isupper() for word in words[1:])
            if capitalized_later or token_set & TARGET_WORDS:
                return IntentMatch(Intent.FIND_INGREDIENTS, OVERRIDE_CONFIDENCE)
            if token_set & LISTING_WORDS:
                return IntentMatch(Intent.LIST_INGREDIENTS, OVERRIDE_CONFIDENCE)

        has_recipe = any(token.startswith(RECIPE_WORDS) for token in tokens)
        if has_recipe and token_set & CONTAINMENT_WORDS:
            return IntentMatch(Intent.FIND_RECIPES, OVERRIDE_CONFIDENCE)

        return None

    # ------------------------------------------------------------------
    # Entities & keywords
    # ------------------------------------------------------------------

    def extract_entities(self, query: str) -> dict[EntityCategory, list[str]]:
        """Fill each entity bucket; empty buckets are omitted."""
        entities: dict[EntityCategory, list[str]] = {}

        for category, pattern in self.ENTITY_PATTERNS.items():
            if category in self._GROUP_BUCKETS:
                found = [m.group(1) for m in pattern.finditer(query)]
            else:
                found = [m.group(0).strip() for m in pattern.finditer(query)]
            if found:
                entities[category] = found

        tokens = tokenize(query)
        candidates = []
        for i, token in enumerate(tokens):
            if token in self._stopwords or len(token) <= 2:
                continue
            candidates.append(token)
            if i + 1 < len(tokens) and tokens[i + 1] not in self._stopwords:
                candidates.append(f"{token} {tokens[i + 1]}")
        if candidates:
            entities[EntityCategory.CANDIDATES] = candidates

        return entities

    def extract_keywords(self, query: str) -> list[str]:
        keywords = (
            token for token in tokenize(query)
            if token not in self._stopwords and len(token) > 2 and not token.isdigit()
        )
        return list(dict.fromkeys(keywords))

    # ------------------------------------------------------------------
    # Scoring & hints
    # ------------------------------------------------------------------

    @staticmethod
    def calculate_confidence(
        intent: IntentMatch,
        entities: dict[EntityCategory, list[str]],
        keywords: list[str],
    ) -> float:
        """0.4 * intent + up to 0.3 for entity buckets + up to 0.3 for keywords."""
        confidence = intent.confidence * 0.4
        confidence += min(len(entities) * 0.1, 0.3)
        confidence += min(len(keywords) * 0.05, 0.3)
        return min(confidence, 1.0)

    @staticmethod
    def suggest_improvements(result: NLPResult) -> list[str]:
        """Actionable hints for a weak analysis."""
        suggestions = []

        if result.confidence < 0.3:
            suggestions.append("Try using more specific terms or entity names")
        if result.intent.name == Intent.UNKNOWN:
            suggestions.append("Consider using action words like: find, show, list, count, describe")
        if not result.entities:
            suggestions.append("Include specific names or identifiers in your query")
        if len(result.keywords) < 2:
            suggestions.append("Add more descriptive keywords to your query")

        example = INTENT_EXAMPLES.get(result.intent.name)
        if example:
            suggestions.append(example)

        return suggestions
