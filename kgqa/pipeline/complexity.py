"""Complexity Analyzer - Scores how hard a query is to translate.

The score drives strategy selection. Contributions:
1. Complexity vocabulary (multi-hop, compare, aggregate, ...) +0.15 each
2. Length: +0.2 above 10 tokens, another +0.2 above 20
3. Many named things: +0.2 for more than two capitalized words
4. Negation: +0.2
"""

import re

from .models import ComplexityScore

COMPLEXITY_INDICATORS = (
    "multi-hop", "relationship", "connected", "path", "chain",
    "analyze", "compare", "aggregate", "count", "average",
    "most", "least", "best", "worst", "similar", "related",
    "between", "through", "via", "complex", "detailed",
)

NEGATION_WORDS = frozenset(["not", "without", "except", "excluding"])

INDICATOR_WEIGHT = 0.15
LENGTH_WEIGHT = 0.2
ENTITY_WEIGHT = 0.2
NEGATION_WEIGHT = 0.2

_CAPITALIZED = re.compile(r"\b[A-Z][a-z]+\b")


def analyze_complexity(query: str) -> ComplexityScore:
    """Compute a ComplexityScore for a raw query. Pure and deterministic."""
    tokens = query.lower().split()
    score = 0.0

    found = frozenset(
        indicator for indicator in COMPLEXITY_INDICATORS
        if any(indicator in token for token in tokens)
    )
    score += INDICATOR_WEIGHT * len(found)

    if len(tokens) > 10:
        score += LENGTH_WEIGHT
    if len(tokens) > 20:
        score += LENGTH_WEIGHT

    if len(_CAPITALIZED.findall(query)) > 2:
        score += ENTITY_WEIGHT

    has_negation = any(token in NEGATION_WORDS for token in tokens)
    if has_negation:
        score += NEGATION_WEIGHT

    return ComplexityScore(
        score=min(1.0, max(0.0, score)),
        indicators=found,
        token_count=len(tokens),
        has_negation=has_negation,
    )
