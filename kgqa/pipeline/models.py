"""Query Pipeline Models.

Data structures shared by the orchestration stages: complexity scoring,
strategy selection, template matching, NLP analysis, external translators
and the final QueryResult handed back to callers.
"""

import json
import re
import time
from dataclasses import asdict, dataclass, field
from enum import Enum, IntEnum
from typing import Any, Callable


class Strategy(str, Enum):
    """Execution strategies for a query."""
    TEMPLATE_FIRST = "template-first"     # Templates, then progressive fallback
    PROGRESSIVE = "progressive"           # Stages 1 -> 4 in order
    HYBRID_PARALLEL = "hybrid-parallel"   # Stages 1-3 concurrently, then 4
    DIRECT_EXTERNAL = "direct-external"   # Schema QA first, then progressive

    @classmethod
    def parse(cls, value: "str | Strategy | None") -> "Strategy | None":
        """Return the matching strategy, or None for unknown names."""
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class PipelineStage(IntEnum):
    """Pipeline stages in progressive order. NONE marks a total failure."""
    NONE = 0
    TEMPLATE = 1
    NLP = 2
    DIRECT_TRANSLATE = 3
    SCHEMA_QA = 4


class Intent(str, Enum):
    """Coarse classification of what the user is asking for."""
    FIND_INGREDIENTS = "find_ingredients"
    LIST_INGREDIENTS = "list_ingredients"
    LIST_RECIPES = "list_recipes"
    FIND_RECIPES = "find_recipes"
    FIND_PROCEDURES = "find_procedures"
    FIND_PROPERTIES = "find_properties"
    FIND_RELATIONSHIPS = "find_relationships"
    COUNT_ENTITIES = "count_entities"
    LIST_ENTITIES = "list_entities"
    DESCRIBE_ENTITY = "describe_entity"
    FIND_COMPONENTS = "find_components"
    ANALYZE_NETWORK = "analyze_network"
    UNKNOWN = "unknown"


class EntityCategory(str, Enum):
    """Buckets filled by the entity extractors."""
    PROPER_NOUNS = "proper_nouns"
    QUOTED = "quoted"
    QUANTITIES = "quantities"
    TIME_UNITS = "time_units"
    TEMPERATURES = "temperatures"
    IDENTIFIERS = "identifiers"
    CANDIDATES = "candidates"


# ============================================================================
# Analysis results
# ============================================================================

@dataclass(slots=True, frozen=True)
class ComplexityScore:
    """Complexity assessment of a raw query.

    Attributes:
        score: Clamped complexity in [0, 1].
        indicators: Complexity vocabulary found in the query.
        token_count: Whitespace token count.
        has_negation: Whether a negation word was present.
    """
    score: float
    indicators: frozenset[str] = frozenset()
    token_count: int = 0
    has_negation: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "indicators": sorted(self.indicators),
            "token_count": self.token_count,
            "has_negation": self.has_negation,
        }


@dataclass(slots=True, frozen=True)
class IntentMatch:
    """Classified intent with its confidence."""
    name: Intent
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name.value, "confidence": self.confidence}


@dataclass(slots=True)
class NLPResult:
    """Output of the heuristic NLP processor.

    Attributes:
        original_query: Query text as received.
        intent: Winning intent and its confidence.
        entities: Non-empty entity buckets only.
        keywords: Deduplicated keywords in first-seen order.
        confidence: Weighted overall confidence in [0, 1].
    """
    original_query: str
    intent: IntentMatch
    entities: dict[EntityCategory, list[str]] = field(default_factory=dict)
    keywords: list[str] = field(default_factory=list)
    confidence: float = 0.0

    def first_entity(
        self,
        skip_terms: tuple[str, ...] = (),
        ignore: frozenset[str] = frozenset(),
    ) -> str | None:
        """Best guess at the query's target entity.

        First proper noun (minus leading words in ``ignore``), else the first
        candidate that contains no skip term and no ignored word.
        """
        for noun in self.entities.get(EntityCategory.PROPER_NOUNS, []):
            words = noun.split()
            while words and words[0].lower() in ignore:
                words.pop(0)
            if words and not any(term in " ".join(words).lower() for term in skip_terms):
                return " ".join(words)
        for candidate in self.entities.get(EntityCategory.CANDIDATES, []):
            if any(term in candidate for term in skip_terms):
                continue
            if any(word in ignore for word in candidate.split()):
                continue
            return candidate
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_query": self.original_query,
            "intent": self.intent.to_dict(),
            "entities": {k.value: v for k, v in self.entities.items()},
            "keywords": self.keywords,
            "confidence": self.confidence,
        }


# ============================================================================
# Stage outcomes
# ============================================================================

@dataclass(slots=True, frozen=True)
class TemplateRule:
    """A structural pattern plus the parameterized query it expands into."""
    pattern: re.Pattern
    domain: str
    description: str
    template: str
    extract_params: Callable[[re.Match], dict[str, Any]]

    def match(self, query: str) -> re.Match | None:
        return self.pattern.search(query)


@dataclass(slots=True)
class TemplateMatch:
    """Result of running the template engine on a query."""
    success: bool
    domain: str | None = None
    template: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)
    rows: list[dict[str, Any]] | None = None
    matched_description: str | None = None
    error: str | None = None
    suggestion: str | None = None
    failed_rules: list[str] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class SynthesizedQuery:
    """Graph query built from an NLP analysis."""
    query: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class SynthesisResult:
    """Result of executing a synthesized query."""
    success: bool
    query: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)
    rows: list[dict[str, Any]] | None = None
    error: str | None = None


@dataclass(slots=True, frozen=True)
class Translation:
    """Direct translator output."""
    translated_query: str
    query_kind: str = "search"
    explanation: str = ""


@dataclass(slots=True)
class QAResult:
    """Schema-aware QA chain output."""
    success: bool
    answer: str | None = None
    translated_query: str | None = None
    error: str | None = None
    suggestion: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Inbound options and final result
# ============================================================================

@dataclass(slots=True, frozen=True)
class QueryOptions:
    """Caller options for a single processQuery call."""
    skip_cache: bool = False
    skip_templates: bool = False
    skip_nlp: bool = False
    skip_direct_translate: bool = False
    skip_schema_qa: bool = False
    force_strategy: str | None = None
    max_retries: int | None = None
    domain: str | None = None

    def cache_token(self) -> str:
        """Deterministic serialization used in cache keys."""
        return json.dumps(asdict(self), sort_keys=True, separators=(",", ":"))


@dataclass(slots=True)
class QueryResult:
    """Final outcome of the orchestration pipeline.

    Attributes:
        success: Whether any stage produced a result.
        stage: Stage that produced the outcome (0 = total failure).
        method: Technique used (template, nlp-enhanced, ...).
        query: Original natural-language query.
        translated_query: Graph query that was executed, if any.
        rows: Records returned by the graph (stages 1-3).
        answer: Natural-language answer (stage 4).
        error: Last meaningful error on failure.
        suggestions: Actionable hints for the user.
        processing_time_ms: Wall time spent on this call.
        confidence: Stage confidence in [0, 1].
        metadata: Stage-specific details.
        from_cache: Whether the result was served from cache.
        produced_at: Epoch seconds when the outcome was produced.
    """
    success: bool
    stage: int
    method: str
    query: str
    translated_query: str | None = None
    rows: list[dict[str, Any]] | None = None
    answer: str | None = None
    error: str | None = None
    suggestions: list[str] = field(default_factory=list)
    processing_time_ms: int = 0
    confidence: float | None = None
    metadata: dict[str, Any] | None = None
    from_cache: bool = False
    produced_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if self.success:
            if (self.rows is None) == (self.answer is None):
                raise ValueError("successful QueryResult needs exactly one of rows or answer")
            if self.error is not None:
                raise ValueError("successful QueryResult cannot carry an error")
        elif not self.error:
            raise ValueError("failed QueryResult must carry an error")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "success": self.success,
            "stage": int(self.stage),
            "method": self.method,
            "query": self.query,
            "translated_query": self.translated_query,
            "rows": self.rows,
            "answer": self.answer,
            "error": self.error,
            "suggestions": self.suggestions,
            "processing_time_ms": self.processing_time_ms,
            "confidence": self.confidence,
            "metadata": self.metadata,
            "from_cache": self.from_cache,
            "produced_at": self.produced_at,
        }
