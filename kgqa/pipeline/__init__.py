"""Query pipeline for KGQA.

Includes:
- Query orchestrator (four-stage pipeline with strategies, cache, metrics)
- Complexity analyzer and strategy selector
- Template engine, NLP processor and query synthesizer
- External translator adapters
"""

# Orchestrator
from .query_orchestrator import QueryOrchestrator, create_query_orchestrator

# Analysis and routing
from .complexity import analyze_complexity
from .strategy import StrategySelector, select_strategy

# Stages
from .template_engine import DEFAULT_RULES, TemplateQueryEngine
from .nlp_processor import NLPProcessor
from .query_synthesizer import QuerySynthesizer
from .translators import DirectTranslator, SchemaQAChain, TranslationError, TranslatorUnavailableError
from .metrics import MetricsAggregator

# Models
from .models import (
    ComplexityScore,
    EntityCategory,
    Intent,
    IntentMatch,
    NLPResult,
    PipelineStage,
    QAResult,
    QueryOptions,
    QueryResult,
    Strategy,
    SynthesisResult,
    SynthesizedQuery,
    TemplateMatch,
    TemplateRule,
    Translation,
)

__all__ = [
    "QueryOrchestrator",
    "create_query_orchestrator",
    "analyze_complexity",
    "StrategySelector",
    "select_strategy",
    "DEFAULT_RULES",
    "TemplateQueryEngine",
    "NLPProcessor",
    "QuerySynthesizer",
    "DirectTranslator",
    "SchemaQAChain",
    "TranslationError",
    "TranslatorUnavailableError",
    "MetricsAggregator",
    "ComplexityScore",
    "EntityCategory",
    "Intent",
    "IntentMatch",
    "NLPResult",
    "PipelineStage",
    "QAResult",
    "QueryOptions",
    "QueryResult",
    "Strategy",
    "SynthesisResult",
    "SynthesizedQuery",
    "TemplateMatch",
    "TemplateRule",
    "Translation",
]
