"""Query Orchestrator - Four-stage natural language → graph pipeline.

Stages, cheapest first:
1. TemplateQueryEngine -> regex templates (deterministic)
2. NLPProcessor + QuerySynthesizer -> heuristic intent/entity query
3. DirectTranslator -> LLM translation, executed against the graph
4. SchemaQAChain -> schema-aware generate/execute/answer

Strategies (chosen from query complexity, or forced by the caller):
- template-first: stage 1, then the remaining stages progressively
- progressive: stages 1 → 4, first success wins
- hybrid-parallel: stages 1-3 concurrently, priority 1 > 2 > 3, then stage 4
- direct-external: stage 4, then stages 1 → 3

Stage failures never escape; only total failure is surfaced, as a
stage-0 QueryResult with suggestions.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable

from kgqa.cache import QueryCache
from kgqa.graph import GraphClient

from .complexity import analyze_complexity
from .metrics import MetricsAggregator
from .models import (
    NLPResult,
    PipelineStage,
    QueryOptions,
    QueryResult,
    Strategy,
    Translation,
)
from .nlp_processor import NLPProcessor
from .query_synthesizer import QuerySynthesizer
from .strategy import DEFAULT_THRESHOLDS, StrategySelector
from .template_engine import TemplateQueryEngine
from .translators import DirectTranslator, SchemaQAChain

logger = logging.getLogger(__name__)

STAGE_CONFIDENCE = {
    PipelineStage.TEMPLATE: 0.9,
    PipelineStage.DIRECT_TRANSLATE: 0.7,
    PipelineStage.SCHEMA_QA: 0.8,
}

STAGE_METHOD = {
    PipelineStage.TEMPLATE: "template",
    PipelineStage.NLP: "nlp-enhanced",
    PipelineStage.DIRECT_TRANSLATE: "direct-translate",
    PipelineStage.SCHEMA_QA: "schema-qa",
}

EXHAUSTED_ERROR = "Unable to process query using any method"


@dataclass(slots=True)
class StageAttempt:
    """Outcome of one stage attempt.

    ``error`` is set only for meaningful failures (exceptions, execution
    errors, adapter errors); no-match and low confidence leave it empty.
    """
    stage: PipelineStage
    result: QueryResult | None = None
    error: str | None = None
    suggestion: str | None = None


async def _skipped() -> None:
    return None


class QueryOrchestrator:
    """Runs queries through the staged pipeline.

    Owns its result cache and metrics. Each request's pipeline run is a
    detached task awaited through ``asyncio.shield``: a cancelled caller
    returns at once while the run finishes and still populates the cache.
    """
    __slots__ = (
        "_graph",
        "_template_engine",
        "_nlp",
        "_synthesizer",
        "_translator",
        "_qa_chain",
        "_selector",
        "_cache",
        "_metrics",
        "_event_lock",
        "_background",
        "_nlp_threshold",
        "_default_max_retries",
    )

    def __init__(
        self,
        graph: GraphClient,
        direct_translator: DirectTranslator | None = None,
        qa_chain: SchemaQAChain | None = None,
        config: dict[str, Any] | None = None,
        cache_max_entries: int = 100,
        template_engine: TemplateQueryEngine | None = None,
        nlp_processor: NLPProcessor | None = None,
    ):
        """Initialize QueryOrchestrator.

        Args:
            graph: Graph collaborator used by every stage.
            direct_translator: Optional stage-3 adapter.
            qa_chain: Optional stage-4 adapter.
            config: Optional overrides (strategy_thresholds,
                nlp_confidence_threshold, default_max_retries).
            cache_max_entries: FIFO cache bound.
            template_engine: Optional engine with custom rules.
            nlp_processor: Optional processor with custom tables.
        """
        config = config or {}
        self._graph = graph
        self._template_engine = template_engine or TemplateQueryEngine(graph)
        self._nlp = nlp_processor or NLPProcessor()
        self._synthesizer = QuerySynthesizer(graph)
        self._translator = direct_translator
        self._qa_chain = qa_chain
        self._selector = StrategySelector(config.get("strategy_thresholds", DEFAULT_THRESHOLDS))
        self._nlp_threshold = config.get("nlp_confidence_threshold", 0.3)
        self._default_max_retries = config.get("default_max_retries", 2)

        self._cache = QueryCache(cache_max_entries)
        self._metrics = MetricsAggregator()
        self._event_lock = asyncio.Lock()
        self._background: set[asyncio.Task] = set()

        logger.info(
            f"QueryOrchestrator initialized: thresholds={self._selector.thresholds}, "
            f"direct_translate={'on' if self._stage_available(PipelineStage.DIRECT_TRANSLATE) else 'off'}, "
            f"schema_qa={'on' if self._stage_available(PipelineStage.SCHEMA_QA) else 'off'}, "
            f"cache={cache_max_entries}"
        )

    # ==================================================================
    # Public API
    # ==================================================================

    async def process_query(self, text: str, options: QueryOptions | None = None) -> QueryResult:
        """Process a natural-language query. Never raises for pipeline errors.

        Args:
            text: User query.
            options: Skip flags, strategy override, retries, domain hint.

        Returns:
            QueryResult from the first successful stage, or a stage-0 failure.
        """
        options = options or QueryOptions()
        start = time.time()

        if not options.skip_cache:
            cached = self._cache.get(QueryCache.make_key(text, options))
            if cached is not None:
                async with self._event_lock:
                    self._metrics.record_query()
                    self._metrics.record_cache_hit()
                logger.info(f"Cache hit for '{text}'")
                return replace(cached, from_cache=True, processing_time_ms=_elapsed_ms(start))

        task = asyncio.create_task(self._execute(text, options, start))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return await asyncio.shield(task)

    def get_metrics(self) -> dict[str, Any]:
        metrics = self._metrics.snapshot()
        metrics["cache_size"] = len(self._cache)
        return metrics

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Query cache cleared")

    def available_patterns(self) -> list[str]:
        return self._template_engine.descriptions()

    def get_stats(self) -> dict[str, Any]:
        """Collaborator availability and cache stats."""
        return {
            "stages": {
                STAGE_METHOD[stage]: self._stage_available(stage)
                for stage in STAGE_METHOD
            },
            "cache": self._cache.stats(),
            "pending_runs": len(self._background),
        }

    async def aclose(self) -> None:
        """Wait for detached pipeline runs to finish."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ==================================================================
    # Pipeline run
    # ==================================================================

    async def _execute(self, text: str, options: QueryOptions, start: float) -> QueryResult:
        strategy = None
        complexity = None
        try:
            complexity = analyze_complexity(text)
            strategy = self._selector.select(complexity, options.force_strategy)
            logger.info(f"Processing '{text}' with {strategy.value} (complexity={complexity.score:.2f})")

            attempts: list[StageAttempt] = []
            if strategy is Strategy.TEMPLATE_FIRST:
                result = await self._template_first(text, options, attempts)
            elif strategy is Strategy.HYBRID_PARALLEL:
                result = await self._hybrid_parallel(text, options, attempts)
            elif strategy is Strategy.DIRECT_EXTERNAL:
                result = await self._direct_external(text, options, attempts)
            else:
                result = await self._progressive(text, options, attempts)

            if result is None:
                result = self._failure(text, attempts)

        except Exception as e:
            logger.error(f"Pipeline error for '{text}': {e}", exc_info=True)
            result = QueryResult(
                success=False,
                stage=PipelineStage.NONE,
                method="error",
                query=text,
                error=str(e) or type(e).__name__,
            )

        result.processing_time_ms = _elapsed_ms(start)
        result.metadata = {
            **(result.metadata or {}),
            "strategy": strategy.value if strategy else None,
            "complexity": complexity.to_dict() if complexity else None,
        }

        async with self._event_lock:
            self._metrics.record_query()
            if result.success:
                self._metrics.record_success(result.stage, result.processing_time_ms)
                if not options.skip_cache:
                    self._cache.put(QueryCache.make_key(text, options), result)
            else:
                self._metrics.record_failure()

        logger.info(
            f"Completed in {result.processing_time_ms}ms - success={result.success} "
            f"stage={int(result.stage)} method={result.method}"
        )
        return result

    def _failure(self, text: str, attempts: list[StageAttempt]) -> QueryResult:
        error = next((a.error for a in reversed(attempts) if a.error), EXHAUSTED_ERROR)

        suggestions = ["Try queries like:"]
        suggestions.extend(f"  • {pattern}" for pattern in self.available_patterns()[:3])
        suggestions.extend(self._nlp.suggest_improvements(self._nlp.process(text)))
        for attempt in attempts:
            if attempt.suggestion and attempt.suggestion not in suggestions:
                suggestions.append(attempt.suggestion)

        return QueryResult(
            success=False,
            stage=PipelineStage.NONE,
            method="none",
            query=text,
            error=error,
            suggestions=suggestions,
        )

    # ==================================================================
    # Strategies
    # ==================================================================

    async def _progressive(
        self,
        text: str,
        options: QueryOptions,
        attempts: list[StageAttempt],
        exclude: frozenset[PipelineStage] = frozenset(),
    ) -> QueryResult | None:
        for stage in self._enabled_stages(options):
            if stage in exclude:
                continue
            attempt = await self._run_stage(stage, self._stage_factory(stage, text, options))
            attempts.append(attempt)
            if attempt.result is not None:
                return attempt.result
        return None

    async def _template_first(
        self, text: str, options: QueryOptions, attempts: list[StageAttempt]
    ) -> QueryResult | None:
        if PipelineStage.TEMPLATE in self._enabled_stages(options):
            attempt = await self._run_stage(PipelineStage.TEMPLATE, lambda: self._attempt_template(text))
            attempts.append(attempt)
            if attempt.result is not None:
                return attempt.result
        return await self._progressive(text, options, attempts, exclude=frozenset([PipelineStage.TEMPLATE]))

    async def _direct_external(
        self, text: str, options: QueryOptions, attempts: list[StageAttempt]
    ) -> QueryResult | None:
        if PipelineStage.SCHEMA_QA in self._enabled_stages(options):
            attempt = await self._run_stage(
                PipelineStage.SCHEMA_QA, lambda: self._attempt_schema_qa(text, options)
            )
            attempts.append(attempt)
            if attempt.result is not None:
                return attempt.result
        return await self._progressive(text, options, attempts, exclude=frozenset([PipelineStage.SCHEMA_QA]))

    async def _hybrid_parallel(
        self, text: str, options: QueryOptions, attempts: list[StageAttempt]
    ) -> QueryResult | None:
        enabled = self._enabled_stages(options)

        template_out, nlp_out, translation = await asyncio.gather(
            self._attempt_template(text) if PipelineStage.TEMPLATE in enabled else _skipped(),
            self._analyze(text) if PipelineStage.NLP in enabled else _skipped(),
            self._translator.translate(text) if PipelineStage.DIRECT_TRANSLATE in enabled else _skipped(),
            return_exceptions=True,
        )

        # Priority is fixed regardless of completion order
        if isinstance(template_out, BaseException):
            attempts.append(self._stage_exception(PipelineStage.TEMPLATE, template_out))
        elif template_out is not None:
            attempts.append(template_out)
            if template_out.result is not None:
                return template_out.result

        if isinstance(nlp_out, BaseException):
            attempts.append(self._stage_exception(PipelineStage.NLP, nlp_out))
        elif isinstance(nlp_out, NLPResult):
            attempt = await self._run_stage(PipelineStage.NLP, lambda: self._attempt_nlp(text, nlp_out))
            attempts.append(attempt)
            if attempt.result is not None:
                return attempt.result

        if isinstance(translation, BaseException):
            attempts.append(self._stage_exception(PipelineStage.DIRECT_TRANSLATE, translation))
        elif isinstance(translation, Translation):
            attempt = await self._run_stage(
                PipelineStage.DIRECT_TRANSLATE, lambda: self._attempt_direct(text, translation)
            )
            attempts.append(attempt)
            if attempt.result is not None:
                return attempt.result

        if PipelineStage.SCHEMA_QA in enabled:
            attempt = await self._run_stage(
                PipelineStage.SCHEMA_QA, lambda: self._attempt_schema_qa(text, options)
            )
            attempts.append(attempt)
            return attempt.result
        return None

    # ==================================================================
    # Stages
    # ==================================================================

    def _stage_available(self, stage: PipelineStage) -> bool:
        if stage is PipelineStage.DIRECT_TRANSLATE:
            return self._translator is not None and self._translator.available
        if stage is PipelineStage.SCHEMA_QA:
            return self._qa_chain is not None and self._qa_chain.available
        return True

    def _enabled_stages(self, options: QueryOptions) -> list[PipelineStage]:
        skipped = {
            PipelineStage.TEMPLATE: options.skip_templates,
            PipelineStage.NLP: options.skip_nlp,
            PipelineStage.DIRECT_TRANSLATE: options.skip_direct_translate,
            PipelineStage.SCHEMA_QA: options.skip_schema_qa,
        }
        return [
            stage for stage, skip in skipped.items()
            if not skip and self._stage_available(stage)
        ]

    def _stage_factory(
        self, stage: PipelineStage, text: str, options: QueryOptions
    ) -> Callable[[], Awaitable[StageAttempt]]:
        if stage is PipelineStage.TEMPLATE:
            return lambda: self._attempt_template(text)
        if stage is PipelineStage.NLP:
            return lambda: self._attempt_nlp(text)
        if stage is PipelineStage.DIRECT_TRANSLATE:
            return lambda: self._attempt_direct(text)
        return lambda: self._attempt_schema_qa(text, options)

    async def _run_stage(
        self,
        stage: PipelineStage,
        coro_factory: Callable[[], Awaitable[StageAttempt]],
    ) -> StageAttempt:
        """Run a single stage with timing; exceptions become failed attempts."""
        start = time.time()
        try:
            attempt = await coro_factory()
        except Exception as e:
            return self._stage_exception(stage, e)

        logger.debug(
            f"Stage {int(stage)} ({STAGE_METHOD[stage]}) finished in {_elapsed_ms(start)}ms, "
            f"success={attempt.result is not None}"
        )
        return attempt

    def _stage_exception(self, stage: PipelineStage, error: BaseException) -> StageAttempt:
        logger.warning(f"Stage {int(stage)} ({STAGE_METHOD[stage]}) failed: {error}")
        self._metrics.record_stage_error(stage)
        return StageAttempt(stage=stage, error=str(error) or type(error).__name__)

    async def _analyze(self, text: str) -> NLPResult:
        return self._nlp.process(text)

    async def _attempt_template(self, text: str) -> StageAttempt:
        match = await self._template_engine.process(text)
        if not match.success:
            if match.failed_rules:
                self._metrics.record_stage_error(PipelineStage.TEMPLATE)
                return StageAttempt(
                    stage=PipelineStage.TEMPLATE,
                    error=f"Template execution failed: {', '.join(match.failed_rules)}",
                )
            return StageAttempt(stage=PipelineStage.TEMPLATE)

        return StageAttempt(
            stage=PipelineStage.TEMPLATE,
            result=QueryResult(
                success=True,
                stage=PipelineStage.TEMPLATE,
                method=STAGE_METHOD[PipelineStage.TEMPLATE],
                query=text,
                translated_query=match.template,
                rows=match.rows,
                confidence=STAGE_CONFIDENCE[PipelineStage.TEMPLATE],
                metadata={
                    "domain": match.domain,
                    "matched_pattern": match.matched_description,
                    "parameters": match.parameters,
                },
            ),
        )

    async def _attempt_nlp(self, text: str, nlp: NLPResult | None = None) -> StageAttempt:
        nlp = nlp or self._nlp.process(text)
        if nlp.confidence <= self._nlp_threshold:
            logger.debug(f"NLP confidence {nlp.confidence:.2f} not above {self._nlp_threshold}")
            return StageAttempt(stage=PipelineStage.NLP)

        synthesis = await self._synthesizer.synthesize(nlp)
        if not synthesis.success:
            if synthesis.query is None:
                return StageAttempt(stage=PipelineStage.NLP)
            self._metrics.record_stage_error(PipelineStage.NLP)
            return StageAttempt(stage=PipelineStage.NLP, error=synthesis.error)

        return StageAttempt(
            stage=PipelineStage.NLP,
            result=QueryResult(
                success=True,
                stage=PipelineStage.NLP,
                method=STAGE_METHOD[PipelineStage.NLP],
                query=text,
                translated_query=synthesis.query,
                rows=synthesis.rows,
                confidence=nlp.confidence,
                metadata={"nlp": nlp.to_dict(), "parameters": synthesis.parameters},
            ),
        )

    async def _attempt_direct(self, text: str, translation: Translation | None = None) -> StageAttempt:
        translation = translation or await self._translator.translate(text)
        rows = await self._graph.execute_query(translation.translated_query)
        return StageAttempt(
            stage=PipelineStage.DIRECT_TRANSLATE,
            result=QueryResult(
                success=True,
                stage=PipelineStage.DIRECT_TRANSLATE,
                method=STAGE_METHOD[PipelineStage.DIRECT_TRANSLATE],
                query=text,
                translated_query=translation.translated_query,
                rows=rows,
                confidence=STAGE_CONFIDENCE[PipelineStage.DIRECT_TRANSLATE],
                metadata={
                    "query_kind": translation.query_kind,
                    "explanation": translation.explanation,
                },
            ),
        )

    async def _attempt_schema_qa(self, text: str, options: QueryOptions) -> StageAttempt:
        max_retries = options.max_retries if options.max_retries is not None else self._default_max_retries
        qa = await self._qa_chain.ask(text, domain=options.domain, max_retries=max_retries)
        if not qa.success:
            self._metrics.record_stage_error(PipelineStage.SCHEMA_QA)
            return StageAttempt(stage=PipelineStage.SCHEMA_QA, error=qa.error, suggestion=qa.suggestion)

        return StageAttempt(
            stage=PipelineStage.SCHEMA_QA,
            result=QueryResult(
                success=True,
                stage=PipelineStage.SCHEMA_QA,
                method=STAGE_METHOD[PipelineStage.SCHEMA_QA],
                query=text,
                translated_query=qa.translated_query,
                answer=qa.answer,
                confidence=STAGE_CONFIDENCE[PipelineStage.SCHEMA_QA],
                metadata=qa.metadata,
            ),
        )


def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


def create_query_orchestrator(
    graph: GraphClient,
    llm=None,
    config=None,
) -> QueryOrchestrator:
    """Factory function to create a QueryOrchestrator.

    Args:
        graph: Graph collaborator.
        llm: Optional BaseLLMClient backing both external adapters.
        config: Optional Config; feature flags decide which adapters exist.

    Returns:
        Configured QueryOrchestrator instance.
    """
    if config is None:
        from kgqa.config import cfg as config

    translator = None
    qa_chain = None
    if llm is not None:
        if config.enable_direct_translate:
            translator = DirectTranslator(llm)
        if config.enable_schema_qa:
            qa_chain = SchemaQAChain(
                llm,
                graph,
                top_k=config.qa_top_k,
                backoff_base=config.qa_retry_backoff,
            )

    return QueryOrchestrator(
        graph=graph,
        direct_translator=translator,
        qa_chain=qa_chain,
        config=config.get_orchestrator_config(),
        cache_max_entries=config.cache_max_entries,
    )
