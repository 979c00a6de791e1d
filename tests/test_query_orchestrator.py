"""Tests for QueryOrchestrator - strategies, fallback, cache and metrics.

Tests cover:
1. Template hits, empty results and total failure with suggestions
2. Strategy dispatch (overrides, hybrid priority, direct-external fallback)
3. Cache idempotence and option-sensitive keys
4. Metrics for successes, failures, stage errors and cache hits
5. Cancelled callers do not cancel the pipeline run
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FLAMMKUCHEN_ROWS, FakeGraph, flammkuchen_responder
from kgqa.config import Config
from kgqa.pipeline.models import PipelineStage, QAResult, QueryOptions, Translation
from kgqa.pipeline.query_orchestrator import (
    EXHAUSTED_ERROR,
    QueryOrchestrator,
    create_query_orchestrator,
)

FLAMMKUCHEN = "ingredients for Flammkuchen"
GIBBERISH = "zzz qqq"


def mock_translator(query: str = "MATCH (n) RETURN n LIMIT 1", error: Exception | None = None) -> MagicMock:
    translator = MagicMock()
    translator.available = True
    if error is not None:
        translator.translate = AsyncMock(side_effect=error)
    else:
        translator.translate = AsyncMock(return_value=Translation(query, "search", "all nodes"))
    return translator


def mock_qa_chain(result: QAResult) -> MagicMock:
    qa = MagicMock()
    qa.available = True
    qa.ask = AsyncMock(return_value=result)
    return qa


class GatedGraph(FakeGraph):
    """FakeGraph whose queries block until ``release`` is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def execute_query(self, query, parameters=None):
        self.entered.set()
        await self.release.wait()
        return await super().execute_query(query, parameters)


class SlowGraph(FakeGraph):
    """FakeGraph whose template queries finish after the other branches."""

    async def execute_query(self, query, parameters=None):
        if parameters and "entity_name" in parameters:
            await asyncio.sleep(0.2)
        return await super().execute_query(query, parameters)


class TestStagesAndFallback:
    """Which stage answers, and what total failure looks like."""

    @pytest.mark.asyncio
    async def test_template_hit(self, recipe_graph):
        orchestrator = QueryOrchestrator(recipe_graph)
        result = await orchestrator.process_query(FLAMMKUCHEN)

        assert result.success
        assert result.stage == PipelineStage.TEMPLATE
        assert result.method == "template"
        assert result.rows == FLAMMKUCHEN_ROWS
        assert result.confidence == 0.9
        assert result.metadata["strategy"] == "template-first"
        assert result.metadata["matched_pattern"] == "Find ingredients for a specific recipe/dish"
        assert not result.from_cache

    @pytest.mark.asyncio
    async def test_empty_graph_is_still_a_success(self, empty_graph):
        result = await QueryOrchestrator(empty_graph).process_query("which nodes do you have?")

        assert result.success
        assert result.stage == 1
        assert result.rows == []

    @pytest.mark.asyncio
    async def test_total_failure(self, empty_graph):
        orchestrator = QueryOrchestrator(empty_graph)
        options = QueryOptions(skip_direct_translate=True, skip_schema_qa=True)
        result = await orchestrator.process_query(GIBBERISH, options)

        assert not result.success
        assert result.stage == 0
        assert result.method == "none"
        assert result.error == EXHAUSTED_ERROR
        assert result.suggestions[0] == "Try queries like:"
        assert result.suggestions[1:4] == [
            f"  • {pattern}" for pattern in orchestrator.available_patterns()[:3]
        ]
        assert "Try using more specific terms or entity names" in result.suggestions

    @pytest.mark.asyncio
    async def test_skip_templates_uses_nlp(self, recipe_graph):
        result = await QueryOrchestrator(recipe_graph).process_query(
            FLAMMKUCHEN, QueryOptions(skip_templates=True)
        )

        assert result.stage == PipelineStage.NLP
        assert result.method == "nlp-enhanced"
        assert result.confidence == pytest.approx(0.66)
        assert len(result.rows) == 3
        assert result.metadata["parameters"] == {"entity_name": "Flammkuchen"}

    @pytest.mark.asyncio
    async def test_direct_translate_after_weak_stages(self):
        graph = FakeGraph(responders=[lambda q, p: [{"name": "Flour"}] if "LIMIT 1" in q else None])
        orchestrator = QueryOrchestrator(graph, direct_translator=mock_translator())
        result = await orchestrator.process_query(GIBBERISH)

        assert result.stage == PipelineStage.DIRECT_TRANSLATE
        assert result.translated_query == "MATCH (n) RETURN n LIMIT 1"
        assert result.rows == [{"name": "Flour"}]
        assert result.confidence == 0.7

    @pytest.mark.asyncio
    async def test_stage_exception_is_counted_and_reported(self, empty_graph):
        orchestrator = QueryOrchestrator(empty_graph, direct_translator=mock_translator(error=RuntimeError("boom")))
        result = await orchestrator.process_query(GIBBERISH)

        assert not result.success
        assert result.error == "boom"
        assert orchestrator.get_metrics()["error_counts_by_stage"][3] == 1

    @pytest.mark.asyncio
    async def test_schema_qa_failure_adds_suggestion(self, empty_graph):
        qa = mock_qa_chain(QAResult(
            success=False,
            error="rate limit exceeded",
            suggestion="API rate limit reached. Please wait a moment before trying again",
        ))
        orchestrator = QueryOrchestrator(empty_graph, qa_chain=qa)
        result = await orchestrator.process_query(GIBBERISH)

        assert result.error == "rate limit exceeded"
        assert result.suggestions[-1] == "API rate limit reached. Please wait a moment before trying again"

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_error_result(self, empty_graph):
        nlp = MagicMock()
        nlp.process.side_effect = RuntimeError("nlp down")
        orchestrator = QueryOrchestrator(empty_graph, nlp_processor=nlp)
        result = await orchestrator.process_query(GIBBERISH)

        assert not result.success
        assert result.stage == 0
        assert result.method == "error"
        assert result.error == "nlp down"


class TestStrategies:
    """Strategy overrides and ordering."""

    @pytest.mark.asyncio
    async def test_hybrid_parallel_uses_direct_translation(self):
        graph = FakeGraph(responders=[lambda q, p: [{"name": "Flour"}] if "LIMIT 1" in q else None])
        orchestrator = QueryOrchestrator(graph, direct_translator=mock_translator())
        result = await orchestrator.process_query(GIBBERISH, QueryOptions(force_strategy="hybrid-parallel"))

        assert result.success
        assert result.stage == 3
        assert result.error is None
        assert result.metadata["strategy"] == "hybrid-parallel"

    @pytest.mark.asyncio
    async def test_hybrid_parallel_prefers_template(self, recipe_graph):
        translator = mock_translator()
        orchestrator = QueryOrchestrator(recipe_graph, direct_translator=translator)
        result = await orchestrator.process_query(FLAMMKUCHEN, QueryOptions(force_strategy="hybrid-parallel"))

        assert result.stage == PipelineStage.TEMPLATE
        translator.translate.assert_awaited_once_with(FLAMMKUCHEN)

    @pytest.mark.asyncio
    async def test_hybrid_parallel_priority_ignores_completion_order(self):
        graph = SlowGraph(responders=[
            flammkuchen_responder,
            lambda q, p: [{"name": "Flour"}] if "LIMIT 1" in q else None,
        ])
        translator = mock_translator()
        orchestrator = QueryOrchestrator(graph, direct_translator=translator)
        result = await orchestrator.process_query(FLAMMKUCHEN, QueryOptions(force_strategy="hybrid-parallel"))

        assert result.stage == PipelineStage.TEMPLATE
        assert result.rows == FLAMMKUCHEN_ROWS
        translator.translate.assert_awaited_once_with(FLAMMKUCHEN)
        assert all("LIMIT 1" not in query for query, _ in graph.calls)

    @pytest.mark.asyncio
    async def test_direct_external_asks_schema_qa_first(self, recipe_graph):
        qa = mock_qa_chain(QAResult(success=True, answer="Bacon, creme fraiche and onion.", translated_query="MATCH"))
        orchestrator = QueryOrchestrator(recipe_graph, qa_chain=qa)
        options = QueryOptions(force_strategy="direct-external", domain="recipe", max_retries=3)
        result = await orchestrator.process_query(FLAMMKUCHEN, options)

        assert result.stage == PipelineStage.SCHEMA_QA
        assert result.answer == "Bacon, creme fraiche and onion."
        assert result.rows is None
        assert result.confidence == 0.8
        qa.ask.assert_awaited_once_with(FLAMMKUCHEN, domain="recipe", max_retries=3)
        assert recipe_graph.calls == []

    @pytest.mark.asyncio
    async def test_direct_external_falls_back_to_templates(self, recipe_graph):
        qa = mock_qa_chain(QAResult(success=False, error="timeout", suggestion="slow"))
        orchestrator = QueryOrchestrator(recipe_graph, qa_chain=qa, config={"default_max_retries": 1})
        result = await orchestrator.process_query(FLAMMKUCHEN, QueryOptions(force_strategy="direct-external"))

        assert result.stage == PipelineStage.TEMPLATE
        qa.ask.assert_awaited_once_with(FLAMMKUCHEN, domain=None, max_retries=1)
        assert orchestrator.get_metrics()["error_counts_by_stage"][4] == 1

    @pytest.mark.asyncio
    async def test_invalid_override_uses_complexity(self, recipe_graph):
        result = await QueryOrchestrator(recipe_graph).process_query(
            FLAMMKUCHEN, QueryOptions(force_strategy="bogus")
        )
        assert result.metadata["strategy"] == "template-first"
        assert result.stage == 1

    @pytest.mark.asyncio
    async def test_complex_query_selects_direct_external(self, empty_graph):
        qa = mock_qa_chain(QAResult(success=True, answer="none", translated_query="MATCH"))
        orchestrator = QueryOrchestrator(empty_graph, qa_chain=qa)
        query = (
            "Compare the shortest path and the most similar cluster of Flour Butter Sugar "
            "without eggs across every recipe in the whole network graph today please"
        )
        result = await orchestrator.process_query(query)

        assert result.metadata["complexity"]["score"] >= 0.8
        assert result.metadata["strategy"] == "direct-external"
        assert result.stage == 4


class TestCache:
    """Result cache behaviour through the orchestrator."""

    @pytest.mark.asyncio
    async def test_repeat_query_is_served_from_cache(self, recipe_graph):
        orchestrator = QueryOrchestrator(recipe_graph)
        first = await orchestrator.process_query(FLAMMKUCHEN)
        calls = len(recipe_graph.calls)
        second = await orchestrator.process_query(FLAMMKUCHEN)

        assert second.from_cache
        assert len(recipe_graph.calls) == calls
        ignored = {"from_cache", "processing_time_ms"}
        assert {k: v for k, v in first.to_dict().items() if k not in ignored} == {
            k: v for k, v in second.to_dict().items() if k not in ignored
        }

    @pytest.mark.asyncio
    async def test_changing_a_result_does_not_change_the_cache(self, recipe_graph):
        orchestrator = QueryOrchestrator(recipe_graph)
        first = await orchestrator.process_query(FLAMMKUCHEN)
        first.rows.clear()
        first.metadata["strategy"] = "changed"

        second = await orchestrator.process_query(FLAMMKUCHEN)
        second.rows.pop()

        third = await orchestrator.process_query(FLAMMKUCHEN)
        assert third.from_cache
        assert third.rows == FLAMMKUCHEN_ROWS
        assert third.metadata["strategy"] == "template-first"

    @pytest.mark.asyncio
    async def test_cache_key_is_case_insensitive(self, recipe_graph):
        orchestrator = QueryOrchestrator(recipe_graph)
        await orchestrator.process_query(FLAMMKUCHEN)
        assert (await orchestrator.process_query(FLAMMKUCHEN.upper())).from_cache

    @pytest.mark.asyncio
    async def test_different_options_miss(self, recipe_graph):
        orchestrator = QueryOrchestrator(recipe_graph)
        await orchestrator.process_query(FLAMMKUCHEN)
        result = await orchestrator.process_query(FLAMMKUCHEN, QueryOptions(skip_direct_translate=True))
        assert not result.from_cache

    @pytest.mark.asyncio
    async def test_skip_cache_neither_reads_nor_writes(self, recipe_graph):
        orchestrator = QueryOrchestrator(recipe_graph)
        options = QueryOptions(skip_cache=True)
        await orchestrator.process_query(FLAMMKUCHEN, options)
        result = await orchestrator.process_query(FLAMMKUCHEN, options)

        assert not result.from_cache
        assert orchestrator.get_metrics()["cache_size"] == 0

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, empty_graph):
        orchestrator = QueryOrchestrator(empty_graph)
        await orchestrator.process_query(GIBBERISH)
        result = await orchestrator.process_query(GIBBERISH)

        assert not result.from_cache
        assert orchestrator.get_metrics()["cache_size"] == 0

    @pytest.mark.asyncio
    async def test_bounded_fifo(self, empty_graph):
        orchestrator = QueryOrchestrator(empty_graph, cache_max_entries=2)
        for query in ("show all nodes", "which nodes do you have?", "How many ingredients?"):
            await orchestrator.process_query(query)

        assert orchestrator.get_metrics()["cache_size"] == 2
        assert not (await orchestrator.process_query("show all nodes")).from_cache

    @pytest.mark.asyncio
    async def test_clear_cache(self, recipe_graph):
        orchestrator = QueryOrchestrator(recipe_graph)
        await orchestrator.process_query(FLAMMKUCHEN)
        orchestrator.clear_cache()

        assert orchestrator.get_metrics()["cache_size"] == 0
        assert not (await orchestrator.process_query(FLAMMKUCHEN)).from_cache


class TestMetrics:
    """Counters surfaced by get_metrics."""

    @pytest.mark.asyncio
    async def test_success_rate(self, recipe_graph):
        orchestrator = QueryOrchestrator(recipe_graph)
        options = QueryOptions(skip_cache=True)
        for _ in range(7):
            await orchestrator.process_query(FLAMMKUCHEN, options)
        for _ in range(3):
            await orchestrator.process_query(GIBBERISH, options)

        metrics = orchestrator.get_metrics()
        assert metrics["total_queries"] == 10
        assert metrics["success_by_stage"][1] == 7
        assert metrics["success_rate"] == pytest.approx(0.7)
        assert metrics["total_failures"] == 3

    @pytest.mark.asyncio
    async def test_cache_hit_rate(self, recipe_graph):
        orchestrator = QueryOrchestrator(recipe_graph)
        await orchestrator.process_query(FLAMMKUCHEN)
        await orchestrator.process_query(FLAMMKUCHEN)

        metrics = orchestrator.get_metrics()
        assert metrics["cache_hit_rate"] == pytest.approx(0.5)
        assert metrics["success_by_stage"][1] == 1


class TestConcurrency:
    """Detached pipeline runs."""

    @pytest.mark.asyncio
    async def test_cancelled_caller_still_populates_cache(self):
        graph = GatedGraph(responders=[flammkuchen_responder])
        orchestrator = QueryOrchestrator(graph)

        caller = asyncio.create_task(orchestrator.process_query(FLAMMKUCHEN))
        await graph.entered.wait()
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        assert orchestrator.get_stats()["pending_runs"] == 1
        graph.release.set()
        await orchestrator.aclose()

        assert orchestrator.get_metrics()["cache_size"] == 1
        assert (await orchestrator.process_query(FLAMMKUCHEN)).from_cache

    @pytest.mark.asyncio
    async def test_concurrent_queries(self, recipe_graph):
        orchestrator = QueryOrchestrator(recipe_graph)
        options = QueryOptions(skip_cache=True)
        results = await asyncio.gather(*[
            orchestrator.process_query(FLAMMKUCHEN, options) for _ in range(5)
        ])

        assert all(r.stage == 1 for r in results)
        assert orchestrator.get_metrics()["total_queries"] == 5


class TestFactory:
    """create_query_orchestrator wiring."""

    def test_feature_flags_decide_adapters(self, empty_graph):
        llm = MagicMock()
        llm.available = True
        config = Config(enable_direct_translate=False, enable_schema_qa=True)
        orchestrator = create_query_orchestrator(empty_graph, llm=llm, config=config)

        stages = orchestrator.get_stats()["stages"]
        assert stages == {
            "template": True,
            "nlp-enhanced": True,
            "direct-translate": False,
            "schema-qa": True,
        }

    def test_without_llm_only_local_stages(self, empty_graph):
        orchestrator = create_query_orchestrator(empty_graph, config=Config())
        stages = orchestrator.get_stats()["stages"]

        assert not stages["direct-translate"]
        assert not stages["schema-qa"]
        assert orchestrator.available_patterns()[0] == "Find ingredients for a specific recipe/dish"
