"""Tests for NLPProcessor - heuristic intent, entities, keywords, confidence.

Tests cover:
1. Intent overrides for ingredient and recipe phrasing
2. Keyword-overlap scoring and tie-breaking
3. Entity buckets (only non-empty buckets are reported)
4. Confidence weighting and monotonicity in entity buckets
5. Improvement suggestions
"""

import pytest

from kgqa.pipeline.models import EntityCategory, Intent, IntentMatch
from kgqa.pipeline.nlp_processor import NLPProcessor, tokenize


class TestClassifyIntent:
    """Intent classification."""

    def setup_method(self):
        self.nlp = NLPProcessor()

    def test_ingredients_for_target(self):
        intent = self.nlp.classify_intent("ingredients for Flammkuchen")
        assert intent == IntentMatch(Intent.FIND_INGREDIENTS, 0.9)

    def test_ingredients_with_capitalized_target(self):
        intent = self.nlp.classify_intent("Flammkuchen ingredients Tarte")
        assert intent.name is Intent.FIND_INGREDIENTS

    def test_list_all_ingredients(self):
        intent = self.nlp.classify_intent("list all ingredients")
        assert intent == IntentMatch(Intent.LIST_INGREDIENTS, 0.9)

    def test_recipes_with_ingredient(self):
        intent = self.nlp.classify_intent("show me recipes with tomatoes")
        assert intent == IntentMatch(Intent.FIND_RECIPES, 0.9)

    def test_keyword_scoring(self):
        intent = self.nlp.classify_intent("count the total number")
        assert intent.name is Intent.COUNT_ENTITIES
        assert intent.confidence == pytest.approx(3 / 5)

    def test_unknown(self):
        assert self.nlp.classify_intent("zzz qqq") == IntentMatch(Intent.UNKNOWN, 0.0)

    def test_tie_keeps_first_intent(self):
        nlp = NLPProcessor(intent_keywords={
            Intent.LIST_RECIPES: ("alpha",),
            Intent.COUNT_ENTITIES: ("alpha",),
        })
        assert nlp.classify_intent("alpha") == IntentMatch(Intent.LIST_RECIPES, 1.0)


class TestExtraction:
    """Entity buckets and keywords."""

    def setup_method(self):
        self.nlp = NLPProcessor()

    def test_tokenize(self):
        assert tokenize("What's in Flammkuchen_2?") == ["what", "s", "in", "flammkuchen_2"]

    def test_measurement_buckets(self):
        entities = self.nlp.extract_entities("Bake Flammkuchen for 20 minutes at 250 degrees")

        assert entities[EntityCategory.PROPER_NOUNS] == ["Bake Flammkuchen"]
        assert entities[EntityCategory.TIME_UNITS] == ["20 minutes"]
        assert entities[EntityCategory.TEMPERATURES] == ["250 degrees"]
        assert EntityCategory.QUOTED not in entities

    def test_quantities_and_quotes(self):
        entities = self.nlp.extract_entities('add 2 cups of "sour cream"')

        assert entities[EntityCategory.QUANTITIES] == ["2 cups"]
        assert entities[EntityCategory.QUOTED] == ["sour cream"]

    def test_identifiers(self):
        entities = self.nlp.extract_entities("status of unit AB-12")
        assert entities[EntityCategory.IDENTIFIERS] == ["AB-12"]

    def test_only_non_empty_buckets(self):
        entities = self.nlp.extract_entities("zzz qqq")
        assert list(entities) == [EntityCategory.CANDIDATES]
        assert entities[EntityCategory.CANDIDATES] == ["zzz", "zzz qqq", "qqq"]

    def test_candidates_skip_stopword_bigrams(self):
        candidates = self.nlp.extract_entities("recipes with tomatoes")[EntityCategory.CANDIDATES]
        assert candidates == ["recipes", "tomatoes"]

    def test_keywords_deduplicated_in_order(self):
        assert self.nlp.extract_keywords("flour and Flour 250 eggs to go") == ["flour", "eggs"]


class TestConfidence:
    """Confidence weighting."""

    def setup_method(self):
        self.nlp = NLPProcessor()

    def test_gibberish_below_gate(self):
        result = self.nlp.process("zzz qqq")
        assert result.confidence == pytest.approx(0.2)
        assert result.confidence <= 0.3

    def test_specific_query_above_gate(self):
        result = self.nlp.process("ingredients for Flammkuchen")
        # 0.4 * 0.9 + 2 buckets * 0.1 + 2 keywords * 0.05
        assert result.confidence == pytest.approx(0.66)

    def test_monotonic_in_entity_buckets(self):
        intent = IntentMatch(Intent.LIST_ENTITIES, 0.5)
        keywords = ["flour"]
        buckets = list(EntityCategory)
        previous = -1.0
        for n in range(len(buckets) + 1):
            entities = {bucket: ["x"] for bucket in buckets[:n]}
            confidence = self.nlp.calculate_confidence(intent, entities, keywords)
            assert confidence >= previous
            assert 0.0 <= confidence <= 1.0
            previous = confidence

    def test_capped_contributions(self):
        intent = IntentMatch(Intent.LIST_ENTITIES, 1.0)
        entities = {bucket: ["x"] for bucket in EntityCategory}
        keywords = [f"word{i}" for i in range(20)]
        assert self.nlp.calculate_confidence(intent, entities, keywords) == pytest.approx(1.0)


class TestSuggestions:
    """suggest_improvements hints."""

    def setup_method(self):
        self.nlp = NLPProcessor()

    def test_weak_query_hints(self):
        suggestions = self.nlp.suggest_improvements(self.nlp.process("zzz qqq"))

        assert "Try using more specific terms or entity names" in suggestions
        assert "Consider using action words like: find, show, list, count, describe" in suggestions
        assert "Include specific names or identifiers in your query" not in suggestions

    def test_short_query_hints(self):
        suggestions = self.nlp.suggest_improvements(self.nlp.process("to"))

        assert "Include specific names or identifiers in your query" in suggestions
        assert "Add more descriptive keywords to your query" in suggestions

    def test_intent_example(self):
        suggestions = self.nlp.suggest_improvements(self.nlp.process("ingredients for Flammkuchen"))
        assert suggestions == ['Example: "What ingredients are in chocolate cake?"']
