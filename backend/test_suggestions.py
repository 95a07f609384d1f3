"""
Suggestion & keyword statistics tests
"""
import json

from cachetools import TTLCache

from config import DEFAULT_TEMPLATES, KEYWORDS
from suggestions import SuggestionService, extract_keywords


class TestExtractKeywords:

    def test_long_unique_words(self):
        assert extract_keywords("Someone followed me, someone FOLLOWED me near the station!") == [
            "someone", "followed", "station",
        ]

    def test_limit(self):
        text = "alpha bravo charlie delta foxtrot hotel juliet"
        assert extract_keywords(text) == ["alpha", "bravo", "charlie", "delta", "foxtrot"]

    def test_nothing_long_enough(self):
        assert extract_keywords("it is so dark") == []


class TestSuggestions:

    def test_defaults_without_history(self, engine):
        result = engine.suggestions.suggestions()
        assert result.templates == DEFAULT_TEMPLATES
        assert result.keywords[0]["keyword"] == "suspicious activity"
        assert result.suggestions == []

    def test_partial_text_matches(self, engine):
        result = engine.suggestions.suggestions("foll")
        assert result.suggestions == ["following me"]
        assert result.partialText == "foll"

    def test_single_char_ignored(self, engine):
        assert engine.suggestions.suggestions("s").suggestions == []

    def test_category_filter(self, engine):
        result = engine.suggestions.suggestions(category="harassment")
        assert {t["category"] for t in result.templates} == {"harassment"}
        assert {k["keyword"] for k in result.keywords} == {"following me", "aggressive behavior"}

    def test_record_report_counts(self, engine):
        engine.suggestions.record_report("Broken streetlight by the underpass", "unsafe-infrastructure")
        engine.suggestions.record_report("Another broken streetlight near school", "unsafe-infrastructure")
        doc = engine.index.get(KEYWORDS, "streetlight")
        assert doc["count"] == 2
        assert doc["category"] == "unsafe-infrastructure"

    def test_learned_keywords_show_up(self, engine):
        engine.suggestions.suggestions()  # warm the cache
        engine.suggestions.record_report("Stray dogs chasing cyclists", "other")
        result = engine.suggestions.suggestions("cycl")
        assert result.suggestions == ["cyclists"]

    def test_cache_expires(self, index, clock):
        cache = TTLCache(maxsize=8, ttl=300, timer=clock)
        service = SuggestionService(index, cache=cache)
        service.suggestions()
        index.insert(KEYWORDS, {"keyword": "flooded underpass", "count": 3, "category": "other"})

        assert service.suggestions("flood").suggestions == []
        clock.advance(301)
        assert service.suggestions("flood").suggestions == ["flooded underpass"]

    def test_injected_empty_cache_is_kept(self, index, clock):
        cache = TTLCache(maxsize=8, ttl=300, timer=clock)
        service = SuggestionService(index, cache=cache)
        assert service.cache is cache
        service.suggestions()
        assert "keywords" in cache

    def test_engine_cache_follows_store_clock(self, engine, clock):
        engine.suggestions.suggestions()
        engine.index.insert(KEYWORDS, {"keyword": "flooded underpass", "count": 3, "category": "other"})
        clock.advance(301)
        assert engine.suggestions.suggestions("flood").suggestions == ["flooded underpass"]


class TestAISuggestions:

    def test_completions_from_gemini(self, engine, gemini):
        prompts = gemini('["following me home", "following me at night"]')
        result = engine.suggestions.suggestions("foll")
        assert result.suggestions == ["following me home", "following me at night"]
        assert '"foll"' in prompts[0]

    def test_completions_capped(self, engine, gemini):
        gemini(json.dumps([f"suggestion {i}" for i in range(8)]))
        assert len(engine.suggestions.suggestions("dark").suggestions) == 5

    def test_malformed_completions_fall_back(self, engine, gemini):
        gemini("I can't help with that")
        assert engine.suggestions.suggestions("foll").suggestions == ["following me"]

    def test_two_chars_skip_gemini(self, engine, gemini):
        prompts = gemini('["should not be used"]')
        assert engine.suggestions.suggestions("fo").suggestions == ["following me"]
        assert prompts == []

    def test_key_phrases_recorded(self, engine, gemini):
        gemini('["Dark Underpass", "broken streetlight", "x"]')
        counted = engine.suggestions.record_report("The underpass is dark and the streetlight is broken")
        assert counted == ["dark underpass", "broken streetlight"]
        assert engine.index.get(KEYWORDS, "dark-underpass")["count"] == 1
        assert engine.index.get(KEYWORDS, "broken-streetlight")["keyword"] == "broken streetlight"
        assert engine.index.get(KEYWORDS, "x") is None

    def test_malformed_key_phrases_fall_back(self, engine, gemini):
        gemini('{"phrases": "not a list"}')
        counted = engine.suggestions.record_report("Broken streetlight by the underpass")
        assert counted == ["broken", "streetlight", "underpass"]
