"""
Pattern detection tests
"""
import pytest

from config import PATTERNS
from conftest import BENGALURU, DAY
from errors import InvalidInput, StoreUnavailable
from engine import SafetyEngine
from geohash import encode
from patterns import PatternDetector, pattern_confidence
from store import DocumentStore

NEW_YORK = {"lat": 40.7128, "lng": -74.0060}


def _submit(engine, location=BENGALURU, category="suspicious-activity"):
    return engine.reports.submit(
        report_type="perception", risk_level="medium", reason="Uneasy here",
        original_text="Felt uneasy walking here", location=location, category=category,
    )


def _nearby(i):
    return {"lat": BENGALURU["lat"] + 0.001 * i, "lng": BENGALURU["lng"] + 0.001 * i}


class TestConfidence:

    @pytest.mark.parametrize("count,expected", [(1, 0.1), (3, 0.3), (7, 0.7), (10, 1.0), (25, 1.0)])
    def test_confidence(self, count, expected):
        assert pattern_confidence(count) == pytest.approx(expected)


class TestRun:

    def test_below_threshold_no_pattern(self, engine):
        _submit(engine)
        _submit(engine)
        result = engine.patterns.run()
        assert result.completed
        assert result.patterns == 0
        assert engine.patterns.all() == []

    def test_three_reports_make_a_pattern(self, engine):
        ids = [_submit(engine, _nearby(i)).id for i in range(3)]
        result = engine.patterns.run()
        assert result.patterns == 1
        assert result.reportsScanned == 3

        [pattern] = engine.patterns.all()
        assert pattern.reportCount == 3
        assert pattern.confidence == pytest.approx(0.3)
        assert sorted(pattern.reportIds) == sorted(ids)
        assert pattern.prefix == encode(BENGALURU["lat"], BENGALURU["lng"], 4)
        assert pattern.location.geohash.startswith(pattern.prefix)
        assert pattern.location.lat == pytest.approx(BENGALURU["lat"] + 0.001)
        assert pattern.location.lng == pytest.approx(BENGALURU["lng"] + 0.001)

    def test_confidence_caps_at_one(self, engine):
        for i in range(12):
            _submit(engine, _nearby(i % 3))
        engine.patterns.run()
        [pattern] = engine.patterns.all()
        assert pattern.reportCount == 12
        assert pattern.confidence == 1.0

    def test_category_breakdown(self, engine):
        _submit(engine, category="theft")
        _submit(engine, category="theft")
        _submit(engine, category="harassment")
        engine.patterns.run()
        [pattern] = engine.patterns.all()
        assert pattern.categoryBreakdown == {"theft": 2, "harassment": 1}
        assert pattern.dominantCategory == "theft"

    def test_separate_cells(self, engine):
        for _ in range(3):
            _submit(engine, BENGALURU)
            _submit(engine, NEW_YORK)
        _submit(engine, {"lat": -33.8688, "lng": 151.2093})
        assert engine.patterns.run().patterns == 2

    def test_old_reports_outside_window(self, engine, clock):
        for _ in range(3):
            _submit(engine)
        clock.advance(8 * DAY)
        assert engine.patterns.run().patterns == 0

    def test_run_replaces_previous_set(self, engine, clock):
        for _ in range(3):
            _submit(engine)
        engine.patterns.run()
        first = {p.id for p in engine.patterns.all()}

        clock.advance(8 * DAY)
        for _ in range(3):
            _submit(engine, NEW_YORK)
        engine.patterns.run()
        patterns = engine.patterns.all()
        assert len(patterns) == 1
        assert patterns[0].id not in first
        assert patterns[0].prefix == encode(NEW_YORK["lat"], NEW_YORK["lng"], 4)

    def test_configurable_threshold(self, engine):
        detector = PatternDetector(engine.index, engine.reports, min_reports=1)
        _submit(engine)
        assert detector.run().patterns == 1

    def test_threshold_below_one_rejected(self, engine):
        with pytest.raises(InvalidInput):
            PatternDetector(engine.index, engine.reports, min_reports=0)


class TestFailures:

    def test_read_failure_keeps_previous_set(self, engine, monkeypatch):
        for _ in range(3):
            _submit(engine)
        engine.patterns.run()
        before = engine.index.all(PATTERNS)

        def broken(since):
            raise StoreUnavailable("database is locked")

        monkeypatch.setattr(engine.reports, "fetch_recent", broken)
        result = engine.patterns.run()
        assert not result.completed
        assert "locked" in result.error
        assert engine.index.all(PATTERNS) == before

    def test_replace_failure_keeps_previous_set(self, engine, monkeypatch):
        for _ in range(3):
            _submit(engine)
        engine.patterns.run()
        before = engine.index.all(PATTERNS)

        for _ in range(3):
            _submit(engine, NEW_YORK)

        def broken(collection, inserts):
            raise StoreUnavailable("disk I/O error")

        monkeypatch.setattr(engine.index, "replace_collection", broken)
        result = engine.patterns.run()
        assert not result.completed
        assert engine.index.all(PATTERNS) == before


class TestFetchNear:

    def test_same_cell_by_confidence(self, engine):
        for _ in range(3):
            _submit(engine)
        for _ in range(3):
            _submit(engine, NEW_YORK)
        engine.patterns.run()

        found = engine.patterns.fetch_near(BENGALURU)
        assert len(found) == 1
        assert found[0].reportCount == 3
        assert engine.patterns.fetch_near({"lat": 51.5074, "lng": -0.1278}) == []


class TestConcurrentRuns:

    def test_overlapping_runs_never_mix(self, engine, clock, monkeypatch):
        # A second engine on the same file stands in for another process
        other = SafetyEngine(DocumentStore(engine.store.db_path, clock=clock))
        for _ in range(3):
            _submit(engine)

        real_transaction = engine.store.transaction
        interleaved = []

        def transaction_after_other_run():
            if not interleaved:
                interleaved.append(other.patterns.run())
            return real_transaction()

        monkeypatch.setattr(engine.store, "transaction", transaction_after_other_run)
        result = engine.patterns.run()

        assert interleaved[0].completed
        assert result.completed
        patterns = engine.patterns.all()
        assert len(patterns) == 1
        assert patterns[0].reportCount == 3
