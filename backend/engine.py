"""Safewatch Backend — Service wiring & ingestion

Builds the managers on top of one document store and runs the ingestion
pipeline: moderate -> classify -> stamp & persist -> learn keywords.
"""

import logging
import threading
from typing import Optional

import classifier
from authority import AuthorityReporter
from config import DB_PATH, MAX_TEXT_LENGTH, PATTERN_MIN_REPORTS
from credibility import CredibilityAggregator
from errors import InvalidInput, StoreUnavailable
from models import Report
from patterns import PatternDetector
from ratings import RatingService
from reports import ReportLifecycle
from scheduler import Scheduler
from spatial_index import SpatialIndex
from store import DocumentStore
from suggestions import SuggestionService

logger = logging.getLogger("safewatch.engine")


class SafetyEngine:
    def __init__(self, store: DocumentStore, min_pattern_reports: int = PATTERN_MIN_REPORTS):
        self.store = store
        self.index = SpatialIndex(store)
        self.reports = ReportLifecycle(self.index)
        self.credibility = CredibilityAggregator(self.index)
        self.patterns = PatternDetector(self.index, self.reports, min_reports=min_pattern_reports)
        self.ratings = RatingService(self.index)
        self.suggestions = SuggestionService(self.index, clock=store.now)
        self.authority = AuthorityReporter(self.index, self.reports)
        self.scheduler = Scheduler(self)

    def ingest(self, text: str, lat: float, lng: float, report_type: str = "perception") -> Report:
        """Turn a free-text observation into a stored, classified report."""
        text = (text or "").strip()
        if not text:
            raise InvalidInput("report text is empty")
        if len(text) > MAX_TEXT_LENGTH:
            raise InvalidInput(f"report text exceeds {MAX_TEXT_LENGTH} characters")

        verdict = classifier.moderate(text)
        if not verdict.approved:
            raise InvalidInput(verdict.reason or "report rejected by moderation")

        result = classifier.classify(text)
        report = self.reports.submit(
            report_type=report_type,
            risk_level=result.riskLevel,
            reason=result.reason,
            original_text=text,
            location={"lat": lat, "lng": lng},
            category=result.category,
            ai_parsed=result.aiParsed,
        )

        try:
            self.suggestions.record_report(text, result.category, result.riskLevel)
        except StoreUnavailable as e:
            # The report itself is stored; keyword stats catch up on the next one
            logger.warning(f"Keyword stats update failed for {report.id}: {e}")
        return report


class _EngineProxy:
    """Lazy-build the engine on first use, not at import time."""

    def __init__(self):
        self._engine: Optional[SafetyEngine] = None
        self._lock = threading.Lock()

    def get(self) -> SafetyEngine:
        with self._lock:
            if self._engine is None:
                self._engine = SafetyEngine(DocumentStore(DB_PATH))
                logger.info(f"Safety engine initialised on {DB_PATH}")
            return self._engine


_proxy = _EngineProxy()


def get_engine() -> SafetyEngine:
    return _proxy.get()
