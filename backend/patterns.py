"""Safewatch Backend — Pattern detection

Hourly batch job. Recent reports are bucketed by 4-character geohash prefix;
every bucket holding at least PATTERN_MIN_REPORTS reports becomes a Pattern
with a mean-position centroid and confidence min(count / 10, 1). Each run
replaces the whole pattern set in one transaction, so readers see either the
previous run's patterns or this run's, never a mix. A run that can't read its
input stops before touching the stored set.
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime, timezone

import numpy as np

from config import (
    PATTERNS, QUERY_PREFIX_LENGTH, GEOHASH_PRECISION,
    PATTERN_WINDOW_SECONDS, PATTERN_MIN_REPORTS, PATTERN_CONFIDENCE_SCALE,
    PATTERN_QUERY_LIMIT,
)
from errors import InvalidInput, StoreUnavailable
from geohash import encode, prefix_for
from models import Location, Pattern, PatternRun, Report
from reports import ReportLifecycle
from spatial_index import SpatialIndex

logger = logging.getLogger("safewatch.patterns")


def pattern_confidence(report_count: int, scale: int = PATTERN_CONFIDENCE_SCALE) -> float:
    return min(report_count / scale, 1.0)


def cluster_reports(
    reports: list[Report],
    run_at: datetime,
    prefix_length: int = QUERY_PREFIX_LENGTH,
    min_reports: int = PATTERN_MIN_REPORTS,
    confidence_scale: int = PATTERN_CONFIDENCE_SCALE,
) -> list[Pattern]:
    """Bucket reports by geohash prefix and summarise the buckets that qualify.

    Buckets under ``min_reports`` are dropped; nothing carries over between runs.
    """
    buckets: dict[str, list[Report]] = defaultdict(list)
    for report in reports:
        buckets[report.location.geohash[:prefix_length]].append(report)

    patterns = []
    for prefix, members in sorted(buckets.items()):
        if len(members) < min_reports:
            continue

        # Arithmetic mean, no geodesic correction; cells are city-scale
        lat = float(np.mean([r.location.lat for r in members]))
        lng = float(np.mean([r.location.lng for r in members]))

        categories = Counter(r.category for r in members)
        dominant, _ = categories.most_common(1)[0]

        patterns.append(Pattern(
            # The mean of points in a cell stays in the cell, so this shares ``prefix``
            location=Location(lat=lat, lng=lng, geohash=encode(lat, lng, GEOHASH_PRECISION)),
            prefix=prefix,
            reportCount=len(members),
            confidence=pattern_confidence(len(members), confidence_scale),
            reportIds=[r.id for r in members],
            categoryBreakdown=dict(categories),
            dominantCategory=dominant,
            lastUpdate=run_at,
        ))
    return patterns


class PatternDetector:
    def __init__(
        self,
        index: SpatialIndex,
        reports: ReportLifecycle,
        min_reports: int = PATTERN_MIN_REPORTS,
        window_seconds: int = PATTERN_WINDOW_SECONDS,
    ):
        if min_reports < 1:
            raise InvalidInput("clustering threshold must be at least 1")
        self.index = index
        self.reports = reports
        self.min_reports = min_reports
        self.window_seconds = window_seconds

    def run(self) -> PatternRun:
        """One full detection pass: read, cluster, replace."""
        now = self.index.now()
        run_at = datetime.fromtimestamp(now, tz=timezone.utc)

        try:
            recent = self.reports.fetch_recent(now - self.window_seconds)
        except StoreUnavailable as e:
            logger.error(f"Pattern run aborted, report read failed: {e}")
            return PatternRun(completed=False, ranAt=run_at, error=str(e))

        patterns = cluster_reports(recent, run_at, min_reports=self.min_reports)

        try:
            replaced, _ = self.index.replace_collection(PATTERNS, [p.to_document() for p in patterns])
        except StoreUnavailable as e:
            logger.error(f"Pattern run aborted, replace failed (previous set kept): {e}")
            return PatternRun(completed=False, reportsScanned=len(recent), ranAt=run_at, error=str(e))

        logger.info(f"Detected {len(patterns)} patterns from {len(recent)} recent reports (replaced {replaced})")
        return PatternRun(completed=True, patterns=len(patterns), reportsScanned=len(recent), ranAt=run_at)

    def fetch_near(self, center: dict) -> list[Pattern]:
        """Patterns whose centroid lies in the same 4-character cell as ``center``."""
        try:
            prefix = prefix_for(float(center["lat"]), float(center["lng"]), QUERY_PREFIX_LENGTH)
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInput(f"center must carry numeric lat/lng: {e}") from e
        docs = self.index.range_by_prefix(
            PATTERNS, "location.geohash", prefix,
            order_by=[("confidence", True)],
            limit=PATTERN_QUERY_LIMIT,
        )
        return [Pattern.model_validate(d) for d in docs]

    def all(self) -> list[Pattern]:
        return [Pattern.model_validate(d) for d in self.index.all(PATTERNS)]
