"""Safewatch Backend — Report lifecycle

Creation stamps the geohash, creation time and 30-day expiry. Every read
drops reports whose expiry has passed, whether or not the sweep has deleted
them yet; the sweep only reclaims space.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from config import (
    REPORTS, REPORT_TTL_SECONDS, GEOHASH_PRECISION, QUERY_PREFIX_LENGTH,
    REPORT_QUERY_LIMIT, MAX_TEXT_LENGTH, DEFAULT_CREDIBILITY,
)
from errors import InvalidInput, NotFound
from geohash import encode, prefix_for, validate_coordinates
from models import Location, Report
from spatial_index import SpatialIndex

logger = logging.getLogger("safewatch.reports")


def _as_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _is_live(doc: dict, now: float) -> bool:
    return doc.get("expiresAt", 0) > now


class ReportLifecycle:
    def __init__(self, index: SpatialIndex, ttl_seconds: int = REPORT_TTL_SECONDS):
        self.index = index
        self.ttl_seconds = ttl_seconds

    def submit(
        self,
        report_type: str,
        risk_level: str,
        reason: str,
        original_text: str,
        location: dict,
        category: str = "other",
        ai_parsed: bool = False,
    ) -> Report:
        """Validate, stamp and persist a new report."""
        text = (original_text or "").strip()
        if not text:
            raise InvalidInput("report text is empty")
        if len(text) > MAX_TEXT_LENGTH:
            raise InvalidInput(f"report text exceeds {MAX_TEXT_LENGTH} characters")

        try:
            lat, lng = float(location["lat"]), float(location["lng"])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInput(f"location must carry numeric lat/lng: {e}") from e
        validate_coordinates(lat, lng)

        created = self.index.server_timestamp()
        try:
            report = Report(
                location=Location(lat=lat, lng=lng, geohash=encode(lat, lng, GEOHASH_PRECISION)),
                reportType=report_type,
                riskLevel=risk_level,
                category=category,
                reason=reason,
                originalText=text,
                aiParsed=ai_parsed,
                createdAt=_as_datetime(created),
                expiresAt=_as_datetime(created + self.ttl_seconds),
                confirmCount=0,
                disputeCount=0,
                credibilityScore=DEFAULT_CREDIBILITY,
            )
        except ValidationError as e:
            raise InvalidInput(str(e)) from e

        doc = report.to_document()
        # Keep the exact float timestamps; datetimes round to the microsecond
        doc["createdAt"] = created
        doc["expiresAt"] = created + self.ttl_seconds
        report.id = self.index.insert(REPORTS, doc)
        logger.info(f"Report {report.id} stored at {report.location.geohash} ({risk_level}/{category})")
        return report

    def get(self, report_id: str) -> Report:
        doc = self.index.get(REPORTS, report_id)
        if doc is None or not _is_live(doc, self.index.now()):
            raise NotFound(f"report {report_id} not found")
        return Report.model_validate(doc)

    def fetch_near(self, center: dict, radius_hint: Optional[float] = None) -> list[Report]:
        """Live reports in the same 4-character geohash cell as ``center``.

        ``radius_hint`` does not narrow the query; the cell is the unit of
        proximity here.
        """
        try:
            lat, lng = float(center["lat"]), float(center["lng"])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInput(f"center must carry numeric lat/lng: {e}") from e
        prefix = prefix_for(lat, lng, QUERY_PREFIX_LENGTH)
        if radius_hint is not None:
            logger.debug(f"fetch_near radius hint {radius_hint} km, using cell {prefix}")

        docs = self.index.range_by_prefix(
            REPORTS, "location.geohash", prefix,
            order_by=[("createdAt", True)],
            limit=REPORT_QUERY_LIMIT,
        )
        now = self.index.now()
        return [Report.model_validate(d) for d in docs if _is_live(d, now)]

    def fetch_recent(self, since: float) -> list[Report]:
        """Live reports created at or after ``since`` (epoch seconds)."""
        docs = self.index.range_query(REPORTS, "createdAt", gte=since)
        now = self.index.now()
        return [Report.model_validate(d) for d in docs if _is_live(d, now)]

    def fetch_in_cell(self, prefix: str, since: float) -> list[Report]:
        docs = self.index.range_by_prefix(
            REPORTS, "location.geohash", prefix, order_by=[("createdAt", True)],
        )
        now = self.index.now()
        return [
            Report.model_validate(d) for d in docs
            if _is_live(d, now) and d.get("createdAt", 0) >= since
        ]

    def sweep_expired(self) -> int:
        """Delete every report whose expiry has passed. Returns the count deleted."""
        now = self.index.now()
        expired = self.index.range_query(REPORTS, "expiresAt", lte=now)
        if not expired:
            logger.info("Sweep: no expired reports")
            return 0
        self.index.batch_replace(REPORTS, [d["id"] for d in expired], [])
        logger.info(f"Deleted {len(expired)} expired reports")
        return len(expired)
