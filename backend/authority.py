"""Safewatch Backend — Authority summaries

Anonymous roll-up of recent reports in a geohash cell for local authorities.
No voter or reporter identity leaves this module; only dates, risk levels and
short reasons do.
"""

import json
import logging
from collections import Counter
from datetime import datetime, timezone

import classifier
from config import AUTHORITY_REPORTS, AUTHORITY_DEFAULT_DAYS, RISK_LEVELS
from errors import InvalidInput
from geohash import decode
from models import AuthorityReport, Report
from reports import ReportLifecycle
from spatial_index import SpatialIndex

logger = logging.getLogger("safewatch.authority")

_SUMMARY_PROMPT = """Generate a neutral, factual summary of these safety reports for local authorities.

Reports: {reports}

Create a professional summary that:
1. States the number of reports and timeframe
2. Identifies key patterns or trends
3. Highlights high-risk areas
4. Remains neutral and factual
5. Protects user anonymity

Keep it under 500 words."""


def template_summary(reports: list[Report], risk: dict[str, int], days: int, cell: str) -> str:
    if not reports:
        return f"No community safety reports were filed in area {cell} during the last {days} days."
    categories = Counter(r.category for r in reports)
    top = ", ".join(f"{c} ({n})" for c, n in categories.most_common(3))
    return (
        f"{len(reports)} community safety reports were filed in area {cell} during the last {days} days: "
        f"{risk.get('high', 0)} high risk, {risk.get('medium', 0)} medium risk, {risk.get('low', 0)} low risk. "
        f"Most common categories: {top}."
    )


class AuthorityReporter:
    def __init__(self, index: SpatialIndex, reports: ReportLifecycle):
        self.index = index
        self.reports = reports

    def generate(self, geohash: str, days: int = AUTHORITY_DEFAULT_DAYS) -> AuthorityReport:
        cell = (geohash or "").strip().lower()
        if not cell:
            raise InvalidInput("geohash required")
        decode(cell)  # rejects characters outside the base-32 alphabet
        if days < 1:
            raise InvalidInput("days must be at least 1")

        now = self.index.server_timestamp()
        start = now - days * 24 * 60 * 60
        recent = self.reports.fetch_in_cell(cell, start)

        counts = Counter(r.riskLevel for r in recent)
        risk = {level: counts.get(level, 0) for level in RISK_LEVELS}

        summary = None
        if recent:
            payload = json.dumps([
                {"date": r.createdAt.date().isoformat(), "risk": r.riskLevel, "description": r.reason}
                for r in recent
            ])
            summary = classifier.summarize(_SUMMARY_PROMPT.format(reports=payload))
        ai_generated = bool(summary)
        if not summary:
            summary = template_summary(recent, risk, days, cell)

        report = AuthorityReport(
            geohash=cell,
            reportCount=len(recent),
            riskBreakdown=risk,
            timeframeStart=datetime.fromtimestamp(start, tz=timezone.utc),
            timeframeEnd=datetime.fromtimestamp(now, tz=timezone.utc),
            summary=summary,
            aiGenerated=ai_generated,
            generatedAt=datetime.fromtimestamp(now, tz=timezone.utc),
        )
        report.id = self.index.insert(AUTHORITY_REPORTS, report.to_document())
        logger.info(f"Authority report {report.id} for {cell}: {len(recent)} reports over {days} days")
        return report
