"""Safewatch Backend — Pydantic Models

Stored documents keep timestamps as epoch seconds; the models carry aware
datetimes (pydantic converts numbers on the way in, ``to_document`` converts
back on the way out).
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

ReportType = Literal["perception", "crime"]
RiskLevel = Literal["low", "medium", "high"]
Category = Literal[
    "harassment", "theft", "assault", "suspicious-activity", "unsafe-infrastructure", "other",
]
VoteType = Literal["confirm", "dispute"]
ReportStatus = Literal["unverified", "verified", "disputed"]


def _to_epochs(value):
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, dict):
        return {k: _to_epochs(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_epochs(v) for v in value]
    return value


class Document(BaseModel):
    id: Optional[str] = None

    def to_document(self) -> dict:
        return _to_epochs(self.model_dump(exclude={"id"}))


# ─────────────────────────── Stored entities ────────────────────

class Location(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    geohash: str = ""


class Report(Document):
    location: Location
    reportType: ReportType
    riskLevel: RiskLevel
    category: Category = "other"
    reason: str = Field(max_length=150)
    originalText: str = Field(min_length=1, max_length=500)
    aiParsed: bool = False
    status: ReportStatus = "unverified"
    createdAt: datetime
    expiresAt: datetime
    confirmCount: int = Field(default=0, ge=0)
    disputeCount: int = Field(default=0, ge=0)
    credibilityScore: int = Field(default=50, ge=0, le=100)


class Vote(Document):
    reportId: str
    voterId: str = Field(min_length=1)
    voteType: VoteType
    comment: str = Field(default="", max_length=200)
    timestamp: datetime
    updatedAt: Optional[datetime] = None


class Pattern(Document):
    location: Location
    prefix: str
    reportCount: int = Field(ge=1)
    confidence: float = Field(ge=0, le=1)
    reportIds: list[str]
    categoryBreakdown: dict[str, int] = {}
    dominantCategory: str = "other"
    lastUpdate: datetime


class Rating(Document):
    geohash: str
    location: Location
    userId: str
    lighting: int = 0
    footTraffic: int = 0
    security: int = 0
    businesses: int = 0
    overall: int = 0
    comment: str = ""
    timestamp: datetime


class RatingAggregate(BaseModel):
    geohash: str
    lighting: float = 0.0
    footTraffic: float = 0.0
    security: float = 0.0
    businesses: float = 0.0
    overall: float = 0.0
    ratingCount: int = 0
    updatedAt: Optional[datetime] = None


class AuthorityReport(Document):
    geohash: str
    reportCount: int
    riskBreakdown: dict[str, int]
    timeframeStart: datetime
    timeframeEnd: datetime
    summary: str
    aiGenerated: bool = False
    generatedAt: datetime


# ─────────────────────────── Derived views ──────────────────────

class Comment(BaseModel):
    id: str
    text: str
    voteType: VoteType
    timestamp: datetime


class VoteCounts(BaseModel):
    confirms: int = 0
    disputes: int = 0


class LocationRatings(BaseModel):
    aggregate: Optional[RatingAggregate] = None
    recent: list[Rating] = []


class Classification(BaseModel):
    riskLevel: RiskLevel
    reason: str = Field(max_length=150)
    category: Category = "other"
    aiParsed: bool = False


class Moderation(BaseModel):
    approved: bool
    reason: Optional[str] = None


class Suggestions(BaseModel):
    keywords: list[dict]
    templates: list[dict]
    suggestions: list[str]
    partialText: str = ""


class PatternRun(BaseModel):
    completed: bool
    patterns: int = 0
    reportsScanned: int = 0
    ranAt: Optional[datetime] = None
    error: str = ""


class SweepResult(BaseModel):
    deleted: int


# ─────────────────────────── Requests ───────────────────────────

class ReportRequest(BaseModel):
    text: str
    lat: float
    lng: float
    reportType: ReportType = "perception"


class VoteRequest(BaseModel):
    voterId: str
    voteType: VoteType
    comment: str = ""


class RatingRequest(BaseModel):
    lat: float
    lng: float
    userId: str
    lighting: int = 0
    footTraffic: int = 0
    security: int = 0
    businesses: int = 0
    comment: str = ""


class TextRequest(BaseModel):
    text: str


class AuthorityReportRequest(BaseModel):
    geohash: str
    days: int = Field(default=7, ge=1, le=30)
