"""Safewatch Backend — Configuration & Constants"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from project root (one level up from backend/)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path)

ROOT_DIR = Path(__file__).resolve().parent.parent

# ── API Keys ──
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "") or os.environ.get("VITE_GEMINI_API_KEY", "")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash")

# ── Document store ──
DB_PATH = os.environ.get("SAFEWATCH_DB_PATH", str(ROOT_DIR / "datasets" / "safewatch.db"))
STORE_TIMEOUT_SECONDS = float(os.environ.get("SAFEWATCH_STORE_TIMEOUT", "10"))
STORE_READ_RETRIES = int(os.environ.get("SAFEWATCH_READ_RETRIES", "3"))

# ── Scheduler ──
SCHEDULER_ENABLED = os.environ.get("SAFEWATCH_SCHEDULER", "1").lower() not in ("0", "false", "no")
SWEEP_INTERVAL_SECONDS = 24 * 60 * 60
PATTERN_INTERVAL_SECONDS = 60 * 60

# ── HTTP ──
RATE_LIMIT = int(os.environ.get("SAFEWATCH_RATE_LIMIT", "30"))  # requests per minute per IP, 0 disables
RATE_WINDOW = 60

# ── Collections ──
REPORTS = "reports"
VOTES = "reportVotes"
PATTERNS = "patterns"
RATINGS = "locationRatings"
RATING_AGGREGATES = "locationAggregates"
KEYWORDS = "keywords"
AUTHORITY_REPORTS = "authorityReports"

# ── Report lifecycle ──
REPORT_TTL_SECONDS = 30 * 24 * 60 * 60
GEOHASH_PRECISION = 6           # ~1.2 km x 0.6 km at the equator
QUERY_PREFIX_LENGTH = 4         # ~39 km x 19.5 km, coarser than storage
REPORT_QUERY_LIMIT = 500
MAX_TEXT_LENGTH = 500
MAX_REASON_LENGTH = 150
MAX_COMMENT_LENGTH = 200
DEFAULT_CREDIBILITY = 50
# Community verdict: needs this many votes, then a score at or past a bound
VERIFICATION_MIN_VOTES = 3
VERIFIED_MIN_SCORE = 70
DISPUTED_MAX_SCORE = 30

REPORT_TYPES = ("perception", "crime")
RISK_LEVELS = ("low", "medium", "high")
CATEGORIES = (
    "harassment",
    "theft",
    "assault",
    "suspicious-activity",
    "unsafe-infrastructure",
    "other",
)
VOTE_TYPES = ("confirm", "dispute")

# ── Pattern detection ──
PATTERN_WINDOW_SECONDS = 7 * 24 * 60 * 60
PATTERN_MIN_REPORTS = int(os.environ.get("SAFEWATCH_MIN_PATTERN_REPORTS", "3"))
PATTERN_CONFIDENCE_SCALE = 10   # confidence = min(count / scale, 1)
PATTERN_QUERY_LIMIT = 100

# ── Credibility ──
COMMENT_QUERY_LIMIT = 20

# ── Location ratings ──
RATING_GEOHASH_PRECISION = 5
RATING_DIMENSIONS = ("lighting", "footTraffic", "security", "businesses")
RATING_MAX = 5
RECENT_RATINGS_LIMIT = 10

# ── Suggestions ──
SUGGESTIONS_CACHE_TTL = 5 * 60
SUGGESTION_LIMIT = 5
SUGGESTIONS_CACHE_SIZE = 64
MAX_SUGGESTION_LENGTH = 50
AI_SUGGESTION_MIN_CHARS = 3
KEYWORD_MIN_LENGTH = 2
KEYWORD_QUERY_LIMIT = 20

# Fallback classifier word lists, checked in order; first hit wins
HIGH_RISK_KEYWORDS = ("assault", "robbery", "attack", "weapon", "gun", "knife")
THEFT_KEYWORDS = ("theft", "stole", "stolen")
SUSPICIOUS_KEYWORDS = ("suspicious", "uncomfortable", "harass", "follow")
INFRASTRUCTURE_KEYWORDS = ("light", "broken", "road", "pothole")

# Fallback moderator
MODERATION_BLACKLIST = ("kill", "murder", "bomb", "terrorist")
PII_PATTERN = (
    r"\b\d{3}-\d{2}-\d{4}\b"
    r"|\b\d{10}\b"
    r"|\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"
)

# Suggestion defaults shown before any keyword statistics exist
DEFAULT_TEMPLATES = [
    {"id": "default-1", "template": "Suspicious person near my location", "category": "suspicious-activity", "icon": "🚶"},
    {"id": "default-2", "template": "Street light not working", "category": "unsafe-infrastructure", "icon": "💡"},
    {"id": "default-3", "template": "Reckless driving in the area", "category": "traffic", "icon": "🚗"},
    {"id": "default-4", "template": "Harassment incident", "category": "harassment", "icon": "⚠️"},
    {"id": "default-5", "template": "Loud noise disturbance", "category": "noise", "icon": "🔊"},
    {"id": "default-6", "template": "Vandalism or property damage", "category": "vandalism", "icon": "🏚️"},
    {"id": "default-7", "template": "Someone following me", "category": "harassment", "icon": "👀"},
    {"id": "default-8", "template": "Theft in the area", "category": "theft", "icon": "🏃"},
]

DEFAULT_KEYWORDS = [
    {"id": "suspicious", "keyword": "suspicious activity", "count": 50, "category": "suspicious-activity"},
    {"id": "following", "keyword": "following me", "count": 40, "category": "harassment"},
    {"id": "unsafe", "keyword": "unsafe area", "count": 35, "category": "perception"},
    {"id": "poorly-lit", "keyword": "poorly lit", "count": 30, "category": "infrastructure"},
    {"id": "aggressive", "keyword": "aggressive behavior", "count": 25, "category": "harassment"},
    {"id": "broken", "keyword": "broken streetlight", "count": 20, "category": "infrastructure"},
    {"id": "theft", "keyword": "theft", "count": 18, "category": "crime"},
    {"id": "noise", "keyword": "noise complaint", "count": 15, "category": "noise"},
]

# ── Authority summaries ──
AUTHORITY_DEFAULT_DAYS = 7
