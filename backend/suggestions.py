"""Safewatch Backend — Report input suggestions

Templates and keywords shown while a user types a report. Fixed defaults are
merged with keyword counts learned from submitted reports. Reads go through a
5-minute TTL cache that keyword updates invalidate.

Once the user has typed three characters Gemini proposes completions; without
it (or at two characters) the known keywords are substring-matched instead.
Submitted reports feed the keyword counts through Gemini key phrases, or a
plain word split when Gemini is unavailable.
"""

import logging
import re
import threading
import time
from typing import Callable, Optional

from cachetools import TTLCache

import classifier
from config import (
    KEYWORDS, DEFAULT_KEYWORDS, DEFAULT_TEMPLATES,
    SUGGESTIONS_CACHE_TTL, SUGGESTIONS_CACHE_SIZE, SUGGESTION_LIMIT, KEYWORD_QUERY_LIMIT,
    AI_SUGGESTION_MIN_CHARS, KEYWORD_MIN_LENGTH,
)
from models import Suggestions
from spatial_index import SpatialIndex

logger = logging.getLogger("safewatch.suggestions")

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def extract_keywords(text: str, limit: int = 5) -> list[str]:
    """Words longer than four characters, in order of appearance."""
    words = _NON_WORD.sub("", text.lower()).split()
    seen = []
    for w in words:
        if len(w) > 4 and w not in seen:
            seen.append(w)
    return seen[:limit]


def keyword_id(keyword: str) -> str:
    return _WHITESPACE.sub("-", keyword)


class SuggestionService:
    def __init__(self, index: SpatialIndex, cache: Optional[TTLCache] = None,
                 clock: Callable[[], float] = time.time):
        self.index = index
        if cache is None:
            cache = TTLCache(maxsize=SUGGESTIONS_CACHE_SIZE, ttl=SUGGESTIONS_CACHE_TTL, timer=clock)
        self.cache = cache
        self._cache_lock = threading.Lock()

    def _keywords(self) -> list[dict]:
        with self._cache_lock:
            cached = self.cache.get("keywords")
        if cached is not None:
            return cached

        stored = self.index.range_query(
            KEYWORDS, "count", gte=1, order_by=[("count", True)], limit=KEYWORD_QUERY_LIMIT,
        )
        merged = {k["keyword"]: dict(k) for k in DEFAULT_KEYWORDS}
        for doc in stored:
            entry = merged.get(doc["keyword"])
            if entry is None:
                merged[doc["keyword"]] = doc
            else:
                entry["count"] = entry["count"] + doc.get("count", 0)
        keywords = sorted(merged.values(), key=lambda k: k["count"], reverse=True)

        with self._cache_lock:
            self.cache["keywords"] = keywords
        return keywords

    def suggestions(self, partial_text: str = "", category: Optional[str] = None) -> Suggestions:
        templates = DEFAULT_TEMPLATES
        keywords = self._keywords()
        if category:
            templates = [t for t in templates if t["category"] == category]
            keywords = [k for k in keywords if k.get("category") == category]

        partial_text = partial_text or ""
        matches = []
        if len(partial_text) >= AI_SUGGESTION_MIN_CHARS:
            matches = classifier.suggest_completions(partial_text)
        if not matches and len(partial_text) >= 2:
            lower = partial_text.lower()
            matches = [k["keyword"] for k in keywords if lower in k["keyword"].lower()][:SUGGESTION_LIMIT]

        return Suggestions(
            keywords=keywords,
            templates=templates,
            suggestions=matches,
            partialText=partial_text,
        )

    def record_report(self, report_text: str, category: str = "other", risk_level: str = "low") -> list[str]:
        """Bump keyword counts for a submitted report. Returns the keywords counted."""
        phrases = classifier.extract_key_phrases(report_text)
        if not phrases:
            phrases = extract_keywords(report_text)

        keywords = []
        for phrase in phrases:
            phrase = phrase.lower().strip()
            if len(phrase) >= KEYWORD_MIN_LENGTH and phrase not in keywords:
                keywords.append(phrase)
        if not keywords:
            return []

        now = self.index.server_timestamp()
        with self.index.transaction() as txn:
            for keyword in keywords:
                key = keyword_id(keyword)
                current = txn.get(KEYWORDS, key)
                if current is None:
                    txn.put(KEYWORDS, key, {
                        "keyword": keyword,
                        "count": 1,
                        "lastUsed": now,
                        "category": category,
                        "averageRiskLevel": risk_level,
                    })
                else:
                    txn.update(KEYWORDS, key, {
                        "count": current.get("count", 0) + 1,
                        "lastUsed": now,
                        "category": category,
                    })

        with self._cache_lock:
            self.cache.clear()
        logger.debug(f"Counted {len(keywords)} keywords for a {category} report")
        return keywords
