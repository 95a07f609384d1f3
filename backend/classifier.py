"""Safewatch Backend — Report classification & moderation

Gemini reads the free text and returns risk level, category and a short
reason (or an approve/reject verdict for moderation). Gemini is optional: with
no key, on any API error, or on output that doesn't fit the schema, the
deterministic keyword classifier/moderator answers instead and the result is
marked ``aiParsed=False``.
"""

import json
import logging
import re
import threading

from cachetools import LRUCache

from config import (
    GEMINI_API_KEY, GEMINI_MODEL,
    CATEGORIES, RISK_LEVELS, MAX_REASON_LENGTH, MAX_SUGGESTION_LENGTH, SUGGESTION_LIMIT,
    HIGH_RISK_KEYWORDS, THEFT_KEYWORDS, SUSPICIOUS_KEYWORDS, INFRASTRUCTURE_KEYWORDS,
    MODERATION_BLACKLIST, PII_PATTERN,
)
from errors import ClassificationUnavailable
from models import Classification, Moderation

logger = logging.getLogger("safewatch.classifier")

_PII_RE = re.compile(PII_PATTERN)

# Same text always classifies the same way; only successful AI answers are cached
_CLASSIFY_CACHE = LRUCache(maxsize=256)
_MODERATE_CACHE = LRUCache(maxsize=256)
_COMPLETION_CACHE = LRUCache(maxsize=256)
_CACHE_LOCK = threading.Lock()

_GEMINI_TIMEOUT = 15


# ─────────────────────────── Gemini transport ───────────────────

def _generate(prompt: str, json_output: bool = True) -> str:
    """Call Gemini and return the raw response text."""
    if not GEMINI_API_KEY:
        raise ClassificationUnavailable("Gemini API key not configured")
    try:
        import google.generativeai as genai
        genai.configure(api_key=GEMINI_API_KEY)
        model = genai.GenerativeModel(GEMINI_MODEL)
        config = genai.types.GenerationConfig(
            response_mime_type="application/json" if json_output else "text/plain",
        )
        result = model.generate_content(
            prompt,
            generation_config=config,
            request_options={"timeout": _GEMINI_TIMEOUT},
        )
        return result.text.strip()
    except Exception as e:
        raise ClassificationUnavailable(f"Gemini call failed: {e}") from e


def _parse_object(text: str) -> dict:
    start_idx = text.find("{")
    end_idx = text.rfind("}")
    if start_idx == -1 or end_idx == -1:
        raise ClassificationUnavailable("no JSON object in response")
    try:
        parsed = json.loads(text[start_idx:end_idx + 1])
    except ValueError as e:
        raise ClassificationUnavailable(f"unparseable response: {e}") from e
    if not isinstance(parsed, dict):
        raise ClassificationUnavailable("response is not an object")
    return parsed


def _parse_strings(text: str) -> list[str]:
    start_idx = text.find("[")
    end_idx = text.rfind("]")
    if start_idx == -1 or end_idx == -1:
        raise ClassificationUnavailable("no JSON array in response")
    try:
        parsed = json.loads(text[start_idx:end_idx + 1])
    except ValueError as e:
        raise ClassificationUnavailable(f"unparseable response: {e}") from e
    if not isinstance(parsed, list) or not all(isinstance(s, str) for s in parsed):
        raise ClassificationUnavailable("response is not a list of strings")
    return [s.strip() for s in parsed if s.strip()]


def _truncate(s: str, limit: int = MAX_REASON_LENGTH) -> str:
    s = str(s).strip()
    if len(s) <= limit:
        return s
    truncated = s[:limit - 1].rsplit(" ", 1)[0]
    return truncated.rstrip(".,;:") + "…"


# ─────────────────────────── Classification ─────────────────────

_CLASSIFY_PROMPT = """You are a safety analyst for a community safety platform. Analyze this safety report and extract structured information.

Report: "{text}"

Extract the following:
1. Risk Level: Classify as "low", "medium", or "high"
   - High: Immediate danger, assault, weapons, active threats
   - Medium: Harassment, suspicious activity, uncomfortable situations
   - Low: Minor concerns, general unease
2. Reason: A clear, concise summary (max 150 characters)
3. Category: One of [{categories}]

Respond ONLY with a JSON object, no other text:
{{"riskLevel": "low|medium|high", "reason": "brief summary", "category": "category"}}"""


def fallback_classify(text: str) -> Classification:
    """Keyword classifier. Lists are checked in order, first hit wins."""
    lower = text.lower()
    risk, category = "low", "other"

    if any(w in lower for w in HIGH_RISK_KEYWORDS):
        risk, category = "high", "assault"
    elif any(w in lower for w in THEFT_KEYWORDS):
        risk, category = "medium", "theft"
    elif any(w in lower for w in SUSPICIOUS_KEYWORDS):
        risk, category = "medium", "suspicious-activity"
    elif any(w in lower for w in INFRASTRUCTURE_KEYWORDS):
        risk, category = "low", "unsafe-infrastructure"

    return Classification(
        riskLevel=risk,
        reason=text[:MAX_REASON_LENGTH],
        category=category,
        aiParsed=False,
    )


def classify(text: str) -> Classification:
    """Classify report text, falling back to keywords when Gemini can't answer."""
    text = (text or "").strip()
    with _CACHE_LOCK:
        if text in _CLASSIFY_CACHE:
            return _CLASSIFY_CACHE[text]

    try:
        raw = _generate(_CLASSIFY_PROMPT.format(text=text, categories=", ".join(CATEGORIES)))
        parsed = _parse_object(raw)
        risk = str(parsed.get("riskLevel", "")).lower()
        if risk not in RISK_LEVELS:
            raise ClassificationUnavailable(f"invalid riskLevel {parsed.get('riskLevel')!r}")
        category = str(parsed.get("category", "other")).lower()
        if category not in CATEGORIES:
            category = "other"
        result = Classification(
            riskLevel=risk,
            reason=_truncate(parsed.get("reason") or text),
            category=category,
            aiParsed=True,
        )
    except ClassificationUnavailable as e:
        logger.warning(f"AI classification unavailable, using keyword fallback: {e}")
        return fallback_classify(text)

    with _CACHE_LOCK:
        _CLASSIFY_CACHE[text] = result
    return result


# ─────────────────────────── Moderation ─────────────────────────

_MODERATE_PROMPT = """You are a content moderator for a community safety platform. Analyze this content for policy violations.

Content: "{text}"

Check for:
1. Personal Identifiable Information (names, addresses, phone numbers, emails)
2. Hate speech or discriminatory language
3. Calls for violence or vigilantism
4. False accusations or defamation
5. Doxxing attempts

Respond ONLY with a JSON object, no other text:
{{"approved": true/false, "reason": "explanation if not approved"}}"""


def fallback_moderate(text: str) -> Moderation:
    if _PII_RE.search(text):
        return Moderation(approved=False, reason="Content contains personal identifiable information")

    lower = text.lower()
    for word in MODERATION_BLACKLIST:
        if word in lower:
            return Moderation(approved=False, reason="Content contains prohibited language")

    return Moderation(approved=True)


def moderate(text: str) -> Moderation:
    text = (text or "").strip()
    with _CACHE_LOCK:
        if text in _MODERATE_CACHE:
            return _MODERATE_CACHE[text]

    try:
        parsed = _parse_object(_generate(_MODERATE_PROMPT.format(text=text)))
        if "approved" not in parsed:
            raise ClassificationUnavailable("moderation response missing 'approved'")
        approved = parsed.get("approved") is not False
        result = Moderation(
            approved=approved,
            reason=None if approved else (parsed.get("reason") or "Content violates community guidelines"),
        )
    except ClassificationUnavailable as e:
        logger.warning(f"AI moderation unavailable, using keyword fallback: {e}")
        return fallback_moderate(text)

    with _CACHE_LOCK:
        _MODERATE_CACHE[text] = result
    return result


# ─────────────────────────── Free-text summaries ────────────────

def summarize(prompt: str) -> str | None:
    """Plain-text Gemini completion, or None when unavailable."""
    try:
        return _generate(prompt, json_output=False)
    except ClassificationUnavailable as e:
        logger.warning(f"AI summary unavailable: {e}")
        return None


# ─────────────────────────── Autocomplete ───────────────────────

_COMPLETION_PROMPT = """You are helping users report safety concerns in their community. Based on the partial input, suggest {count} relevant completions or phrases.

Partial input: "{text}"

Common community safety topics include: suspicious activity, harassment, theft, unsafe infrastructure, noise complaints, vandalism, reckless driving, poorly lit areas.

Return a JSON array of {count} suggestion strings that would complete or enhance the user's input:
["suggestion1", "suggestion2", "suggestion3", "suggestion4", "suggestion5"]

Keep suggestions concise (under {max_length} characters each) and relevant to safety reporting."""

_KEY_PHRASE_PROMPT = """Extract 3-5 key phrases from this safety report that would be useful for autocomplete suggestions. Focus on action words, location descriptors, and safety concerns.

Report: "{text}"

Return a JSON array of keyword/phrase strings:
["phrase1", "phrase2", "phrase3"]

Keep each phrase between 2-4 words, lowercase, focused on reusable patterns."""


def suggest_completions(partial_text: str, count: int = SUGGESTION_LIMIT) -> list[str] | None:
    """Gemini completions for a half-typed report, or None when unavailable."""
    key = (partial_text or "").strip().lower()
    with _CACHE_LOCK:
        if key in _COMPLETION_CACHE:
            return _COMPLETION_CACHE[key]

    try:
        raw = _generate(_COMPLETION_PROMPT.format(
            text=partial_text, count=count, max_length=MAX_SUGGESTION_LENGTH,
        ))
        result = [_truncate(s, MAX_SUGGESTION_LENGTH) for s in _parse_strings(raw)][:count]
    except ClassificationUnavailable as e:
        logger.warning(f"AI suggestions unavailable, using keyword matching: {e}")
        return None

    with _CACHE_LOCK:
        _COMPLETION_CACHE[key] = result
    return result


def extract_key_phrases(text: str) -> list[str] | None:
    """Short reusable phrases from a report, or None when unavailable."""
    try:
        return _parse_strings(_generate(_KEY_PHRASE_PROMPT.format(text=text)))
    except ClassificationUnavailable as e:
        logger.warning(f"AI key phrase extraction unavailable, using basic extraction: {e}")
        return None


def clear_caches():
    with _CACHE_LOCK:
        _CLASSIFY_CACHE.clear()
        _MODERATE_CACHE.clear()
        _COMPLETION_CACHE.clear()
