"""Safewatch Backend — Vote aggregation & credibility

One vote per (report, voter). A repeat vote rewrites the existing record.
After every change the report's counts and score are recomputed from the full
vote set inside the same transaction, so concurrent votes from different
voters commute and edits/removals never leave stale counters behind. The
report status follows the same recount: "verified" or "disputed" once enough
votes lean far enough one way, "unverified" otherwise.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Optional

from config import (
    REPORTS, VOTES, VOTE_TYPES, MAX_COMMENT_LENGTH, COMMENT_QUERY_LIMIT,
    DEFAULT_CREDIBILITY, VERIFICATION_MIN_VOTES, VERIFIED_MIN_SCORE, DISPUTED_MAX_SCORE,
)
from errors import InvalidInput, NotFound
from models import Comment, Vote, VoteCounts
from spatial_index import SpatialIndex
from store import Transaction

logger = logging.getLogger("safewatch.credibility")


def credibility_score(confirms: int, disputes: int) -> int:
    """Confirm ratio as a 0-100 percentage, neutral 50 with no votes.

    Rounds half up, so 1 confirm / 7 disputes (12.5%) scores 13.
    """
    total = confirms + disputes
    if total == 0:
        return DEFAULT_CREDIBILITY
    return int(math.floor(100 * confirms / total + 0.5))


def verification_status(confirms: int, disputes: int) -> str:
    if confirms + disputes < VERIFICATION_MIN_VOTES:
        return "unverified"
    score = credibility_score(confirms, disputes)
    if score >= VERIFIED_MIN_SCORE:
        return "verified"
    if score <= DISPUTED_MAX_SCORE:
        return "disputed"
    return "unverified"


def _tally(votes: list[dict]) -> VoteCounts:
    confirms = sum(1 for v in votes if v.get("voteType") == "confirm")
    disputes = sum(1 for v in votes if v.get("voteType") == "dispute")
    return VoteCounts(confirms=confirms, disputes=disputes)


class CredibilityAggregator:
    def __init__(self, index: SpatialIndex):
        self.index = index

    def _require_live_report(self, txn: Transaction, report_id: str) -> dict:
        doc = txn.get(REPORTS, report_id)
        if doc is None or doc.get("expiresAt", 0) <= self.index.now():
            raise NotFound(f"report {report_id} not found")
        return doc

    def _recount(self, txn: Transaction, report_id: str) -> VoteCounts:
        counts = _tally(txn.find(VOTES, [("reportId", "==", report_id)]))
        txn.update(REPORTS, report_id, {
            "confirmCount": counts.confirms,
            "disputeCount": counts.disputes,
            "credibilityScore": credibility_score(counts.confirms, counts.disputes),
            "status": verification_status(counts.confirms, counts.disputes),
        })
        return counts

    def vote(self, report_id: str, voter_id: str, vote_type: str, comment: str = "") -> VoteCounts:
        if vote_type not in VOTE_TYPES:
            raise InvalidInput(f"voteType must be one of {VOTE_TYPES}")
        if not voter_id:
            raise InvalidInput("voterId is required")
        comment = (comment or "").strip()
        if len(comment) > MAX_COMMENT_LENGTH:
            raise InvalidInput(f"comment exceeds {MAX_COMMENT_LENGTH} characters")

        now = self.index.server_timestamp()
        # BEGIN IMMEDIATE serialises the lookup-then-write; the unique index backs it up
        with self.index.transaction() as txn:
            self._require_live_report(txn, report_id)
            existing = txn.find(VOTES, [("reportId", "==", report_id), ("voterId", "==", voter_id)], limit=1)
            if existing:
                txn.update(VOTES, existing[0]["id"], {
                    "voteType": vote_type,
                    "comment": comment,
                    "timestamp": now,
                    "updatedAt": now,
                })
            else:
                txn.insert(VOTES, {
                    "reportId": report_id,
                    "voterId": voter_id,
                    "voteType": vote_type,
                    "comment": comment,
                    "timestamp": now,
                    "updatedAt": None,
                })
            counts = self._recount(txn, report_id)

        logger.info(f"Vote {vote_type} on {report_id}: {counts.confirms} confirm / {counts.disputes} dispute")
        return counts

    def remove_vote(self, report_id: str, voter_id: str) -> VoteCounts:
        with self.index.transaction() as txn:
            existing = txn.find(VOTES, [("reportId", "==", report_id), ("voterId", "==", voter_id)], limit=1)
            if existing:
                txn.delete(VOTES, existing[0]["id"])
            if txn.get(REPORTS, report_id) is None:
                return VoteCounts()
            return self._recount(txn, report_id)

    def user_vote(self, report_id: str, voter_id: str) -> Optional[Vote]:
        docs = self.index.exact_query(VOTES, {"reportId": report_id, "voterId": voter_id}, limit=1)
        return Vote.model_validate(docs[0]) if docs else None

    def vote_counts(self, report_id: str) -> VoteCounts:
        return _tally(self.index.exact_query(VOTES, {"reportId": report_id}))

    def comments(self, report_id: str, limit: int = COMMENT_QUERY_LIMIT) -> list[Comment]:
        """Votes carrying a non-empty comment, newest first."""
        docs = self.index.exact_query(VOTES, {"reportId": report_id})
        comments = [
            Comment(
                id=d["id"],
                text=d["comment"],
                voteType=d["voteType"],
                timestamp=datetime.fromtimestamp(d["timestamp"], tz=timezone.utc),
            )
            for d in docs
            if (d.get("comment") or "").strip()
        ]
        comments.sort(key=lambda c: c.timestamp, reverse=True)
        return comments[:limit]
