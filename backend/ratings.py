"""Safewatch Backend — Location safety ratings

Users rate a spot on four 0-5 dimensions (0 = not rated). Ratings are keyed
by a 5-character geohash cell and rolled into a per-cell running mean.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Optional

from config import (
    RATINGS, RATING_AGGREGATES, RATING_GEOHASH_PRECISION, RATING_DIMENSIONS,
    RATING_MAX, RECENT_RATINGS_LIMIT, MAX_COMMENT_LENGTH,
)
from errors import InvalidInput
from geohash import encode
from models import LocationRatings, Location, Rating, RatingAggregate
from spatial_index import SpatialIndex

logger = logging.getLogger("safewatch.ratings")


def overall_score(ratings: dict) -> int:
    """Rounded mean of the dimensions that were actually rated."""
    values = [ratings.get(d, 0) for d in RATING_DIMENSIONS if ratings.get(d, 0) > 0]
    if not values:
        return 0
    return int(math.floor(sum(values) / len(values) + 0.5))


class RatingService:
    def __init__(self, index: SpatialIndex):
        self.index = index

    def submit_rating(self, location: dict, ratings: dict, user_id: str) -> Rating:
        if not user_id:
            raise InvalidInput("userId is required")
        try:
            lat, lng = float(location["lat"]), float(location["lng"])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInput(f"location must carry numeric lat/lng: {e}") from e
        for dim in RATING_DIMENSIONS:
            value = ratings.get(dim, 0)
            if not isinstance(value, int) or not 0 <= value <= RATING_MAX:
                raise InvalidInput(f"{dim} must be an integer between 0 and {RATING_MAX}")
        comment = (ratings.get("comment") or "").strip()
        if len(comment) > MAX_COMMENT_LENGTH:
            raise InvalidInput(f"comment exceeds {MAX_COMMENT_LENGTH} characters")

        cell = encode(lat, lng, RATING_GEOHASH_PRECISION)
        now = self.index.server_timestamp()
        rating = Rating(
            geohash=cell,
            location=Location(lat=lat, lng=lng),
            userId=user_id,
            overall=overall_score(ratings),
            comment=comment,
            timestamp=datetime.fromtimestamp(now, tz=timezone.utc),
            **{d: ratings.get(d, 0) for d in RATING_DIMENSIONS},
        )

        with self.index.transaction() as txn:
            rating.id = txn.insert(RATINGS, rating.to_document())
            current = txn.get(RATING_AGGREGATES, cell)
            if current is None:
                aggregate = {"geohash": cell, "ratingCount": 1, "updatedAt": now}
                aggregate.update({d: float(ratings.get(d, 0)) for d in RATING_DIMENSIONS})
            else:
                count = current.get("ratingCount", 0) + 1
                aggregate = {"geohash": cell, "ratingCount": count, "updatedAt": now}
                for d in RATING_DIMENSIONS:
                    aggregate[d] = (current.get(d, 0) * (count - 1) + ratings.get(d, 0)) / count
            txn.put(RATING_AGGREGATES, cell, aggregate)

        logger.info(f"Rating stored for cell {cell} (overall {rating.overall})")
        return rating

    def ratings_for_location(self, lat: float, lng: float) -> LocationRatings:
        cell = encode(lat, lng, RATING_GEOHASH_PRECISION)

        aggregate = None
        doc = self.index.get(RATING_AGGREGATES, cell)
        if doc is not None:
            doc["overall"] = sum(doc.get(d, 0) for d in RATING_DIMENSIONS) / len(RATING_DIMENSIONS)
            aggregate = RatingAggregate.model_validate(doc)

        recent = self.index.exact_query(
            RATINGS, {"geohash": cell},
            order_by=[("timestamp", True)],
            limit=RECENT_RATINGS_LIMIT,
        )
        return LocationRatings(aggregate=aggregate, recent=[Rating.model_validate(r) for r in recent])

    def user_rating(self, lat: float, lng: float, user_id: str) -> Optional[Rating]:
        cell = encode(lat, lng, RATING_GEOHASH_PRECISION)
        docs = self.index.exact_query(RATINGS, {"geohash": cell, "userId": user_id}, limit=1)
        return Rating.model_validate(docs[0]) if docs else None
