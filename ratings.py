"""
Product rating aggregation

A product's average_rating, total_reviews and rating_breakdown always mirror
the set of its approved reviews. They are recomputed from a full rescan after
every review write and never patched incrementally, so concurrent writers end
with the figures of some complete snapshot of the review set.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel

logger = logging.getLogger(__name__)

STARS = (5, 4, 3, 2, 1)
APPROVED = "approved"


class RatingStats(BaseModel):
    average_rating: float = 0.0
    total_reviews: int = 0
    rating_breakdown: Dict[int, int] = {star: 0 for star in STARS}

    def as_document(self) -> dict:
        # Mongo keys must be strings
        return {
            "average_rating": self.average_rating,
            "total_reviews": self.total_reviews,
            "rating_breakdown": {str(star): count for star, count in self.rating_breakdown.items()},
        }


def round_rating(total: int, count: int) -> float:
    """Mean of the ratings rounded half-up to one decimal."""
    mean = Decimal(total) / Decimal(count)
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def compute_rating_stats(ratings: Iterable[int]) -> RatingStats:
    breakdown = {star: 0 for star in STARS}
    total = 0
    count = 0
    for rating in ratings:
        if rating is None:
            continue
        rating = int(rating)
        if rating not in breakdown:
            continue
        breakdown[rating] += 1
        total += rating
        count += 1
    if count == 0:
        return RatingStats()
    return RatingStats(
        average_rating=round_rating(total, count),
        total_reviews=count,
        rating_breakdown=breakdown,
    )


def update_product_rating(db, product_id: str) -> Optional[RatingStats]:
    """Recompute and store the derived rating fields of one product.

    Returns the stored stats, or None when the product does not exist.
    """
    try:
        oid = ObjectId(product_id)
    except (InvalidId, TypeError):
        logger.debug("Skipping rating update for malformed product id %r", product_id)
        return None
    if db["product"].find_one({"_id": oid}, {"_id": 1}) is None:
        logger.debug("Skipping rating update, product %s is gone", product_id)
        return None

    approved = db["review"].find({"product_id": str(oid), "status": APPROVED}, {"rating": 1})
    stats = compute_rating_stats(r.get("rating", 0) for r in approved)
    db["product"].update_one({"_id": oid}, {"$set": stats.as_document()})
    logger.info(
        "Product %s rating recomputed: %.1f over %d review(s)",
        product_id, stats.average_rating, stats.total_reviews,
    )
    return stats
