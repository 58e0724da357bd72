"""Trip reviews and rating summaries."""

from typing import Iterable, Optional

from wanderlust.models.result import Err, ErrorKind, Ok, Result
from wanderlust.models.review import RatingSummary, Review
from wanderlust.services.supabase_client import SupabaseAuthError, SupabaseClient, SupabaseError
from wanderlust.utils.logger import get_logger

logger = get_logger(__name__)


def summarize(reviews: Iterable[Review], user_id: Optional[str] = None) -> RatingSummary:
    """Average, per-star counts and the given user's own review."""
    reviews = list(reviews)
    counts = {star: 0 for star in range(1, 6)}
    for review in reviews:
        counts[review.rating] += 1

    user_review = None
    if user_id:
        user_review = next((r for r in reviews if r.user_id == user_id), None)

    return RatingSummary(
        average=sum(r.rating for r in reviews) / max(len(reviews), 1),
        count=len(reviews),
        counts=counts,
        user_review=user_review,
    )


def _check_rating(rating: int) -> Optional[Err]:
    if rating == 0:
        return Err(ErrorKind.VALIDATION, "Choose rating")
    if not 1 <= rating <= 5:
        return Err(ErrorKind.VALIDATION, "Rating must be between 1 and 5")
    return None


class ReviewService:
    def __init__(self, client: SupabaseClient):
        self.client = client

    async def list_reviews(self, base_trip_id: str) -> list[Review]:
        rows = await self.client.select(
            "reviews",
            filters={"base_trip_id": base_trip_id},
            order="created_at",
            ascending=False,
        )
        return [Review.model_validate(row) for row in rows]

    async def submit_review(
        self,
        base_trip_id: str,
        user_id: Optional[str],
        rating: int,
        review_text: str = "",
    ) -> Result:
        if not user_id:
            return Err(ErrorKind.AUTH, "Login required")
        invalid = _check_rating(rating)
        if invalid:
            return invalid

        try:
            rows = await self.client.insert(
                "reviews",
                {
                    "base_trip_id": base_trip_id,
                    "user_id": user_id,
                    "rating": rating,
                    "review_text": review_text.strip(),
                },
            )
        except SupabaseError as e:
            logger.error("review_submit_failed", base_trip_id=base_trip_id, error=str(e))
            return Err(ErrorKind.NETWORK, str(e))

        logger.info("review_submitted", base_trip_id=base_trip_id, rating=rating)
        return Ok(Review.model_validate(rows[0]))

    async def update_review(
        self,
        review_id: str,
        user_id: Optional[str],
        rating: int,
        review_text: str = "",
    ) -> Result:
        """Edit the user's own review."""
        if not user_id:
            return Err(ErrorKind.AUTH, "Login required")
        invalid = _check_rating(rating)
        if invalid:
            return invalid

        try:
            rows = await self.client.update(
                "reviews",
                {"rating": rating, "review_text": review_text.strip()},
                filters={"id": review_id, "user_id": user_id},
            )
        except SupabaseError as e:
            logger.error("review_update_failed", review_id=review_id, error=str(e))
            return Err(ErrorKind.NETWORK, str(e))

        if not rows:
            return Err(ErrorKind.NOT_FOUND, "Review not found.")
        return Ok(Review.model_validate(rows[0]))

    async def delete_review(self, review_id: str, user_id: Optional[str]) -> Result:
        if not user_id:
            return Err(ErrorKind.AUTH, "Login required")
        try:
            await self.client.delete("reviews", filters={"id": review_id, "user_id": user_id})
        except SupabaseAuthError as e:
            return Err(ErrorKind.AUTH, str(e))
        except SupabaseError as e:
            logger.error("review_delete_failed", review_id=review_id, error=str(e))
            return Err(ErrorKind.NETWORK, str(e))
        return Ok(review_id)

    async def get_summary(self, base_trip_id: str, user_id: Optional[str] = None) -> RatingSummary:
        return summarize(await self.list_reviews(base_trip_id), user_id)
