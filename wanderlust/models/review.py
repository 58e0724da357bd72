"""Pydantic models for trip reviews."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class Review(BaseModel):
    """A user's review of a base trip."""

    id: str
    base_trip_id: str
    user_id: str
    rating: int = Field(ge=1, le=5)
    review_text: str = ""
    created_at: datetime | None = None

    @field_validator("id", "base_trip_id", "user_id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("review_text", mode="before")
    @classmethod
    def default_text(cls, v: Any) -> str:
        return v or ""


class RatingSummary(BaseModel):
    """Aggregated ratings of one base trip."""

    average: float = 0.0
    count: int = 0
    counts: dict[int, int] = {}
    user_review: Review | None = None
