"""Ranked action items derived from sub-threshold factors."""

from datetime import datetime
from typing import Literal

from pydantic import Field

from models.schemas.base import WireModel

RecommendationCategory = Literal["preparation", "research", "practice", "strategy", "timing"]
Priority = Literal["high", "medium", "low"]

PRIORITY_RANK: dict[str, int] = {"high": 0, "medium": 1, "low": 2}


class Recommendation(WireModel):
    action: str = Field(..., max_length=500)
    category: RecommendationCategory
    priority: Priority
    potential_impact: int = Field(default=0, ge=0, le=50)  # probability points
    completed: bool = False
    completed_at: datetime | None = None
    template_key: str = ""

    @property
    def merge_key(self) -> tuple[str, str]:
        # Entries persisted before template keys existed match on their text.
        return (self.category, self.template_key or self.action)
