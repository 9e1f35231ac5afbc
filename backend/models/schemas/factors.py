"""Factor scores, the realness vector that accompanies them, and weights."""

from pydantic import BaseModel, Field

from models.schemas.base import WireModel

# Weight key -> FactorScores attribute
WEIGHT_FACTORS: dict[str, str] = {
    "preparation": "preparation_score",
    "company_research": "company_research_score",
    "practice": "practice_score",
    "historical_performance": "historical_performance",
    "role_match": "role_match_score",
}

NEUTRAL_SCORE = 50


class FactorScores(WireModel):
    preparation_score: int = Field(default=NEUTRAL_SCORE, ge=0, le=100)
    company_research_score: int = Field(default=NEUTRAL_SCORE, ge=0, le=100)
    practice_score: int = Field(default=NEUTRAL_SCORE, ge=0, le=100)
    historical_performance: int = Field(default=NEUTRAL_SCORE, ge=0, le=100)
    role_match_score: int = Field(default=NEUTRAL_SCORE, ge=0, le=100)


class FactorAvailability(WireModel):
    """Which factors were derived from real data rather than the neutral default."""

    preparation_score: bool = False
    company_research_score: bool = False
    practice_score: bool = False
    historical_performance: bool = False
    role_match_score: bool = False

    @property
    def real_count(self) -> int:
        return sum(1 for value in self.model_dump().values() if value)


class FactorWeights(WireModel):
    preparation: float = 0.25
    company_research: float = 0.20
    practice: float = 0.25
    historical_performance: float = 0.20
    role_match: float = 0.10


class FactorResult(BaseModel):
    """Output of a single extractor."""

    score: int = NEUTRAL_SCORE  # 0-100
    real: bool = False

    @classmethod
    def neutral(cls) -> "FactorResult":
        return cls(score=NEUTRAL_SCORE, real=False)
