"""The persisted prediction aggregate and its derived read models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from models.schemas.base import WireModel
from models.schemas.context import InterviewContext
from models.schemas.factors import FactorAvailability, FactorScores, FactorWeights
from models.schemas.recommendation import Recommendation

Confidence = Literal["low", "medium", "high"]
Outcome = Literal["pending", "passed", "rejected", "offer"]

CALCULATION_VERSION = "v1.0"


class PredictionScore(BaseModel):
    """Result of combining factor scores with weights."""
    success_probability: int  # 0-100
    confidence: Confidence


class Prediction(WireModel):
    id: str
    user_id: str
    job_id: str
    interview_id: str
    interview_context: InterviewContext
    factors: FactorScores
    data_availability: FactorAvailability = FactorAvailability()
    weights: FactorWeights
    success_probability: int = Field(..., ge=0, le=100)
    confidence: Confidence
    recommendations: list[Recommendation] = []

    # Filled in once the interview has happened
    actual_outcome: Outcome = "pending"
    prediction_accurate: bool | None = None
    accuracy_score: int | None = None
    outcome_recorded_at: datetime | None = None

    calculation_version: str = CALCULATION_VERSION
    created_at: datetime
    updated_at: datetime


class AccuracyStats(WireModel):
    total_predictions: int = 0
    accurate_count: int = 0
    inaccurate_count: int = 0
    uncertain_count: int = 0
    accuracy_rate: int | None = None
    average_accuracy_score: int | None = None
