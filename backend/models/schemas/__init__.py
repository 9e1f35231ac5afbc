"""Pydantic contracts shared by the prediction engine and the API."""

from models.schemas.context import InterviewContext
from models.schemas.factors import FactorAvailability, FactorScores, FactorWeights
from models.schemas.inputs import (
    Checklist,
    ChecklistItem,
    CompanyResearch,
    InterviewRecord,
    JobRecord,
    PracticeSession,
    UserProfile,
)
from models.schemas.prediction import AccuracyStats, Prediction, PredictionScore
from models.schemas.recommendation import Recommendation

__all__ = [
    "InterviewContext",
    "FactorScores",
    "FactorAvailability",
    "FactorWeights",
    "Checklist",
    "ChecklistItem",
    "CompanyResearch",
    "InterviewRecord",
    "JobRecord",
    "PracticeSession",
    "UserProfile",
    "AccuracyStats",
    "Prediction",
    "PredictionScore",
    "Recommendation",
]
