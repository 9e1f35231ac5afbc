"""Failure taxonomy for the prediction engine.

Missing prep data has no exception here: an extractor
that cannot find real data returns the neutral score and marks the factor
as not real, which lowers confidence instead of failing the calculation.
"""


class PredictionError(Exception):
    """Base class for every error raised by the prediction engine."""


class ConfigurationError(PredictionError):
    """Weights or thresholds are unusable. Raised at startup only."""


class NotFoundError(PredictionError):
    """Unknown job, interview or prediction."""


class TransientIOError(PredictionError):
    """A collaborator or repository call failed; safe to retry later."""


class RecommendationIndexError(PredictionError):
    """Recommendation index outside the prediction's list."""


class InvalidOutcomeError(PredictionError):
    """Interview outcome is not one of passed, rejected or offer."""
