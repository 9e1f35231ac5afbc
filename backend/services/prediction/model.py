"""Prediction model: weighted combination of factor scores plus a confidence tier."""

import math
from decimal import ROUND_HALF_UP, Decimal

from models.schemas.factors import WEIGHT_FACTORS, FactorAvailability, FactorScores, FactorWeights
from models.schemas.prediction import Confidence, PredictionScore
from services.prediction.errors import ConfigurationError

WEIGHT_SUM_TOLERANCE = 1e-6


def round_half_up(value: float) -> int:
    # Trim float noise first so 62.4999999 (really 62.5) still rounds up
    quant = Decimal(repr(round(float(value), 6))).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(quant)


def validate_weights(weights: FactorWeights) -> FactorWeights:
    """Reject weights that cannot produce a 0-100 probability."""
    values = weights.model_dump()
    missing = set(WEIGHT_FACTORS) - set(values)
    if missing:
        raise ConfigurationError(f"Missing weights: {sorted(missing)}")
    for name, value in values.items():
        if value is None or math.isnan(value) or value < 0:
            raise ConfigurationError(f"Weight {name!r} must be a non-negative number, got {value!r}")
    total = sum(values.values())
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        raise ConfigurationError(f"Weights must sum to 1.0, got {total:.6f}")
    return weights


def confidence_for(availability: FactorAvailability) -> Confidence:
    """Data-completeness tier: >=4 real factors high, 2-3 medium, otherwise low."""
    real = availability.real_count
    if real >= 4:
        return "high"
    if real >= 2:
        return "medium"
    return "low"


def success_probability(factors: FactorScores, weights: FactorWeights) -> int:
    raw = sum(
        getattr(weights, weight_name) * getattr(factors, factor_name)
        for weight_name, factor_name in WEIGHT_FACTORS.items()
    )
    return min(100, max(0, round_half_up(raw)))


def compute_prediction(
    factors: FactorScores,
    weights: FactorWeights,
    availability: FactorAvailability | None = None,
) -> PredictionScore:
    """Combine factor scores into the overall probability and confidence.

    Weights are assumed to have passed validate_weights() at startup.
    """
    availability = availability or FactorAvailability()
    return PredictionScore(
        success_probability=success_probability(factors, weights),
        confidence=confidence_for(availability),
    )
