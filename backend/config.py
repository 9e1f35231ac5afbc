import os

from pydantic import BaseModel
from pydantic_settings import BaseSettings

from models.schemas.factors import FactorWeights


def _parse_cors_origins() -> list[str] | None:
    """Parse CORS_ORIGINS env var as comma-separated string or JSON list."""
    raw = os.environ.get("CORS_ORIGINS")
    if not raw:
        return None
    if raw.startswith("["):
        import json
        return json.loads(raw)
    return [o.strip() for o in raw.split(",") if o.strip()]


class RecommendationThresholds(BaseModel):
    """A factor scoring below its threshold produces a recommendation."""
    preparation: int = 70
    company_research: int = 60
    practice: int = 70
    historical_performance: int = 50
    role_match: int = 60


class Settings(BaseSettings):
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]
    debug: bool = False
    log_level: str = "INFO"

    # Prediction engine
    prediction_weights: FactorWeights = FactorWeights()
    recommendation_thresholds: RecommendationThresholds = RecommendationThresholds()
    recommendation_severe_margin: int = 20  # points below threshold for the severe band
    recommendation_cap: int = 5
    prediction_stale_hours: int = 24  # upcoming list refreshes older predictions

    # Invalidation bus
    invalidation_debounce_ms: int = 400

    # Collaborator / repository calls
    store_retry_attempts: int = 3
    store_retry_backoff_ms: int = 200  # doubled on every attempt

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


_cors_override = _parse_cors_origins()
settings = Settings(**{"cors_origins": _cors_override} if _cors_override else {})
