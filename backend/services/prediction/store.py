"""Prediction store: the single write path for interview success predictions.

recalculate(user, job, interview)
  ├─ JobSource.get_job                    → InterviewContext (NotFound if gone)
  ├─ checklist / research / practice /
  │  profile / history (best effort)      → FactorInputs
  ├─ factors.extract_factors              → FactorScores + availability
  ├─ model.compute_prediction             → probability + confidence
  ├─ recommendations.generate_…           → ranked list, completions merged
  └─ PredictionRepository.upsert          → one row per interview
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from config import Settings, settings as default_settings
from models.schemas.context import InterviewContext, as_utc, utcnow
from models.schemas.inputs import InterviewRecord, JobRecord
from models.schemas.prediction import AccuracyStats, Prediction
from services.prediction.errors import (
    InvalidOutcomeError,
    NotFoundError,
    RecommendationIndexError,
    TransientIOError,
)
from services.prediction.factors import FactorInputs, extract_factors
from services.prediction.model import compute_prediction, round_half_up, validate_weights
from services.prediction.recommendations import generate_recommendations
from services.prediction.repository import PredictionRepository
from services.prediction.retry import with_retry
from services.prediction.sources import PrepSources

logger = logging.getLogger(__name__)

FINAL_OUTCOMES = ("passed", "rejected", "offer")


def score_outcome(probability: int, outcome: str) -> tuple[bool | None, int]:
    """Judge a prediction against what actually happened: (accurate, accuracy score)."""
    positive = outcome in ("passed", "offer")
    negative = outcome == "rejected"
    if (probability >= 70 and positive) or (probability <= 30 and negative):
        return True, 100
    if (probability >= 70 and negative) or (probability <= 30 and positive):
        return False, 0
    return None, 50


class PredictionStore:
    def __init__(
        self,
        repository: PredictionRepository,
        sources: PrepSources,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or default_settings
        # ConfigurationError here, never per request
        self._weights = validate_weights(self._settings.prediction_weights)
        self._repository = repository
        self._sources = sources
        # One writer per interview: recalculate, completion and outcome never interleave
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    def _lock(self, job_id: str, interview_id: str) -> asyncio.Lock:
        return self._locks.setdefault((job_id, interview_id), asyncio.Lock())

    async def _call(self, operation: Callable[..., Awaitable[Any]], *args: Any, description: str) -> Any:
        return await with_retry(
            operation,
            *args,
            attempts=self._settings.store_retry_attempts,
            backoff_seconds=self._settings.store_retry_backoff_ms / 1000,
            description=description,
        )

    async def _best_effort(self, operation: Callable[..., Awaitable[Any]], *args: Any, fallback: Any, description: str) -> Any:
        """Collaborator read whose failure degrades a factor instead of the whole prediction."""
        try:
            return await self._call(operation, *args, description=description)
        except Exception as e:
            logger.warning("%s unavailable, using neutral default: %s", description, e)
            return fallback

    # --- reads ---

    async def get(self, user_id: str, job_id: str, interview_id: str) -> Prediction:
        prediction = await self._call(self._repository.find, job_id, interview_id, description="prediction lookup")
        if prediction is None or prediction.user_id != user_id:
            raise NotFoundError(f"No prediction for interview {interview_id} of job {job_id}")
        return prediction

    async def get_by_id(self, prediction_id: str) -> Prediction:
        prediction = await self._call(self._repository.get, prediction_id, description="prediction lookup")
        if prediction is None:
            raise NotFoundError(f"Prediction {prediction_id} not found")
        return prediction

    def _needs_refresh(self, prediction: Prediction | None, interview: InterviewRecord, now: datetime) -> bool:
        if prediction is None:
            return True
        if prediction.interview_context.interview_date != as_utc(interview.date):
            return True  # rescheduled since the last calculation
        max_age = timedelta(hours=self._settings.prediction_stale_hours)
        return now - as_utc(prediction.updated_at) > max_age

    async def list_upcoming(self, user_id: str) -> list[Prediction]:
        """Predictions for the user's pending interviews that have not happened yet, soonest first."""
        now = utcnow()
        jobs: list[JobRecord] = await self._call(self._sources.jobs.list_jobs, user_id, description="job list")

        upcoming: list[Prediction] = []
        for job in jobs:
            if job.archived:
                continue
            for interview in job.interviews:
                if interview.outcome != "pending" or as_utc(interview.date) < now:
                    continue
                prediction = await self._call(
                    self._repository.find, job.job_id, interview.interview_id,
                    description="prediction lookup",
                )
                if self._needs_refresh(prediction, interview, now):
                    try:
                        prediction = await self.recalculate(user_id, job.job_id, interview.interview_id)
                    except TransientIOError as e:
                        logger.warning(
                            "Could not refresh prediction for interview %s: %s",
                            interview.interview_id, e,
                        )
                if prediction is not None:
                    upcoming.append(prediction)

        upcoming.sort(key=lambda p: p.interview_context.interview_date)
        return upcoming

    # --- writes ---

    async def _gather_inputs(self, user_id: str, job: JobRecord, interview_id: str) -> FactorInputs:
        sources = self._sources
        checklist, research, sessions, profile, jobs = await asyncio.gather(
            self._best_effort(
                sources.checklists.get_checklist, user_id, job.job_id, interview_id,
                fallback=None, description="checklist",
            ),
            self._best_effort(
                sources.research.get_research, user_id, job.job_id,
                fallback=None, description="company research",
            ),
            self._best_effort(
                sources.practice.list_sessions, user_id, job.job_id,
                fallback=[], description="practice sessions",
            ),
            self._best_effort(sources.profiles.get_profile, user_id, fallback=None, description="profile"),
            self._best_effort(sources.jobs.list_jobs, user_id, fallback=[], description="interview history"),
        )
        history = [
            interview
            for other in jobs
            for interview in other.interviews
            if not (other.job_id == job.job_id and interview.interview_id == interview_id)
        ]
        return FactorInputs(
            job=job,
            checklist=checklist,
            research=research,
            sessions=sessions,
            history=history,
            profile=profile,
        )

    async def recalculate(self, user_id: str, job_id: str, interview_id: str) -> Prediction:
        """Recompute and upsert the prediction for one interview.

        First call creates the row, later calls update it in place. Raises
        NotFoundError, without writing anything, when the job or interview
        no longer exists. Calls for the same interview run one at a time.
        """
        async with self._lock(job_id, interview_id):
            return await self._recalculate(user_id, job_id, interview_id)

    async def _recalculate(self, user_id: str, job_id: str, interview_id: str) -> Prediction:
        job = await self._call(self._sources.jobs.get_job, user_id, job_id, description="job lookup")
        interview = job.find_interview(interview_id) if job else None
        if job is None or interview is None:
            raise NotFoundError(f"Interview {interview_id} of job {job_id} not found")

        now = utcnow()
        context = InterviewContext(
            job_id=job_id,
            interview_id=interview_id,
            job_title=job.job_title,
            company=job.company,
            interview_type=interview.interview_type,
            interview_date=interview.date,
        )

        inputs = await self._gather_inputs(user_id, job, interview_id)
        factors, availability = extract_factors(inputs, now)
        score = compute_prediction(factors, self._weights, availability)

        existing = await self._call(self._repository.find, job_id, interview_id, description="prediction lookup")
        recommendations = generate_recommendations(
            factors,
            existing.recommendations if existing else (),
            thresholds=self._settings.recommendation_thresholds,
            cap=self._settings.recommendation_cap,
            severe_margin=self._settings.recommendation_severe_margin,
        )

        prediction = Prediction(
            id=existing.id if existing else uuid.uuid4().hex,
            user_id=user_id,
            job_id=job_id,
            interview_id=interview_id,
            interview_context=context,
            factors=factors,
            data_availability=availability,
            weights=self._weights,
            success_probability=score.success_probability,
            confidence=score.confidence,
            recommendations=recommendations,
            actual_outcome=existing.actual_outcome if existing else "pending",
            prediction_accurate=existing.prediction_accurate if existing else None,
            accuracy_score=existing.accuracy_score if existing else None,
            outcome_recorded_at=existing.outcome_recorded_at if existing else None,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        saved = await self._call(self._repository.upsert, prediction, description="prediction save")
        logger.info(
            "Prediction %s for interview %s/%s: %d%% (%s confidence, %d recommendations)",
            saved.id, job_id, interview_id, saved.success_probability, saved.confidence,
            len(saved.recommendations),
        )
        return saved

    async def mark_recommendation_complete(self, prediction_id: str, index: int) -> Prediction:
        """Flag one recommendation as done without recomputing the factors."""
        found = await self.get_by_id(prediction_id)
        async with self._lock(found.job_id, found.interview_id):
            return await self._mark_complete(prediction_id, index)

    async def _mark_complete(self, prediction_id: str, index: int) -> Prediction:
        prediction = await self.get_by_id(prediction_id)
        if index < 0 or index >= len(prediction.recommendations):
            raise RecommendationIndexError(
                f"Recommendation index {index} out of range for prediction {prediction_id}"
            )
        now = utcnow()
        rec = prediction.recommendations[index]
        if not rec.completed:
            prediction.recommendations[index] = rec.model_copy(update={"completed": True, "completed_at": now})
            prediction.updated_at = now
        return await self._call(self._repository.upsert, prediction, description="prediction save")

    async def record_outcome(self, prediction_id: str, outcome: str) -> Prediction:
        """Store the real interview result and score the prediction against it."""
        if outcome not in FINAL_OUTCOMES:
            raise InvalidOutcomeError(f"Outcome must be one of {', '.join(FINAL_OUTCOMES)}, got {outcome!r}")
        found = await self.get_by_id(prediction_id)
        async with self._lock(found.job_id, found.interview_id):
            prediction = await self.get_by_id(prediction_id)
            accurate, accuracy = score_outcome(prediction.success_probability, outcome)
            now = utcnow()
            prediction.actual_outcome = outcome
            prediction.prediction_accurate = accurate
            prediction.accuracy_score = accuracy
            prediction.outcome_recorded_at = now
            prediction.updated_at = now
            logger.info("Outcome %s recorded for prediction %s (accuracy %d)", outcome, prediction_id, accuracy)
            return await self._call(self._repository.upsert, prediction, description="prediction save")

    async def accuracy_stats(self, user_id: str) -> AccuracyStats:
        predictions = await self._call(self._repository.list_for_user, user_id, description="prediction list")
        judged = [p for p in predictions if p.actual_outcome != "pending"]
        if not judged:
            return AccuracyStats()

        accurate = sum(1 for p in judged if p.prediction_accurate is True)
        inaccurate = sum(1 for p in judged if p.prediction_accurate is False)
        uncertain = sum(1 for p in judged if p.prediction_accurate is None)
        return AccuracyStats(
            total_predictions=len(judged),
            accurate_count=accurate,
            inaccurate_count=inaccurate,
            uncertain_count=uncertain,
            accuracy_rate=round_half_up(accurate / len(judged) * 100),
            average_accuracy_score=round_half_up(sum(p.accuracy_score or 0 for p in judged) / len(judged)),
        )
