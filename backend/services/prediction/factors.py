"""Factor extractors: prep-state records -> five normalized 0-100 sub-scores.

Every extractor is a pure function of its inputs. Absent or empty records
return the neutral score flagged as not real; they never raise.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

import numpy as np
from rapidfuzz import fuzz

from models.schemas.context import SECONDS_PER_DAY, as_utc
from models.schemas.factors import (
    NEUTRAL_SCORE,
    FactorAvailability,
    FactorResult,
    FactorScores,
)
from models.schemas.inputs import (
    Checklist,
    CompanyResearch,
    InterviewRecord,
    JobRecord,
    PracticeSession,
    UserProfile,
)
from services.prediction.model import round_half_up

logger = logging.getLogger(__name__)

# Checklist categories that matter more for the outcome count for more
CATEGORY_WEIGHTS: dict[str, float] = {
    "research": 1.2,
    "practice": 1.1,
    "materials": 1.0,
    "logistics": 0.9,
    "mindset": 0.8,
}

PRACTICE_SESSION_TARGET = 5
SUCCESS_OUTCOMES = frozenset({"passed", "offer"})
FINAL_OUTCOMES = frozenset({"passed", "offer", "rejected"})
RECENT_INTERVIEWS = 5
FUZZY_THRESHOLD = 85
SKILL_GAP_PENALTY = 5
MAX_SKILL_GAP_PENALTY = 30


@dataclass
class FactorInputs:
    """Everything the extractors need for one interview, fetched up front."""
    job: JobRecord | None = None
    checklist: Checklist | None = None
    research: CompanyResearch | None = None
    sessions: list[PracticeSession] = field(default_factory=list)
    history: list[InterviewRecord] = field(default_factory=list)
    profile: UserProfile | None = None


def _clamp_score(value: float) -> int:
    return round_half_up(float(np.clip(value, 0, 100)))


def _days_since(when: datetime, now: datetime) -> float:
    return (as_utc(now) - as_utc(when)).total_seconds() / SECONDS_PER_DAY


def preparation_score(checklist: Checklist | None) -> FactorResult:
    """Category-weighted share of completed checklist items."""
    if checklist is None or not checklist.items:
        return FactorResult.neutral()

    weights = np.array([CATEGORY_WEIGHTS.get(item.category, 1.0) for item in checklist.items])
    done = np.array([item.completed for item in checklist.items], dtype=bool)
    total = weights.sum()
    if total <= 0:
        return FactorResult.neutral()
    return FactorResult(score=_clamp_score(weights[done].sum() / total * 100), real=True)


def company_research_score(research: CompanyResearch | None, now: datetime) -> FactorResult:
    """Points for each part of the saved company research, plus a freshness bonus."""
    if research is None:
        return FactorResult.neutral()

    score = 0
    # Basic company info
    if research.description:
        score += 10
    if research.mission:
        score += 5
    if research.culture:
        score += 5

    if research.leadership_results:
        score += 15

    news = len(research.news)
    if news >= 5:
        score += 25
    elif news >= 3:
        score += 15
    elif news >= 1:
        score += 10

    competitors = len(research.competitors)
    if competitors >= 3:
        score += 15
    elif competitors >= 1:
        score += 10

    if research.financial_health:
        score += 15

    if any(research.social_links.get(k) for k in ("linkedin", "twitter", "facebook")):
        score += 10

    if research.last_researched is not None:
        age = _days_since(research.last_researched, now)
        if age <= 7:
            score += 10
        elif age <= 14:
            score += 5

    return FactorResult(score=_clamp_score(score), real=True)


def _recency_points(days: float) -> int:
    if days <= 3:
        return 20
    if days <= 7:
        return 15
    if days <= 14:
        return 10
    if days <= 30:
        return 5
    return 0


def practice_score(sessions: list[PracticeSession], now: datetime) -> FactorResult:
    """Volume (40), average session score (40) and recency (20) of completed sessions."""
    completed = [s for s in sessions if s.completed]
    if not completed:
        return FactorResult.neutral()

    count_points = min(len(completed), PRACTICE_SESSION_TARGET) / PRACTICE_SESSION_TARGET * 40
    avg_score = float(np.mean([s.average_score for s in completed]))
    score_points = float(np.clip(avg_score, 0, 100)) / 100 * 40
    latest = max(completed, key=lambda s: as_utc(s.created_at))
    recency = _recency_points(_days_since(latest.created_at, now))

    return FactorResult(score=_clamp_score(count_points + score_points + recency), real=True)


def historical_performance(history: list[InterviewRecord]) -> FactorResult:
    """Success rate over past interviews, weighting the five most recent at 60%."""
    finished = [i for i in history if i.outcome in FINAL_OUTCOMES]
    if not finished:
        return FactorResult.neutral()

    finished.sort(key=lambda i: as_utc(i.date), reverse=True)
    overall = np.mean([i.outcome in SUCCESS_OUTCOMES for i in finished]) * 100
    recent = np.mean([i.outcome in SUCCESS_OUTCOMES for i in finished[:RECENT_INTERVIEWS]]) * 100

    return FactorResult(score=_clamp_score(recent * 0.6 + overall * 0.4), real=True)


def _covers(requirement: str, terms: list[str]) -> bool:
    """Exact or fuzzy (Levenshtein) match of a requirement against profile terms."""
    req = requirement.strip().lower()
    if not req:
        return False
    for term in terms:
        if req == term:
            return True
        if len(req) >= 3 and len(term) >= 3 and (req in term or term in req):
            return True
        if len(req) >= 3 and fuzz.token_set_ratio(req, term) >= FUZZY_THRESHOLD:
            return True
    return False


def role_match_score(
    job: JobRecord | None,
    profile: UserProfile | None,
    sessions: list[PracticeSession] | None = None,
) -> FactorResult:
    """How well the user fits the role.

    Preference order: the job's stored match score, the mean of its match
    breakdown, requirement coverage by profile skills and practice focus,
    then a skill-gap penalty from the neutral midpoint.
    """
    if job is None:
        return FactorResult.neutral()

    if job.match_score is not None and not np.isnan(job.match_score):
        return FactorResult(score=_clamp_score(job.match_score), real=True)

    breakdown = [v for v in job.match_breakdown.values() if v is not None]
    if breakdown:
        return FactorResult(score=_clamp_score(np.mean(breakdown)), real=True)

    terms = [s.strip().lower() for s in (profile.skills if profile else []) if s.strip()]
    for session in sessions or []:
        terms.extend(a.strip().lower() for a in session.focus_areas if a.strip())
    requirements = [r for r in job.requirements if r.strip()]
    if requirements and terms:
        covered = sum(1 for r in requirements if _covers(r, terms))
        return FactorResult(score=_clamp_score(covered / len(requirements) * 100), real=True)

    if job.skill_gaps:
        penalty = min(MAX_SKILL_GAP_PENALTY, len(job.skill_gaps) * SKILL_GAP_PENALTY)
        return FactorResult(score=_clamp_score(NEUTRAL_SCORE - penalty), real=True)

    return FactorResult.neutral()


def extract_factors(inputs: FactorInputs, now: datetime) -> tuple[FactorScores, FactorAvailability]:
    """Run every extractor and split the results into scores and the realness vector."""
    results = {
        "preparation_score": preparation_score(inputs.checklist),
        "company_research_score": company_research_score(inputs.research, now),
        "practice_score": practice_score(inputs.sessions, now),
        "historical_performance": historical_performance(inputs.history),
        "role_match_score": role_match_score(inputs.job, inputs.profile, inputs.sessions),
    }
    degraded = [name for name, result in results.items() if not result.real]
    if degraded:
        logger.debug("Neutral defaults used for: %s", ", ".join(degraded))

    scores = FactorScores(**{name: r.score for name, r in results.items()})
    availability = FactorAvailability(**{name: r.real for name, r in results.items()})
    return scores, availability
