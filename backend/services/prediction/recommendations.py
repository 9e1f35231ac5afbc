"""Recommendation generator.

One rule per factor. A factor below its threshold yields exactly one
recommendation from the template of its severity band. Completion flags
from the previous list are carried over before the list is capped, so a
recalculation never silently un-completes something the user finished.
"""

from typing import Iterable, NamedTuple

from config import RecommendationThresholds
from models.schemas.factors import FactorScores
from models.schemas.recommendation import PRIORITY_RANK, Recommendation
from services.prediction.model import round_half_up

DEFAULT_CAP = 5
DEFAULT_SEVERE_MARGIN = 20
MAX_IMPACT = 50


class Template(NamedTuple):
    key: str
    action: str
    priority: str


class Rule(NamedTuple):
    factor: str  # FactorScores attribute
    threshold: str  # RecommendationThresholds attribute
    category: str
    impact_rate: float  # share of the remaining gap the action can recover
    severe: Template
    moderate: Template


RULES: tuple[Rule, ...] = (
    Rule(
        factor="preparation_score",
        threshold="preparation",
        category="preparation",
        impact_rate=0.25,
        severe=Template(
            "preparation.checklist_backlog",
            "Complete your interview preparation checklist. Focus on research and practice categories first.",
            "high",
        ),
        moderate=Template(
            "preparation.checklist_finish",
            "Finish the remaining items on your preparation checklist before interview day.",
            "medium",
        ),
    ),
    Rule(
        factor="company_research_score",
        threshold="company_research",
        category="research",
        impact_rate=0.20,
        severe=Template(
            "research.deep_dive",
            "Deepen your company research. Review recent news, understand their competitors, "
            "and research the leadership team.",
            "high",
        ),
        moderate=Template(
            "research.refresh",
            "Refresh your company research with the latest news and a few talking points on their products.",
            "medium",
        ),
    ),
    Rule(
        factor="practice_score",
        threshold="practice",
        category="practice",
        impact_rate=0.25,
        severe=Template(
            "practice.mock_sessions",
            "Complete mock interview practice sessions. Aim for at least 2-3 full practice sessions "
            "before your interview.",
            "high",
        ),
        moderate=Template(
            "practice.weak_areas",
            "Do one more practice session focusing on your weakest question types.",
            "medium",
        ),
    ),
    Rule(
        factor="role_match_score",
        threshold="role_match",
        category="strategy",
        impact_rate=0.10,
        severe=Template(
            "strategy.transferable_skills",
            "Prepare strong examples that demonstrate transferable skills and address any experience "
            "gaps proactively.",
            "medium",
        ),
        moderate=Template(
            "strategy.differentiators",
            "Pick one or two differentiators that map directly to the job requirements.",
            "low",
        ),
    ),
    Rule(
        factor="historical_performance",
        threshold="historical_performance",
        category="strategy",
        impact_rate=0.15,
        severe=Template(
            "strategy.review_feedback",
            "Review feedback from your recent interviews and rehearse the questions that tripped you up.",
            "medium",
        ),
        moderate=Template(
            "strategy.reflect",
            "Write down what went well in past interviews and plan to repeat it.",
            "low",
        ),
    ),
)


def _potential_impact(score: int, rate: float) -> int:
    return max(0, min(MAX_IMPACT, round_half_up((100 - score) * rate)))


def merge_completed(
    generated: list[Recommendation],
    previous: Iterable[Recommendation],
) -> list[Recommendation]:
    """Copy completed=True (and its timestamp) onto matching new recommendations."""
    done = {rec.merge_key: rec for rec in previous if rec.completed}
    if not done:
        return generated

    merged = []
    for rec in generated:
        prior = done.get(rec.merge_key)
        if prior is not None and not rec.completed:
            rec = rec.model_copy(update={"completed": True, "completed_at": prior.completed_at})
        merged.append(rec)
    return merged


def generate_recommendations(
    factors: FactorScores,
    previous: Iterable[Recommendation] = (),
    thresholds: RecommendationThresholds | None = None,
    cap: int = DEFAULT_CAP,
    severe_margin: int = DEFAULT_SEVERE_MARGIN,
) -> list[Recommendation]:
    """Build the ranked recommendation list for a set of factor scores.

    Returns an empty list when every factor is at or above its threshold.
    """
    thresholds = thresholds or RecommendationThresholds()

    generated: list[Recommendation] = []
    for rule in RULES:
        score = getattr(factors, rule.factor)
        threshold = getattr(thresholds, rule.threshold)
        if score >= threshold:
            continue
        template = rule.severe if score < threshold - severe_margin else rule.moderate
        generated.append(Recommendation(
            action=template.action,
            category=rule.category,
            priority=template.priority,
            potential_impact=_potential_impact(score, rule.impact_rate),
            template_key=template.key,
        ))

    # Stable sort: ties keep rule order, so the output is deterministic
    generated.sort(key=lambda r: (PRIORITY_RANK[r.priority], -r.potential_impact))

    # Merge has to happen before the cap is applied
    merged = merge_completed(generated, previous)
    return merged[:max(0, cap)]
