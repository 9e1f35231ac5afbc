"""Timing advice derived from how far away an interview is.

Kept apart from the prediction engine: it reads only the day delta and
never feeds the success probability or the recommendation list.
"""

from datetime import datetime

from models.schemas.context import InterviewContext, as_utc, days_until, utcnow
from models.schemas.recommendation import Recommendation


def timing_advice(context: InterviewContext, now: datetime | None = None) -> list[Recommendation]:
    now = as_utc(now) if now is not None else utcnow()
    days = days_until(context.interview_date, now)
    company = context.company or "the company"

    if days < -7:
        return []
    if as_utc(context.interview_date) < now:
        return [Recommendation(
            action=f"Send a thank-you note to your interviewers at {company} within 24 hours if you have not yet.",
            category="timing",
            priority="high" if days >= -1 else "medium",
            potential_impact=5,
            template_key="timing.thank_you",
        )]
    if days <= 2:
        return [Recommendation(
            action="Focus on final preparation: review company research, practice key stories, "
                   "and prepare thoughtful questions to ask.",
            category="timing",
            priority="high",
            potential_impact=10,
            template_key="timing.final_prep",
        )]
    if days <= 7:
        return [Recommendation(
            action="You have a week to prepare. Dedicate 1-2 hours daily to practice and research.",
            category="timing",
            priority="medium",
            potential_impact=15,
            template_key="timing.week_plan",
        )]
    return [Recommendation(
        action=f"Start early: block time this week for research on {company} and one mock interview.",
        category="timing",
        priority="low",
        potential_impact=15,
        template_key="timing.early_start",
    )]
