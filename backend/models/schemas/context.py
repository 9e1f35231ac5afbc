"""Interview snapshot taken at calculation time."""

import math
from datetime import datetime, timezone
from typing import Literal

from pydantic import computed_field, field_validator

from models.schemas.base import WireModel

InterviewType = Literal["phone", "video", "onsite", "technical", "behavioral"]

SECONDS_PER_DAY = 24 * 60 * 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_until(when: datetime, now: datetime | None = None) -> int:
    """Whole days from now until `when`, rounded up. Negative once it has passed."""
    now = as_utc(now) if now is not None else utcnow()
    delta = (as_utc(when) - now).total_seconds() / SECONDS_PER_DAY
    return int(math.ceil(delta))


class InterviewContext(WireModel):
    job_id: str
    interview_id: str
    job_title: str = ""
    company: str = ""
    interview_type: InterviewType = "video"
    interview_date: datetime

    @field_validator("interview_date")
    @classmethod
    def _normalize_date(cls, value: datetime) -> datetime:
        return as_utc(value)

    @computed_field(alias="daysUntilInterview")
    @property
    def days_until_interview(self) -> int:
        return days_until(self.interview_date)
