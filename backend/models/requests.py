from typing import Literal

from pydantic import Field

from models.schemas.base import WireModel


class StaleNotification(WireModel):
    job_id: str = Field(..., min_length=1, description="Job whose prep state changed")
    interview_id: str = Field(..., min_length=1, description="Interview whose prediction is stale")


class OutcomeRequest(WireModel):
    actual_outcome: Literal["passed", "rejected", "offer"]
