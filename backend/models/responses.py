from pydantic import BaseModel

from models.schemas.base import WireModel
from models.schemas.recommendation import Recommendation


class HealthResponse(BaseModel):
    status: str = "ok"
    debounce_ms: int = 0


class TimingAdviceResponse(WireModel):
    job_id: str
    interview_id: str
    days_until_interview: int
    advice: list[Recommendation] = []


class StaleAccepted(WireModel):
    job_id: str
    interview_id: str
    subscribed: bool = False
