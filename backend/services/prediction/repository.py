"""Storage for predictions: at most one row per (job, interview)."""

from abc import ABC, abstractmethod

from models.schemas.prediction import Prediction


class PredictionRepository(ABC):
    @abstractmethod
    async def get(self, prediction_id: str) -> Prediction | None:
        """Fetch by prediction id."""

    @abstractmethod
    async def find(self, job_id: str, interview_id: str) -> Prediction | None:
        """Fetch the prediction for an interview."""

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[Prediction]:
        """Every prediction owned by the user."""

    @abstractmethod
    async def upsert(self, prediction: Prediction) -> Prediction:
        """Insert, or replace the row for the same (job, interview)."""


class InMemoryPredictionRepository(PredictionRepository):
    def __init__(self) -> None:
        self._rows: dict[str, Prediction] = {}
        self._by_interview: dict[tuple[str, str], str] = {}

    async def get(self, prediction_id: str) -> Prediction | None:
        row = self._rows.get(prediction_id)
        return row.model_copy(deep=True) if row else None

    async def find(self, job_id: str, interview_id: str) -> Prediction | None:
        prediction_id = self._by_interview.get((job_id, interview_id))
        return await self.get(prediction_id) if prediction_id else None

    async def list_for_user(self, user_id: str) -> list[Prediction]:
        return [row.model_copy(deep=True) for row in self._rows.values() if row.user_id == user_id]

    async def upsert(self, prediction: Prediction) -> Prediction:
        key = (prediction.job_id, prediction.interview_id)
        existing_id = self._by_interview.get(key)
        if existing_id is not None and existing_id != prediction.id:
            # Keep the identity of the row already stored for this interview
            prediction = prediction.model_copy(update={"id": existing_id})
        self._rows[prediction.id] = prediction.model_copy(deep=True)
        self._by_interview[key] = prediction.id
        return prediction.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._rows)
