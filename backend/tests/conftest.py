"""Shared test configuration, pytest markers and prep-data fixtures."""

from datetime import timedelta

import pytest

from config import Settings
from models.schemas.context import utcnow
from models.schemas.inputs import InterviewRecord, JobRecord
from services.prediction import registry
from services.prediction.repository import InMemoryPredictionRepository
from services.prediction.sources import InMemoryPrepData, PrepSources
from services.prediction.store import PredictionStore

USER = "user-1"
JOB = "job-1"
INTERVIEW = "iv-1"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "timing: exercises debounce windows with real sleeps (slower)"
    )


@pytest.fixture(autouse=True)
def _reset_registry():
    """Clear the component registry before each test."""
    registry.clear()
    yield
    registry.clear()


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(invalidation_debounce_ms=20, store_retry_backoff_ms=0)


def make_job(
    job_id: str = JOB,
    interview_id: str = INTERVIEW,
    days_ahead: float = 5,
    user_id: str = USER,
    **fields,
) -> JobRecord:
    return JobRecord(
        job_id=job_id,
        user_id=user_id,
        job_title="Backend Engineer",
        company="Acme",
        interviews=[
            InterviewRecord(
                interview_id=interview_id,
                interview_type="technical",
                date=utcnow() + timedelta(days=days_ahead),
            )
        ],
        **fields,
    )


@pytest.fixture
def prep_data() -> InMemoryPrepData:
    data = InMemoryPrepData()
    data.save_job(make_job())
    return data


@pytest.fixture
def repository() -> InMemoryPredictionRepository:
    return InMemoryPredictionRepository()


@pytest.fixture
def store(prep_data, repository, fast_settings) -> PredictionStore:
    return PredictionStore(repository, PrepSources.backed_by(prep_data), fast_settings)
