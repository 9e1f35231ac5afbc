"""Shared dependencies for API routes."""

from services.prediction import registry
from services.prediction.bus import InvalidationBus
from services.prediction.store import PredictionStore


def get_store() -> PredictionStore:
    return registry.get_store()


def get_bus() -> InvalidationBus:
    return registry.get_bus()
