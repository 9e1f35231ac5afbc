"""Lazy process-wide wiring of the prediction engine.

Global singletons, created on first use: prep data, repository, store and
invalidation bus. The in-memory prep data is pointed at the bus so its
mutators emit stale notifications.

The default "prep_data" is an empty InMemoryPrepData: until the checklist,
research, practice, job and profile services are plugged in, every
recalculation answers NotFound. A deployment installs its adapter (anything
implementing the sources.py interfaces) with register("prep_data", ...)
before the first request, typically from the app lifespan.
"""

import logging

from config import settings
from services.prediction.bus import InvalidationBus, PredictionKey
from services.prediction.repository import InMemoryPredictionRepository, PredictionRepository
from services.prediction.sources import InMemoryPrepData, PrepSources
from services.prediction.store import PredictionStore

logger = logging.getLogger(__name__)

_registry: dict[str, object] = {}


def _create(name: str) -> object:
    """Factory: build a component by name, pulling in its dependencies."""
    if name == "prep_data":
        return InMemoryPrepData()
    elif name == "repository":
        return InMemoryPredictionRepository()
    elif name == "store":
        return PredictionStore(get_repository(), PrepSources.backed_by(get_prep_data()), settings)
    elif name == "bus":
        store = get_store()

        async def recalculate(key: PredictionKey):
            return await store.recalculate(key.user_id, key.job_id, key.interview_id)

        bus = InvalidationBus(recalculate, settings)
        get_prep_data().notifier = bus
        return bus
    else:
        raise ValueError(f"Unknown component: {name}")


def _get(name: str) -> object:
    if name not in _registry:
        logger.info("Creating prediction component: %s", name)
        _registry[name] = _create(name)
    return _registry[name]


COMPONENTS = ("prep_data", "repository", "store", "bus")


def register(name: str, component: object) -> None:
    """Install a ready-made component instead of the default one.

    Only takes effect for components not built yet: the store and bus pick
    up prep data and repository when they are first created.
    """
    if name not in COMPONENTS:
        raise ValueError(f"Unknown component: {name}")
    if name in _registry:
        raise RuntimeError(f"Component {name} is already in use; register it before first access")
    logger.info("Using provided prediction component: %s", name)
    _registry[name] = component


def get_prep_data() -> InMemoryPrepData:
    return _get("prep_data")


def get_repository() -> PredictionRepository:
    return _get("repository")


def get_store() -> PredictionStore:
    return _get("store")


def get_bus() -> InvalidationBus:
    return _get("bus")


def preload() -> None:
    """Build everything up front (at startup) so configuration errors surface immediately."""
    get_bus()


def clear() -> None:
    """Drop all components. Useful for testing."""
    _registry.clear()
