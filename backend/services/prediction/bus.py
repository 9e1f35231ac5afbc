"""Invalidation bus: keeps displayed predictions in step with their inputs.

Mutators anywhere in the app call notify_stale() without knowing whether a
prediction is on screen. Views subscribe to the keys they display. Dirty
keys wait out their own debounce window, then a key that still
has a subscriber is recalculated once and the result is delivered. Each key
has its own timer, so a busy key never holds back another one.

Per key:  Idle -> Subscribed -> Pending -> Recalculating -> Subscribed
                     ^                                         |
                     +------------- (unsubscribe) --> Idle <---+

All state lives on one event loop and is only touched from it. At most one
recalculation per key is in flight; a notify arriving meanwhile marks the
key dirty again and is picked up once the running one settles. Different
keys recalculate concurrently.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, NamedTuple

from config import Settings, settings as default_settings
from models.schemas.prediction import Prediction
from services.prediction.errors import NotFoundError

logger = logging.getLogger(__name__)


class PredictionKey(NamedTuple):
    """Identifies one interview's prediction. Without job/interview it is a user-wide wildcard."""
    user_id: str
    job_id: str | None = None
    interview_id: str | None = None

    @classmethod
    def for_user(cls, user_id: str) -> "PredictionKey":
        return cls(user_id)

    @property
    def is_wildcard(self) -> bool:
        return self.job_id is None or self.interview_id is None


@dataclass
class PredictionUpdate:
    """What a subscriber receives after a flush.

    On failure `error` is set and `prediction` is the last good prediction
    the bus delivered for the key (None if there never was one).
    """
    key: PredictionKey
    prediction: Prediction | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_wire(self) -> dict[str, Any]:
        return {
            "userId": self.key.user_id,
            "jobId": self.key.job_id,
            "interviewId": self.key.interview_id,
            "prediction": (
                self.prediction.model_dump(mode="json", by_alias=True) if self.prediction else None
            ),
            "error": str(self.error) if self.error else None,
        }


Handler = Callable[[PredictionUpdate], Any]
Recalculate = Callable[[PredictionKey], Awaitable[Prediction]]


class _Subscription:
    __slots__ = ("key", "handler", "active")

    def __init__(self, key: PredictionKey, handler: Handler) -> None:
        self.key = key
        self.handler = handler
        self.active = True


class InvalidationBus:
    def __init__(self, recalculate: Recalculate, settings: Settings | None = None) -> None:
        self._recalculate = recalculate
        self._settings = settings or default_settings
        self._subscribers: dict[PredictionKey, list[_Subscription]] = {}
        self._dirty: set[PredictionKey] = set()
        self._in_flight: dict[PredictionKey, asyncio.Task] = {}
        self._last_good: dict[PredictionKey, Prediction] = {}
        self._timers: dict[PredictionKey, asyncio.TimerHandle] = {}
        self._flushes: set[asyncio.Task] = set()

    @property
    def debounce_seconds(self) -> float:
        return self._settings.invalidation_debounce_ms / 1000

    # --- subscriptions ---

    def subscribe(self, key: PredictionKey, handler: Handler) -> Callable[[], None]:
        """Register interest in a key (or a user-wide wildcard). Returns the unsubscribe callable."""
        sub = _Subscription(key, handler)
        self._subscribers.setdefault(key, []).append(sub)

        def unsubscribe() -> None:
            if not sub.active:
                return
            sub.active = False
            subs = self._subscribers.get(key, [])
            if sub in subs:
                subs.remove(sub)
            if not subs:
                self._subscribers.pop(key, None)
                self._drop_idle()

        return unsubscribe

    def _watchers(self, key: PredictionKey) -> list[_Subscription]:
        subs = list(self._subscribers.get(key, []))
        if not key.is_wildcard:
            subs.extend(self._subscribers.get(PredictionKey.for_user(key.user_id), []))
        return subs

    def has_subscribers(self, key: PredictionKey) -> bool:
        return bool(self._watchers(key))

    def _drop_idle(self) -> None:
        """Forget dirty flags, timers and cached results for keys nobody is watching."""
        for k in [k for k in self._dirty if not self.has_subscribers(k)]:
            self._dirty.discard(k)
            self._cancel_timer(k)
        for k in [k for k in self._last_good if not self.has_subscribers(k)]:
            del self._last_good[k]

    # --- staleness ---

    def notify_stale(self, user_id: str, job_id: str, interview_id: str) -> None:
        """Fire-and-forget: the prediction for this interview is out of date.

        Safe to call with nobody subscribed and from code outside the event
        loop; never raises.
        """
        try:
            key = PredictionKey(user_id, job_id, interview_id)
            if not self.has_subscribers(key):
                return
            self._dirty.add(key)
            self._schedule_flush(key)
        except Exception:
            logger.exception("notify_stale failed for %s/%s", job_id, interview_id)

    def request_refresh(self, key: PredictionKey) -> None:
        """Manual refresh: recalculate a watched key, or every dirty key of a wildcard."""
        try:
            if key.is_wildcard:
                for dirty in [k for k in self._dirty if k.user_id == key.user_id]:
                    self._schedule_flush(dirty)
                return
            self.notify_stale(key.user_id, key.job_id, key.interview_id)
        except Exception:
            logger.exception("request_refresh failed for %s", key)

    def is_dirty(self, key: PredictionKey) -> bool:
        return key in self._dirty

    def _schedule_flush(self, key: PredictionKey) -> None:
        """(Re)start the debounce window of one key."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop here; the dirty flag stays until the next notify inside one
            logger.debug("No running event loop, flush of %s deferred", key)
            return
        self._cancel_timer(key)
        self._timers[key] = loop.call_later(self.debounce_seconds, self._on_timer, key)

    def _cancel_timer(self, key: PredictionKey) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    def _on_timer(self, key: PredictionKey) -> None:
        self._timers.pop(key, None)
        task = asyncio.get_running_loop().create_task(self._flush_keys([key]))
        self._flushes.add(task)
        task.add_done_callback(self._flushes.discard)

    # --- recalculation ---

    async def flush(self) -> None:
        """Recalculate every dirty, watched key now and wait for the results."""
        await self._flush_keys(list(self._dirty))

    async def _flush_keys(self, keys: list[PredictionKey]) -> None:
        started = []
        for key in keys:
            if key not in self._dirty:
                continue
            self._cancel_timer(key)
            if not self.has_subscribers(key):
                self._dirty.discard(key)
                continue
            if key in self._in_flight:
                continue  # picked up again when the running recalculation settles
            self._dirty.discard(key)
            task = asyncio.get_running_loop().create_task(self._run(key))
            self._in_flight[key] = task
            started.append(task)

        if started:
            await asyncio.gather(*started)

    async def _run(self, key: PredictionKey) -> None:
        reschedule = False
        try:
            prediction = await self._recalculate(key)
        except NotFoundError as e:
            logger.warning("Prediction %s cannot be recalculated: %s", key, e)
            await self._deliver(key, PredictionUpdate(key, self._last_good.get(key), e))
        except Exception as e:
            logger.warning("Recalculation failed for %s: %s", key, e)
            reschedule = key in self._dirty
            if self.has_subscribers(key):
                self._dirty.add(key)
            await self._deliver(key, PredictionUpdate(key, self._last_good.get(key), e))
        else:
            if self.has_subscribers(key):
                self._last_good[key] = prediction
                await self._deliver(key, PredictionUpdate(key, prediction))
            else:
                logger.debug("Recalculated %s after its last subscriber left; discarded", key)
            reschedule = key in self._dirty
        finally:
            self._in_flight.pop(key, None)
        if reschedule:
            self._schedule_flush(key)

    async def _deliver(self, key: PredictionKey, update: PredictionUpdate) -> None:
        for sub in self._watchers(key):
            if not sub.active:
                continue
            try:
                result = sub.handler(update)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Prediction subscriber failed for %s", key)

    async def aclose(self) -> None:
        """Cancel pending flushes and wait for recalculations already running."""
        for key in list(self._timers):
            self._cancel_timer(key)
        pending = list(self._in_flight.values()) + list(self._flushes)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._subscribers.clear()
        self._dirty.clear()
        self._last_good.clear()
