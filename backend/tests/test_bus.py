"""Tests for the invalidation bus."""

import asyncio

import pytest

from conftest import INTERVIEW, JOB, USER, make_job
from models.schemas.inputs import Checklist, ChecklistItem
from services.prediction.bus import InvalidationBus, PredictionKey, PredictionUpdate
from services.prediction.errors import NotFoundError

KEY = PredictionKey(USER, JOB, INTERVIEW)


class CountingRecalc:
    """Wraps the store's recalculate; can be told to block or fail."""

    def __init__(self, store):
        self.store = store
        self.calls = 0
        self.keys: list[PredictionKey] = []
        self.gate: asyncio.Event | None = None
        self.fail_with: Exception | None = None

    async def __call__(self, key: PredictionKey):
        self.calls += 1
        self.keys.append(key)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return await self.store.recalculate(key.user_id, key.job_id, key.interview_id)


@pytest.fixture
def recalc(store) -> CountingRecalc:
    return CountingRecalc(store)


@pytest.fixture
def bus(recalc, fast_settings) -> InvalidationBus:
    return InvalidationBus(recalc, fast_settings)


async def _settle(bus: InvalidationBus) -> None:
    """Wait out the debounce window and any flush it triggers."""
    await asyncio.sleep(bus.debounce_seconds * 3)
    await bus.flush()


class TestCoalescing:
    @pytest.mark.asyncio
    async def test_burst_recalculates_once(self, bus, recalc):
        updates: list[PredictionUpdate] = []
        bus.subscribe(KEY, updates.append)
        for _ in range(10):
            bus.notify_stale(USER, JOB, INTERVIEW)
        await _settle(bus)

        assert recalc.calls == 1
        assert len(updates) == 1
        assert updates[0].ok
        assert updates[0].prediction.interview_id == INTERVIEW
        assert not bus.is_dirty(KEY)

    @pytest.mark.asyncio
    async def test_keys_recalculate_independently(self, bus, recalc, prep_data):
        prep_data.save_job(make_job(job_id="job-2", interview_id="iv-2"))
        other = PredictionKey(USER, "job-2", "iv-2")
        seen: list[PredictionKey] = []
        bus.subscribe(KEY, lambda u: seen.append(u.key))
        bus.subscribe(other, lambda u: seen.append(u.key))
        bus.notify_stale(USER, JOB, INTERVIEW)
        bus.notify_stale(USER, "job-2", "iv-2")
        await _settle(bus)

        assert recalc.calls == 2
        assert sorted(seen) == sorted([KEY, other])

    @pytest.mark.asyncio
    async def test_busy_key_does_not_hold_back_another(self, bus, recalc, prep_data):
        prep_data.save_job(make_job(job_id="job-2", interview_id="iv-2"))
        busy = PredictionKey(USER, "job-2", "iv-2")
        bus.subscribe(KEY, lambda u: None)
        bus.subscribe(busy, lambda u: None)

        bus.notify_stale(USER, JOB, INTERVIEW)
        # Keep the other key inside its debounce window the whole time
        for _ in range(20):
            bus.notify_stale(USER, "job-2", "iv-2")
            await asyncio.sleep(bus.debounce_seconds / 2)

        assert recalc.keys.count(KEY) == 1
        assert not bus.is_dirty(KEY)

        await _settle(bus)
        assert busy in recalc.keys
        assert not bus.is_dirty(busy)

    @pytest.mark.asyncio
    async def test_unwatched_key_is_ignored(self, bus, recalc):
        bus.notify_stale(USER, JOB, INTERVIEW)
        assert not bus.is_dirty(KEY)
        await _settle(bus)
        assert recalc.calls == 0

    @pytest.mark.asyncio
    async def test_flush_is_idle_without_dirty_keys(self, bus, recalc):
        bus.subscribe(KEY, lambda u: None)
        await bus.flush()
        assert recalc.calls == 0


class TestInFlight:
    @pytest.mark.asyncio
    async def test_notify_during_recalculation_runs_once_more(self, bus, recalc):
        updates: list[PredictionUpdate] = []
        bus.subscribe(KEY, updates.append)
        recalc.gate = asyncio.Event()

        bus.notify_stale(USER, JOB, INTERVIEW)
        flushing = asyncio.create_task(bus.flush())
        for _ in range(3):
            await asyncio.sleep(0)
        assert recalc.calls == 1

        # Several notifies while the first calculation is still running
        for _ in range(3):
            bus.notify_stale(USER, JOB, INTERVIEW)
        await bus.flush()
        assert recalc.calls == 1  # no second concurrent run for the same key

        recalc.gate.set()
        await flushing
        await _settle(bus)

        assert recalc.calls == 2
        assert len(updates) == 2
        assert not bus.is_dirty(KEY)


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_keeps_last_good_and_stays_dirty(self, bus, recalc):
        updates: list[PredictionUpdate] = []
        bus.subscribe(KEY, updates.append)
        bus.request_refresh(KEY)
        await _settle(bus)
        good = updates[-1].prediction

        recalc.fail_with = RuntimeError("store unavailable")
        bus.notify_stale(USER, JOB, INTERVIEW)
        await _settle(bus)

        failed = updates[-1]
        assert not failed.ok
        assert "store unavailable" in str(failed.error)
        assert failed.prediction == good
        assert bus.is_dirty(KEY)

        # The next successful flush clears it
        recalc.fail_with = None
        await bus.flush()
        assert updates[-1].ok
        assert not bus.is_dirty(KEY)

    @pytest.mark.asyncio
    async def test_missing_interview_is_not_retried(self, bus, recalc):
        updates: list[PredictionUpdate] = []
        bus.subscribe(KEY, updates.append)
        recalc.fail_with = NotFoundError("interview removed")
        bus.notify_stale(USER, JOB, INTERVIEW)
        await _settle(bus)

        assert isinstance(updates[-1].error, NotFoundError)
        assert updates[-1].prediction is None
        assert not bus.is_dirty(KEY)

    @pytest.mark.asyncio
    async def test_subscriber_error_does_not_affect_others(self, bus):
        received: list[PredictionUpdate] = []

        def broken(update):
            raise ValueError("boom")

        bus.subscribe(KEY, broken)
        bus.subscribe(KEY, received.append)
        bus.notify_stale(USER, JOB, INTERVIEW)
        await _settle(bus)
        assert len(received) == 1

    def test_notify_outside_event_loop(self, bus):
        bus.subscribe(KEY, lambda u: None)
        bus.notify_stale(USER, JOB, INTERVIEW)
        assert bus.is_dirty(KEY)

    def test_notify_never_raises(self, bus):
        bus.subscribe(KEY, lambda u: None)
        bus.notify_stale(None, None, None)


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery_and_clears_state(self, bus, recalc):
        updates: list[PredictionUpdate] = []
        unsubscribe = bus.subscribe(KEY, updates.append)
        bus.notify_stale(USER, JOB, INTERVIEW)
        unsubscribe()
        unsubscribe()
        assert not bus.is_dirty(KEY)
        assert not bus.has_subscribers(KEY)

        await _settle(bus)
        assert recalc.calls == 0
        assert updates == []

    @pytest.mark.asyncio
    async def test_wildcard_receives_every_interview_of_the_user(self, bus):
        updates: list[PredictionUpdate] = []
        bus.subscribe(PredictionKey.for_user(USER), updates.append)
        assert bus.has_subscribers(KEY)
        assert not bus.has_subscribers(PredictionKey("someone-else", JOB, INTERVIEW))

        bus.notify_stale(USER, JOB, INTERVIEW)
        await _settle(bus)
        assert [u.key for u in updates] == [KEY]

    @pytest.mark.asyncio
    async def test_async_handlers_are_awaited(self, bus):
        queue: asyncio.Queue[PredictionUpdate] = asyncio.Queue()

        async def handler(update):
            await queue.put(update)

        bus.subscribe(KEY, handler)
        bus.request_refresh(KEY)
        await _settle(bus)
        assert queue.qsize() == 1

    @pytest.mark.asyncio
    async def test_prep_data_mutations_reach_subscribers(self, bus, prep_data):
        prep_data.notifier = bus
        updates: list[PredictionUpdate] = []
        bus.subscribe(KEY, updates.append)
        prep_data.save_checklist(USER, JOB, INTERVIEW, Checklist(items=[ChecklistItem(completed=True)]))
        await _settle(bus)
        assert updates[-1].prediction.factors.preparation_score == 100

    @pytest.mark.asyncio
    async def test_wire_format(self, bus):
        updates: list[PredictionUpdate] = []
        bus.subscribe(KEY, updates.append)
        bus.request_refresh(KEY)
        await _settle(bus)
        wire = updates[0].to_wire()
        assert wire["jobId"] == JOB
        assert wire["error"] is None
        assert wire["prediction"]["interviewId"] == INTERVIEW


class TestShutdown:
    @pytest.mark.asyncio
    async def test_aclose_cancels_pending_flush(self, bus, recalc):
        bus.subscribe(KEY, lambda u: None)
        bus.notify_stale(USER, JOB, INTERVIEW)
        await bus.aclose()
        await asyncio.sleep(bus.debounce_seconds * 3)
        assert recalc.calls == 0
        assert not bus.has_subscribers(KEY)
