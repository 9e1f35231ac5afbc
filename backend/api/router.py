import asyncio
import logging
from typing import NoReturn

from fastapi import (
    APIRouter,
    Depends,
    Header,
    HTTPException,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from slowapi import Limiter
from slowapi.util import get_remote_address

from api.dependencies import get_bus, get_store
from config import settings
from models.requests import OutcomeRequest, StaleNotification
from models.responses import HealthResponse, StaleAccepted, TimingAdviceResponse
from models.schemas.prediction import AccuracyStats, Prediction
from services.prediction.bus import InvalidationBus, PredictionKey, PredictionUpdate
from services.prediction.errors import (
    InvalidOutcomeError,
    NotFoundError,
    PredictionError,
    RecommendationIndexError,
    TransientIOError,
)
from services.prediction.store import PredictionStore
from services.timing_advice import timing_advice

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


def _raise_http(e: PredictionError) -> NoReturn:
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=404, detail=str(e)) from e
    if isinstance(e, (RecommendationIndexError, InvalidOutcomeError)):
        raise HTTPException(status_code=400, detail=str(e)) from e
    if isinstance(e, TransientIOError):
        raise HTTPException(status_code=503, detail="Prediction storage temporarily unavailable") from e
    logger.error("Unhandled prediction error: %s", e)
    raise HTTPException(status_code=500, detail="Prediction failed") from e


@router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", debounce_ms=settings.invalidation_debounce_ms)


@router.get("/interview-predictions/upcoming", response_model=list[Prediction])
async def upcoming_predictions(
    user_id: str = Header(..., alias="X-User-Id", min_length=1),
    store: PredictionStore = Depends(get_store),
):
    try:
        return await store.list_upcoming(user_id)
    except PredictionError as e:
        _raise_http(e)


@router.get("/interview-predictions/accuracy/stats", response_model=AccuracyStats)
async def accuracy_stats(
    user_id: str = Header(..., alias="X-User-Id", min_length=1),
    store: PredictionStore = Depends(get_store),
):
    try:
        return await store.accuracy_stats(user_id)
    except PredictionError as e:
        _raise_http(e)


@router.post(
    "/interview-predictions/stale",
    response_model=StaleAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def notify_stale(
    body: StaleNotification,
    user_id: str = Header(..., alias="X-User-Id", min_length=1),
    bus: InvalidationBus = Depends(get_bus),
):
    bus.notify_stale(user_id, body.job_id, body.interview_id)
    key = PredictionKey(user_id, body.job_id, body.interview_id)
    return StaleAccepted(
        job_id=body.job_id,
        interview_id=body.interview_id,
        subscribed=bus.has_subscribers(key),
    )


@router.websocket("/interview-predictions/ws")
async def prediction_updates(
    websocket: WebSocket,
    user_id: str = Query(..., alias="userId"),
    job_id: str | None = Query(None, alias="jobId"),
    interview_id: str | None = Query(None, alias="interviewId"),
    bus: InvalidationBus = Depends(get_bus),
):
    """Push every recalculated prediction for the key; any client message asks for a refresh."""
    await websocket.accept()
    if (job_id is None) != (interview_id is None):
        await websocket.close(code=1008, reason="jobId and interviewId go together")
        return

    key = PredictionKey(user_id, job_id, interview_id)
    updates: asyncio.Queue[PredictionUpdate] = asyncio.Queue()
    unsubscribe = bus.subscribe(key, updates.put_nowait)

    async def pump() -> None:
        while True:
            update = await updates.get()
            await websocket.send_json(update.to_wire())

    sender = asyncio.create_task(pump())
    try:
        while True:
            await websocket.receive_text()
            bus.request_refresh(key)
    except WebSocketDisconnect:
        logger.debug("Prediction websocket closed for %s", key)
    finally:
        unsubscribe()
        sender.cancel()
        # Collects the cancellation, or a send error once the client is gone
        await asyncio.gather(sender, return_exceptions=True)


@router.get("/interview-predictions/{interview_id}", response_model=Prediction)
async def get_prediction(
    interview_id: str,
    job_id: str = Query(..., alias="jobId"),
    user_id: str = Header(..., alias="X-User-Id", min_length=1),
    store: PredictionStore = Depends(get_store),
):
    try:
        return await store.get(user_id, job_id, interview_id)
    except PredictionError as e:
        _raise_http(e)


@router.post("/interview-predictions/{interview_id}/recalculate", response_model=Prediction)
@limiter.limit("30/minute")
async def recalculate_prediction(
    request: Request,
    interview_id: str,
    job_id: str = Query(..., alias="jobId"),
    user_id: str = Header(..., alias="X-User-Id", min_length=1),
    store: PredictionStore = Depends(get_store),
):
    try:
        return await store.recalculate(user_id, job_id, interview_id)
    except PredictionError as e:
        _raise_http(e)


@router.get("/interview-predictions/{interview_id}/timing", response_model=TimingAdviceResponse)
async def interview_timing(
    interview_id: str,
    job_id: str = Query(..., alias="jobId"),
    user_id: str = Header(..., alias="X-User-Id", min_length=1),
    store: PredictionStore = Depends(get_store),
):
    try:
        prediction = await store.get(user_id, job_id, interview_id)
    except PredictionError as e:
        _raise_http(e)
    context = prediction.interview_context
    return TimingAdviceResponse(
        job_id=job_id,
        interview_id=interview_id,
        days_until_interview=context.days_until_interview,
        advice=timing_advice(context),
    )


@router.put(
    "/interview-predictions/{prediction_id}/recommendations/{index}/complete",
    response_model=Prediction,
)
async def complete_recommendation(
    prediction_id: str,
    index: int,
    store: PredictionStore = Depends(get_store),
):
    try:
        return await store.mark_recommendation_complete(prediction_id, index)
    except PredictionError as e:
        _raise_http(e)


@router.put("/interview-predictions/{prediction_id}/outcome", response_model=Prediction)
async def record_outcome(
    prediction_id: str,
    body: OutcomeRequest,
    store: PredictionStore = Depends(get_store),
):
    try:
        return await store.record_outcome(prediction_id, body.actual_outcome)
    except PredictionError as e:
        _raise_http(e)
