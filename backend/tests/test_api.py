import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from api.dependencies import get_bus, get_store
from config import settings
from conftest import INTERVIEW, JOB, USER
from main import app
from services.prediction.bus import InvalidationBus, PredictionKey

client = TestClient(app)

HEADERS = {"X-User-Id": USER}


@pytest.fixture(autouse=True)
def bus(store, fast_settings, prep_data):
    async def recalculate(key):
        return await store.recalculate(key.user_id, key.job_id, key.interview_id)

    bus = InvalidationBus(recalculate, fast_settings)
    prep_data.notifier = bus
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_bus] = lambda: bus
    yield bus
    app.dependency_overrides.clear()


def _recalculate():
    response = client.post(f"/interview-predictions/{INTERVIEW}/recalculate?jobId={JOB}", headers=HEADERS)
    assert response.status_code == 200
    return response.json()


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["debounce_ms"] == settings.invalidation_debounce_ms


def test_recalculate_returns_camel_case_prediction():
    data = _recalculate()
    assert data["jobId"] == JOB
    assert data["interviewId"] == INTERVIEW
    assert data["successProbability"] == 50
    assert data["confidence"] == "low"
    assert set(data["factors"]) == {
        "preparationScore",
        "companyResearchScore",
        "practiceScore",
        "historicalPerformance",
        "roleMatchScore",
    }
    assert data["interviewContext"]["daysUntilInterview"] == 5
    assert data["actualOutcome"] == "pending"
    assert isinstance(data["recommendations"], list)


def test_get_prediction():
    response = client.get(f"/interview-predictions/{INTERVIEW}?jobId={JOB}", headers=HEADERS)
    assert response.status_code == 404

    created = _recalculate()
    response = client.get(f"/interview-predictions/{INTERVIEW}?jobId={JOB}", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["id"] == created["id"]


def test_user_header_required():
    response = client.get(f"/interview-predictions/{INTERVIEW}?jobId={JOB}")
    assert response.status_code == 422


def test_recalculate_unknown_interview():
    response = client.post(f"/interview-predictions/missing/recalculate?jobId={JOB}", headers=HEADERS)
    assert response.status_code == 404


def test_upcoming_and_timing():
    response = client.get("/interview-predictions/upcoming", headers=HEADERS)
    assert response.status_code == 200
    [prediction] = response.json()
    assert prediction["interviewId"] == INTERVIEW

    response = client.get(f"/interview-predictions/{INTERVIEW}/timing?jobId={JOB}", headers=HEADERS)
    assert response.status_code == 200
    data = response.json()
    assert data["daysUntilInterview"] == 5
    assert data["advice"][0]["templateKey"] == "timing.week_plan"


def test_complete_recommendation():
    created = _recalculate()
    response = client.put(
        f"/interview-predictions/{created['id']}/recommendations/0/complete", headers=HEADERS,
    )
    assert response.status_code == 200
    assert response.json()["recommendations"][0]["completed"] is True

    response = client.put(
        f"/interview-predictions/{created['id']}/recommendations/99/complete", headers=HEADERS,
    )
    assert response.status_code == 400


def test_outcome_and_accuracy_stats():
    created = _recalculate()
    response = client.put(
        f"/interview-predictions/{created['id']}/outcome",
        json={"actualOutcome": "rejected"},
        headers=HEADERS,
    )
    assert response.status_code == 200
    assert response.json()["accuracyScore"] == 50

    response = client.put(
        f"/interview-predictions/{created['id']}/outcome",
        json={"actualOutcome": "maybe"},
        headers=HEADERS,
    )
    assert response.status_code == 422

    response = client.get("/interview-predictions/accuracy/stats", headers=HEADERS)
    assert response.status_code == 200
    stats = response.json()
    assert stats["totalPredictions"] == 1
    assert stats["averageAccuracyScore"] == 50


def test_stale_notification_is_accepted():
    response = client.post(
        "/interview-predictions/stale",
        json={"jobId": JOB, "interviewId": INTERVIEW},
        headers=HEADERS,
    )
    assert response.status_code == 202
    assert response.json() == {"jobId": JOB, "interviewId": INTERVIEW, "subscribed": False}


def test_websocket_pushes_refreshed_prediction():
    url = f"/interview-predictions/ws?userId={USER}&jobId={JOB}&interviewId={INTERVIEW}"
    with client.websocket_connect(url) as ws:
        ws.send_text("refresh")
        update = ws.receive_json()
    assert update["error"] is None
    assert update["interviewId"] == INTERVIEW
    assert update["prediction"]["successProbability"] == 50


def test_websocket_client_leaving_unsubscribes(bus):
    key = PredictionKey(USER, JOB, INTERVIEW)
    url = f"/interview-predictions/ws?userId={USER}&jobId={JOB}&interviewId={INTERVIEW}"
    with client.websocket_connect(url) as ws:
        ws.send_text("refresh")
    assert not bus.has_subscribers(key)
    assert not bus.is_dirty(key)


def test_websocket_rejects_half_a_key():
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect(f"/interview-predictions/ws?userId={USER}&jobId={JOB}") as ws:
            ws.receive_json()
    assert excinfo.value.code == 1008
