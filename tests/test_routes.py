import httpx
import pytest
from fastapi.testclient import TestClient

from analyzer.controller import CANCELLED_MESSAGE, AnalysisController, get_analysis_controller
from analyzer.poller import StatusPoller, get_status_poller
from core.scheduler import ManualScheduler
from main import app
from fakes import FakeTransport, insights_body, make_settings


class AnsweredTransport(FakeTransport):
    """Every request is already answered by the time it is initiated."""

    def __init__(self, status_code, body):
        super().__init__()
        self.status_code = status_code
        self.body = body

    def initiate(self, request):
        handle = super().initiate(request)
        self.respond(self.status_code, self.body)
        return handle


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _use_controller(transport):
    controller = AnalysisController(
        transport=transport,
        scheduler=ManualScheduler(start=1_760_000_000.0),
        settings=make_settings(),
    )
    app.dependency_overrides[get_analysis_controller] = lambda: controller
    return controller


def test_root_and_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/").json()["service"] == "CRO Analysis Client"


def test_idle_state_before_any_run(client):
    _use_controller(FakeTransport())

    view = client.get("/analyze/state").json()

    assert view["view"] == "idle"
    assert view["run_id"] == 0


def test_start_returns_loading_view(client):
    transport = FakeTransport()
    _use_controller(transport)

    response = client.post("/analyze", json={"url": "https://shop.example.com", "flow": "page"})

    assert response.status_code == 202
    body = response.json()
    assert body["run_id"] == 1
    assert body["view"]["view"] == "loading"
    assert body["view"]["stage"] == "scraping"
    assert body["view"]["progress"] == 10
    assert transport.requests[0].url == "https://shop.example.com"


def test_start_rejects_blank_url(client):
    _use_controller(FakeTransport())

    response = client.post("/analyze", json={"url": "   "})

    assert response.status_code == 422


def test_cancel_shows_error_view(client):
    _use_controller(FakeTransport())
    client.post("/analyze", json={"url": "https://shop.example.com"})

    body = client.post("/analyze/cancel").json()

    assert body["cancelled"] is True
    assert body["view"]["view"] == "error"
    assert body["view"]["error"] == CANCELLED_MESSAGE
    assert body["view"]["error_kind"] == "user-cancelled"
    assert body["view"]["progress"] == 0

    assert client.post("/analyze/cancel").json()["cancelled"] is False


def test_finished_run_shows_success_view(client):
    _use_controller(AnsweredTransport(200, insights_body()))
    run_id = client.post(
        "/analyze",
        json={"url": "https://shop.example.com", "options": {"generate_themes": True}},
    ).json()["run_id"]

    view = client.get("/analyze/state", params={"run_id": run_id}).json()

    assert view["view"] == "success"
    assert view["progress"] == 100
    assert view["result"]["analysisId"] == "abc123"
    assert view["warnings"] == ["No themes could be generated from insights"]
    assert view["has_warnings"] is True
    assert view["error"] is None


def test_state_for_superseded_run_is_stale(client):
    _use_controller(FakeTransport())
    first = client.post("/analyze", json={"url": "https://a.example.com"}).json()["run_id"]
    client.post("/analyze", json={"url": "https://b.example.com"})

    view = client.get("/analyze/state", params={"run_id": first}).json()

    assert view == {"view": "idle", "run_id": 2, "stale": True}


def test_start_failure_returns_500(client):
    class BrokenTransport:
        def initiate(self, request):
            raise RuntimeError("no event loop for you")

    _use_controller(BrokenTransport())

    response = client.post("/analyze", json={"url": "https://shop.example.com"})

    assert response.status_code == 500
    assert "no event loop for you" in response.json()["detail"]


def _use_poller(handler):
    poller = StatusPoller(settings=make_settings(), http_transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_status_poller] = lambda: poller


def test_status_endpoint_returns_status(client):
    _use_poller(lambda request: httpx.Response(200, json={"status": "completed", "progress": 100}))

    body = client.get("/analyze/status/abc123").json()

    assert body["analysis_id"] == "abc123"
    assert body["status"] == "completed"
    assert body["progress"] == 100


@pytest.mark.parametrize(
    "upstream_status, expected_status",
    [(401, 401), (404, 404), (500, 502)],
)
def test_status_endpoint_maps_errors(client, upstream_status, expected_status):
    _use_poller(lambda request: httpx.Response(upstream_status, json={"error": "nope"}))

    response = client.get("/analyze/status/abc123")

    assert response.status_code == expected_status


def test_status_endpoint_reports_network_errors(client):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    _use_poller(handler)

    response = client.get("/analyze/status/abc123")

    assert response.status_code == 503
    assert response.json()["detail"].startswith("Network error")
