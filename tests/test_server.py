"""Tests for the HTTP routes in libspot.server."""

from unittest.mock import AsyncMock

import httpx
import pytest
from starlette.testclient import TestClient

from libspot.aggregation.bootstrap import INITIAL_STATE_GLOBAL
from libspot.server import create_app
from libspot.sources.browser import RenderedElement

DATE = "2026-01-21"
ALPHA_ROOMS = {
    "status": "success",
    "data": {
        "locationAvailableRooms": [
            {
                "timeslots": [
                    {"roomName": "Alpha 101", "starttime": "08:00:00", "taken": False, "open": True}
                ]
            }
        ]
    },
}


class _FakeRenderer:
    async def render(self, url, selector):
        return [
            RenderedElement(
                label="8:00am Wednesday, January 21, 2026 - 360A - Available",
                classes="s-lc-eq-avail",
            )
        ]


class _RoomApi:
    """httpx handler standing in for the room search API."""

    def __init__(self):
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if "/locationsearch/1/" in request.url.path:
            return httpx.Response(200, json=ALPHA_ROOMS)
        return httpx.Response(404)


@pytest.fixture
def room_api():
    return _RoomApi()


@pytest.fixture
def client(test_settings, minimal_facilities, room_api):
    app = create_app(
        test_settings,
        facilities=list(minimal_facilities),
        renderer=_FakeRenderer(),
        transport=httpx.MockTransport(room_api),
    )
    with TestClient(app) as test_client:
        yield test_client


class TestLibrariesRoute:
    def test_returns_snapshot(self, client):
        response = client.get("/api/libraries", params={"date": DATE})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["date"] == DATE
        assert [f["id"] for f in body["data"]] == ["alpha", "beta"]
        assert body["data"][0]["rooms"][0]["name"] == "101"
        assert body["data"][0]["rooms"][0]["slots"][0]["label"] == "8:00am"
        assert body["data"][1]["rooms"][0]["name"] == "360A"
        assert body["cacheHit"] is False
        assert body["deduped"] is False
        assert isinstance(body["fetchedAtMs"], int)
        assert body["fetchDurationMs"] >= 0
        assert body["serverNowMs"] >= body["fetchedAtMs"]

    def test_second_request_is_cache_hit(self, client, room_api):
        client.get("/api/libraries", params={"date": DATE})
        body = client.get("/api/libraries", params={"date": DATE}).json()

        assert body["cacheHit"] is True
        assert body["cacheAgeMs"] >= 0
        assert len(room_api.requests) == 1

    def test_nocache_forces_refresh(self, client, room_api):
        client.get("/api/libraries", params={"date": DATE})
        body = client.get("/api/libraries", params={"date": DATE, "nocache": "1"}).json()

        assert body["cacheHit"] is False
        assert len(room_api.requests) == 2

    @pytest.mark.parametrize("value", ["tomorrow", "2026-13-01", "21-01-2026"])
    def test_invalid_date(self, client, value):
        response = client.get("/api/libraries", params={"date": value})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_rendered_facility_without_slots_for_date(self, client):
        body = client.get("/api/libraries", params={"date": "2026-01-22"}).json()

        beta = body["data"][1]
        assert beta["rooms"] == []
        assert beta["fault"] is None

    def test_failure_returns_500(self, client, monkeypatch):
        orchestrator = client.app.state.services.orchestrator
        monkeypatch.setattr(orchestrator, "lookup", AsyncMock(side_effect=RuntimeError("boom")))

        response = client.get("/api/libraries", params={"date": DATE})

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "boom"}


class TestLibraryRoute:
    def test_single_facility(self, client):
        response = client.get("/api/libraries/alpha", params={"date": DATE})

        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Alpha Library"

    def test_unknown_facility(self, client):
        response = client.get("/api/libraries/nope", params={"date": DATE})

        assert response.status_code == 404
        assert response.json()["error"] == "Library not found"

    def test_invalid_date(self, client):
        assert client.get("/api/libraries/alpha", params={"date": "x"}).status_code == 400


class TestRefreshRoute:
    def test_refresh_rebuilds(self, client, room_api):
        client.get("/api/libraries", params={"date": DATE})
        response = client.post("/api/refresh", params={"date": DATE})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Cache refreshed"
        assert body["date"] == DATE
        assert len(room_api.requests) == 2

    def test_get_not_allowed(self, client):
        assert client.get("/api/refresh").status_code == 405


class TestUtilityRoutes:
    def test_time(self, client):
        body = client.get("/api/time").json()

        assert set(body) == {"hour", "minute", "second", "dateStr", "timestamp"}
        assert 0 <= body["hour"] < 24
        assert "," in body["dateStr"]

    def test_health(self, client):
        client.get("/api/libraries", params={"date": DATE})
        body = client.get("/api/health").json()

        assert body["status"] == "ok"
        assert body["uptime"] >= 0
        assert body["snapshots"]["entries"] == 1
        assert DATE in body["snapshots"]["ages"]

    def test_cors_allows_configured_origin(self, client, test_settings):
        response = client.get("/api/time", headers={"Origin": test_settings.allowed_origin})

        assert response.headers["access-control-allow-origin"] == test_settings.allowed_origin

    def test_cors_ignores_other_origins(self, client):
        response = client.get("/api/time", headers={"Origin": "https://elsewhere.example"})

        assert "access-control-allow-origin" not in response.headers


class TestDocumentRoute:
    def test_bootstrapped_document(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        html = response.text
        assert f"<script>{INITIAL_STATE_GLOBAL} = " in html
        assert html.index(INITIAL_STATE_GLOBAL) < html.lower().index("</head>")
        assert "Alpha Library" in html
