from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from mapdemo import main
from mapdemo.core.config import Settings
from mapdemo.domain.geometry import Coordinate
from mapdemo.main import app
from mapdemo.services.autocomplete import PlaceAutocompleteService
from mapdemo.services.location import LocationProvider, QueueLocationSource
from mapdemo.services.models import CompletionCandidate, PlaceResult, Route, Scene
from mapdemo.services.workflow import (
    DestinationResolutionWorkflow,
    get_location_source,
    get_workflow,
)


TOWER = Coordinate(51.0443, -114.0631)
UNIVERSITY = Coordinate(51.078, -114.132)


async def _stub_completer(text, _region, _limit):
    return [
        CompletionCandidate("Calgary Tower", "101 9 Ave SW, Calgary"),
        CompletionCandidate("Calgary Zoo", "210 St George's Dr NE, Calgary"),
    ]


async def _stub_searcher(text, _region):
    if "nowhere" in text:
        return []
    return [PlaceResult(TOWER, name="Calgary Tower", address="101 9 Ave SW")]


async def _stub_router(origin, destination, mode):
    return Route(
        polyline=(origin, destination),
        distance_meters=6500.0,
        expected_travel_seconds=780.0,
        transport_mode=mode,
        provider="stub",
    )


async def _stub_scene(coordinate):
    return Scene("stub-scene", coordinate)


@pytest.fixture
def session():
    source = QueueLocationSource()
    workflow = DestinationResolutionWorkflow(
        LocationProvider(source),
        PlaceAutocompleteService(_stub_completer, debounce_seconds=0),
        scene_loader=_stub_scene,
        searcher=_stub_searcher,
        router=_stub_router,
        settings=Settings(),
    )
    app.dependency_overrides[get_workflow] = lambda: workflow
    app.dependency_overrides[get_location_source] = lambda: source
    try:
        yield TestClient(app), workflow
    finally:
        app.dependency_overrides.clear()


def test_query_then_choose_suggestion(session):
    client, _ = session

    response = client.post("/v1/session/query", json={"text": "calg"})
    assert response.status_code == 200
    titles = [item["title"] for item in response.json()["suggestions"]]
    assert titles == ["Calgary Tower", "Calgary Zoo"]

    response = client.post("/v1/session/suggestions/0")
    assert response.status_code == 200
    data = response.json()
    assert data["suggestions"] == []
    assert data["destination"] == {"latitude": 51.0443, "longitude": -114.0631}
    assert data["preview"]["scene_id"] == "stub-scene"


def test_unknown_suggestion_index_is_404(session):
    client, _ = session

    response = client.post("/v1/session/suggestions/3")

    assert response.status_code == 404


def test_route_requires_location(session):
    client, workflow = session

    client.post(
        "/v1/session/long-press", json={"latitude": 51.05, "longitude": -114.07}
    )
    response = client.post("/v1/session/route")

    assert response.status_code == 409
    assert "current location" in response.json()["detail"]
    assert workflow.state.route is None


def test_route_from_current_location(session):
    client, workflow = session
    workflow.location.record(UNIVERSITY)

    client.post("/v1/session/search", json={"query": "calgary tower"})
    response = client.post("/v1/session/route")

    assert response.status_code == 200
    data = response.json()
    assert data["route"]["distance_meters"] == 6500.0
    assert data["route"]["polyline"][0] == {"latitude": 51.078, "longitude": -114.132}
    assert data["current_location"] == {"latitude": 51.078, "longitude": -114.132}


def test_search_without_results_keeps_destination(session):
    client, _ = session
    pin = {"latitude": 51.05, "longitude": -114.07}
    client.post("/v1/session/destination", json=pin)

    response = client.post("/v1/session/search", json={"query": "nowhere at all"})

    assert response.status_code == 200
    assert response.json()["destination"] == pin
    assert response.json()["notices"] == []


def test_invalid_coordinate_is_rejected(session):
    client, _ = session

    response = client.post(
        "/v1/session/long-press", json={"latitude": 95.0, "longitude": 0.0}
    )

    assert response.status_code == 422


def test_notices_can_be_dismissed(session):
    client, _ = session
    client.post("/v1/session/route")

    snapshot = client.get("/v1/session/").json()
    assert snapshot["notices"][0]["kind"] == "missing_prerequisite"

    response = client.delete("/v1/session/notices")
    assert response.json()["notices"] == []


def test_location_push_is_accepted(session):
    client, _ = session

    response = client.post(
        "/v1/session/location", json={"latitude": 51.078, "longitude": -114.132}
    )

    assert response.status_code == 202


def test_health_check():
    client = TestClient(app)

    assert client.get("/health").json() == {"status": "ok"}


def test_startup_keeps_landmark_preview_task(session, monkeypatch):
    _, workflow = session
    monkeypatch.setattr(main, "get_workflow", lambda: workflow)

    with TestClient(app) as client:
        client.get("/health")
        snapshot = client.get("/v1/session/").json()
        task = app.state.initial_preview

        assert task is not None
        assert task.done()
        assert task.exception() is None
        assert snapshot["preview"]["scene_id"] == "stub-scene"
