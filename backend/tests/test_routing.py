import httpx
import pytest

from mapdemo.domain.errors import NotFound, ServiceError
from mapdemo.domain.geometry import Coordinate
from mapdemo.services.routing import fetch_osrm_route, straight_line_route


UNIVERSITY = Coordinate(51.078, -114.132)
DOWNTOWN = Coordinate(51.046, -114.073)


@pytest.mark.asyncio
async def test_osrm_route_parses_geometry_and_totals():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/route/v1/driving/-114.132,51.078;-114.073,51.046"
        assert request.url.params["geometries"] == "geojson"
        return httpx.Response(
            200,
            json={
                "code": "Ok",
                "routes": [
                    {
                        "distance": 7312.4,
                        "duration": 712.9,
                        "geometry": {
                            "type": "LineString",
                            "coordinates": [
                                [-114.132, 51.078],
                                [-114.1, 51.06],
                                [-114.073, 51.046],
                            ],
                        },
                    }
                ],
            },
        )

    route = await fetch_osrm_route(
        UNIVERSITY,
        DOWNTOWN,
        "driving",
        base_url="http://osrm.test",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )

    assert route.origin == UNIVERSITY
    assert route.destination == DOWNTOWN
    assert len(route.polyline) == 3
    assert route.distance_meters == pytest.approx(7312.4)
    assert route.expected_travel_seconds == pytest.approx(712.9)
    assert route.provider == "osrm"

    region = route.bounding_region
    assert region.contains(UNIVERSITY)
    assert region.contains(DOWNTOWN)


@pytest.mark.asyncio
async def test_osrm_no_route_is_not_found():
    transport = httpx.MockTransport(
        lambda _request: httpx.Response(
            400, json={"code": "NoRoute", "message": "Impossible route"}
        )
    )

    with pytest.raises(NotFound, match="Impossible route"):
        await fetch_osrm_route(
            UNIVERSITY,
            DOWNTOWN,
            "driving",
            base_url="http://osrm.test",
            timeout=1.0,
            transport=transport,
        )


@pytest.mark.asyncio
async def test_osrm_server_error_is_service_error():
    transport = httpx.MockTransport(
        lambda _request: httpx.Response(502, text="Bad Gateway")
    )

    with pytest.raises(ServiceError):
        await fetch_osrm_route(
            UNIVERSITY,
            DOWNTOWN,
            "driving",
            base_url="http://osrm.test",
            timeout=1.0,
            transport=transport,
        )


def test_straight_line_route_uses_great_circle_distance():
    route = straight_line_route(UNIVERSITY, DOWNTOWN)

    assert route.polyline == (UNIVERSITY, DOWNTOWN)
    assert 5000 < route.distance_meters < 6000
    assert route.expected_travel_seconds > 0
    assert route.transport_mode == "driving"
