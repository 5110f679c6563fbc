from __future__ import annotations

from typing import Any, Awaitable, Callable, Sequence

import httpx

from mapdemo.core.config import get_settings
from mapdemo.core.logging import get_logger
from mapdemo.domain.errors import NotFound, ServiceError
from mapdemo.domain.geometry import Coordinate, haversine_distance
from mapdemo.services.models import Route


RouteCallable = Callable[[Coordinate, Coordinate, str], Awaitable[Route]]


_logger = get_logger(__name__)
_AVERAGE_SPEED_MPS = 11.11
_OSRM_PROFILES = {"driving": "driving", "walking": "foot", "cycling": "bike"}


async def compute_route(
    origin: Coordinate,
    destination: Coordinate,
    mode: str = "driving",
) -> Route:
    """Compute a single route between two coordinates with the configured provider."""

    settings = get_settings()
    _logger.info(
        "Route computation started",
        origin=origin.as_tuple(),
        destination=destination.as_tuple(),
        mode=mode,
        provider=settings.routing_provider,
    )

    if settings.routing_provider == "straight_line":
        route = straight_line_route(origin, destination, mode)
    else:
        route = await fetch_osrm_route(
            origin,
            destination,
            mode,
            base_url=settings.osrm_base_url,
            timeout=settings.request_timeout_seconds,
        )

    _logger.info(
        "Route computation finished",
        provider=route.provider,
        points=len(route.polyline),
        distance_meters=route.distance_meters,
        expected_travel_seconds=route.expected_travel_seconds,
    )
    return route


def straight_line_route(
    origin: Coordinate, destination: Coordinate, mode: str = "driving"
) -> Route:
    distance = haversine_distance(origin, destination)
    return Route(
        polyline=(origin, destination),
        distance_meters=distance,
        expected_travel_seconds=distance / _AVERAGE_SPEED_MPS,
        transport_mode=mode,
        provider="straight_line",
    )


async def fetch_osrm_route(
    origin: Coordinate,
    destination: Coordinate,
    mode: str,
    *,
    base_url: str,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Route:
    profile = _OSRM_PROFILES.get(mode)
    if profile is None:
        raise ServiceError(f"Unsupported transport mode '{mode}'")

    # OSRM expects lon,lat pairs
    waypoints = ";".join(
        f"{point.longitude},{point.latitude}" for point in (origin, destination)
    )
    url = f"{base_url}/route/v1/{profile}/{waypoints}"
    params = {"overview": "full", "geometries": "geojson", "alternatives": "false"}

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(url, params=params)
    except httpx.HTTPError as exc:
        _logger.warning("OSRM request failed", error=str(exc))
        raise ServiceError(str(exc) or "Route request failed") from exc

    try:
        data = response.json()
    except ValueError as exc:
        raise ServiceError(f"OSRM returned HTTP {response.status_code}") from exc

    code = data.get("code")
    if code in {"NoRoute", "NoSegment"}:
        raise NotFound(data.get("message") or "No route between these points")
    if code != "Ok" or response.is_error:
        message = data.get("message") or f"OSRM error {code or response.status_code}"
        raise ServiceError(message)

    routes = data.get("routes") or []
    if not routes:
        raise NotFound("No route between these points")

    first = routes[0]
    polyline = _parse_geojson_line(first.get("geometry"))
    if len(polyline) < 2:
        polyline = (origin, destination)

    return Route(
        polyline=polyline,
        distance_meters=float(first.get("distance") or 0.0),
        expected_travel_seconds=float(first.get("duration") or 0.0),
        transport_mode=mode,
        provider="osrm",
    )


def _parse_geojson_line(geometry: Any) -> tuple[Coordinate, ...]:
    if not isinstance(geometry, dict):
        return ()
    coordinates: Sequence[Any] = geometry.get("coordinates") or []
    points: list[Coordinate] = []
    for pair in coordinates:
        try:
            lon, lat = float(pair[0]), float(pair[1])
            points.append(Coordinate(lat, lon))
        except (TypeError, ValueError, IndexError):
            _logger.warning("OSRM geometry point skipped", point=pair)
    return tuple(points)
