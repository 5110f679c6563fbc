from __future__ import annotations

import re
from datetime import date
from typing import Any, Awaitable, Callable

import httpx

from mapdemo.core.config import get_settings
from mapdemo.core.logging import get_logger
from mapdemo.domain.errors import NotFound, ServiceError
from mapdemo.domain.geometry import Coordinate
from mapdemo.services.models import Scene


SceneCallable = Callable[[Coordinate], Awaitable[Scene]]


_logger = get_logger(__name__)
_STREETVIEW_METADATA_URL = "https://maps.googleapis.com/maps/api/streetview/metadata"
_STREETVIEW_IMAGE_URL = "https://maps.googleapis.com/maps/api/streetview"
_SEARCH_RADIUS_METERS = 50
_CAPTURE_DATE_RE = re.compile(r"^(\d{4})-(\d{2})(?:-(\d{2}))?$")


async def fetch_scene(coordinate: Coordinate) -> Scene:
    """Look up street-level imagery near ``coordinate``."""

    settings = get_settings()
    if settings.street_level_provider == "none":
        raise NotFound("Street-level imagery is disabled")

    return await fetch_google_scene(
        coordinate,
        api_key=settings.google_maps_api_key,
        timeout=settings.request_timeout_seconds,
    )


async def fetch_google_scene(
    coordinate: Coordinate,
    *,
    api_key: str | None,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Scene:
    if not api_key:
        raise ServiceError("Street-level preview requires MAPDEMO_GOOGLE_MAPS_API_KEY")

    params = {
        "location": f"{coordinate.latitude},{coordinate.longitude}",
        "radius": _SEARCH_RADIUS_METERS,
        "source": "outdoor",
        "key": api_key,
    }

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(_STREETVIEW_METADATA_URL, params=params)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        _logger.warning("Street View metadata request failed", error=str(exc))
        raise ServiceError(str(exc) or "Street-level preview failed") from exc

    try:
        metadata: dict[str, Any] = response.json()
    except ValueError as exc:
        _logger.warning(
            "Street View metadata was not JSON", status=response.status_code
        )
        raise ServiceError("Street View returned an unreadable response") from exc

    status = metadata.get("status")
    if status in {"ZERO_RESULTS", "NOT_FOUND"}:
        raise NotFound("No street-level imagery near this location")
    if status != "OK":
        message = metadata.get("error_message") or f"Street View status {status}"
        raise ServiceError(message)

    pano_id = metadata.get("pano_id")
    if not pano_id:
        raise ServiceError("Street View metadata missing panorama id")

    location = metadata.get("location") or {}
    try:
        scene_coordinate = Coordinate(float(location["lat"]), float(location["lng"]))
    except (KeyError, TypeError, ValueError):
        scene_coordinate = coordinate

    return Scene(
        scene_id=str(pano_id),
        coordinate=scene_coordinate,
        captured_on=parse_capture_date(metadata.get("date")),
        image_url=f"{_STREETVIEW_IMAGE_URL}?size=640x400&pano={pano_id}",
        provider="google",
    )


def parse_capture_date(value: Any) -> date | None:
    """Parse Street View's ``YYYY-MM`` (or ``YYYY-MM-DD``) capture date."""

    if not isinstance(value, str):
        return None
    match = _CAPTURE_DATE_RE.match(value.strip())
    if not match:
        return None
    year, month, day = match.groups()
    try:
        return date(int(year), int(month), int(day or 1))
    except ValueError:
        return None
