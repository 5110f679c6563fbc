from __future__ import annotations

import asyncio
from typing import Any, Mapping, TYPE_CHECKING, cast

from cachetools import TTLCache
from geopy.exc import (
    GeocoderQuotaExceeded,
    GeocoderServiceError,
    GeocoderTimedOut,
    GeocoderUnavailable,
    GeopyError,
)
from geopy.geocoders import get_geocoder_for_service
from geopy.geocoders.base import Geocoder
from geopy.point import Point

from mapdemo.core.config import get_settings
from mapdemo.core.logging import get_logger
from mapdemo.domain.errors import ProviderConfigurationError, ServiceError
from mapdemo.domain.geometry import Coordinate, Region
from mapdemo.services.models import PlaceResult

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from geopy.location import Location

    from mapdemo.core.config import Settings

_logger = get_logger(__name__)
_cache: TTLCache = TTLCache(maxsize=512, ttl=60 * 60)
_cache_lock = asyncio.Lock()
_geocoder_lock = asyncio.Lock()
_geocoder: Geocoder | None = None


async def search_places(text: str, region: Region | None = None) -> list[PlaceResult]:
    """
    Run a one-shot place search biased towards ``region``.

    Returns an empty list when the provider has no candidates (not cached) and raises
    ``ServiceError`` for transport or provider failures.
    """

    query = text.strip()
    if not query:
        return []

    cache_key = (query.lower(), region.bounds if region else None)
    async with _cache_lock:
        cached = _cache.get(cache_key)
    if cached is not None:
        _logger.info("Place search cache hit", query=query)
        return list(cached)

    _logger.info("Place search", query=query, bias=region.bounds if region else None)

    try:
        locations = await _geocode(query, region)
    except ProviderConfigurationError as exc:
        _logger.error("Geocoder misconfiguration", error=str(exc))
        raise
    except GeocoderQuotaExceeded as exc:
        raise ServiceError("Place search quota exceeded") from exc
    except GeocoderTimedOut as exc:
        raise ServiceError("Place search timed out") from exc
    except (GeocoderServiceError, GeocoderUnavailable, GeopyError) as exc:
        raise ServiceError(str(exc) or "Place search failed") from exc

    results = [
        place for place in (_to_place(location) for location in locations) if place
    ]

    if results:
        async with _cache_lock:
            _cache[cache_key] = tuple(results)
    _logger.info("Place search finished", query=query, results=len(results))
    return results


async def _geocode(query: str, region: Region | None) -> "list[Location]":
    geocoder = await _get_geocoder()
    settings = get_settings()
    kwargs = _bias_arguments(settings, region)

    found = await asyncio.to_thread(geocoder.geocode, query, **kwargs)
    if found is None:
        return []
    if isinstance(found, list):
        return found
    return [found]


def _bias_arguments(settings: "Settings", region: Region | None) -> dict[str, Any]:
    provider = settings.geocoder_provider
    kwargs: dict[str, Any] = {"exactly_one": False}

    if provider == "nominatim":
        kwargs["limit"] = settings.search_result_limit
        if region is not None:
            south, west, north, east = region.bounds
            kwargs["viewbox"] = [Point(south, west), Point(north, east)]
            kwargs["bounded"] = False
    elif provider == "photon":
        kwargs["limit"] = settings.search_result_limit
        if region is not None:
            kwargs["location_bias"] = Point(*region.center.as_tuple())
    elif provider == "google":
        if region is not None:
            south, west, north, east = region.bounds
            kwargs["bounds"] = [Point(south, west), Point(north, east)]
    return kwargs


async def _get_geocoder() -> Geocoder:
    global _geocoder
    async with _geocoder_lock:
        if _geocoder is None:
            _geocoder = _create_geocoder(get_settings())
        return _geocoder


def _create_geocoder(settings: "Settings") -> Geocoder:
    provider = settings.geocoder_provider
    timeout = settings.request_timeout_seconds
    user_agent = settings.geocoder_user_agent or "mapdemo-geocoder"

    if provider == "google":
        api_key = _require_api_key(
            provider, settings.geocoder_api_key or settings.google_maps_api_key
        )
        geocoder_cls = get_geocoder_for_service("googlev3")
        kwargs: dict[str, Any] = {
            "api_key": api_key,
            "timeout": timeout,
            "user_agent": user_agent,
        }
        if settings.geocoder_domain:
            kwargs["domain"] = settings.geocoder_domain
        return geocoder_cls(**kwargs)

    if provider in {"nominatim", "photon"}:
        geocoder_cls = get_geocoder_for_service(provider)
        kwargs = {"user_agent": user_agent, "timeout": timeout}
        if settings.geocoder_domain:
            kwargs["domain"] = settings.geocoder_domain
        return geocoder_cls(**kwargs)

    raise ProviderConfigurationError(f"Unsupported geocoder provider '{provider}'")


def _require_api_key(provider: str, value: str | None) -> str:
    if value and value.strip():
        return value.strip()
    raise ProviderConfigurationError(
        f"Geocoder provider '{provider}' requires MAPDEMO_GEOCODER_API_KEY to be set"
    )


def _to_place(location: "Location") -> PlaceResult | None:
    latitude = getattr(location, "latitude", None)
    longitude = getattr(location, "longitude", None)
    if latitude is None or longitude is None:
        return None
    try:
        coordinate = Coordinate(float(latitude), float(longitude))
    except ValueError:
        _logger.warning(
            "Geocoder returned invalid coordinate",
            latitude=latitude,
            longitude=longitude,
        )
        return None

    raw_obj = getattr(location, "raw", {}) or {}
    raw: Mapping[str, object] = (
        cast(Mapping[str, object], raw_obj) if isinstance(raw_obj, Mapping) else {}
    )
    address = getattr(location, "address", None) or None
    return PlaceResult(
        coordinate=coordinate,
        name=_place_name(raw, address),
        address=address,
    )


def _place_name(raw: Mapping[str, object], address: str | None) -> str | None:
    for key in ("name", "display_name"):
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return value.split(",")[0].strip()

    # Photon wraps attributes in a GeoJSON feature
    properties = raw.get("properties")
    if isinstance(properties, Mapping):
        name = properties.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()

    if address:
        return address.split(",")[0].strip()
    return None
