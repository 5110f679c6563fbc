from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping

import httpx
from geopy.exc import GeopyError
from geopy.geocoders import get_geocoder_for_service
from geopy.point import Point

from mapdemo.core.config import get_settings
from mapdemo.core.logging import get_logger
from mapdemo.domain.errors import MapSessionError, ServiceError
from mapdemo.domain.geometry import Coordinate, Region, haversine_distance
from mapdemo.domain.sequencing import SequenceGuard
from mapdemo.services.models import CompletionCandidate


CompletionCallable = Callable[
    [str, Region | None, int], Awaitable[list[CompletionCandidate]]
]
ResultsListener = Callable[[list[CompletionCandidate]], None]
ErrorListener = Callable[[MapSessionError], None]


_logger = get_logger(__name__)
_PLACES_AUTOCOMPLETE_URL = (
    "https://maps.googleapis.com/maps/api/place/autocomplete/json"
)
_SUBTITLE_KEYS = ("street", "district", "city", "state", "country")


class PlaceAutocompleteService:
    """Turns a changing query into a stream of completion candidates.

    Each provider call is tagged with a ticket from a ``SequenceGuard``; a
    result whose ticket has been superseded by a later ``set_query`` is dropped
    instead of being published.
    """

    def __init__(
        self,
        completer: CompletionCallable | None = None,
        *,
        region: Region | None = None,
        debounce_seconds: float | None = None,
        limit: int | None = None,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self._completer = completer or fetch_completions
        self._region = region
        self._debounce = (
            settings.autocomplete_debounce_seconds
            if debounce_seconds is None
            else debounce_seconds
        )
        self._limit = limit or settings.autocomplete_limit
        self._timeout = timeout or settings.request_timeout_seconds
        self._guard = SequenceGuard("autocomplete")
        self._query = ""
        self._results: list[CompletionCandidate] = []
        self._listeners: list[ResultsListener] = []
        self._error_listeners: list[ErrorListener] = []

    @property
    def query(self) -> str:
        return self._query

    @property
    def region(self) -> Region | None:
        return self._region

    @property
    def results(self) -> list[CompletionCandidate]:
        return list(self._results)

    def subscribe(
        self,
        on_results: ResultsListener,
        on_error: ErrorListener | None = None,
    ) -> Callable[[], None]:
        """Register listeners and return a callable that removes them."""

        self._listeners.append(on_results)
        if on_error is not None:
            self._error_listeners.append(on_error)

        def unsubscribe() -> None:
            if on_results in self._listeners:
                self._listeners.remove(on_results)
            if on_error is not None and on_error in self._error_listeners:
                self._error_listeners.remove(on_error)

        return unsubscribe

    def set_query(
        self, text: str, region: Region | None = None
    ) -> asyncio.Task[None] | None:
        """Supersede any in-flight request with one for ``text``.

        An empty query clears the results without calling the provider.
        """

        if region is not None:
            self._region = region
        self._query = text
        ticket = self._guard.issue()

        if not text.strip():
            _logger.debug("Autocomplete cleared", ticket=ticket)
            self._publish([])
            return None

        return asyncio.create_task(self._run(ticket, text, self._region))

    def set_region(self, region: Region) -> asyncio.Task[None] | None:
        """Update the ranking bias; re-query only when a query is active."""

        self._region = region
        if not self._query.strip():
            return None
        return self.set_query(self._query)

    async def _run(self, ticket: int, text: str, region: Region | None) -> None:
        if self._debounce > 0:
            await asyncio.sleep(self._debounce)
            if not self._guard.is_current(ticket):
                _logger.debug("Autocomplete debounced", ticket=ticket, query=text)
                return

        try:
            candidates = await asyncio.wait_for(
                self._completer(text, region, self._limit), self._timeout
            )
        except asyncio.TimeoutError:
            self._fail(ticket, ServiceError("Autocomplete timed out"))
            return
        except MapSessionError as exc:
            self._fail(ticket, exc)
            return

        if not self._guard.is_current(ticket):
            _logger.info(
                "Stale autocomplete result dropped",
                ticket=ticket,
                latest=self._guard.latest,
                query=text,
            )
            return

        _logger.debug("Autocomplete results", ticket=ticket, count=len(candidates))
        self._publish(list(candidates)[: self._limit])

    def _publish(self, results: list[CompletionCandidate]) -> None:
        self._results = results
        for listener in list(self._listeners):
            listener(list(results))

    def _fail(self, ticket: int, error: MapSessionError) -> None:
        if not self._guard.is_current(ticket):
            _logger.info("Stale autocomplete error dropped", ticket=ticket)
            return
        _logger.warning("Autocomplete failed", ticket=ticket, error=str(error))
        for listener in list(self._error_listeners):
            listener(error)


async def fetch_completions(
    text: str, region: Region | None, limit: int
) -> list[CompletionCandidate]:
    """Fetch completion candidates from the configured provider."""

    settings = get_settings()
    if settings.autocomplete_provider == "google":
        return await _fetch_google_completions(
            text,
            region,
            limit,
            api_key=settings.google_maps_api_key,
            timeout=settings.request_timeout_seconds,
        )
    return await _fetch_photon_completions(text, region, limit)


async def _fetch_photon_completions(
    text: str, region: Region | None, limit: int
) -> list[CompletionCandidate]:
    settings = get_settings()
    geocoder_cls = get_geocoder_for_service("photon")
    geocoder = geocoder_cls(
        user_agent=settings.geocoder_user_agent,
        timeout=settings.request_timeout_seconds,
    )
    kwargs: dict[str, Any] = {"exactly_one": False, "limit": limit}
    if region is not None:
        kwargs["location_bias"] = Point(*region.center.as_tuple())

    try:
        found = await asyncio.to_thread(geocoder.geocode, text, **kwargs)
    except GeopyError as exc:
        raise ServiceError(str(exc) or "Autocomplete failed") from exc

    candidates: list[CompletionCandidate] = []
    for location in found or []:
        raw = getattr(location, "raw", {}) or {}
        properties = raw.get("properties", {}) if isinstance(raw, Mapping) else {}
        candidate = photon_candidate(properties)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def photon_candidate(properties: Mapping[str, Any]) -> CompletionCandidate | None:
    """Build a candidate from the ``properties`` of a Photon GeoJSON feature."""

    name = properties.get("name")
    street = properties.get("street")
    housenumber = properties.get("housenumber")

    if isinstance(name, str) and name.strip():
        title = name.strip()
        skip = {"name"}
    elif isinstance(street, str) and street.strip():
        title = f"{housenumber} {street}".strip() if housenumber else street.strip()
        skip = {"street"}
    else:
        return None

    parts = [
        str(properties[key]).strip()
        for key in _SUBTITLE_KEYS
        if key not in skip and properties.get(key)
    ]
    deduped = dict.fromkeys(part for part in parts if part and part != title)
    return CompletionCandidate(title=title, subtitle=", ".join(deduped))


async def _fetch_google_completions(
    text: str,
    region: Region | None,
    limit: int,
    *,
    api_key: str | None,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[CompletionCandidate]:
    if not api_key:
        raise ServiceError("Google autocomplete requires MAPDEMO_GOOGLE_MAPS_API_KEY")

    params: dict[str, Any] = {"input": text, "key": api_key}
    if region is not None:
        _, _, north, east = region.bounds
        center = region.center
        corner = Coordinate(north, east)
        params["location"] = f"{center.latitude},{center.longitude}"
        params["radius"] = int(max(1.0, haversine_distance(center, corner)))

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(_PLACES_AUTOCOMPLETE_URL, params=params)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        _logger.warning("Google autocomplete request failed", error=str(exc))
        raise ServiceError(str(exc) or "Autocomplete request failed") from exc

    try:
        data = response.json()
    except ValueError as exc:
        _logger.warning(
            "Google autocomplete was not JSON", status=response.status_code
        )
        raise ServiceError("Autocomplete returned an unreadable response") from exc

    status = data.get("status")
    if status == "ZERO_RESULTS":
        return []
    if status != "OK":
        message = data.get("error_message") or f"Autocomplete status {status}"
        raise ServiceError(message)

    candidates: list[CompletionCandidate] = []
    for prediction in data.get("predictions", [])[:limit]:
        formatting = prediction.get("structured_formatting") or {}
        title = formatting.get("main_text") or prediction.get("description")
        if not title:
            continue
        candidates.append(
            CompletionCandidate(
                title=title, subtitle=formatting.get("secondary_text") or ""
            )
        )
    return candidates
