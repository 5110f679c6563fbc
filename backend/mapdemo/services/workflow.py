from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from mapdemo.core.config import Settings, get_settings
from mapdemo.core.logging import get_logger
from mapdemo.domain.errors import (
    MapSessionError,
    MissingPrerequisite,
    NotFound,
    PermissionDenied,
    ServiceError,
    Stale,
)
from mapdemo.domain.geometry import Coordinate, Region
from mapdemo.domain.sequencing import SequenceGuard
from mapdemo.services.autocomplete import PlaceAutocompleteService
from mapdemo.services.geocoding import search_places
from mapdemo.services.imagery import SceneCallable, fetch_scene
from mapdemo.services.location import LocationProvider, QueueLocationSource
from mapdemo.services.models import (
    CompletionCandidate,
    Notice,
    PlaceResult,
    Route,
    Scene,
    SessionState,
)
from mapdemo.services.preview import PreviewLoader
from mapdemo.services.routing import RouteCallable, compute_route


PlaceSearchCallable = Callable[[str, Region | None], Awaitable[list[PlaceResult]]]

T = TypeVar("T")

_logger = get_logger(__name__)


class DestinationResolutionWorkflow:
    """Owns the session state and sequences every call that changes it.

    Operations draw their ticket synchronously when called and hand back an
    ``asyncio.Task`` for the asynchronous part. A completion only touches the
    state if its ticket is still the newest of its kind: destination-setting
    operations (search, suggestion, long-press, manual override) share one
    sequence, route requests have their own, and previews are guarded inside
    ``PreviewLoader``. State is applied on the event loop in sections that
    never await, so completions cannot interleave.
    """

    def __init__(
        self,
        location: LocationProvider,
        autocomplete: PlaceAutocompleteService,
        *,
        scene_loader: SceneCallable | None = None,
        searcher: PlaceSearchCallable | None = None,
        router: RouteCallable | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._location = location
        self._autocomplete = autocomplete
        self._searcher = searcher or search_places
        self._router = router or compute_route
        self._started = False
        self._timeout = self._settings.request_timeout_seconds
        self._previews = PreviewLoader(
            scene_loader or fetch_scene,
            timeout=self._timeout,
            on_scene=self._apply_preview,
            on_error=self._report,
        )
        self._destinations = SequenceGuard("destination")
        self._routes = SequenceGuard("route")
        self._default_region = Region.around(
            Coordinate(
                self._settings.default_latitude, self._settings.default_longitude
            ),
            self._settings.default_span_meters,
        )
        self._state = SessionState(camera=self._default_region, following_user=True)
        self._unsubscribe = autocomplete.subscribe(
            self._apply_suggestions, self._report
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def location(self) -> LocationProvider:
        return self._location

    @property
    def previews(self) -> PreviewLoader:
        return self._previews

    @property
    def default_region(self) -> Region:
        return self._default_region

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        await self._location.start()
        if self._location.permission_denied:
            self._report(
                PermissionDenied("Location access was denied; routing needs it")
            )

    async def stop(self) -> None:
        self._unsubscribe()
        await self._location.stop()

    # Search text and viewport

    def on_query_changed(self, text: str) -> asyncio.Task[None] | None:
        self._state.query = text
        self._state.suggestions_visible = bool(text.strip())
        if not text.strip():
            self._state.suggestions = []
        return self._autocomplete.set_query(text)

    def on_camera_changed(self, region: Region) -> asyncio.Task[None] | None:
        self._state.camera = region
        return self._autocomplete.set_region(region)

    # Destination-setting operations

    def on_free_text_search_submitted(self, query: str) -> asyncio.Task[None] | None:
        if not query.strip():
            return None
        ticket = self._destinations.issue()
        _logger.info("Search submitted", ticket=ticket, query=query)
        return asyncio.create_task(self._complete_search(ticket, query))

    def on_suggestion_chosen(
        self, candidate: CompletionCandidate
    ) -> asyncio.Task[None]:
        self._state.suggestions_visible = False
        self._state.query = candidate.query_text
        ticket = self._destinations.issue()
        _logger.info(
            "Suggestion chosen",
            ticket=ticket,
            title=candidate.title,
            subtitle=candidate.subtitle,
        )
        return asyncio.create_task(self._complete_suggestion(ticket, candidate))

    def on_map_long_press(self, coordinate: Coordinate) -> asyncio.Task[Scene | None]:
        ticket = self._destinations.issue()
        self._state.destination = coordinate
        _logger.info(
            "Destination pinned",
            ticket=ticket,
            latitude=coordinate.latitude,
            longitude=coordinate.longitude,
        )
        return self._previews.request_preview(coordinate)

    def set_destination(self, coordinate: Coordinate) -> None:
        ticket = self._destinations.issue()
        self._state.destination = coordinate
        _logger.info(
            "Destination overridden",
            ticket=ticket,
            latitude=coordinate.latitude,
            longitude=coordinate.longitude,
        )

    # Routing

    def request_route(self) -> asyncio.Task[Route | None]:
        """Route from the current fix to the destination.

        Raises ``MissingPrerequisite`` without touching the state when either
        end is unknown.
        """

        origin = self._location.current
        destination = self._state.destination
        if origin is None or destination is None:
            missing = "current location" if origin is None else "destination"
            error = MissingPrerequisite(f"Cannot route without a {missing}")
            self._report(error)
            raise error

        ticket = self._routes.issue()
        _logger.info(
            "Route requested",
            ticket=ticket,
            origin=origin.as_tuple(),
            destination=destination.as_tuple(),
        )
        return asyncio.create_task(self._complete_route(ticket, origin, destination))

    # Camera and previews

    def toggle_user_location(self) -> None:
        self._state.following_user = not self._state.following_user
        current = self._location.current
        if self._state.following_user and current is not None:
            self._state.camera = Region.around(
                current, self._settings.default_span_meters
            )
        else:
            self._state.camera = self._default_region

    def load_initial_preview(self) -> asyncio.Task[Scene | None] | None:
        latitude = self._settings.landmark_latitude
        longitude = self._settings.landmark_longitude
        if latitude is None or longitude is None:
            return None
        return self._previews.request_preview(Coordinate(latitude, longitude))

    def dismiss_notices(self) -> None:
        self._state.notices = []

    # Completions

    async def _complete_search(self, ticket: int, query: str) -> None:
        try:
            places = await self._call(
                "Place search", self._searcher(query, self._default_region)
            )
        except MapSessionError as exc:
            self._drop_or_report(self._destinations, ticket, exc)
            return

        if not self._is_current(self._destinations, ticket):
            return
        if not places:
            _logger.info("Search returned no results", ticket=ticket, query=query)
            return

        first = places[0]
        self._state.search_results = list(places)
        self._state.destination = first.coordinate
        self._state.camera = Region.around(
            first.coordinate, self._settings.default_span_meters
        )
        _logger.info(
            "Destination resolved from search",
            ticket=ticket,
            results=len(places),
            latitude=first.coordinate.latitude,
            longitude=first.coordinate.longitude,
        )

    async def _complete_suggestion(
        self, ticket: int, candidate: CompletionCandidate
    ) -> None:
        region = self._autocomplete.region or self._default_region
        try:
            places = await self._call(
                "Suggestion lookup", self._searcher(candidate.query_text, region)
            )
        except MapSessionError as exc:
            self._drop_or_report(self._destinations, ticket, exc)
            return

        if not self._is_current(self._destinations, ticket):
            return
        if not places:
            self._report(NotFound(f"No place found for '{candidate.query_text}'"))
            return

        first = places[0]
        self._state.search_results = list(places)
        self._state.destination = first.coordinate
        self._state.camera = Region.around(
            first.coordinate, self._settings.suggestion_span_meters
        )
        _logger.info(
            "Destination resolved from suggestion",
            ticket=ticket,
            latitude=first.coordinate.latitude,
            longitude=first.coordinate.longitude,
        )
        await self._previews.request_preview(first.coordinate)

    async def _complete_route(
        self, ticket: int, origin: Coordinate, destination: Coordinate
    ) -> Route | None:
        try:
            route = await self._call(
                "Route computation", self._router(origin, destination, "driving")
            )
        except MapSessionError as exc:
            self._drop_or_report(self._routes, ticket, exc)
            return None

        if not self._is_current(self._routes, ticket):
            return None

        self._state.route = route
        self._state.camera = route.bounding_region
        _logger.info(
            "Route applied",
            ticket=ticket,
            distance_meters=route.distance_meters,
            expected_travel_seconds=route.expected_travel_seconds,
        )
        return route

    # Helpers

    async def _call(self, label: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, self._timeout)
        except asyncio.TimeoutError as exc:
            raise ServiceError(f"{label} timed out") from exc

    def _is_current(self, guard: SequenceGuard, ticket: int) -> bool:
        if guard.is_current(ticket):
            return True
        _logger.info(
            "Stale result dropped",
            kind=Stale.kind,
            sequence=guard.name,
            ticket=ticket,
            latest=guard.latest,
        )
        return False

    def _drop_or_report(
        self, guard: SequenceGuard, ticket: int, error: MapSessionError
    ) -> None:
        if self._is_current(guard, ticket):
            self._report(error)

    def _apply_preview(self, scene: Scene) -> None:
        self._state.preview = scene

    def _apply_suggestions(self, candidates: list[CompletionCandidate]) -> None:
        self._state.suggestions = candidates

    def _report(self, error: MapSessionError) -> None:
        _logger.warning("Session notice", kind=error.kind, message=str(error))
        notices = self._state.notices
        notices.append(
            Notice(kind=error.kind, message=str(error))  # type: ignore[arg-type]
        )
        del notices[: max(0, len(notices) - self._settings.max_notices)]


_workflow: DestinationResolutionWorkflow | None = None
_location_source: QueueLocationSource | None = None


def get_location_source() -> QueueLocationSource:
    global _location_source
    if _location_source is None:
        _location_source = QueueLocationSource()
    return _location_source


def get_workflow() -> DestinationResolutionWorkflow:
    global _workflow
    if _workflow is None:
        settings = get_settings()
        location = LocationProvider(get_location_source())
        _workflow = DestinationResolutionWorkflow(
            location,
            PlaceAutocompleteService(),
            settings=settings,
        )
    return _workflow
