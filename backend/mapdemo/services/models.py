from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Literal

from mapdemo.domain.geometry import Coordinate, Region


NoticeKind = Literal[
    "not_found", "service_error", "missing_prerequisite", "permission_denied"
]


@dataclass(frozen=True, slots=True)
class CompletionCandidate:
    title: str
    subtitle: str = ""

    @property
    def query_text(self) -> str:
        return f"{self.title} {self.subtitle}".strip()


@dataclass(frozen=True, slots=True)
class PlaceResult:
    coordinate: Coordinate
    name: str | None = None
    address: str | None = None


@dataclass(frozen=True, slots=True)
class Route:
    """Driving route between two coordinates."""

    polyline: tuple[Coordinate, ...]
    distance_meters: float
    expected_travel_seconds: float
    transport_mode: str = "driving"
    provider: str = "osrm"

    @property
    def origin(self) -> Coordinate:
        return self.polyline[0]

    @property
    def destination(self) -> Coordinate:
        return self.polyline[-1]

    @property
    def bounding_region(self) -> Region:
        return Region.bounding(self.polyline)


@dataclass(frozen=True, slots=True)
class Scene:
    """Street-level imagery available near a coordinate."""

    scene_id: str
    coordinate: Coordinate
    captured_on: date | None = None
    image_url: str | None = None
    provider: str = "google"


@dataclass(frozen=True, slots=True)
class Notice:
    kind: NoticeKind
    message: str
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


@dataclass
class SessionState:
    """Everything a map client renders, owned by the workflow."""

    camera: Region
    query: str = ""
    suggestions_visible: bool = False
    suggestions: list[CompletionCandidate] = field(default_factory=list)
    search_results: list[PlaceResult] = field(default_factory=list)
    destination: Coordinate | None = None
    route: Route | None = None
    preview: Scene | None = None
    following_user: bool = False
    notices: list[Notice] = field(default_factory=list)

    @property
    def visible_suggestions(self) -> list[CompletionCandidate]:
        if not self.suggestions_visible or not self.query.strip():
            return []
        return list(self.suggestions)
