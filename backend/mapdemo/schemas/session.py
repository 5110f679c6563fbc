from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

from mapdemo.domain.geometry import Coordinate, Region
from mapdemo.services.models import (
    CompletionCandidate,
    NoticeKind,
    PlaceResult,
    Route,
    Scene,
    SessionState,
)


class CoordinatePayload(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    def to_domain(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    @classmethod
    def from_domain(cls, coordinate: Coordinate) -> "CoordinatePayload":
        return cls(latitude=coordinate.latitude, longitude=coordinate.longitude)


class RegionPayload(BaseModel):
    center: CoordinatePayload
    latitude_delta: float = Field(..., gt=0.0, le=180.0)
    longitude_delta: float = Field(..., gt=0.0, le=360.0)

    def to_domain(self) -> Region:
        return Region(
            self.center.to_domain(), self.latitude_delta, self.longitude_delta
        )

    @classmethod
    def from_domain(cls, region: Region) -> "RegionPayload":
        # Degenerate regions (a single-point route) still need a positive span
        return cls(
            center=CoordinatePayload.from_domain(region.center),
            latitude_delta=max(region.latitude_delta, 1e-6),
            longitude_delta=max(region.longitude_delta, 1e-6),
        )


class QueryRequest(BaseModel):
    text: str = ""


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)

    @field_validator("query", mode="before")
    def _strip_query(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip()
        return value


class SuggestionPayload(BaseModel):
    title: str
    subtitle: str = ""


class PlacePayload(BaseModel):
    coordinate: CoordinatePayload
    name: str | None = None
    address: str | None = None

    @classmethod
    def from_domain(cls, place: PlaceResult) -> "PlacePayload":
        return cls(
            coordinate=CoordinatePayload.from_domain(place.coordinate),
            name=place.name,
            address=place.address,
        )


class RoutePayload(BaseModel):
    polyline: list[CoordinatePayload]
    distance_meters: float
    expected_travel_seconds: float
    transport_mode: str
    provider: str

    @classmethod
    def from_domain(cls, route: Route) -> "RoutePayload":
        return cls(
            polyline=[CoordinatePayload.from_domain(point) for point in route.polyline],
            distance_meters=route.distance_meters,
            expected_travel_seconds=route.expected_travel_seconds,
            transport_mode=route.transport_mode,
            provider=route.provider,
        )


class ScenePayload(BaseModel):
    scene_id: str
    coordinate: CoordinatePayload
    captured_on: date | None = None
    image_url: str | None = None
    provider: str

    @classmethod
    def from_domain(cls, scene: Scene) -> "ScenePayload":
        return cls(
            scene_id=scene.scene_id,
            coordinate=CoordinatePayload.from_domain(scene.coordinate),
            captured_on=scene.captured_on,
            image_url=scene.image_url,
            provider=scene.provider,
        )


class NoticePayload(BaseModel):
    kind: NoticeKind
    message: str
    created_at: datetime


class SessionSnapshot(BaseModel):
    query: str
    suggestions: list[SuggestionPayload] = Field(default_factory=list)
    search_results: list[PlacePayload] = Field(default_factory=list)
    destination: CoordinatePayload | None = None
    route: RoutePayload | None = None
    preview: ScenePayload | None = None
    camera: RegionPayload
    following_user: bool
    current_location: CoordinatePayload | None = None
    notices: list[NoticePayload] = Field(default_factory=list)

    @classmethod
    def build(
        cls,
        state: SessionState,
        current_location: Coordinate | None,
    ) -> "SessionSnapshot":
        return cls(
            query=state.query,
            suggestions=[_suggestion(item) for item in state.visible_suggestions],
            search_results=[
                PlacePayload.from_domain(place) for place in state.search_results
            ],
            destination=CoordinatePayload.from_domain(state.destination)
            if state.destination
            else None,
            route=RoutePayload.from_domain(state.route) if state.route else None,
            preview=ScenePayload.from_domain(state.preview) if state.preview else None,
            camera=RegionPayload.from_domain(state.camera),
            following_user=state.following_user,
            current_location=CoordinatePayload.from_domain(current_location)
            if current_location
            else None,
            notices=[
                NoticePayload(
                    kind=notice.kind,
                    message=notice.message,
                    created_at=notice.created_at,
                )
                for notice in state.notices
            ],
        )


def _suggestion(candidate: CompletionCandidate) -> SuggestionPayload:
    return SuggestionPayload(title=candidate.title, subtitle=candidate.subtitle)
