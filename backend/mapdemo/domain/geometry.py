from __future__ import annotations

from dataclasses import dataclass
from math import atan2, cos, radians, sin, sqrt
from typing import Iterable

EARTH_RADIUS_METERS = 6_371_000.0
_METERS_PER_DEGREE_LATITUDE = 111_320.0


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A (latitude, longitude) pair in decimal degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude {self.latitude} outside [-90, 90]")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude {self.longitude} outside [-180, 180]")

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class Region:
    """Visible geographic extent, expressed as a center and degree spans."""

    center: Coordinate
    latitude_delta: float
    longitude_delta: float

    @classmethod
    def around(
        cls,
        center: Coordinate,
        latitudinal_meters: float,
        longitudinal_meters: float | None = None,
    ) -> "Region":
        """Build a region spanning the given distances around ``center``."""

        if longitudinal_meters is None:
            longitudinal_meters = latitudinal_meters
        latitude_delta = latitudinal_meters / _METERS_PER_DEGREE_LATITUDE
        meters_per_degree_longitude = _METERS_PER_DEGREE_LATITUDE * cos(
            radians(center.latitude)
        )
        if meters_per_degree_longitude <= 1e-9:
            longitude_delta = 360.0
        else:
            longitude_delta = longitudinal_meters / meters_per_degree_longitude
        return cls(center, min(latitude_delta, 180.0), min(longitude_delta, 360.0))

    @classmethod
    def bounding(cls, coordinates: Iterable[Coordinate]) -> "Region":
        """Smallest region containing every coordinate."""

        points = list(coordinates)
        if not points:
            raise ValueError("Cannot bound an empty set of coordinates")
        south = min(point.latitude for point in points)
        north = max(point.latitude for point in points)
        west = min(point.longitude for point in points)
        east = max(point.longitude for point in points)
        center = Coordinate((south + north) / 2, (west + east) / 2)
        return cls(center, north - south, east - west)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Return ``(south, west, north, east)`` clamped to valid degrees."""

        half_lat = self.latitude_delta / 2
        half_lon = self.longitude_delta / 2
        return (
            max(-90.0, self.center.latitude - half_lat),
            max(-180.0, self.center.longitude - half_lon),
            min(90.0, self.center.latitude + half_lat),
            min(180.0, self.center.longitude + half_lon),
        )

    def contains(self, coordinate: Coordinate) -> bool:
        south, west, north, east = self.bounds
        return (
            south <= coordinate.latitude <= north
            and west <= coordinate.longitude <= east
        )


def haversine_distance(origin: Coordinate, destination: Coordinate) -> float:
    """
    Calculate the great circle distance in meters between two coordinates.
    """
    lat1_rad, lon1_rad = radians(origin.latitude), radians(origin.longitude)
    lat2_rad, lon2_rad = radians(destination.latitude), radians(destination.longitude)

    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    a = sin(dlat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_METERS * c
