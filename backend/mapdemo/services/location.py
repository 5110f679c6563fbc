from __future__ import annotations

import asyncio
from typing import AsyncIterator, Iterable, Protocol

from mapdemo.core.logging import get_logger
from mapdemo.domain.errors import PermissionDenied
from mapdemo.domain.geometry import Coordinate


_logger = get_logger(__name__)


class LocationSource(Protocol):
    """Platform stream of device positions."""

    async def request_permission(self) -> bool: ...

    def updates(self) -> AsyncIterator[Coordinate]: ...


class QueueLocationSource:
    """Location source fed by fixes pushed from a client device."""

    def __init__(self, *, permission_granted: bool = True) -> None:
        self._permission_granted = permission_granted
        self._queue: asyncio.Queue[Coordinate] = asyncio.Queue()

    async def request_permission(self) -> bool:
        return self._permission_granted

    def push(self, coordinate: Coordinate) -> None:
        self._queue.put_nowait(coordinate)

    async def updates(self) -> AsyncIterator[Coordinate]:
        while True:
            yield await self._queue.get()


class StaticLocationSource:
    """Replays a fixed list of positions, then goes quiet."""

    def __init__(
        self, fixes: Iterable[Coordinate] = (), *, permission_granted: bool = True
    ) -> None:
        self._fixes = list(fixes)
        self._permission_granted = permission_granted

    async def request_permission(self) -> bool:
        return self._permission_granted

    async def updates(self) -> AsyncIterator[Coordinate]:
        for fix in self._fixes:
            yield fix


class LocationProvider:
    """Keeps the most recent device position; ``None`` until the first fix."""

    def __init__(self, source: LocationSource) -> None:
        self._source = source
        self._current: Coordinate | None = None
        self._permission_requested = False
        self._denied = False
        self._task: asyncio.Task[None] | None = None

    @property
    def current(self) -> Coordinate | None:
        return self._current

    @property
    def permission_denied(self) -> bool:
        return self._denied

    async def start(self) -> None:
        """Ask for permission once and begin consuming location updates."""

        if self._permission_requested:
            return
        self._permission_requested = True

        if not await self._source.request_permission():
            self._denied = True
            _logger.warning(
                "Location permission denied", error=PermissionDenied.kind
            )
            return

        self._task = asyncio.create_task(self._consume())
        _logger.info("Location updates started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        _logger.info("Location updates stopped")

    def record(self, coordinate: Coordinate) -> None:
        """Overwrite the stored fix; ignored once permission was refused."""

        if self._denied:
            return
        self._current = coordinate
        _logger.debug(
            "Location fix",
            latitude=coordinate.latitude,
            longitude=coordinate.longitude,
        )

    async def _consume(self) -> None:
        async for coordinate in self._source.updates():
            self.record(coordinate)
