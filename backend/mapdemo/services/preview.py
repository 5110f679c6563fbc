from __future__ import annotations

import asyncio
from collections import deque
from typing import Callable

from mapdemo.core.config import get_settings
from mapdemo.core.logging import get_logger
from mapdemo.domain.errors import MapSessionError, ServiceError
from mapdemo.domain.geometry import Coordinate
from mapdemo.domain.sequencing import SequenceGuard
from mapdemo.services.imagery import SceneCallable, fetch_scene
from mapdemo.services.models import Scene


_logger = get_logger(__name__)
_REQUEST_HISTORY = 16


class PreviewLoader:
    """Loads street-level previews, keeping only the newest requested one."""

    def __init__(
        self,
        scene_loader: SceneCallable = fetch_scene,
        *,
        timeout: float | None = None,
        on_scene: Callable[[Scene], None] | None = None,
        on_error: Callable[[MapSessionError], None] | None = None,
    ) -> None:
        self._scene_loader = scene_loader
        self._timeout = timeout or get_settings().request_timeout_seconds
        self._on_scene = on_scene
        self._on_error = on_error
        self._guard = SequenceGuard("preview")
        self._scene: Scene | None = None
        self._requested: deque[Coordinate] = deque(maxlen=_REQUEST_HISTORY)

    @property
    def scene(self) -> Scene | None:
        return self._scene

    @property
    def requested(self) -> list[Coordinate]:
        """Most recently requested coordinates, oldest first."""

        return list(self._requested)

    def request_preview(self, coordinate: Coordinate) -> asyncio.Task[Scene | None]:
        ticket = self._guard.issue()
        self._requested.append(coordinate)
        _logger.info(
            "Preview requested",
            ticket=ticket,
            latitude=coordinate.latitude,
            longitude=coordinate.longitude,
        )
        return asyncio.create_task(self._load(ticket, coordinate))

    async def _load(self, ticket: int, coordinate: Coordinate) -> Scene | None:
        try:
            scene = await asyncio.wait_for(
                self._scene_loader(coordinate), self._timeout
            )
        except asyncio.TimeoutError:
            self._fail(ticket, ServiceError("Street-level preview timed out"))
            return None
        except MapSessionError as exc:
            self._fail(ticket, exc)
            return None

        if not self._guard.is_current(ticket):
            _logger.info(
                "Stale preview dropped", ticket=ticket, latest=self._guard.latest
            )
            return None

        self._scene = scene
        if self._on_scene is not None:
            self._on_scene(scene)
        _logger.info("Preview loaded", ticket=ticket, scene_id=scene.scene_id)
        return scene

    def _fail(self, ticket: int, error: MapSessionError) -> None:
        if not self._guard.is_current(ticket):
            _logger.info("Stale preview error dropped", ticket=ticket)
            return
        _logger.warning("Preview failed", ticket=ticket, error=str(error))
        if self._on_error is not None:
            self._on_error(error)
