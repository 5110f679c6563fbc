from __future__ import annotations

from fastapi import APIRouter

from mapdemo.api.v1 import session

router = APIRouter()
router.include_router(session.router, prefix="/v1/session", tags=["session"])
