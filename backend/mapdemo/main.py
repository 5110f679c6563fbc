from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mapdemo.api.routes import router
from mapdemo.core.config import get_settings
from mapdemo.core.logging import configure_logging
from mapdemo.services.workflow import get_workflow


settings = get_settings()
configure_logging(settings.debug)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    workflow = get_workflow()
    await workflow.start()
    app.state.initial_preview = workflow.load_initial_preview()
    try:
        yield
    finally:
        preview = app.state.initial_preview
        if preview is not None and not preview.done():
            preview.cancel()
            with suppress(asyncio.CancelledError):
                await preview
        await workflow.stop()


app = FastAPI(
    title="Map Demo Session API",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Return basic service health."""

    return {"status": "ok"}
