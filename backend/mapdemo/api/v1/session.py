from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from mapdemo.domain.errors import MissingPrerequisite
from mapdemo.schemas.session import (
    CoordinatePayload,
    QueryRequest,
    RegionPayload,
    SearchRequest,
    SessionSnapshot,
)
from mapdemo.services.location import QueueLocationSource
from mapdemo.services.workflow import (
    DestinationResolutionWorkflow,
    get_location_source,
    get_workflow,
)


router = APIRouter()


def _snapshot(workflow: DestinationResolutionWorkflow) -> SessionSnapshot:
    return SessionSnapshot.build(workflow.state, workflow.location.current)


@router.get("/", response_model=SessionSnapshot)
async def read_session(
    workflow: DestinationResolutionWorkflow = Depends(get_workflow),
) -> SessionSnapshot:
    return _snapshot(workflow)


@router.post("/query", response_model=SessionSnapshot)
async def update_query(
    payload: QueryRequest,
    workflow: DestinationResolutionWorkflow = Depends(get_workflow),
) -> SessionSnapshot:
    task = workflow.on_query_changed(payload.text)
    if task is not None:
        await task
    return _snapshot(workflow)


@router.post("/camera", response_model=SessionSnapshot)
async def move_camera(
    payload: RegionPayload,
    workflow: DestinationResolutionWorkflow = Depends(get_workflow),
) -> SessionSnapshot:
    task = workflow.on_camera_changed(payload.to_domain())
    if task is not None:
        await task
    return _snapshot(workflow)


@router.post("/search", response_model=SessionSnapshot)
async def submit_search(
    payload: SearchRequest,
    workflow: DestinationResolutionWorkflow = Depends(get_workflow),
) -> SessionSnapshot:
    task = workflow.on_free_text_search_submitted(payload.query)
    if task is not None:
        await task
    return _snapshot(workflow)


@router.post("/suggestions/{index}", response_model=SessionSnapshot)
async def choose_suggestion(
    index: int,
    workflow: DestinationResolutionWorkflow = Depends(get_workflow),
) -> SessionSnapshot:
    suggestions = workflow.state.visible_suggestions
    if not 0 <= index < len(suggestions):
        raise HTTPException(status.HTTP_404_NOT_FOUND, "No suggestion at that index")

    await workflow.on_suggestion_chosen(suggestions[index])
    return _snapshot(workflow)


@router.post("/long-press", response_model=SessionSnapshot)
async def long_press(
    payload: CoordinatePayload,
    workflow: DestinationResolutionWorkflow = Depends(get_workflow),
) -> SessionSnapshot:
    await workflow.on_map_long_press(payload.to_domain())
    return _snapshot(workflow)


@router.post("/destination", response_model=SessionSnapshot)
async def override_destination(
    payload: CoordinatePayload,
    workflow: DestinationResolutionWorkflow = Depends(get_workflow),
) -> SessionSnapshot:
    workflow.set_destination(payload.to_domain())
    return _snapshot(workflow)


@router.post("/route", response_model=SessionSnapshot)
async def draw_route(
    workflow: DestinationResolutionWorkflow = Depends(get_workflow),
) -> SessionSnapshot:
    try:
        task = workflow.request_route()
    except MissingPrerequisite as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, str(exc)) from exc

    await task
    return _snapshot(workflow)


@router.post("/location", status_code=status.HTTP_202_ACCEPTED)
async def push_location(
    payload: CoordinatePayload,
    source: QueueLocationSource = Depends(get_location_source),
) -> dict[str, str]:
    source.push(payload.to_domain())
    return {"status": "accepted"}


@router.post("/user-location/toggle", response_model=SessionSnapshot)
async def toggle_user_location(
    workflow: DestinationResolutionWorkflow = Depends(get_workflow),
) -> SessionSnapshot:
    workflow.toggle_user_location()
    return _snapshot(workflow)


@router.delete("/notices", response_model=SessionSnapshot)
async def dismiss_notices(
    workflow: DestinationResolutionWorkflow = Depends(get_workflow),
) -> SessionSnapshot:
    workflow.dismiss_notices()
    return _snapshot(workflow)
