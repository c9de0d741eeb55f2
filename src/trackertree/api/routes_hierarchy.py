"""Hierarchy API routes — selection, forest, refresh, toggle."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from trackertree.api import get_session
from trackertree.fetcher import FetchError
from trackertree.renderer import forest_to_dicts

router = APIRouter()
logger = logging.getLogger(__name__)


class SelectionRequest(BaseModel):
    project_ids: list[str] = Field(default_factory=list, alias="projectIds")

    model_config = {"populate_by_name": True}


class RefreshRequest(BaseModel):
    project_ids: Optional[list[str]] = Field(default=None, alias="projectIds")

    model_config = {"populate_by_name": True}


def _forest_payload(session) -> dict:
    return {
        "selection": session.selection,
        "forest": forest_to_dicts(session.forest),
        "error": session.last_error,
    }


@router.get("/selection")
async def get_selection(request: Request):
    state = request.app.state
    return {"tracker": state.tracker_name, "projectIds": state.store.load(state.tracker_name)}


@router.put("/selection")
async def put_selection(req: SelectionRequest, request: Request):
    state = request.app.state
    ids = state.store.save(state.tracker_name, req.project_ids)
    return {"tracker": state.tracker_name, "projectIds": ids}


@router.get("/forest")
async def get_forest(request: Request):
    """Return the current forest without fetching."""
    return _forest_payload(get_session(request))


@router.post("/forest/refresh")
async def refresh_forest(request: Request, req: RefreshRequest = RefreshRequest()):
    """Fetch items for the selection and rebuild the forest.

    On failure the previous forest stays in place and a 502 carries the
    message so the client can offer a retry.
    """
    state = request.app.state
    session = get_session(request)
    selection = req.project_ids
    if selection is None:
        selection = state.store.load(state.tracker_name)

    if not session.projects:
        from trackertree.trackers import TrackerClientError
        try:
            await session.load_projects()
        except TrackerClientError as exc:
            logger.warning("Project listing failed, using bare project ids: %s", exc)

    try:
        await session.refresh(selection)
    except FetchError as exc:
        raise HTTPException(status_code=502, detail=exc.message)
    return _forest_payload(session)


@router.post("/forest/toggle/{node_id}")
async def toggle_node(node_id: str, request: Request):
    session = get_session(request)
    session.toggle(node_id)
    return _forest_payload(session)
