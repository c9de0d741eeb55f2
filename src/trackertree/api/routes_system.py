"""System API routes — config, auth-test, projects."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request

from trackertree.api import get_session

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/config")
async def config_show(request: Request):
    """Return resolved configuration (sensitive values masked)."""
    settings = request.app.state.settings
    return {
        "tracker": request.app.state.tracker_name,
        "config": settings.as_display_dict(),
        "errors": settings.validate_tracker_config(request.app.state.tracker_name),
    }


@router.post("/auth-test")
async def auth_test(request: Request):
    """Test tracker authentication."""
    from trackertree.trackers import TrackerClientError

    session = get_session(request)
    try:
        return await session.tracker.test_auth()
    except TrackerClientError as exc:
        return {"ok": False, "error": str(exc)}


@router.get("/projects")
async def list_projects(request: Request):
    """List projects visible to the configured credentials."""
    from trackertree.trackers import TrackerClientError

    session = get_session(request)
    try:
        projects = await session.load_projects()
    except TrackerClientError as exc:
        logger.error("Project listing failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc))

    selected = set(request.app.state.store.load(request.app.state.tracker_name))
    return {
        "projects": [
            {**p.to_dict(), "selected": p.id in selected} for p in projects
        ],
        "total": len(projects),
    }
