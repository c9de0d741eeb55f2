"""TrackerTree Web API — FastAPI application wrapping the hierarchy session."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from trackertree.config import Settings, get_settings
from trackertree.session import HierarchySession
from trackertree.storage import SelectionStore

logger = logging.getLogger(__name__)


def get_session(request: Request) -> HierarchySession:
    """Return the app's session, creating the tracker adapter on first use."""
    from trackertree.trackers import TrackerClientError, get_tracker

    state = request.app.state
    if state.session is None:
        try:
            tracker = get_tracker(state.tracker_name, state.settings)
        except (TrackerClientError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        state.session = HierarchySession(tracker, state.settings)
    return state.session


def create_app(
    session: HierarchySession | None = None,
    settings: Settings | None = None,
    store: SelectionStore | None = None,
    tracker_name: str | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    from trackertree.api.routes_hierarchy import router as hierarchy_router
    from trackertree.api.routes_system import router as system_router
    from trackertree.logging_config import configure_from_settings

    settings = settings or (session.settings if session else get_settings())
    configure_from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if app.state.session is not None:
            await app.state.session.aclose()

    app = FastAPI(
        title="TrackerTree",
        lifespan=lifespan,
        description="Azure DevOps / Jira work item hierarchy API",
        version="1.0.0",
    )

    # CORS for a locally served frontend on a different port
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.session = session
    app.state.store = store or SelectionStore(settings)
    app.state.tracker_name = (
        session.tracker.name if session else (tracker_name or settings.tracker)
    )

    app.include_router(system_router, prefix="/api", tags=["system"])
    app.include_router(hierarchy_router, prefix="/api", tags=["hierarchy"])

    return app
