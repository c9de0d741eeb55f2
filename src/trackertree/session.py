"""Hierarchy session — explicit fetch → build → toggle state for one tracker."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from trackertree.config import Settings, get_settings
from trackertree.fetcher import FetchError, fetch_items
from trackertree.models import HierarchyNode, Item, Project
from trackertree.trackers.base import TrackerAdapter
from trackertree.tree import build_forest, toggle_expansion

logger = logging.getLogger(__name__)


class HierarchySession:
    """Holds the current forest for a tracker and a project selection.

    Every ``refresh`` supersedes the one before it: the in-flight fetch is
    cancelled and a result that arrives for an older generation is dropped,
    so a slow stale fetch never replaces a newer forest. The superseded call
    returns the forest as it stood, unmodified. A failed fetch leaves the
    previous selection, items and forest in place.
    """

    def __init__(
        self,
        tracker: TrackerAdapter,
        settings: Settings | None = None,
        projects: Sequence[Project] = (),
    ) -> None:
        self.tracker = tracker
        self.settings = settings or get_settings()
        self.projects: list[Project] = list(projects)
        self.selection: list[str] = []
        self.items: list[Item] = []
        self.forest: list[HierarchyNode] = []
        self.last_error: str | None = None
        self._generation = 0
        self._task: asyncio.Task | None = None

    async def load_projects(self) -> list[Project]:
        self.projects = await self.tracker.list_projects()
        return self.projects

    def selected_projects(self) -> list[Project]:
        """Selected projects in selection order; unknown ids get a bare project."""
        by_id = {p.id: p for p in self.projects}
        return [by_id.get(pid) or Project(id=pid, name=pid) for pid in self.selection]

    async def refresh(self, selection: Sequence[str] | None = None) -> list[HierarchyNode]:
        """Fetch items for the selection and rebuild the forest."""
        requested = self.selection if selection is None else list(dict.fromkeys(selection))

        self._generation += 1
        generation = self._generation
        if self._task is not None and not self._task.done():
            logger.info("Cancelling superseded fetch")
            self._task.cancel()

        task = asyncio.ensure_future(
            fetch_items(
                self.tracker,
                requested,
                max_ids_per_project=self.settings.fetch_max_ids_per_project,
                batch_size=self.settings.fetch_batch_size,
                max_depth=self.settings.fetch_max_depth,
            )
        )
        self._task = task
        try:
            items = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                logger.debug("Fetch generation %d superseded", generation)
                return self.forest
            raise
        except FetchError as exc:
            if generation == self._generation:
                self.last_error = exc.message
            logger.error("Fetch failed: %s", exc.message)
            raise
        finally:
            if self._task is task:
                self._task = None

        if generation != self._generation:
            logger.debug("Discarding result of superseded fetch generation %d", generation)
            return self.forest

        self.selection = requested
        self.items = items
        self.last_error = None
        return self.rebuild()

    def rebuild(self) -> list[HierarchyNode]:
        """Rebuild the forest from the last fetched items and the selection."""
        self.forest = build_forest(self.items, self.selected_projects())
        return self.forest

    def toggle(self, node_id: str) -> list[HierarchyNode]:
        self.forest = toggle_expansion(self.forest, node_id)
        return self.forest

    async def aclose(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        await self.tracker.aclose()
