"""Work item fetcher — project search plus breadth-first parent resolution.

Round 1 fetches the candidate ids returned by each project's search. Every
later round fetches parent ids referenced by the previous round that were
never requested before. Fetching stops when a round discovers nothing new
or after ``max_depth`` rounds; ancestors beyond the cap are left out and
their children end up as project roots.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Iterable, Sequence

import httpx

from trackertree.models import Item
from trackertree.trackers.base import TrackerAdapter, TrackerClientError

logger = logging.getLogger(__name__)

MAX_IDS_PER_PROJECT = 100
BATCH_SIZE = 100
MAX_DEPTH = 5


class FetchError(Exception):
    """Raised when a fetch fails; no partial results are returned."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


async def _gather_all(aws: Iterable[Awaitable[Any]]) -> list[Any]:
    """Run ``aws`` concurrently; on the first failure cancel and drain the rest."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def _batches(ids: Sequence[str], size: int) -> list[list[str]]:
    return [list(ids[i:i + size]) for i in range(0, len(ids), size)]


async def _fetch_round(
    tracker: TrackerAdapter,
    ids: Sequence[str],
    batch_size: int,
) -> list[dict[str, Any]]:
    """Fetch one round; independent batches go out concurrently."""
    results = await _gather_all(
        tracker.batch_get(batch) for batch in _batches(ids, batch_size)
    )
    return [record for batch in results for record in batch]


async def fetch_items(
    tracker: TrackerAdapter,
    project_ids: Iterable[str],
    *,
    max_ids_per_project: int = MAX_IDS_PER_PROJECT,
    batch_size: int = BATCH_SIZE,
    max_depth: int = MAX_DEPTH,
) -> list[Item]:
    """Fetch the items of ``project_ids`` and their ancestors.

    Raises ``FetchError`` on any network, auth or parse failure.
    """
    projects = sorted(set(project_ids))
    if not projects:
        return []

    try:
        return await _fetch(tracker, projects, max_ids_per_project, batch_size, max_depth)
    except FetchError:
        raise
    except TrackerClientError as exc:
        raise FetchError(f"{tracker.name} request failed: {exc}") from exc
    except httpx.HTTPError as exc:
        raise FetchError(f"{tracker.name} network error: {exc}") from exc
    except (ValueError, KeyError, TypeError) as exc:
        raise FetchError(f"{tracker.name} returned an unexpected response: {exc}") from exc


async def _fetch(
    tracker: TrackerAdapter,
    projects: list[str],
    max_ids_per_project: int,
    batch_size: int,
    max_depth: int,
) -> list[Item]:
    searched = await _gather_all(
        tracker.search(project_id, max_ids_per_project) for project_id in projects
    )

    requested: set[str] = set()
    pending: list[str] = []
    for project_id, ids in zip(projects, searched):
        capped = ids[:max_ids_per_project]
        logger.info("Project %s: %d candidate ids", project_id, len(capped))
        for item_id in capped:
            if item_id not in requested:
                requested.add(item_id)
                pending.append(item_id)

    items: dict[str, Item] = {}
    rounds = 0
    while pending and rounds < max_depth:
        rounds += 1
        logger.debug("Fetch round %d: %d ids", rounds, len(pending))
        records = await _fetch_round(tracker, pending, batch_size)

        discovered: list[Item] = []
        for record in records:
            item = tracker.to_item(record)
            if not item.id or item.id in items:
                continue
            items[item.id] = item
            requested.add(item.id)
            discovered.append(item)

        pending = []
        for item in discovered:
            parent = item.parent_ref
            if parent and parent not in requested:
                requested.add(parent)
                pending.append(parent)

    if pending:
        logger.info(
            "Stopped resolving parents after %d rounds; %d ancestor ids left unfetched",
            rounds, len(pending),
        )
    logger.info(
        "Fetched %d items in %d rounds", len(items), rounds,
        extra={"tracker": tracker.name, "projects": projects},
    )
    return list(items.values())
