"""Tests for HierarchySession — refresh, failure handling, superseded fetches."""

import asyncio

import pytest

from trackertree.fetcher import FetchError
from trackertree.models import Project
from trackertree.session import HierarchySession
from tests.fakes import FakeTracker, record

PROJECTS = [Project(id="A", name="Alpha"), Project(id="B", name="Beta")]
RECORDS = [
    record(1, project="A", type_="Epic"),
    record(2, project="A", type_="Task", parent=1),
    record(10, project="B", type_="Story"),
]


def _session(settings, **kwargs) -> HierarchySession:
    return HierarchySession(FakeTracker(RECORDS, PROJECTS, **kwargs), settings)


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_builds_forest(self, settings):
        session = _session(settings)
        await session.load_projects()
        forest = await session.refresh(["A"])

        assert [n.id for n in forest] == ["A"]
        assert forest[0].item.title == "Alpha"
        assert [c.id for c in forest[0].children] == ["1"]
        assert [c.id for c in forest[0].children[0].children] == ["2"]
        assert session.last_error is None
        assert session.forest is forest

    @pytest.mark.asyncio
    async def test_unknown_project_gets_bare_root(self, settings):
        session = _session(settings)
        forest = await session.refresh(["B"])
        assert forest[0].item.title == "B"

    @pytest.mark.asyncio
    async def test_duplicate_selection_ids_collapse(self, settings):
        session = _session(settings)
        await session.refresh(["A", "B", "A"])
        assert session.selection == ["A", "B"]
        assert [n.id for n in session.forest] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_forest(self, settings):
        session = _session(settings)
        before = await session.refresh(["A"])

        session.tracker.fail_on = {"1"}
        with pytest.raises(FetchError, match="fake request failed"):
            await session.refresh(["A"])

        assert session.forest is before
        assert "HTTP 500" in session.last_error

        session.tracker.fail_on = set()
        await session.refresh()
        assert session.last_error is None

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_selection(self, settings):
        session = _session(settings)
        before = await session.refresh(["A"])

        session.tracker.fail_on = {"10"}
        with pytest.raises(FetchError):
            await session.refresh(["B"])

        assert session.selection == ["A"]
        assert session.forest is before
        rebuilt = session.rebuild()
        assert [n.id for n in rebuilt] == ["A"]
        assert [c.id for c in rebuilt[0].children] == ["1"]

    @pytest.mark.asyncio
    async def test_superseded_refresh_does_not_overwrite(self, settings):
        session = _session(settings, delay=0.05)
        before = await session.refresh(["A"])

        stale_call = asyncio.ensure_future(session.refresh(["B"]))
        await asyncio.sleep(0)
        latest = await session.refresh(["A", "B"])
        stale = await stale_call

        assert stale is before
        assert [n.id for n in latest] == ["A", "B"]
        assert session.forest is latest
        assert session.selection == ["A", "B"]


class TestToggleAndRebuild:
    @pytest.mark.asyncio
    async def test_toggle_updates_forest(self, settings):
        session = _session(settings)
        await session.refresh(["A"])
        session.toggle("1")

        epic = session.forest[0].children[0]
        assert epic.expanded is False
        session.toggle("1")
        assert session.forest[0].children[0].expanded is True

    @pytest.mark.asyncio
    async def test_rebuild_without_fetching(self, settings):
        session = _session(settings)
        await session.refresh(["A"])
        calls = len(session.tracker.batch_calls)

        session.toggle("1")
        session.rebuild()

        assert len(session.tracker.batch_calls) == calls
        assert session.forest[0].children[0].expanded is True

    @pytest.mark.asyncio
    async def test_aclose_closes_tracker(self, settings):
        session = _session(settings)
        await session.aclose()
        assert session.tracker.closed is True
