"""Tests for the work item fetcher — batching, parent discovery, depth bound."""

import asyncio
import logging

import httpx
import pytest

from trackertree.fetcher import FetchError, fetch_items

from tests.fakes import FakeTracker, record


def _chain(length, project="P"):
    """Items 1..length where item n has parent n-1; item 1 is the top."""
    return [
        record(n, project=project, parent=(n - 1 if n > 1 else None))
        for n in range(1, length + 1)
    ]


class TestFetchItems:
    @pytest.mark.asyncio
    async def test_fetches_project_items(self):
        tracker = FakeTracker([record(1, type_="Epic"), record(2, parent=1)])
        items = await fetch_items(tracker, {"P"})
        assert sorted(i.id for i in items) == ["1", "2"]
        assert tracker.search_calls == [("P", 100)]

    @pytest.mark.asyncio
    async def test_empty_selection_makes_no_calls(self):
        tracker = FakeTracker([record(1)])
        assert await fetch_items(tracker, set()) == []
        assert tracker.search_calls == []
        assert tracker.batch_calls == []

    @pytest.mark.asyncio
    async def test_resolves_missing_parents_across_projects(self):
        tracker = FakeTracker(
            [
                record(1, project="Q", type_="Epic"),
                record(2, project="Q", type_="Feature", parent=1),
                record(3, project="P", parent=2),
            ],
            search_results={"P": ["3"]},
        )
        items = await fetch_items(tracker, {"P"})
        assert {i.id for i in items} == {"1", "2", "3"}
        assert tracker.batch_calls == [["3"], ["2"], ["1"]]

    @pytest.mark.asyncio
    async def test_depth_bound_truncates_silently(self, caplog):
        caplog.set_level(logging.INFO, logger="trackertree.fetcher")
        tracker = FakeTracker(_chain(11), search_results={"P": ["11"]})

        items = await fetch_items(tracker, {"P"}, max_depth=5)

        assert sorted(int(i.id) for i in items) == [7, 8, 9, 10, 11]
        assert len(tracker.batch_calls) == 5
        assert "Stopped resolving parents after 5 rounds" in caplog.text

    @pytest.mark.asyncio
    async def test_converges_before_depth_bound(self):
        tracker = FakeTracker(_chain(3), search_results={"P": ["3"]})
        items = await fetch_items(tracker, {"P"}, max_depth=5)
        assert len(items) == 3
        assert len(tracker.batch_calls) == 3

    @pytest.mark.asyncio
    async def test_never_requests_an_id_twice(self):
        tracker = FakeTracker(
            [
                record(1, type_="Epic"),
                record(2, parent=1),
                record(3, parent=1),
                record(4, project="Q", parent=2),
            ],
            search_results={"P": ["2", "3", "2"], "Q": ["4", "2"]},
        )
        items = await fetch_items(tracker, {"P", "Q"})
        requested = tracker.requested_ids
        assert len(requested) == len(set(requested))
        assert sorted(i.id for i in items) == ["1", "2", "3", "4"]

    @pytest.mark.asyncio
    async def test_parent_cycle_terminates(self):
        tracker = FakeTracker(
            [record("A", parent="B"), record("B", parent="A")],
            search_results={"P": ["A"]},
        )
        items = await fetch_items(tracker, {"P"})
        assert sorted(i.id for i in items) == ["A", "B"]
        assert len(tracker.batch_calls) == 2

    @pytest.mark.asyncio
    async def test_batches_respect_batch_size(self):
        tracker = FakeTracker([record(n) for n in range(1, 251)])
        items = await fetch_items(tracker, {"P"}, max_ids_per_project=1000, batch_size=100)
        assert len(items) == 250
        assert [len(b) for b in tracker.batch_calls] == [100, 100, 50]

    @pytest.mark.asyncio
    async def test_caps_ids_per_project(self):
        tracker = FakeTracker(
            [record(n) for n in range(1, 11)],
            search_results={"P": [str(n) for n in range(1, 11)]},
        )
        items = await fetch_items(tracker, {"P"}, max_ids_per_project=4)
        assert len(items) == 4

    @pytest.mark.asyncio
    async def test_unknown_parent_is_not_an_error(self):
        tracker = FakeTracker([record(1, parent=999)])
        items = await fetch_items(tracker, {"P"})
        assert [i.id for i in items] == ["1"]
        assert tracker.batch_calls == [["1"], ["999"]]

    @pytest.mark.asyncio
    async def test_batch_failure_raises_fetch_error(self):
        tracker = FakeTracker(
            [record(1, type_="Epic"), record(2, parent=1)],
            search_results={"P": ["2"]},
            fail_on={"1"},
        )
        with pytest.raises(FetchError) as exc_info:
            await fetch_items(tracker, {"P"})
        assert "boom" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_failed_batch_cancels_sibling_batches(self):
        tracker = FakeTracker(
            [record(1), record(2), record(3)],
            search_results={"P": ["1", "2", "3"]},
            fail_on={"2"},
            batch_delay=0.05,
        )
        with pytest.raises(FetchError):
            await fetch_items(tracker, {"P"}, batch_size=1)

        assert ["1"] in tracker.cancelled_batches
        await asyncio.sleep(0.1)
        assert tracker.completed_batches == []

    @pytest.mark.asyncio
    async def test_network_error_raises_fetch_error(self):
        class Broken(FakeTracker):
            async def search(self, project_id, limit):
                raise httpx.ConnectError("connection refused")

        with pytest.raises(FetchError, match="network error"):
            await fetch_items(Broken(), {"P"})

    @pytest.mark.asyncio
    async def test_malformed_record_raises_fetch_error(self):
        class Malformed(FakeTracker):
            async def batch_get(self, ids):
                return [{"no-id": True}]

        with pytest.raises(FetchError, match="unexpected response"):
            await fetch_items(Malformed([record(1)]), {"P"})
