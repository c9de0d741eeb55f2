"""Tests for the selection cache."""

import json

from trackertree.storage import SelectionStore


class TestSelectionStore:
    def test_empty_when_missing(self, settings):
        store = SelectionStore(settings)
        assert store.load("azure") == []
        assert not store.path.exists()

    def test_save_and_load(self, settings):
        store = SelectionStore(settings)
        assert store.save("azure", ["Web", "Api", "Web"]) == ["Web", "Api"]
        assert SelectionStore(settings).load("azure") == ["Web", "Api"]

    def test_trackers_are_independent(self, settings):
        store = SelectionStore(settings)
        store.save("azure", ["Web"])
        store.save("jira", ["WEB"])
        assert store.load("azure") == ["Web"]
        assert store.load("jira") == ["WEB"]

    def test_add_and_remove(self, settings):
        store = SelectionStore(settings)
        store.add("jira", ["A"])
        assert store.add("jira", ["B", "A"]) == ["A", "B"]
        assert store.remove("jira", ["A"]) == ["B"]

    def test_clear_drops_key(self, settings):
        store = SelectionStore(settings)
        store.save("azure", ["Web"])
        store.save("jira", ["WEB"])
        store.clear("azure")

        data = json.loads(store.path.read_text(encoding="utf-8"))
        assert "azure" not in data
        assert data["jira"] == ["WEB"]

    def test_corrupt_file_is_ignored(self, settings, tmp_path):
        path = tmp_path / "sel.json"
        path.write_text("{not json", encoding="utf-8")
        store = SelectionStore(settings, path=path)

        assert store.load("azure") == []
        store.save("azure", ["Web"])
        assert store.load("azure") == ["Web"]

    def test_non_list_values_are_skipped(self, settings, tmp_path):
        path = tmp_path / "sel.json"
        path.write_text(json.dumps({"azure": "Web", "jira": [1, "X"]}), encoding="utf-8")
        store = SelectionStore(settings, path=path)

        assert store.load("azure") == []
        assert store.load("jira") == ["1", "X"]
