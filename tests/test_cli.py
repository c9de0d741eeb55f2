"""Tests for the CLI commands."""

import pytest
from typer.testing import CliRunner

from trackertree.cli.main import app
from trackertree.models import Project
from trackertree.storage import SelectionStore
from tests.fakes import FakeTracker, record

runner = CliRunner()

PROJECTS = [Project(id="A", name="Alpha")]
RECORDS = [
    record(1, project="A", type_="Epic", title="Checkout revamp"),
    record(2, project="A", type_="Task", parent=1, title="Wire payment form"),
    record(3, project="A", type_="Bug", parent=2, title="Card field loses focus"),
]


@pytest.fixture(autouse=True)
def cli_settings(settings, monkeypatch):
    monkeypatch.setattr("trackertree.config._settings_instance", settings)
    return settings


@pytest.fixture
def fake(monkeypatch):
    tracker = FakeTracker(RECORDS, PROJECTS)
    monkeypatch.setattr("trackertree.trackers.get_tracker", lambda *a, **kw: tracker)
    return tracker


class TestConfigCommand:
    def test_shows_masked_config(self):
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "ADO_PAT" in result.output
        assert "pat-secret" not in result.output
        assert "Configuration looks valid" in result.output

    def test_unknown_tracker_exits_2(self):
        result = runner.invoke(app, ["-t", "gitlab", "config"])
        assert result.exit_code == 2
        assert "Unknown tracker" in result.output


class TestSelectCommand:
    def test_add_and_show(self, cli_settings):
        result = runner.invoke(app, ["-t", "jira", "select", "WEB", "API"])
        assert result.exit_code == 0
        assert "WEB, API" in result.output
        assert SelectionStore(cli_settings).load("jira") == ["WEB", "API"]

    def test_remove_and_clear(self, cli_settings):
        runner.invoke(app, ["select", "Web", "Api"])
        runner.invoke(app, ["select", "--remove", "Web"])
        assert SelectionStore(cli_settings).load("azure") == ["Api"]

        result = runner.invoke(app, ["select", "--clear"])
        assert "Cleared azure selection" in result.output
        assert SelectionStore(cli_settings).load("azure") == []

    def test_empty_selection(self):
        result = runner.invoke(app, ["-t", "ado", "select"])
        assert result.exit_code == 0
        assert "No azure projects selected" in result.output


class TestTrackerCommands:
    def test_auth_test(self, fake):
        result = runner.invoke(app, ["auth-test"])
        assert result.exit_code == 0
        assert "Fake User" in result.output
        assert fake.closed is True

    def test_projects(self, fake, cli_settings):
        SelectionStore(cli_settings).save("azure", ["A"])
        result = runner.invoke(app, ["projects"])
        assert result.exit_code == 0
        assert "Alpha" in result.output


class TestTreeCommand:
    def test_requires_selection(self, fake):
        result = runner.invoke(app, ["tree"])
        assert result.exit_code == 1
        assert "No azure projects selected" in result.output

    def test_prints_tree_for_project_option(self, fake):
        result = runner.invoke(app, ["tree", "-p", "A"])
        assert result.exit_code == 0
        assert "Alpha" in result.output
        assert "Checkout revamp" in result.output
        assert "Wire payment form" in result.output

    def test_uses_stored_selection(self, fake, cli_settings):
        SelectionStore(cli_settings).save("azure", ["A"])
        result = runner.invoke(app, ["tree"])
        assert result.exit_code == 0
        assert "Checkout revamp" in result.output

    def test_collapse_hides_children(self, fake):
        result = runner.invoke(app, ["tree", "-p", "A", "--collapse", "1"])
        assert result.exit_code == 0
        assert "Checkout revamp" in result.output
        assert "Wire payment form" not in result.output
        assert "(+1)" in result.output

    def test_collapse_keeps_collapsed_node_collapsed(self, fake):
        result = runner.invoke(app, ["tree", "-p", "A", "--collapse", "2"])
        assert result.exit_code == 0
        assert "Wire payment form" in result.output
        assert "Card field loses focus" not in result.output
        assert "(+1)" in result.output

    def test_json_output(self, fake):
        result = runner.invoke(app, ["tree", "-p", "A", "--json"])
        assert result.exit_code == 0
        assert '"projectId": "A"' in result.output
        assert '"Wire payment form"' in result.output

    def test_fetch_failure_exits_1(self, fake):
        fake.fail_on = {"1"}
        result = runner.invoke(app, ["tree", "-p", "A"])
        assert result.exit_code == 1
        assert "Fetch failed" in result.output
