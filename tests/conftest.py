"""Shared test fixtures for TrackerTree tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from trackertree.config import Settings
from trackertree.models import Item, Project


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing to a temp data dir with no log file."""
    return Settings(
        tracker="azure",
        ado_organization_url="https://dev.azure.com/contoso",
        ado_pat="pat-secret-1234",
        jira_base_url="https://contoso.atlassian.net",
        jira_auth_mode="cloud",
        jira_email="dev@contoso.com",
        jira_api_token="jira-token-5678",
        data_dir=str(tmp_path / "data"),
        log_file=None,
        http_max_retries=2,
    )


@pytest.fixture
def project_p() -> Project:
    return Project(id="P", name="Proj")


def make_item(item_id, type_="Task", parent=None, project="P", title=None) -> Item:
    return Item(
        id=str(item_id),
        project_id=project,
        type=type_,
        title=title or f"{type_} {item_id}",
        state="New",
        parent_ref=None if parent is None else str(parent),
    )
