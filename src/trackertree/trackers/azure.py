"""Azure DevOps adapter — WIQL search, workitemsbatch fetch, project listing.

API Assumptions:
- REST API 7.x; ``ADO_ORGANIZATION_URL`` is ``https://dev.azure.com/{org}``
  (or a collection URL on Azure DevOps Server)
- Auth: Basic Auth with an empty user name and a PAT as password
- workitemsbatch accepts at most 200 ids and cannot combine ``fields`` with
  ``$expand``, so records come back with all fields plus relations
- Items carry ``System.TeamProject`` (the project *name*), so projects are
  keyed by name
"""

from __future__ import annotations

import logging
from typing import Any, Sequence
from urllib.parse import quote

import httpx

from trackertree.models import Item, Project
from trackertree.normalizer import normalize_ado_project, normalize_ado_work_item
from trackertree.trackers.base import HttpTracker

logger = logging.getLogger(__name__)

WIQL_PROJECT_ITEMS = (
    "SELECT [System.Id] FROM WorkItems "
    "WHERE [System.TeamProject] = @project "
    "ORDER BY [System.ChangedDate] DESC"
)

MAX_BATCH = 200
PROJECTS_PAGE_SIZE = 100


class AzureDevOpsTracker(HttpTracker):
    """Handles all communication with the Azure DevOps work item API."""

    name = "azure"

    def _client_options(self) -> dict[str, Any]:
        return {
            "base_url": self.settings.ado_organization_url.rstrip("/"),
            "headers": {"Accept": "application/json"},
            "auth": httpx.BasicAuth(username="", password=self.settings.ado_pat),
        }

    @property
    def _version(self) -> dict[str, str]:
        return {"api-version": self.settings.ado_api_version}

    async def test_auth(self) -> dict[str, Any]:
        data = await self._json("GET", "/_apis/connectionData")
        user = data.get("authenticatedUser") or {}
        return {
            "ok": True,
            "user": user.get("providerDisplayName") or user.get("customDisplayName") or "?",
            "id": user.get("id"),
        }

    async def search(self, project_id: str, limit: int) -> list[str]:
        data = await self._json(
            "POST",
            f"/{quote(project_id, safe='')}/_apis/wit/wiql",
            params={**self._version, "$top": limit},
            json={"query": WIQL_PROJECT_ITEMS},
        )
        ids = [str(wi["id"]) for wi in data.get("workItems", [])]
        logger.debug("WIQL for %s returned %d ids", project_id, len(ids))
        return ids[:limit]

    async def batch_get(self, ids: Sequence[str]) -> list[dict[str, Any]]:
        numeric: list[int] = []
        for item_id in ids:
            if str(item_id).isdigit():
                numeric.append(int(item_id))
            else:
                logger.warning("Skipping non-numeric work item id %r", item_id)

        records: list[dict[str, Any]] = []
        for i in range(0, len(numeric), MAX_BATCH):
            data = await self._json(
                "POST",
                "/_apis/wit/workitemsbatch",
                params=self._version,
                json={
                    "ids": numeric[i:i + MAX_BATCH],
                    "$expand": "Relations",
                    "errorPolicy": "Omit",
                },
            )
            # errorPolicy=Omit returns null for deleted / inaccessible ids
            records.extend(r for r in data.get("value", []) if r)
        return records

    async def list_projects(self) -> list[Project]:
        projects: list[Project] = []
        token: str | None = None
        while True:
            params: dict[str, Any] = {**self._version, "$top": PROJECTS_PAGE_SIZE}
            if token:
                params["continuationToken"] = token
            resp = await self._request_with_retry("GET", "/_apis/projects", params=params)
            data = self._decode(resp)
            projects.extend(normalize_ado_project(p) for p in data.get("value", []))

            token = resp.headers.get("x-ms-continuationtoken")
            if not token:
                break
        return projects

    def to_item(self, record: dict[str, Any]) -> Item:
        return normalize_ado_work_item(record)
