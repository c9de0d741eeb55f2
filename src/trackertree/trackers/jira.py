"""Jira adapter — JQL search, bulk issue fetch, project listing.

API Assumptions:
- Jira Cloud uses REST API v3: cursor search at /rest/api/3/search/jql and
  bulk fetch at /rest/api/3/issue/bulkfetch (max 100 keys per call)
- Jira Server/DC uses REST API v2: offset search at /rest/api/2/search; a
  ``key in (...)`` query with validateQuery=warn stands in for bulk fetch
- Auth: Cloud uses Basic Auth (email:token), Server uses Bearer PAT
- Issue keys are the item ids, since epic-link custom fields hold keys
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx

from trackertree.models import Item, Project
from trackertree.normalizer import normalize_jira_issue, normalize_jira_project
from trackertree.trackers.base import HttpTracker

logger = logging.getLogger(__name__)

# Fields to request from Jira; the configured parent fields are appended.
ISSUE_FIELDS = [
    "summary",
    "status",
    "issuetype",
    "project",
    "assignee",
    "priority",
    "created",
    "updated",
    "description",
]

PAGE_SIZE = 100
BULK_LIMIT = 100


def _jql_quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class JiraTracker(HttpTracker):
    """Handles all communication with the Jira REST API."""

    name = "jira"

    @property
    def is_cloud(self) -> bool:
        return self.settings.jira_auth_mode == "cloud"

    @property
    def fields(self) -> list[str]:
        extra = [f for f in self.settings.parent_fields if f not in ISSUE_FIELDS]
        return ISSUE_FIELDS + extra

    def _client_options(self) -> dict[str, Any]:
        headers: dict[str, str] = {"Accept": "application/json"}
        auth = None
        if self.is_cloud:
            # Cloud: Basic Auth with email + API token
            auth = httpx.BasicAuth(
                username=self.settings.jira_email,
                password=self.settings.jira_api_token,
            )
        else:
            # Server / DC: bearer Personal Access Token
            headers["Authorization"] = f"Bearer {self.settings.jira_api_token}"
        return {
            "base_url": self.settings.jira_base_url.rstrip("/"),
            "headers": headers,
            "auth": auth,
        }

    @property
    def _api(self) -> str:
        return "/rest/api/3" if self.is_cloud else "/rest/api/2"

    # ── Auth test ─────────────────────────────────────────────────────

    async def test_auth(self) -> dict[str, Any]:
        user = await self._json("GET", f"{self._api}/myself")
        return {
            "ok": True,
            "user": user.get("displayName") or user.get("name") or "?",
            "id": user.get("accountId") or user.get("key"),
        }

    # ── Search / fetch ────────────────────────────────────────────────

    async def search(self, project_id: str, limit: int) -> list[str]:
        jql = f"project = {_jql_quote(project_id)} ORDER BY updated DESC"
        keys: list[str] = []
        next_token: str | None = None
        start_at = 0

        while len(keys) < limit:
            payload: dict[str, Any] = {
                "jql": jql,
                "maxResults": min(PAGE_SIZE, limit - len(keys)),
                "fields": ["key"],
            }
            if self.is_cloud:
                if next_token:
                    payload["nextPageToken"] = next_token
                data = await self._json("POST", "/rest/api/3/search/jql", json=payload)
            else:
                payload["startAt"] = start_at
                data = await self._json("POST", "/rest/api/2/search", json=payload)

            issues = data.get("issues", [])
            keys.extend(issue["key"] for issue in issues)
            if not issues:
                break

            if self.is_cloud:
                next_token = data.get("nextPageToken")
                if not next_token or data.get("isLast"):
                    break
            else:
                start_at += len(issues)
                if start_at >= data.get("total", 0):
                    break

        logger.debug("JQL for %s returned %d keys", project_id, len(keys))
        return keys[:limit]

    async def batch_get(self, ids: Sequence[str]) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        for i in range(0, len(ids), BULK_LIMIT):
            chunk = list(ids[i:i + BULK_LIMIT])
            if self.is_cloud:
                data = await self._json(
                    "POST",
                    "/rest/api/3/issue/bulkfetch",
                    json={"issueIdsOrKeys": chunk, "fields": self.fields},
                )
                for err in data.get("issueErrors", []) or []:
                    logger.info("Jira could not return issue(s): %s", err)
            else:
                jql = "key in (" + ", ".join(_jql_quote(k) for k in chunk) + ")"
                data = await self._json(
                    "POST",
                    "/rest/api/2/search",
                    json={
                        "jql": jql,
                        "maxResults": len(chunk),
                        "fields": self.fields,
                        "validateQuery": "warn",
                    },
                )
                for warning in data.get("warningMessages", []) or []:
                    logger.info("Jira search warning: %s", warning)
            records.extend(data.get("issues", []))
        return records

    async def list_projects(self) -> list[Project]:
        if not self.is_cloud:
            data = await self._json("GET", "/rest/api/2/project")
            return [normalize_jira_project(p) for p in data]

        projects: list[Project] = []
        start_at = 0
        while True:
            data = await self._json(
                "GET",
                "/rest/api/3/project/search",
                params={"startAt": start_at, "maxResults": 50},
            )
            values = data.get("values", [])
            projects.extend(normalize_jira_project(p) for p in values)
            if data.get("isLast", True) or not values:
                break
            start_at += len(values)
        return projects

    def to_item(self, record: dict[str, Any]) -> Item:
        return normalize_jira_issue(record, self.settings.parent_fields)
