"""Normalizer — converts raw tracker JSON (Azure DevOps, Jira) into Items."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from trackertree.models import Item, Project

logger = logging.getLogger(__name__)

ADO_PARENT_REL = "System.LinkTypes.Hierarchy-Reverse"

DEFAULT_JIRA_PARENT_FIELDS = ("parent", "customfield_10009", "customfield_10014")


# ── ADF (Atlassian Document Format) parser ─────────────────────────────


def adf_to_text(node: Any) -> str:
    """Recursively extract plain text from a Jira Cloud ADF document.

    ADF is a nested JSON tree. We walk it depth-first, collecting text
    content and adding basic formatting hints (newlines, bullet markers).
    """
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if not isinstance(node, dict):
        return ""

    node_type = node.get("type", "")

    if node_type == "text":
        return node.get("text", "")
    if node_type == "hardBreak":
        return "\n"
    if node_type == "mention":
        attrs = node.get("attrs", {})
        return f"@{attrs.get('text', attrs.get('id', ''))}"
    if node_type == "inlineCard":
        return node.get("attrs", {}).get("url", "[link]")
    if node_type in ("media", "mediaGroup", "mediaSingle"):
        return "[media]"

    joined = "".join(adf_to_text(child) for child in node.get("content", []))

    if node_type in ("paragraph", "heading"):
        return joined.strip() + "\n"
    if node_type == "listItem":
        return "• " + joined.strip() + "\n"
    if node_type == "codeBlock":
        return "```\n" + joined + "```\n"
    return joined


def _safe_str(val: Any) -> str | None:
    """Extract a string value or return None."""
    if val is None:
        return None
    if isinstance(val, str):
        return val
    if isinstance(val, dict):
        return val.get("name") or val.get("displayName") or val.get("value") or str(val)
    return str(val)


def _ref_str(val: Any) -> str | None:
    """Extract an item reference (key, value or id) from a field value."""
    if val is None or val == "":
        return None
    if isinstance(val, dict):
        for k in ("key", "value", "id"):
            ref = val.get(k)
            if ref not in (None, ""):
                return str(ref)
        return None
    if isinstance(val, (list, tuple)):
        return None
    return str(val)


def _note_gaps(source: str, item_id: str, item_type: str, title: str) -> None:
    missing = [name for name, value in (("type", item_type), ("title", title)) if not value]
    if missing:
        logger.warning(
            "%s record %s is missing %s; mapped with blank defaults",
            source, item_id or "(no id)", ", ".join(missing),
        )


# ── Azure DevOps ───────────────────────────────────────────────────────


def parse_parent_url(url: str | None) -> str | None:
    """Return the trailing path segment of a work item URL."""
    if not url:
        return None
    segment = url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
    return segment or None


def ado_parent_ref(raw: dict[str, Any]) -> str | None:
    """Resolve the parent id from the reverse-hierarchy relation.

    Falls back to the ``System.Parent`` field, which is present when the
    record was fetched with fields instead of relations.
    """
    for relation in raw.get("relations") or []:
        if isinstance(relation, dict) and relation.get("rel") == ADO_PARENT_REL:
            parent = parse_parent_url(relation.get("url"))
            if parent:
                return parent
    return _ref_str((raw.get("fields") or {}).get("System.Parent"))


def normalize_ado_work_item(raw: dict[str, Any]) -> Item:
    """Map a raw Azure DevOps work item into an Item."""
    fields = raw.get("fields") or {}
    item_id = _ref_str(raw.get("id")) or _ref_str(fields.get("System.Id")) or ""
    item_type = fields.get("System.WorkItemType") or ""
    title = fields.get("System.Title") or ""
    _note_gaps("Azure DevOps", item_id, item_type, title)

    assigned = fields.get("System.AssignedTo")
    return Item(
        id=item_id,
        project_id=fields.get("System.TeamProject"),
        type=item_type,
        title=title,
        state=fields.get("System.State") or "",
        parent_ref=ado_parent_ref(raw),
        attributes={
            "url": raw.get("url"),
            "rev": raw.get("rev"),
            "assignee": _safe_str(assigned),
            "priority": fields.get("Microsoft.VSTS.Common.Priority"),
            "tags": fields.get("System.Tags"),
            "areaPath": fields.get("System.AreaPath"),
            "iterationPath": fields.get("System.IterationPath"),
            "created": fields.get("System.CreatedDate"),
            "updated": fields.get("System.ChangedDate"),
        },
    )


def normalize_ado_project(raw: dict[str, Any]) -> Project:
    """Map an Azure DevOps project. Items reference projects by name."""
    name = raw.get("name") or ""
    return Project(
        id=name,
        name=name,
        description=raw.get("description") or "",
        url=raw.get("url") or "",
        metadata={
            "guid": raw.get("id"),
            "state": raw.get("state"),
            "visibility": raw.get("visibility"),
            "lastUpdateTime": raw.get("lastUpdateTime"),
        },
    )


# ── Jira ───────────────────────────────────────────────────────────────


def jira_parent_ref(
    fields: dict[str, Any],
    parent_fields: Sequence[str] = DEFAULT_JIRA_PARENT_FIELDS,
) -> str | None:
    """Return the first non-empty parent reference among ``parent_fields``."""
    for name in parent_fields:
        ref = _ref_str(fields.get(name))
        if ref:
            return ref
    return None


def normalize_jira_issue(
    raw: dict[str, Any],
    parent_fields: Sequence[str] = DEFAULT_JIRA_PARENT_FIELDS,
) -> Item:
    """Map a raw Jira issue into an Item. The issue key is the item id."""
    fields = raw.get("fields") or {}
    item_id = raw.get("key") or _ref_str(raw.get("id")) or ""

    issuetype = fields.get("issuetype") or {}
    item_type = (
        issuetype.get("name") if isinstance(issuetype, dict) else _safe_str(issuetype)
    ) or ""
    title = fields.get("summary") or ""
    _note_gaps("Jira", item_id, item_type, title)

    status = fields.get("status") or {}
    project = fields.get("project") or {}
    assignee = fields.get("assignee") or {}
    description = fields.get("description")

    return Item(
        id=item_id,
        project_id=project.get("key") if isinstance(project, dict) else _safe_str(project),
        type=item_type,
        title=title,
        state=(status.get("name") if isinstance(status, dict) else _safe_str(status)) or "",
        parent_ref=jira_parent_ref(fields, parent_fields),
        attributes={
            "issueId": raw.get("id"),
            "url": raw.get("self"),
            "assignee": (
                assignee.get("displayName") or assignee.get("name")
                if isinstance(assignee, dict) else _safe_str(assignee)
            ) if assignee else None,
            "priority": _safe_str(fields.get("priority")),
            "created": fields.get("created"),
            "updated": fields.get("updated"),
            "description": adf_to_text(description).strip() or None,
        },
    )


def normalize_jira_project(raw: dict[str, Any]) -> Project:
    """Map a Jira project. Issues reference projects by key."""
    key = raw.get("key") or _ref_str(raw.get("id")) or ""
    return Project(
        id=key,
        name=raw.get("name") or key,
        description=raw.get("description") or "",
        url=raw.get("self") or "",
        metadata={
            "projectId": raw.get("id"),
            "projectTypeKey": raw.get("projectTypeKey"),
        },
    )
