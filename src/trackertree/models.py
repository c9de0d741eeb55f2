"""Core data shapes shared by the fetcher, the tree builder and the adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

PROJECT_TYPE = "Project"


@dataclass(frozen=True)
class Item:
    """A single work record (Azure DevOps work item or Jira issue).

    ``attributes`` carries passthrough metadata (assignee, priority,
    timestamps, url, ...) that the hierarchy logic never interprets.
    """

    id: str
    project_id: str | None = None
    type: str = ""
    title: str = ""
    state: str = ""
    parent_ref: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "type": self.type,
            "title": self.title,
            "state": self.state,
            "parentRef": self.parent_ref,
            "attributes": dict(self.attributes),
        }


@dataclass(frozen=True)
class Project:
    """A tracker project. ``id`` is what items carry in ``Item.project_id``."""

    id: str
    name: str
    description: str = ""
    url: str = ""
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def as_item(self) -> Item:
        """Materialise the project as the synthetic root item of its tree."""
        return Item(
            id=self.id,
            project_id=self.id,
            type=PROJECT_TYPE,
            title=self.name,
            attributes={"description": self.description, "url": self.url},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "url": self.url,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class HierarchyNode:
    """An item placed in the forest. Immutable; toggles build new nodes."""

    item: Item
    children: tuple[HierarchyNode, ...] = ()
    depth: int = 0
    expanded: bool = True

    @property
    def id(self) -> str:
        return self.item.id

    def to_dict(self) -> dict[str, Any]:
        """Nested dict of this subtree, built without recursion."""
        out: dict[str, Any] = {}
        stack = [(self, out)]
        while stack:
            node, target = stack.pop()
            kids: list[dict[str, Any]] = [{} for _ in node.children]
            target.update(node.item.to_dict(), depth=node.depth, expanded=node.expanded)
            target["children"] = kids
            stack.extend(zip(node.children, kids))
        return out
