"""Renderers — JSON, rich tree and project table output."""

from __future__ import annotations

import json
from typing import Any, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from trackertree.models import PROJECT_TYPE, HierarchyNode, Project

TYPE_STYLES = {
    PROJECT_TYPE: "bold cyan",
    "Epic": "magenta",
    "Feature": "blue",
    "Story": "green",
    "User Story": "green",
    "Task": "yellow",
    "Bug": "red",
}


def forest_to_dicts(forest: Sequence[HierarchyNode]) -> list[dict[str, Any]]:
    return [node.to_dict() for node in forest]


def render_json(forest: Sequence[HierarchyNode]) -> str:
    return json.dumps(forest_to_dicts(forest), indent=2, default=str)


def _label(node: HierarchyNode) -> str:
    item = node.item
    style = TYPE_STYLES.get(item.type, "white")
    marker = "" if node.expanded or not node.children else f" [dim](+{len(node.children)})[/dim]"
    if item.type == PROJECT_TYPE:
        return f"[{style}]{escape(item.title or item.id)}[/{style}]{marker}"
    state = f" [dim]{escape(item.state)}[/dim]" if item.state else ""
    return (
        f"[{style}]{escape(item.type or '?')}[/{style}] "
        f"[bold]{escape(item.id)}[/bold] {escape(item.title)}{state}{marker}"
    )


def _add_children(branch: Tree, node: HierarchyNode) -> None:
    stack = [(branch, node)]
    while stack:
        parent, current = stack.pop()
        if not current.expanded:
            continue
        for child in current.children:
            stack.append((parent.add(_label(child)), child))


def build_rich_tree(forest: Sequence[HierarchyNode], title: str = "Work items") -> Tree:
    """Build a rich Tree; collapsed nodes show a child count instead of children."""
    root = Tree(f"[bold]{escape(title)}[/bold]", guide_style="dim")
    for node in forest:
        _add_children(root.add(_label(node)), node)
    return root


def render_forest(
    forest: Sequence[HierarchyNode],
    console: Console,
    title: str = "Work items",
) -> None:
    console.print(build_rich_tree(forest, title))


def render_projects_table(
    projects: Sequence[Project],
    console: Console,
    selected: Sequence[str] = (),
) -> None:
    table = Table(title="Projects", header_style="bold cyan")
    table.add_column("", width=2)
    table.add_column("ID", style="bold yellow", no_wrap=True)
    table.add_column("Name")
    table.add_column("Description", overflow="fold")

    chosen = set(selected)
    for project in projects:
        table.add_row(
            "✔" if project.id in chosen else "",
            escape(project.id),
            escape(project.name),
            escape(project.description),
        )
    console.print(table)
