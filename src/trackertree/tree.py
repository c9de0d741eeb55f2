"""Hierarchy tree builder — converts flat items into one tree per project."""

from __future__ import annotations

import dataclasses
import logging
from collections import defaultdict
from typing import Iterable, Iterator, Sequence

from trackertree.models import HierarchyNode, Item, Project

logger = logging.getLogger(__name__)

# Sibling order: lower value first, ties broken by string comparison of id
TYPE_PRIORITY: dict[str, int] = {
    "Epic": 0,
    "Feature": 1,
    "Story": 2,
    "User Story": 2,
    "Task": 3,
}
DEFAULT_PRIORITY = 999

EXPANDED_DEPTH = 2


def sort_key(item: Item) -> tuple[int, str]:
    return (TYPE_PRIORITY.get(item.type, DEFAULT_PRIORITY), item.id)


def build_forest(
    items: Iterable[Item],
    projects: Sequence[Project],
) -> list[HierarchyNode]:
    """Build a forest with one root per project from flat items.

    Items whose parent is missing, unknown, or belongs to a project that is
    not in ``projects`` become roots under their own project. Projects with
    no root items are left out. Each item id is placed at most once; a
    revisit (duplicate or parent cycle) is pruned.
    """
    by_id: dict[str, Item] = {}
    for item in items:
        if item.id in by_id:
            logger.warning("Duplicate item id detected: %s; keeping latest", item.id)
        by_id[item.id] = item

    selected = {p.id for p in projects}
    children_of: dict[str, list[Item]] = defaultdict(list)
    roots_of: dict[str, list[Item]] = defaultdict(list)
    unresolved = 0

    for item in by_id.values():
        parent = by_id.get(item.parent_ref) if item.parent_ref else None
        if parent is not None and parent.project_id in selected:
            children_of[parent.id].append(item)
            continue
        if item.parent_ref:
            unresolved += 1
        if item.project_id is not None:
            roots_of[item.project_id].append(item)

    if unresolved:
        logger.info(
            "Tree builder: %d items had parent references outside the dataset (treated as roots)",
            unresolved,
        )

    visited: set[str] = set()

    def build_node(root: Item, depth: int) -> HierarchyNode:
        # Post-order over an explicit stack; a node is created once all of its
        # children exist. Frames are (item, depth, pending children, built kids).
        visited.add(root.id)
        stack = [(root, depth, iter(sorted(children_of.get(root.id, []), key=sort_key)), [])]
        while True:
            item, level, pending, kids = stack[-1]
            for child in pending:
                if child.id in visited:
                    logger.debug("Skipping already placed item %s under %s", child.id, item.id)
                    continue
                visited.add(child.id)
                grandchildren = sorted(children_of.get(child.id, []), key=sort_key)
                stack.append((child, level + 1, iter(grandchildren), []))
                break
            else:
                stack.pop()
                node = HierarchyNode(
                    item=item,
                    children=tuple(kids),
                    depth=level,
                    expanded=level < EXPANDED_DEPTH,
                )
                if not stack:
                    return node
                stack[-1][3].append(node)

    forest: list[HierarchyNode] = []
    seen_projects: set[str] = set()
    for project in projects:
        if project.id in seen_projects:
            continue
        seen_projects.add(project.id)

        candidates = sorted(roots_of.get(project.id, []), key=sort_key)
        if not candidates:
            logger.debug("Project %s has no items; omitted from forest", project.id)
            continue

        top_level = [
            build_node(item, 1) for item in candidates if item.id not in visited
        ]
        if not top_level:
            continue
        forest.append(
            HierarchyNode(
                item=project.as_item(),
                children=tuple(top_level),
                depth=0,
                expanded=True,
            )
        )

    pruned = sum(
        1 for item in by_id.values()
        if item.project_id in selected and item.id not in visited
    )
    if pruned:
        logger.info(
            "Tree builder: %d items unreachable from any project root (parent cycles) were pruned",
            pruned,
        )

    return forest


def toggle_expansion(
    forest: Sequence[HierarchyNode],
    node_id: str,
) -> list[HierarchyNode]:
    """Return a forest with the ``expanded`` flag of ``node_id`` flipped.

    The first match in depth-first order is toggled. Untouched subtrees are
    shared with the input. An unknown id returns the forest unchanged.
    """
    path = _path_to(forest, node_id)
    if path is None:
        return list(forest)

    chain = [forest[path[0]]]
    for index in path[1:]:
        chain.append(chain[-1].children[index])

    replacement = dataclasses.replace(chain[-1], expanded=not chain[-1].expanded)
    for parent, index in zip(reversed(chain[:-1]), reversed(path[1:])):
        children = parent.children[:index] + (replacement,) + parent.children[index + 1:]
        replacement = dataclasses.replace(parent, children=children)

    toggled = list(forest)
    toggled[path[0]] = replacement
    return toggled


def _path_to(forest: Sequence[HierarchyNode], node_id: str) -> list[int] | None:
    """Child indexes leading to the first depth-first match, or None."""
    # entries: (node, index among siblings, entry index of the parent)
    entries: list[tuple[HierarchyNode, int, int]] = []
    stack = [(node, index, -1) for index, node in reversed(list(enumerate(forest)))]
    while stack:
        node, index, parent_entry = stack.pop()
        entries.append((node, index, parent_entry))
        if node.item.id == node_id:
            path: list[int] = []
            entry = len(entries) - 1
            while entry >= 0:
                _, index, entry = entries[entry]
                path.append(index)
            return path[::-1]
        me = len(entries) - 1
        stack.extend(
            (child, i, me) for i, child in reversed(list(enumerate(node.children)))
        )
    return None


def find_node(forest: Sequence[HierarchyNode], node_id: str) -> HierarchyNode | None:
    """Depth-first lookup of a node by item id."""
    for node in flatten_forest(forest):
        if node.item.id == node_id:
            return node
    return None


def flatten_forest(
    forest: Sequence[HierarchyNode],
    visible_only: bool = False,
) -> Iterator[HierarchyNode]:
    """Yield nodes in display order; optionally skip collapsed subtrees."""
    stack = list(reversed(forest))
    while stack:
        node = stack.pop()
        yield node
        if visible_only and not node.expanded:
            continue
        stack.extend(reversed(node.children))
