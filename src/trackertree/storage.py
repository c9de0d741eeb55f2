"""Storage layer — JSON key-value cache of selected project ids per tracker."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable

from trackertree.config import Settings, get_settings

logger = logging.getLogger(__name__)


class SelectionStore:
    """Persists which projects are selected, keyed by tracker name."""

    def __init__(self, settings: Settings | None = None, path: Path | None = None) -> None:
        self.settings = settings or get_settings()
        self.path = path or self.settings.selection_path

    def _read(self) -> dict[str, list[str]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable selection cache %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {
            str(k): [str(v) for v in vals]
            for k, vals in data.items()
            if isinstance(vals, list)
        }

    def _write(self, data: dict[str, list[str]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")

    def load(self, tracker: str) -> list[str]:
        """Return the selected project ids for ``tracker`` in selection order."""
        return self._read().get(tracker, [])

    def save(self, tracker: str, project_ids: Iterable[str]) -> list[str]:
        """Replace the selection for ``tracker``; duplicates are dropped."""
        ids = list(dict.fromkeys(project_ids))
        data = self._read()
        if ids:
            data[tracker] = ids
        else:
            data.pop(tracker, None)
        self._write(data)
        logger.info("Saved selection for %s: %s", tracker, ids)
        return ids

    def add(self, tracker: str, project_ids: Iterable[str]) -> list[str]:
        return self.save(tracker, [*self.load(tracker), *project_ids])

    def remove(self, tracker: str, project_ids: Iterable[str]) -> list[str]:
        drop = set(project_ids)
        return self.save(tracker, [p for p in self.load(tracker) if p not in drop])

    def clear(self, tracker: str) -> None:
        self.save(tracker, [])
