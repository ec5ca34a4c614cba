"""Device-local analysis history used when the service is out of reach.

Advisory only: the remote store is the source of truth, entries here are not
owner-isolated, and every read/write failure degrades to an empty history.
"""

from __future__ import annotations

import json
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..analysis.constants import MAX_HISTORY_ITEMS
from ..logging import get_logger
from ..paths import find_project_root, var_dir

LOG = get_logger("client-local-cache")

DEFAULT_NAMESPACE = "ingredient_lens_local_history_v1"


class LocalHistoryCache:
    def __init__(
        self,
        path: Optional[str] = None,
        *,
        root_dir: Optional[str] = None,
        namespace: str = DEFAULT_NAMESPACE,
        max_items: int = MAX_HISTORY_ITEMS,
    ) -> None:
        if path:
            self.path = os.path.abspath(path)
        else:
            self.path = os.path.join(var_dir(find_project_root(root_dir)), "cache", f"{namespace}.json")
        self.max_items = max(1, int(max_items))

    def read(self) -> List[Dict[str, Any]]:
        """Most recent first, at most max_items; [] on any failure."""
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            LOG.error(f"Local history read error: {exc}")
            return []
        if not isinstance(data, list):
            LOG.warning("Local history file does not hold a list; ignoring it")
            return []
        return [item for item in data if isinstance(item, dict)][: self.max_items]

    def _write(self, items: List[Dict[str, Any]]) -> None:
        tmp = f"{self.path}.tmp"
        try:
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(items[: self.max_items], f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as exc:
            LOG.error(f"Local history write error: {exc}")

    def save(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        """Prepend entry, filling in id/created_at when missing; returns the stored entry."""
        stored = dict(entry)
        if not stored.get("id"):
            stored["id"] = str(uuid.uuid4())
        if not stored.get("created_at"):
            stored["created_at"] = datetime.now(timezone.utc).isoformat(timespec="microseconds")
        existing = [item for item in self.read() if item.get("id") != stored["id"]]
        self._write([stored] + existing)
        LOG.debug(f"Cached analysis {stored['id']} locally")
        return stored

    def get(self, analysis_id: str) -> Optional[Dict[str, Any]]:
        for item in self.read():
            if item.get("id") == analysis_id:
                return item
        return None

    def remove(self, analysis_id: str) -> bool:
        items = self.read()
        remaining = [item for item in items if item.get("id") != analysis_id]
        if len(remaining) == len(items):
            return False
        self._write(remaining)
        return True

    def clear(self) -> None:
        self._write([])

    def count(self) -> int:
        return len(self.read())

    def remove_owner(self, owner_id: str) -> int:
        """Drop entries cached for owner_id; returns how many were removed."""
        items = self.read()
        remaining = [item for item in items if item.get("owner_id") != owner_id]
        removed = len(items) - len(remaining)
        if removed:
            self._write(remaining)
        return removed
