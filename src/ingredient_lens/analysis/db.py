from __future__ import annotations

import json
import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from ..domain.models import AnalysisRecord, KeyFactor, SOURCE_REMOTE
from ..logging import get_logger
from ..paths import find_project_root, var_dir
from .constants import CONFIDENCE_CHOICES, MAX_HISTORY_ITEMS


LOG = get_logger("analysis-db")


DEFAULT_DB_FOLDER = "analysisdb"
DEFAULT_DB_FILENAME = "analyses.sqlite3"

CONFIDENCE_ENUM_SQL = ", ".join(f"'{value}'" for value in CONFIDENCE_CHOICES)

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS analyses (
  id           TEXT PRIMARY KEY,
  owner_id     TEXT NOT NULL,
  input_text   TEXT NOT NULL,
  judgment     TEXT NOT NULL,
  key_factors  TEXT NOT NULL,          -- JSON array of {{factor, explanation}}
  tradeoffs    TEXT NOT NULL,
  uncertainty  TEXT NOT NULL,
  confidence   TEXT NOT NULL CHECK (confidence IN ({CONFIDENCE_ENUM_SQL})),
  created_at   TEXT NOT NULL           -- ISO-8601 UTC
);

CREATE INDEX IF NOT EXISTS idx_analyses_owner_created ON analyses(owner_id, created_at DESC);

-- Records are create/read/delete only.
CREATE TRIGGER IF NOT EXISTS trg_analyses_immutable
BEFORE UPDATE ON analyses
BEGIN
  SELECT RAISE(ABORT, 'analyses are immutable');
END;
"""

_COLUMNS = "id, owner_id, input_text, judgment, key_factors, tradeoffs, uncertainty, confidence, created_at"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _clamp_limit(limit: Optional[int]) -> int:
    try:
        value = int(limit) if limit is not None else MAX_HISTORY_ITEMS
    except (TypeError, ValueError):
        value = MAX_HISTORY_ITEMS
    return max(1, min(MAX_HISTORY_ITEMS, value))


class AnalysisDatabase:
    """SQLite-backed, owner-scoped analysis history.

    - Places DB under `<repo-root>/var/analysisdb/analyses.sqlite3` unless
      `db_path` is given.
    - Every read and delete is filtered by owner; there is no update path.
    """

    def __init__(self, root_dir: Optional[str] = None, *, db_path: Optional[str] = None) -> None:
        if db_path:
            folder = os.path.dirname(os.path.abspath(db_path))
            self.db_path = os.path.abspath(db_path)
        else:
            root = find_project_root(root_dir)
            folder = os.path.join(var_dir(root), DEFAULT_DB_FOLDER)
            self.db_path = os.path.join(folder, DEFAULT_DB_FILENAME)
        os.makedirs(folder, exist_ok=True)
        LOG.info(f"Analysis DB path: {self.db_path}")
        self._ensure_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self.connect() as conn:
            cur = conn.cursor()
            try:
                cur.execute("PRAGMA journal_mode=WAL;")
                cur.execute("PRAGMA synchronous=NORMAL;")
            except sqlite3.DatabaseError as exc:
                LOG.debug(f"Journal pragmas not applied: {exc}")
            cur.executescript(SCHEMA_SQL)
            conn.commit()
            LOG.debug("Analysis DB schema ensured.")

    @staticmethod
    def _require_owner(owner_id: Optional[str]) -> str:
        if not isinstance(owner_id, str) or not owner_id.strip():
            raise ValueError("owner_id is required")
        return owner_id

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> AnalysisRecord:
        try:
            factors_raw = json.loads(row["key_factors"] or "[]")
        except ValueError:
            LOG.warning("Stored key_factors for %s is not valid JSON", row["id"])
            factors_raw = []
        factors = tuple(
            KeyFactor(factor=str(f.get("factor", "")), explanation=str(f.get("explanation", "")))
            for f in factors_raw
            if isinstance(f, dict)
        )
        return AnalysisRecord(
            id=row["id"],
            owner_id=row["owner_id"],
            input_text=row["input_text"],
            judgment=row["judgment"],
            key_factors=factors,
            tradeoffs=row["tradeoffs"],
            uncertainty=row["uncertainty"],
            confidence=row["confidence"],
            created_at=row["created_at"],
            source=SOURCE_REMOTE,
        )

    # ---------- create ----------
    def insert_analysis(self, owner_id: str, input_text: str, analysis: Dict[str, Any]) -> AnalysisRecord:
        """Insert a validated, canonical analysis for owner and return the stored record."""
        owner = self._require_owner(owner_id)
        factors = analysis.get("key_factors") or []
        if not factors:
            raise ValueError("key_factors must be non-empty")
        record_id = str(uuid.uuid4())
        created_at = _utc_now()
        with self.connect() as conn:
            conn.execute(
                f"INSERT INTO analyses ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record_id,
                    owner,
                    input_text,
                    analysis["judgment"],
                    json.dumps(factors, ensure_ascii=False),
                    analysis["tradeoffs"],
                    analysis["uncertainty"],
                    analysis["confidence"],
                    created_at,
                ),
            )
            conn.commit()
        LOG.debug("Inserted analysis id=%s owner=%s", record_id, owner)
        record = self.get_analysis(owner, record_id)
        if record is None:
            raise sqlite3.DatabaseError(f"inserted analysis {record_id} could not be read back")
        return record

    # ---------- read ----------
    def list_analyses(self, owner_id: str, *, limit: Optional[int] = MAX_HISTORY_ITEMS, offset: int = 0) -> List[AnalysisRecord]:
        owner = self._require_owner(owner_id)
        with self.connect() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM analyses WHERE owner_id = ? "
                "ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
                (owner, _clamp_limit(limit), max(0, int(offset))),
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def get_analysis(self, owner_id: str, analysis_id: str) -> Optional[AnalysisRecord]:
        owner = self._require_owner(owner_id)
        with self.connect() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM analyses WHERE owner_id = ? AND id = ?",
                (owner, analysis_id),
            ).fetchone()
        return self._row_to_record(row) if row else None

    def count_analyses(self, owner_id: str) -> int:
        owner = self._require_owner(owner_id)
        with self.connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM analyses WHERE owner_id = ?", (owner,)).fetchone()
        return int(row[0]) if row else 0

    # ---------- delete ----------
    def delete_analysis(self, owner_id: str, analysis_id: str) -> bool:
        owner = self._require_owner(owner_id)
        with self.connect() as conn:
            cur = conn.execute("DELETE FROM analyses WHERE owner_id = ? AND id = ?", (owner, analysis_id))
            conn.commit()
            deleted = cur.rowcount > 0
        LOG.info("Delete analysis id=%s owner=%s -> %s", analysis_id, owner, "deleted" if deleted else "not found")
        return deleted

    def delete_all_analyses(self, owner_id: str) -> int:
        owner = self._require_owner(owner_id)
        with self.connect() as conn:
            cur = conn.execute("DELETE FROM analyses WHERE owner_id = ?", (owner,))
            conn.commit()
            removed = int(cur.rowcount)
        LOG.info("Cleared %d analysis record(s) for owner=%s", removed, owner)
        return removed
