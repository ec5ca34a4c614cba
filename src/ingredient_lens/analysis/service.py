from __future__ import annotations

import sqlite3
import time
from typing import Any, Callable, Dict, List, Optional

from ..domain.models import AnalysisRecord, KeyFactor
from ..logging import get_logger
from .constants import MAX_HISTORY_ITEMS, MODEL_BACKOFF_BASE_SECONDS, MODEL_RETRIES
from .db import AnalysisDatabase
from .model import ModelCallError
from .parser import AnalysisValidationError, parse_and_validate_analysis
from .retry import RetryExhaustedError, call_with_retry
from .validation import validate_input


LOG = get_logger("analysis-service")

UNSAVED_WARNING = "Analysis generated but could not be saved to history"


class ModelUnavailableError(Exception):
    """Every model attempt failed; callers report the service as temporarily unavailable."""


class AnalysisService:
    """Remote-side pipeline: call model with retry -> validate -> persist.

    The stages are separate methods so the analyzer (anything with
    `complete(text)`), the retry policy and the store can be swapped
    independently.
    """

    def __init__(
        self,
        db: Optional[AnalysisDatabase] = None,
        analyzer: Any = None,
        *,
        retries: int = MODEL_RETRIES,
        base_delay: float = MODEL_BACKOFF_BASE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.db = db or AnalysisDatabase()
        self.analyzer = analyzer
        self.retries = retries
        self.base_delay = base_delay
        self.sleep = sleep

    @property
    def configured(self) -> bool:
        return self.analyzer is not None

    def init_database(self) -> str:
        """Ensure the database exists and return its path."""
        LOG.info("Analysis database initialized.")
        return self.db.db_path

    # ---------- stages ----------
    def generate(self, text: str) -> Dict[str, Any]:
        """Ask the model for a validated analysis; malformed output counts as a failed attempt."""
        if self.analyzer is None:
            raise RuntimeError("No analyzer configured")

        def _attempt() -> Dict[str, Any]:
            return parse_and_validate_analysis(self.analyzer.complete(text))

        try:
            return call_with_retry(
                _attempt,
                retries=self.retries,
                base_delay=self.base_delay,
                retry_on=(ModelCallError, AnalysisValidationError),
                sleep=self.sleep,
                label="model",
            )
        except RetryExhaustedError as exc:
            raise ModelUnavailableError("Analysis service temporarily unavailable. Please try again.") from exc

    def persist(self, owner_id: str, text: str, analysis: Dict[str, Any]) -> AnalysisRecord:
        """Store the analysis; on storage failure return it unsaved with a warning."""
        try:
            record = self.db.insert_analysis(owner_id, text, analysis)
        except (sqlite3.Error, OSError) as exc:
            LOG.error("Database error while saving analysis: %s", exc)
            return AnalysisRecord(
                id=None,
                owner_id=owner_id,
                input_text=text,
                judgment=analysis["judgment"],
                key_factors=tuple(KeyFactor(**kf) for kf in analysis["key_factors"]),
                tradeoffs=analysis["tradeoffs"],
                uncertainty=analysis["uncertainty"],
                confidence=analysis["confidence"],
                warning=UNSAVED_WARNING,
            )
        LOG.info("Persisted analysis id=%s owner=%s confidence=%s", record.id, owner_id, record.confidence)
        return record

    def analyze(self, owner_id: str, input_text: Any) -> AnalysisRecord:
        """End-to-end: validate input -> model (with retry) -> validate output -> persist."""
        text = validate_input(input_text)
        analysis = self.generate(text)
        return self.persist(owner_id, text, analysis)

    # ---------- history (owner-scoped) ----------
    def list_history(self, owner_id: str, *, limit: int = MAX_HISTORY_ITEMS, offset: int = 0) -> List[AnalysisRecord]:
        return self.db.list_analyses(owner_id, limit=limit, offset=offset)

    def get_analysis(self, owner_id: str, analysis_id: str) -> Optional[AnalysisRecord]:
        return self.db.get_analysis(owner_id, analysis_id)

    def delete_analysis(self, owner_id: str, analysis_id: str) -> bool:
        return self.db.delete_analysis(owner_id, analysis_id)

    def clear_history(self, owner_id: str) -> int:
        return self.db.delete_all_analyses(owner_id)

    def count_history(self, owner_id: str) -> int:
        return self.db.count_analyses(owner_id)
