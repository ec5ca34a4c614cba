"""Single owner of client-side application state.

Views receive immutable `AppState` snapshots; state only changes through the
coordinator's action handlers.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from ..analysis.constants import MAX_HISTORY_ITEMS
from ..analysis.validation import InputValidationError
from ..domain.models import AnalysisRecord
from ..logging import get_logger
from .errors import AnalysisError
from .history import HistoryClient
from .pipeline import AnalysisPipeline

LOG = get_logger("client-state")

OFFLINE_RESULT_NOTICE = "Service unreachable - showing an approximate offline result."

Listener = Callable[["AppState"], None]


@dataclass(frozen=True)
class AppState:
    user_id: Optional[str] = None
    history: Tuple[AnalysisRecord, ...] = ()
    online: bool = True
    last_result: Optional[AnalysisRecord] = None
    last_error: Optional[str] = None
    notice: Optional[str] = None


class AppCoordinator:
    def __init__(self, pipeline: AnalysisPipeline, history: HistoryClient, *, initial: Optional[AppState] = None) -> None:
        self.pipeline = pipeline
        self.history = history
        self._state = initial or AppState()
        self._listeners: List[Listener] = []

    # ---------- snapshots ----------
    def snapshot(self) -> AppState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set(self, **changes: Any) -> AppState:
        self._state = dataclasses.replace(self._state, **changes)
        for listener in list(self._listeners):
            listener(self._state)
        return self._state

    # ---------- actions ----------
    def signed_in(self, user_id: str) -> AppState:
        self._set(user_id=user_id, history=(), last_result=None, last_error=None, notice=None)
        return self.load_history()

    def signed_out(self) -> AppState:
        return self._set(user_id=None, history=(), last_result=None, last_error=None, notice=None)

    def set_online(self, online: bool) -> AppState:
        if online == self._state.online:
            return self._state
        LOG.info("Connectivity changed: %s", "online" if online else "offline")
        return self._set(online=online)

    def submit(self, text: Any) -> AppState:
        try:
            outcome = self.pipeline.run(text)
        except (InputValidationError, AnalysisError) as exc:
            return self._set(last_error=exc.user_message, notice=None)
        record = outcome.record
        history = (record,) + tuple(r for r in self._state.history if r.id != record.id)
        return self._set(
            last_result=record,
            history=history[:MAX_HISTORY_ITEMS],
            last_error=None,
            online=not outcome.offline,
            notice=OFFLINE_RESULT_NOTICE if outcome.offline else None,
        )

    def load_history(self) -> AppState:
        try:
            page = self.history.list()
        except AnalysisError as exc:
            return self._set(last_error=exc.user_message)
        return self._set(history=page.items, notice=page.notice, online=not page.offline)

    def delete_entry(self, analysis_id: str) -> AppState:
        try:
            self.history.delete(analysis_id)
        except AnalysisError as exc:
            return self._set(last_error=exc.user_message)
        remaining = tuple(r for r in self._state.history if r.id != analysis_id)
        last = self._state.last_result
        return self._set(
            history=remaining,
            last_result=None if last is not None and last.id == analysis_id else last,
            last_error=None,
        )

    def clear_history(self) -> AppState:
        try:
            self.history.clear()
        except AnalysisError as exc:
            return self._set(last_error=exc.user_message)
        return self._set(history=(), last_result=None, last_error=None)
