from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import requests

from ..analysis.constants import MAX_HISTORY_ITEMS
from ..domain.models import AnalysisRecord
from ..logging import get_logger
from .errors import HistoryError, ServiceUnreachableError, SessionExpiredError
from .local_cache import LocalHistoryCache
from .session import Session, SessionGuard

LOG = get_logger("client-history")

OFFLINE_NOTICE = "Using local history (offline)."


@dataclass(frozen=True)
class HistoryPage:
    items: Tuple[AnalysisRecord, ...]
    notice: Optional[str] = None
    offline: bool = False


def _error_message(r: Any) -> Optional[str]:
    try:
        body = r.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return None


class HistoryClient:
    """Owner-scoped history through the store API, with the local cache as offline fallback."""

    def __init__(
        self,
        base_url: str,
        guard: SessionGuard,
        cache: LocalHistoryCache,
        *,
        api_key: Optional[str] = None,
        timeout: int = 30,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.base = base_url.rstrip("/")
        self.guard = guard
        self.cache = cache
        self.api_key = api_key
        self.timeout = int(timeout)
        self.http = http or requests.Session()

    # ---------- helpers ----------
    def _url(self, path: str) -> str:
        return f"{self.base}{path}"

    def _headers(self, session: Session) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {session.access_token}", "Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        return headers

    def _request(self, method: str, path: str, session: Session, *, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            return self.http.request(
                method,
                self._url(path),
                params=params,
                headers=self._headers(session),
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            LOG.error(f"{method} {path} failed: {e}")
            raise ServiceUnreachableError() from e

    def _body(self, r: Any, action: str) -> Any:
        try:
            return r.json()
        except ValueError as e:
            LOG.error(f"History {action} returned a non-JSON body (HTTP {r.status_code})")
            raise HistoryError(f"Unable to {action} history: unexpected response from the server.") from e

    def _local_records(self) -> Tuple[AnalysisRecord, ...]:
        return tuple(AnalysisRecord.from_dict(item) for item in self.cache.read())

    # ---------- operations ----------
    def list(self, limit: int = MAX_HISTORY_ITEMS) -> HistoryPage:
        session = self.guard.require_session()
        limit = max(1, min(MAX_HISTORY_ITEMS, int(limit)))
        try:
            r = self._request("GET", "/api/analyses", session, params={"limit": limit})
        except ServiceUnreachableError:
            return HistoryPage(self._local_records()[:limit], notice=OFFLINE_NOTICE, offline=True)
        if r.status_code == 401:
            return HistoryPage((), notice=SessionExpiredError.default_message)
        if r.status_code >= 400:
            message = _error_message(r) or "Unable to load history."
            LOG.error(f"History list HTTP {r.status_code}: {message}")
            return HistoryPage((), notice=message)
        body = self._body(r, "load")
        items = body.get("items") if isinstance(body, dict) else None
        records = tuple(AnalysisRecord.from_dict(item) for item in (items or []) if isinstance(item, dict))
        return HistoryPage(records)

    def get(self, analysis_id: str) -> Optional[AnalysisRecord]:
        if not analysis_id:
            return None
        session = self.guard.require_session()
        try:
            r = self._request("GET", f"/api/analyses/{analysis_id}", session)
        except ServiceUnreachableError:
            item = self.cache.get(analysis_id)
            return AnalysisRecord.from_dict(item) if item else None
        if r.status_code >= 400:
            LOG.warning(f"History get {analysis_id} HTTP {r.status_code}")
            return None
        body = self._body(r, "load")
        if not isinstance(body, dict):
            raise HistoryError("Unable to load history: unexpected response from the server.")
        return AnalysisRecord.from_dict(body)

    def delete(self, analysis_id: str) -> None:
        if not analysis_id:
            raise HistoryError("Invalid analysis ID")
        session = self.guard.require_session()
        try:
            r = self._request("DELETE", f"/api/analyses/{analysis_id}", session)
        except ServiceUnreachableError as e:
            self.cache.remove(analysis_id)
            raise HistoryError("Unable to delete remote analysis; local history updated.") from e
        if r.status_code == 401:
            raise SessionExpiredError()
        if r.status_code == 403:
            raise HistoryError("You don't have permission to delete this analysis.")
        if r.status_code == 404:
            raise HistoryError("Analysis not found.")
        if r.status_code >= 400:
            raise HistoryError(_error_message(r) or "Failed to delete analysis")
        self.cache.remove(analysis_id)

    def clear(self) -> int:
        session = self.guard.require_session()
        try:
            r = self._request("DELETE", "/api/analyses", session)
        except ServiceUnreachableError as e:
            self.cache.clear()
            raise HistoryError("Unable to clear remote history; local history cleared.") from e
        if r.status_code == 401:
            raise SessionExpiredError()
        if r.status_code == 403:
            raise HistoryError("You don't have permission to clear history.")
        if r.status_code >= 400:
            raise HistoryError(_error_message(r) or "Failed to clear history")
        self.cache.remove_owner(session.user_id)
        body = self._body(r, "clear")
        return int(body.get("deleted", 0)) if isinstance(body, dict) else 0

    def count(self) -> int:
        session = self.guard.require_session()
        try:
            r = self._request("GET", "/api/analyses/count", session)
        except ServiceUnreachableError:
            return self.cache.count()
        if r.status_code >= 400:
            LOG.error(f"History count HTTP {r.status_code}")
            return 0
        body = self._body(r, "count")
        return int(body.get("count", 0)) if isinstance(body, dict) else 0
