from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any

from ..analysis.heuristics import build_fallback_analysis
from ..analysis.parser import AnalysisValidationError, require_analysis_fields
from ..analysis.validation import validate_input
from ..domain.models import SOURCE_OFFLINE, SOURCE_REMOTE, AnalysisRecord
from ..logging import get_logger
from .errors import IncompleteResponseError, ServiceUnreachableError
from .local_cache import LocalHistoryCache
from .remote import RemoteAnalyzerClient
from .session import Session, SessionGuard

LOG = get_logger("client-pipeline")


@dataclass(frozen=True)
class AnalysisOutcome:
    record: AnalysisRecord
    offline: bool = False


class AnalysisPipeline:
    """validate -> session guard -> remote call -> response check -> local write-through.

    Only a connectivity-class failure reroutes to the offline heuristic; every
    other failure propagates as a user-facing error and nothing is cached.
    """

    def __init__(self, remote: RemoteAnalyzerClient, guard: SessionGuard, cache: LocalHistoryCache) -> None:
        self.remote = remote
        self.guard = guard
        self.cache = cache

    def run(self, raw_text: Any) -> AnalysisOutcome:
        text = validate_input(raw_text)
        session = self.guard.require_session()

        try:
            payload = self.remote.analyze(text, session.access_token)
        except ServiceUnreachableError as exc:
            LOG.warning(f"Falling back to local analysis (service unreachable): {exc}")
            return self._fallback(text, session)

        try:
            analysis = require_analysis_fields(payload)
        except AnalysisValidationError as exc:
            raise IncompleteResponseError() from exc

        record = AnalysisRecord.from_dict(
            {**analysis, "input_text": text, "owner_id": session.user_id, "source": SOURCE_REMOTE}
        )
        return AnalysisOutcome(self._write_through(record))

    def _write_through(self, record: AnalysisRecord) -> AnalysisRecord:
        """Mirror a remote result into the local cache; the remote copy stays authoritative."""
        stored = self.cache.save(record.as_dict())
        if record.id is None:
            return dataclasses.replace(record, id=stored["id"], created_at=stored["created_at"])
        return record

    def _fallback(self, text: str, session: Session) -> AnalysisOutcome:
        analysis = build_fallback_analysis(text)
        stored = self.cache.save(
            {**analysis, "input_text": text, "owner_id": session.user_id, "source": SOURCE_OFFLINE}
        )
        LOG.info(f"Offline analysis {stored['id']} cached locally (confidence={analysis['confidence']})")
        return AnalysisOutcome(AnalysisRecord.from_dict(stored), offline=True)
