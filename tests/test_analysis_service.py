from __future__ import annotations

import sqlite3
from typing import Any, List

import pytest

from conftest import FakeAnalyzer, good_analysis
from ingredient_lens.analysis.db import AnalysisDatabase
from ingredient_lens.analysis.model import ModelCallError
from ingredient_lens.analysis.service import UNSAVED_WARNING, AnalysisService, ModelUnavailableError
from ingredient_lens.analysis.validation import InputValidationError


def test_analyze_persists_a_validated_result(service: AnalysisService, analyzer: FakeAnalyzer, db: AnalysisDatabase) -> None:
    record = service.analyze("user-1", "  Water, Sugar, Natural Flavors, Citric Acid ")
    assert analyzer.calls == ["Water, Sugar, Natural Flavors, Citric Acid"]
    assert record.id is not None
    assert record.warning is None
    assert db.list_analyses("user-1") == [record]


def test_invalid_input_never_reaches_the_model(service: AnalysisService, analyzer: FakeAnalyzer) -> None:
    with pytest.raises(InputValidationError):
        service.analyze("user-1", "short")
    assert analyzer.calls == []


def test_malformed_output_is_retried(db: AnalysisDatabase, sleeps: List[float]) -> None:
    bad = good_analysis()
    bad.pop("confidence")
    analyzer = FakeAnalyzer([bad, good_analysis(confidence="low")])
    service = AnalysisService(db, analyzer, sleep=sleeps.append)
    record = service.analyze("user-1", "Water, Sugar, Salt")
    assert record.confidence == "low"
    assert len(analyzer.calls) == 2
    assert sleeps == [1.0]


def test_missing_confidence_is_never_persisted(db: AnalysisDatabase, sleeps: List[float]) -> None:
    bad = good_analysis()
    bad.pop("confidence")
    service = AnalysisService(db, FakeAnalyzer([dict(bad), dict(bad), dict(bad)]), sleep=sleeps.append)
    with pytest.raises(ModelUnavailableError):
        service.analyze("user-1", "Water, Sugar, Salt")
    assert db.count_analyses("user-1") == 0


def test_exhausted_model_calls_report_unavailable(db: AnalysisDatabase, sleeps: List[float]) -> None:
    errors: List[Any] = [ModelCallError("down")] * 3
    analyzer = FakeAnalyzer(errors)
    service = AnalysisService(db, analyzer, sleep=sleeps.append)
    with pytest.raises(ModelUnavailableError) as exc:
        service.analyze("user-1", "Water, Sugar, Salt")
    assert str(exc.value) == "Analysis service temporarily unavailable. Please try again."
    assert len(analyzer.calls) == 3
    assert sleeps == [1.0, 2.0]


def test_storage_failure_returns_the_analysis_with_a_warning(
    service: AnalysisService, db: AnalysisDatabase, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _broken(*_: Any, **__: Any) -> None:
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(db, "insert_analysis", _broken)
    record = service.analyze("user-1", "Water, Sugar, Salt")
    assert record.id is None
    assert record.warning == UNSAVED_WARNING
    assert record.judgment == good_analysis()["judgment"]
    assert record.as_dict()["warning"] == UNSAVED_WARNING


def test_service_without_analyzer_is_not_configured(db: AnalysisDatabase) -> None:
    service = AnalysisService(db)
    assert not service.configured
    with pytest.raises(RuntimeError):
        service.generate("Water, Sugar, Salt")
