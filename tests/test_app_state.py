from __future__ import annotations

from typing import List

import requests

from conftest import FakeHttp, FakeResponse, good_analysis
from ingredient_lens.client.history import HistoryClient
from ingredient_lens.client.local_cache import LocalHistoryCache
from ingredient_lens.client.pipeline import AnalysisPipeline
from ingredient_lens.client.remote import RemoteAnalyzerClient
from ingredient_lens.client.session import Session, SessionGuard
from ingredient_lens.client.state import OFFLINE_RESULT_NOTICE, AppCoordinator, AppState


def _coordinator(http: FakeHttp, cache: LocalHistoryCache, session: Session) -> AppCoordinator:
    guard = SessionGuard(lambda: session)
    remote = RemoteAnalyzerClient("http://backend.test", http=http)  # type: ignore[arg-type]
    history = HistoryClient("http://backend.test", guard, cache, http=http)  # type: ignore[arg-type]
    return AppCoordinator(AnalysisPipeline(remote, guard, cache), history)


def test_snapshots_are_immutable_and_listeners_see_each_change(cache: LocalHistoryCache, alice: Session) -> None:
    body = {**good_analysis(), "id": "r1", "created_at": "2026-01-01T00:00:00+00:00"}
    coordinator = _coordinator(FakeHttp([FakeResponse(200, body)]), cache, alice)
    seen: List[AppState] = []
    unsubscribe = coordinator.subscribe(seen.append)

    before = coordinator.snapshot()
    after = coordinator.submit("Water, Sugar, Salt")
    assert before == AppState()
    assert after is coordinator.snapshot()
    assert after.last_result.id == "r1"
    assert [r.id for r in after.history] == ["r1"]
    assert after.online and after.notice is None
    assert seen == [after]

    unsubscribe()
    coordinator.set_online(False)
    assert len(seen) == 1


def test_validation_errors_become_last_error(cache: LocalHistoryCache, alice: Session) -> None:
    http = FakeHttp()
    state = _coordinator(http, cache, alice).submit("short")
    assert state.last_error == "Please enter a complete ingredient list (at least 10 characters)"
    assert state.last_result is None
    assert http.calls == []


def test_offline_submission_marks_state_offline(cache: LocalHistoryCache, alice: Session) -> None:
    coordinator = _coordinator(FakeHttp([requests.ConnectionError("down")]), cache, alice)
    state = coordinator.submit("Water, Sugar, Natural Flavors, Citric Acid")
    assert not state.online
    assert state.notice == OFFLINE_RESULT_NOTICE
    assert state.last_result.offline
    assert state.history[0] == state.last_result


def test_history_load_delete_and_clear(cache: LocalHistoryCache, alice: Session) -> None:
    items = [
        {**good_analysis(), "id": "b", "input_text": "second list"},
        {**good_analysis(), "id": "a", "input_text": "first list"},
    ]
    http = FakeHttp(
        [
            FakeResponse(200, {"items": items}),
            FakeResponse(200, {"success": True}),
            FakeResponse(404, {"error": "Analysis not found"}),
            FakeResponse(200, {"success": True, "deleted": 1}),
        ]
    )
    coordinator = _coordinator(http, cache, alice)

    state = coordinator.signed_in(alice.user_id)
    assert state.user_id == alice.user_id
    assert [r.id for r in state.history] == ["b", "a"]

    state = coordinator.delete_entry("b")
    assert [r.id for r in state.history] == ["a"]

    state = coordinator.delete_entry("zzz")
    assert state.last_error == "Analysis not found."
    assert [r.id for r in state.history] == ["a"]

    state = coordinator.clear_history()
    assert state.history == ()
    assert state.last_error is None

    state = coordinator.signed_out()
    assert state == AppState()
