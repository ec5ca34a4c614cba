from __future__ import annotations

import pytest
import requests

from conftest import FakeHttp, FakeResponse, good_analysis
from ingredient_lens.client.errors import HistoryError, NotSignedInError, SessionExpiredError
from ingredient_lens.client.history import OFFLINE_NOTICE, HistoryClient
from ingredient_lens.client.local_cache import LocalHistoryCache
from ingredient_lens.client.session import Session, SessionGuard


def _history(http: FakeHttp, cache: LocalHistoryCache, session: Session) -> HistoryClient:
    return HistoryClient("http://backend.test", SessionGuard(lambda: session), cache, http=http)  # type: ignore[arg-type]


def _item(analysis_id: str) -> dict:
    return {**good_analysis(), "id": analysis_id, "input_text": "Water, Sugar, Salt", "created_at": "2026-01-01T00:00:00+00:00"}


def test_list_reads_the_remote_store(cache: LocalHistoryCache, alice: Session) -> None:
    http = FakeHttp([FakeResponse(200, {"items": [_item("b"), _item("a")], "limit": 50, "offset": 0})])
    page = _history(http, cache, alice).list(limit=500)
    assert [r.id for r in page.items] == ["b", "a"]
    assert not page.offline
    assert http.calls[0]["params"] == {"limit": 50}
    assert http.calls[0]["headers"]["Authorization"] == f"Bearer {alice.access_token}"


def test_list_falls_back_to_local_history_when_offline(cache: LocalHistoryCache, alice: Session) -> None:
    cache.save({**good_analysis(), "input_text": "Water, Sugar, Salt", "source": "offline"})
    page = _history(FakeHttp([requests.ConnectionError("down")]), cache, alice).list()
    assert page.offline
    assert page.notice == OFFLINE_NOTICE
    assert len(page.items) == 1
    assert page.items[0].offline


def test_list_with_expired_session_is_an_empty_page(cache: LocalHistoryCache, alice: Session) -> None:
    page = _history(FakeHttp([FakeResponse(401, {"error": "Session expired. Please sign in again."})]), cache, alice).list()
    assert page.items == ()
    assert page.notice == "Session expired. Please sign in again."


def test_history_requires_a_session(cache: LocalHistoryCache) -> None:
    http = FakeHttp()
    client = HistoryClient("http://backend.test", SessionGuard(lambda: None), cache, http=http)  # type: ignore[arg-type]
    with pytest.raises(NotSignedInError):
        client.list()
    assert http.calls == []


def test_get_falls_back_to_cache(cache: LocalHistoryCache, alice: Session) -> None:
    stored = cache.save({**good_analysis(), "input_text": "Water, Sugar, Salt"})
    client = _history(FakeHttp([requests.ConnectionError("down"), FakeResponse(404, {"error": "Analysis not found"})]), cache, alice)
    assert client.get(stored["id"]).id == stored["id"]
    assert client.get(stored["id"]) is None


def test_delete_removes_remote_and_local_copies(cache: LocalHistoryCache, alice: Session) -> None:
    cache.save({"id": "a", "input_text": "x"})
    http = FakeHttp([FakeResponse(200, {"success": True})])
    _history(http, cache, alice).delete("a")
    assert http.calls[0]["method"] == "DELETE"
    assert http.calls[0]["url"] == "http://backend.test/api/analyses/a"
    assert cache.get("a") is None


@pytest.mark.parametrize(
    "response, expected, message",
    [
        (FakeResponse(401, {"error": "Session expired."}), SessionExpiredError, "Session expired. Please sign in again."),
        (FakeResponse(403, {"error": "forbidden"}), HistoryError, "You don't have permission to delete this analysis."),
        (FakeResponse(404, {"error": "Analysis not found"}), HistoryError, "Analysis not found."),
    ],
)
def test_delete_errors(cache: LocalHistoryCache, alice: Session, response: FakeResponse, expected: type, message: str) -> None:
    cache.save({"id": "a", "input_text": "x"})
    with pytest.raises(expected) as exc:
        _history(FakeHttp([response]), cache, alice).delete("a")
    assert exc.value.user_message == message
    assert cache.get("a") is not None


def test_offline_delete_updates_local_history_and_says_so(cache: LocalHistoryCache, alice: Session) -> None:
    cache.save({"id": "a", "input_text": "x"})
    with pytest.raises(HistoryError) as exc:
        _history(FakeHttp([requests.ConnectionError("down")]), cache, alice).delete("a")
    assert "local history updated" in exc.value.user_message
    assert cache.get("a") is None


def test_clear_returns_deleted_count_and_drops_owner_entries(cache: LocalHistoryCache, alice: Session) -> None:
    cache.save({"id": "mine", "owner_id": alice.user_id})
    cache.save({"id": "theirs", "owner_id": "user-bob"})
    http = FakeHttp([FakeResponse(200, {"success": True, "deleted": 3})])
    assert _history(http, cache, alice).clear() == 3
    assert [i["id"] for i in cache.read()] == ["theirs"]


def test_offline_clear_empties_local_history(cache: LocalHistoryCache, alice: Session) -> None:
    cache.save({"id": "a", "input_text": "x"})
    with pytest.raises(HistoryError):
        _history(FakeHttp([requests.Timeout("slow")]), cache, alice).clear()
    assert cache.read() == []


def test_count_remote_then_local(cache: LocalHistoryCache, alice: Session) -> None:
    cache.save({"id": "a", "input_text": "x"})
    client = _history(FakeHttp([FakeResponse(200, {"count": 7}), requests.ConnectionError("down")]), cache, alice)
    assert client.count() == 7
    assert client.count() == 1


@pytest.mark.parametrize(
    "operation, message",
    [
        (lambda c: c.list(), "Unable to load history: unexpected response from the server."),
        (lambda c: c.get("abc"), "Unable to load history: unexpected response from the server."),
        (lambda c: c.clear(), "Unable to clear history: unexpected response from the server."),
        (lambda c: c.count(), "Unable to count history: unexpected response from the server."),
    ],
)
def test_non_json_success_body_is_a_history_error(cache: LocalHistoryCache, alice: Session, operation, message: str) -> None:
    client = _history(FakeHttp([FakeResponse(200, None, text="<html>gateway</html>")]), cache, alice)
    with pytest.raises(HistoryError) as exc:
        operation(client)
    assert exc.value.user_message == message
