from __future__ import annotations

import socket
import threading
import time

import pytest
import requests

from conftest import FakeHttp, FakeResponse, good_analysis
from ingredient_lens.client.errors import (
    AnalysisTimeoutError,
    BadRequestError,
    IncompleteResponseError,
    ServiceError,
    ServiceUnavailableError,
    ServiceUnreachableError,
    SessionExpiredError,
)
from ingredient_lens.client.remote import ANALYZE_PATH, RemoteAnalyzerClient


def _client(*responses: object) -> RemoteAnalyzerClient:
    return RemoteAnalyzerClient("http://backend.test/", api_key="anon", http=FakeHttp(list(responses)))


def test_posts_with_bearer_token_and_bounded_timeout() -> None:
    client = _client(FakeResponse(200, good_analysis()))
    assert client.analyze("Water, Sugar, Salt", "token-abc-123456") == good_analysis()
    call = client.http.calls[0]
    assert call["url"] == f"http://backend.test{ANALYZE_PATH}"
    assert call["json"] == {"input_text": "Water, Sugar, Salt"}
    assert call["headers"]["Authorization"] == "Bearer token-abc-123456"
    assert call["headers"]["apikey"] == "anon"
    assert call["timeout"] == (10, 60)
    assert call["stream"] is True


@pytest.mark.parametrize(
    "exc, expected",
    [
        (requests.ConnectionError("refused"), ServiceUnreachableError),
        (requests.ConnectTimeout("connect"), ServiceUnreachableError),
        (requests.ReadTimeout("slow"), AnalysisTimeoutError),
    ],
)
def test_transport_failures(exc: Exception, expected: type) -> None:
    with pytest.raises(expected):
        _client(exc).analyze("Water, Sugar, Salt", "token-abc-123456")


@pytest.mark.parametrize(
    "response, expected",
    [
        (FakeResponse(401, {"error": "Session expired. Please sign in again."}), SessionExpiredError),
        (FakeResponse(500, {"error": "Invalid JWT token"}), SessionExpiredError),
        (FakeResponse(400, {"error": "Input must be at least 10 characters"}), BadRequestError),
        (FakeResponse(503, {"error": "Analysis service temporarily unavailable. Please try again."}), ServiceUnavailableError),
        (FakeResponse(500, {"error": "An unexpected error occurred. Please try again."}), ServiceError),
        (FakeResponse(200, None, text="<html>"), IncompleteResponseError),
    ],
)
def test_http_failures(response: FakeResponse, expected: type) -> None:
    with pytest.raises(expected):
        _client(response).analyze("Water, Sugar, Salt", "token-abc-123456")


def test_bad_request_keeps_the_server_message() -> None:
    with pytest.raises(BadRequestError) as exc:
        _client(FakeResponse(400, {"error": "Input must be at least 10 characters"})).analyze("x" * 10, "t" * 12)
    assert exc.value.user_message == "Input must be at least 10 characters"


def test_unavailable_counts_as_unreachable() -> None:
    assert issubclass(ServiceUnavailableError, ServiceUnreachableError)


def _trickling_server(chunks: int, gap: float) -> socket.socket:
    """Answers one request with headers after `gap` seconds, then one body byte every `gap` seconds."""
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.bind(("127.0.0.1", 0))
    srv.listen(1)

    def serve() -> None:
        conn, _ = srv.accept()
        try:
            conn.recv(65536)
            time.sleep(gap)
            conn.sendall(b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n" + f"Content-Length: {chunks}\r\n\r\n".encode())
            for _ in range(chunks):
                time.sleep(gap)
                conn.sendall(b" ")
        except OSError:
            pass
        finally:
            conn.close()
            srv.close()

    threading.Thread(target=serve, daemon=True).start()
    return srv


def test_trickling_body_is_cut_off_at_the_overall_deadline() -> None:
    srv = _trickling_server(chunks=4, gap=0.6)
    port = srv.getsockname()[1]
    client = RemoteAnalyzerClient(f"http://127.0.0.1:{port}", timeout=1)
    started = time.monotonic()
    with pytest.raises(AnalysisTimeoutError):
        client.analyze("Water, Sugar, Salt", "token-abc-123456")
    assert time.monotonic() - started < 1.8
