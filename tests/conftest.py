from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from starlette.testclient import TestClient

from ingredient_lens.analysis.auth import StaticTokenVerifier
from ingredient_lens.analysis.db import AnalysisDatabase
from ingredient_lens.analysis.server.app import create_app
from ingredient_lens.analysis.service import AnalysisService
from ingredient_lens.client.local_cache import LocalHistoryCache
from ingredient_lens.client.session import Session

TOKEN_A = "token-alice-0123456789"
TOKEN_B = "token-bob-0123456789"


def good_analysis(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "judgment": "This looks like a simple flavored drink.",
        "key_factors": [
            {"factor": "Short list", "explanation": "Only a few ingredients."},
            {"factor": "Sweetness is central", "explanation": "Sugar is listed second."},
        ],
        "tradeoffs": "You get taste; you give up a shorter ingredient list.",
        "uncertainty": "Can't tell how much sugar or how often you drink it.",
        "confidence": "medium",
    }
    payload.update(overrides)
    return payload


class FakeAnalyzer:
    """Returns queued outputs (or raises queued exceptions) and records inputs."""

    def __init__(self, outputs: Optional[List[Any]] = None) -> None:
        self.outputs = list(outputs or [])
        self.calls: List[str] = []

    def complete(self, input_text: str) -> Any:
        self.calls.append(input_text)
        item = self.outputs.pop(0) if self.outputs else good_analysis()
        if isinstance(item, Exception):
            raise item
        return item


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else ("" if body is None else str(body))

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body

    @property
    def content(self) -> bytes:
        return self.text.encode("utf-8")


class FakeHttp:
    """requests.Session stand-in: replays responses/exceptions and records calls."""

    def __init__(self, responses: Optional[List[Any]] = None) -> None:
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    def _next(self, **call: Any) -> Any:
        self.calls.append(call)
        item = self.responses.pop(0) if self.responses else FakeResponse(500, {"error": "no response queued"})
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url: str, **kwargs: Any) -> Any:
        return self._next(method="POST", url=url, **kwargs)

    def get(self, url: str, **kwargs: Any) -> Any:
        return self._next(method="GET", url=url, **kwargs)

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        return self._next(method=method, url=url, **kwargs)


class TestClientHttp:
    """Routes requests-style calls into a Starlette TestClient, counting them."""

    __test__ = False

    def __init__(self, client: TestClient) -> None:
        self.client = client
        self.calls = 0

    def post(
        self, url: str, *, json: Any = None, headers: Any = None, timeout: Any = None, stream: Any = None
    ) -> Any:
        self.calls += 1
        return self.client.post(url, json=json, headers=headers)

    def request(self, method: str, url: str, *, params: Any = None, headers: Any = None, timeout: Any = None) -> Any:
        self.calls += 1
        return self.client.request(method, url, params=params, headers=headers)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    (tmp_path / "README.md").write_text("test marker", encoding="utf-8")
    return tmp_path


@pytest.fixture
def db(project_root: Path) -> AnalysisDatabase:
    return AnalysisDatabase(root_dir=str(project_root))


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def service(db: AnalysisDatabase, analyzer: FakeAnalyzer, sleeps: List[float]) -> AnalysisService:
    return AnalysisService(db, analyzer, sleep=sleeps.append)


@pytest.fixture
def api(project_root: Path, service: AnalysisService) -> TestClient:
    verifier = StaticTokenVerifier({TOKEN_A: "user-alice", TOKEN_B: "user-bob"})
    app = create_app(root_dir=str(project_root), service=service, verifier=verifier)
    return TestClient(app)


@pytest.fixture
def cache(project_root: Path) -> LocalHistoryCache:
    return LocalHistoryCache(root_dir=str(project_root))


@pytest.fixture
def alice() -> Session:
    return Session(access_token=TOKEN_A, user_id="user-alice", email="alice@example.com")
