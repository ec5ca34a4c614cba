from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as DeadlineExceeded
from typing import Any, Dict, Optional

import requests

from ..logging import get_logger
from .errors import (
    AnalysisTimeoutError,
    BadRequestError,
    IncompleteResponseError,
    ServiceError,
    ServiceUnavailableError,
    ServiceUnreachableError,
    SessionExpiredError,
)

LOG = get_logger("client-remote")

ANALYZE_PATH = "/functions/v1/analyze_product"
DEFAULT_TIMEOUT_SECONDS = 60
CONNECT_TIMEOUT_SECONDS = 10


def _error_message(r: Any) -> Optional[str]:
    try:
        body = r.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        for key in ("error", "message", "msg"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def _mentions_bad_credential(message: Optional[str]) -> bool:
    if not message:
        return False
    lower = message.lower()
    return "unauthorized" in lower or (
        ("expired" in lower or "invalid" in lower) and ("session" in lower or "token" in lower or "jwt" in lower)
    )


class RemoteAnalyzerClient:
    """One authenticated POST to the analysis function per call; never retries.

    Transport and HTTP failures are remapped to the user-facing taxonomy in
    client.errors. The whole call, connect through last body byte, runs in a
    worker thread bounded by one `timeout`-second window. The returned payload
    is untrusted until validated.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.base = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = float(timeout)
        self.http = http or requests.Session()

    def _headers(self, access_token: str) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
            "x-client-info": "ingredient-lens-cli/0.1.0",
        }
        if self.api_key:
            headers["apikey"] = self.api_key
        return headers

    def _post(self, url: str, input_text: str, access_token: str) -> Any:
        r = self.http.post(
            url,
            json={"input_text": input_text},
            headers=self._headers(access_token),
            timeout=(min(CONNECT_TIMEOUT_SECONDS, self.timeout), self.timeout),
            stream=True,
        )
        # Pull the whole body inside the window; a trickling server must not outlive it.
        r.content
        return r

    def analyze(self, input_text: str, access_token: str) -> Any:
        url = f"{self.base}{ANALYZE_PATH}"
        LOG.info(f"POST analysis ({len(input_text)} chars)")
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ingredient-lens-remote")
        try:
            future = pool.submit(self._post, url, input_text, access_token)
            r = future.result(timeout=self.timeout)
        except DeadlineExceeded as e:
            future.cancel()
            LOG.error(f"Analysis request cancelled after {self.timeout:g}s")
            raise AnalysisTimeoutError() from e
        except requests.ConnectTimeout as e:
            LOG.error(f"Analysis service connect timeout: {e}")
            raise ServiceUnreachableError() from e
        except requests.Timeout as e:
            LOG.error(f"Analysis request cancelled after {self.timeout}s: {e}")
            raise AnalysisTimeoutError() from e
        except requests.ConnectionError as e:
            LOG.error(f"Analysis service unreachable: {e}")
            raise ServiceUnreachableError() from e
        finally:
            pool.shutdown(wait=False)

        status = r.status_code
        if status >= 400:
            message = _error_message(r)
            LOG.error(f"Analysis service HTTP {status}: {message or '(no message)'}")
            if status == 401 or _mentions_bad_credential(message):
                raise SessionExpiredError()
            if status == 400:
                raise BadRequestError(message)
            if status == 503:
                raise ServiceUnavailableError(message)
            raise ServiceError()

        try:
            return r.json()
        except ValueError as e:
            LOG.error("Analysis service returned a non-JSON body")
            raise IncompleteResponseError() from e
