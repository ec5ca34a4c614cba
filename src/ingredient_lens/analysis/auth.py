"""Bearer token verification for the analysis endpoint and history API."""

from __future__ import annotations

from typing import Dict, Optional

import requests

from ..logging import get_logger

LOG = get_logger("analysis-auth")


class TokenVerificationError(Exception):
    """The identity backend could not be asked about a token."""


class TokenVerifier:
    """Resolve a bearer token to its owner id, or None when it is not valid."""

    def verify(self, token: str) -> Optional[str]:
        raise NotImplementedError


class StaticTokenVerifier(TokenVerifier):
    """Fixed token -> user id mapping for local development and tests."""

    def __init__(self, tokens: Dict[str, str]) -> None:
        self.tokens = dict(tokens)

    def verify(self, token: str) -> Optional[str]:
        return self.tokens.get(token)


class BackendTokenVerifier(TokenVerifier):
    """Ask the managed auth backend (`GET /auth/v1/user`) who owns a token."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        *,
        timeout: int = 10,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.base = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = int(timeout)
        self.http = http or requests.Session()

    def verify(self, token: str) -> Optional[str]:
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        try:
            r = self.http.get(f"{self.base}/auth/v1/user", headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            LOG.error(f"Auth backend unreachable: {e}")
            raise TokenVerificationError("auth backend unreachable") from e
        if r.status_code in (401, 403):
            LOG.info("Auth backend rejected token")
            return None
        if r.status_code >= 400:
            LOG.error(f"Auth backend HTTP {r.status_code}: {r.text[:300]}")
            return None
        try:
            body = r.json()
        except ValueError:
            LOG.error("Auth backend returned a non-JSON user payload")
            return None
        user_id = body.get("id") if isinstance(body, dict) else None
        return str(user_id) if user_id else None
