"""Sign-up, sign-in and session refresh against the managed auth backend.

Speaks the GoTrue-style REST API (`/auth/v1/...`). Input is validated
locally before any request and backend messages are mapped to friendly text.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from ..logging import get_logger
from .errors import SessionExpiredError
from .session import Session, SessionStore, SessionStoreError

LOG = get_logger("client-auth")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6

# Refresh this long before the access token actually lapses.
REFRESH_MARGIN_SECONDS = 60

RATE_LIMITED = "Too many attempts. Please wait a moment and try again."


@dataclass(frozen=True)
class AuthResult:
    session: Optional[Session] = None
    error: Optional[str] = None
    needs_confirmation: bool = False
    # set when the backend could not be reached at all
    offline: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


def is_valid_email(email: Any) -> bool:
    return isinstance(email, str) and bool(EMAIL_RE.match(email.strip()))


def session_from_payload(payload: Any) -> Optional[Session]:
    """Build a Session from a token response; None when it carries no session."""
    if not isinstance(payload, dict):
        return None
    token = payload.get("access_token")
    user = payload.get("user") if isinstance(payload.get("user"), dict) else {}
    if not token or not user.get("id"):
        return None
    expires_at = payload.get("expires_at")
    if expires_at is None and isinstance(payload.get("expires_in"), (int, float)):
        expires_at = time.time() + float(payload["expires_in"])
    return Session(
        access_token=str(token),
        user_id=str(user["id"]),
        refresh_token=payload.get("refresh_token"),
        expires_at=float(expires_at) if expires_at is not None else None,
        email=user.get("email"),
    )


def _json_or_none(r: requests.Response) -> Any:
    try:
        return r.json()
    except ValueError:
        return None


def _backend_message(r: requests.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        return r.text[:200] or f"HTTP {r.status_code}"
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            if isinstance(body.get(key), str) and body[key]:
                return body[key]
    return f"HTTP {r.status_code}"


class AuthClient:
    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        store: Optional[SessionStore] = None,
        *,
        timeout: int = 30,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.base = base_url.rstrip("/")
        self.api_key = api_key
        self.store = store or SessionStore()
        self.timeout = int(timeout)
        self.http = http or requests.Session()

    # ---------- helpers ----------
    def _url(self, path: str) -> str:
        return f"{self.base}{path}"

    def _headers(self, token: Optional[str] = None) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _post(self, path: str, payload: Optional[Dict[str, Any]] = None, *, token: Optional[str] = None) -> requests.Response:
        return self.http.post(self._url(path), json=payload or {}, headers=self._headers(token), timeout=self.timeout)

    # ---------- operations ----------
    def sign_up(self, email: str, password: str) -> AuthResult:
        if not is_valid_email(email):
            return AuthResult(error="Please enter a valid email address")
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            return AuthResult(error=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        try:
            r = self._post("/auth/v1/signup", {"email": email.strip().lower(), "password": password})
        except requests.RequestException as exc:
            LOG.error(f"Sign-up request failed: {exc}")
            return AuthResult(error="Unable to create account. Please check your connection and try again.")
        if r.status_code >= 400:
            message = _backend_message(r)
            LOG.warning(f"Sign-up rejected: HTTP {r.status_code} {message}")
            if "already registered" in message:
                return AuthResult(error="This email is already registered. Please sign in instead.")
            if "rate limit" in message.lower():
                return AuthResult(error=RATE_LIMITED)
            return AuthResult(error=message)
        session = session_from_payload(_json_or_none(r))
        if session:
            self.store.save(session)
        return AuthResult(session=session, needs_confirmation=session is None)

    def sign_in(self, email: str, password: str) -> AuthResult:
        if not is_valid_email(email):
            return AuthResult(error="Please enter a valid email address")
        if not password:
            return AuthResult(error="Please enter your password")
        try:
            r = self._post(
                "/auth/v1/token?grant_type=password",
                {"email": email.strip().lower(), "password": password},
            )
        except requests.RequestException as exc:
            LOG.error(f"Sign-in request failed: {exc}")
            return AuthResult(error="Unable to sign in. Please check your connection and try again.")
        if r.status_code >= 400:
            message = _backend_message(r)
            LOG.warning(f"Sign-in rejected: HTTP {r.status_code} {message}")
            if "Invalid login" in message:
                return AuthResult(error="Incorrect email or password. Please try again.")
            if "Email not confirmed" in message:
                return AuthResult(error="Please verify your email before signing in. Check your inbox.")
            if "rate limit" in message.lower():
                return AuthResult(error=RATE_LIMITED)
            return AuthResult(error=message)
        session = session_from_payload(_json_or_none(r))
        if session is None:
            return AuthResult(error="Unable to sign in. Please try again.")
        self.store.save(session)
        return AuthResult(session=session)

    def sign_out(self) -> AuthResult:
        """Revoke the token remotely when possible; the local session is always cleared."""
        try:
            session = self.store.load()
        except SessionStoreError:
            session = None
        error = None
        if session is not None:
            try:
                r = self._post("/auth/v1/logout", token=session.access_token)
                if r.status_code >= 400 and r.status_code != 401:
                    error = _backend_message(r)
            except requests.RequestException as exc:
                LOG.error(f"Sign-out request failed: {exc}")
                error = "Unable to sign out. Please try again."
        self.store.clear()
        return AuthResult(error=error)

    def refresh(self) -> AuthResult:
        try:
            session = self.store.load()
        except SessionStoreError:
            return AuthResult(error="Session error. Please sign in again.")
        if session is None or not session.refresh_token:
            return AuthResult(error="You must be signed in to refresh your session.")
        try:
            r = self._post("/auth/v1/token?grant_type=refresh_token", {"refresh_token": session.refresh_token})
        except requests.RequestException as exc:
            LOG.error(f"Refresh request failed: {exc}")
            return AuthResult(
                error="Unable to refresh session. Please check your connection and try again.", offline=True
            )
        if r.status_code >= 400:
            LOG.warning(f"Refresh rejected: HTTP {r.status_code} {_backend_message(r)}")
            return AuthResult(error="Session expired. Please sign in again.")
        refreshed = session_from_payload(_json_or_none(r))
        if refreshed is None:
            return AuthResult(error="Session expired. Please sign in again.")
        self.store.save(refreshed)
        return AuthResult(session=refreshed)

    def current_user_id(self) -> Optional[str]:
        """Ask the backend who the stored token belongs to; None when signed out or rejected."""
        try:
            session = self.store.load()
        except SessionStoreError:
            return None
        if session is None:
            return None
        try:
            r = self.http.get(self._url("/auth/v1/user"), headers=self._headers(session.access_token), timeout=self.timeout)
        except requests.RequestException as exc:
            LOG.error(f"Get user request failed: {exc}")
            return None
        if r.status_code >= 400:
            return None
        body = _json_or_none(r)
        user_id = body.get("id") if isinstance(body, dict) else None
        return str(user_id) if user_id else None

    def current_session(self) -> Optional[Session]:
        """Stored session, refreshed first when its access token is (nearly) expired.

        Used as the SessionGuard provider. A rejected refresh raises
        SessionExpiredError; an unreachable auth backend hands back the stale
        session so the caller can still take its offline path.
        """
        session = self.store.load()
        if session is None or not session.is_expired(time.time() + REFRESH_MARGIN_SECONDS):
            return session
        if not session.refresh_token:
            LOG.warning(f"Session for user {session.user_id} expired and has no refresh token")
            raise SessionExpiredError()
        LOG.info(f"Refreshing expired session for user {session.user_id}")
        result = self.refresh()
        if result.ok and result.session is not None:
            return result.session
        if result.offline:
            return session
        raise SessionExpiredError()
