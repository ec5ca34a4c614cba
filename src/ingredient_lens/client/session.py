from __future__ import annotations

import json
import os
import time
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from ..logging import get_logger
from ..paths import find_project_root, var_dir
from .errors import NotSignedInError, SessionError

LOG = get_logger("client-session")

SESSION_FILENAME = "session.json"


class SessionStoreError(Exception):
    """The stored session exists but cannot be read."""


@dataclass(frozen=True)
class Session:
    access_token: str
    user_id: str
    refresh_token: Optional[str] = None
    expires_at: Optional[float] = None  # unix seconds
    email: Optional[str] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= float(self.expires_at)


class SessionStore:
    """Persist the signed-in session as JSON under var/."""

    def __init__(self, path: Optional[str] = None, *, root_dir: Optional[str] = None) -> None:
        if path:
            self.path = os.path.abspath(path)
        else:
            self.path = os.path.join(var_dir(find_project_root(root_dir)), SESSION_FILENAME)

    def load(self) -> Optional[Session]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return Session(
                access_token=str(data["access_token"]),
                user_id=str(data["user_id"]),
                refresh_token=data.get("refresh_token"),
                expires_at=data.get("expires_at"),
                email=data.get("email"),
            )
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            LOG.error(f"Stored session unreadable at {self.path}: {exc}")
            raise SessionStoreError(str(exc)) from exc

    def save(self, session: Session) -> None:
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(asdict(session), f, indent=2)
        try:
            os.chmod(self.path, 0o600)
        except OSError:
            LOG.debug("Could not restrict session file permissions")
        LOG.info(f"Session saved for user {session.user_id}")

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
            LOG.info("Session cleared")


class SessionGuard:
    """Refuse to continue without an authenticated session."""

    def __init__(self, provider: Callable[[], Optional[Session]]) -> None:
        self.provider = provider

    def require_session(self) -> Session:
        try:
            session = self.provider()
        except SessionStoreError as exc:
            raise SessionError() from exc
        if session is None:
            raise NotSignedInError()
        return session
