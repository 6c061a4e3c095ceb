"""
Session Store
=============
Holds the one current ``Session`` for the HTTP layer.

The HTTP engine reads it before every call; only login, logout and token
refresh write it.  Writes always replace the stored Session wholesale.

Implementations:
    - ``InMemorySessionStore`` — process lifetime only (default)
    - ``FileSessionStore``     — JSON file, survives restarts (CLI)

Credentials are never stored, only the token and the user record.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from ..models import Session

logger = logging.getLogger(__name__)

_DEFAULT_SESSION_PATH = "tp_session.json"


class SessionStore(ABC):
    """Narrow get/set/clear interface shared by every store."""

    @abstractmethod
    def get(self) -> Optional[Session]:
        """Current session, or None."""

    @abstractmethod
    def set(self, session: Session) -> None:
        """Replace the current session."""

    @abstractmethod
    def clear(self) -> None:
        """Forget the current session."""


class InMemorySessionStore(SessionStore):

    def __init__(self, session: Optional[Session] = None):
        self._session = session

    def get(self) -> Optional[Session]:
        return self._session

    def set(self, session: Session) -> None:
        self._session = session

    def clear(self) -> None:
        self._session = None


class FileSessionStore(SessionStore):
    """Persists the session as JSON at ``path``.

    A missing, unreadable or corrupt file reads as "no session".
    """

    def __init__(self, path: str = _DEFAULT_SESSION_PATH):
        self.path = Path(path)
        self._cache: Optional[Session] = None
        self._loaded = False

    def get(self) -> Optional[Session]:
        if not self._loaded:
            self._cache = self._load()
            self._loaded = True
        return self._cache

    def set(self, session: Session) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(session.to_dict(), indent=2), encoding="utf-8")
        os.replace(tmp, self.path)
        self._cache = session
        self._loaded = True
        logger.info(f"[SESSION] Saved session for user_id={session.user.id} → {self.path}")

    def clear(self) -> None:
        self._cache = None
        self._loaded = True
        try:
            self.path.unlink()
            logger.info(f"[SESSION] Session file removed: {self.path}")
        except FileNotFoundError:
            pass

    def _load(self) -> Optional[Session]:
        if not self.path.exists():
            logger.info("[SESSION] No saved session file found")
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            session = Session.from_dict(data)
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError) as exc:
            logger.warning(f"[SESSION] Corrupt session file {self.path}: {exc}")
            return None
        if session.token.is_expired():
            logger.info(
                f"[SESSION] Saved token expired at {session.token.expires_at.isoformat()}"
            )
        else:
            logger.info(f"[SESSION] Loaded session for user_id={session.user.id}")
        return session
