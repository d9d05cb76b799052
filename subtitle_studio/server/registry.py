"""Bearer tokens and per-user project sessions for the HTTP API.

WHY: Each logged-in user edits one project. The server must map a request
to its user and to that user's live ProjectSession (cue store, history,
dub) across requests, and keep uploaded media somewhere the background
transcription job can read it.

HOW: SessionRegistry holds token -> user_id and user_id -> ProjectSession
dicts under a threading.Lock. A session is created on first use and
immediately opened, which restores the user's autosaved project. Uploaded
media goes into one temp directory per user below media_root.

RULES:
- Tokens are random URL-safe strings; they are never persisted
- One ProjectSession per user, shared by all of that user's tokens
- Revoking a user's last token does not drop the session; logging in
  again resumes the in-memory project
"""

from __future__ import annotations

import logging
import secrets
import shutil
import tempfile
import threading
from pathlib import Path

from subtitle_studio.core.project import ProjectSession
from subtitle_studio.storage.backend import PersistenceBackend

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(self, backend: PersistenceBackend, media_root: Path | None = None) -> None:
        self.backend = backend
        self._media_root = Path(media_root) if media_root else None
        self._tokens: dict[str, str] = {}
        self._sessions: dict[str, ProjectSession] = {}
        self._lock = threading.Lock()

    def issue_token(self, user_id: str) -> str:
        token = secrets.token_urlsafe(32)
        with self._lock:
            self._tokens[token] = user_id
        return token

    def user_id_for(self, token: str) -> str | None:
        with self._lock:
            return self._tokens.get(token)

    def revoke(self, token: str) -> str | None:
        """Forget a token. Returns the user it belonged to."""
        with self._lock:
            return self._tokens.pop(token, None)

    def session_for(self, user_id: str) -> ProjectSession:
        """Return the user's project session, restoring it on first use."""
        with self._lock:
            session = self._sessions.get(user_id)
            created = session is None
            if created:
                session = ProjectSession(user_id=user_id, backend=self.backend)
                self._sessions[user_id] = session
        if created:
            session.open()
            logger.info("Opened project session for user %s", user_id)
        return session

    @property
    def media_root(self) -> Path:
        """Root for uploaded media, created on first use."""
        if self._media_root is None:
            self._media_root = Path(tempfile.mkdtemp(prefix="subtitle_studio_"))
        return self._media_root

    def media_dir(self, user_id: str) -> Path:
        """Empty per-user directory for the next uploaded media file."""
        path = self.media_root / user_id
        if path.exists():
            shutil.rmtree(path, ignore_errors=True)
        path.mkdir(parents=True)
        return path

    def close(self) -> None:
        if self._media_root is not None:
            shutil.rmtree(self._media_root, ignore_errors=True)
