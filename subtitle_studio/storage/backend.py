"""Local persistence: user accounts, sessions, activity log, project state.

WHY: The editor autosaves every committed edit and restores the last
project on login; administrators review who used the tool and what they
did. A handful of JSON files in a data directory is sufficient for a
single-team deployment and keeps the store inspectable by hand.

HOW: PersistenceBackend is the abstract collaborator the project session
consumes (save/load project state, log activity). JsonFileBackend
implements it plus account management on top of four JSON files
(users, sessions, activities, projects) in data_dir. Every read-modify-
write cycle holds a threading.Lock and files are replaced atomically.

RULES:
- Passwords are stored as salted PBKDF2-SHA256 hashes, never in clear
- Emails are unique case-insensitively; login accepts email or name
- The only administrator account created automatically is the bootstrap
  admin passed in from configuration; no credential lives in code
- Activities are kept newest first and capped at activity_limit
- One project state per user; saving replaces it wholesale
- A corrupt or missing file reads as empty (logged), never crashes login
"""

from __future__ import annotations

import enum
import hashlib
import hmac
import json
import logging
import os
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from subtitle_studio.config import (
    ACTIVITY_LOG_LIMIT,
    DATA_DIR,
    DEFAULT_PROJECT_NAME,
    BootstrapAdmin,
)
from subtitle_studio.core.cues import Cue
from subtitle_studio.errors import AccountExistsError, AuthenticationError

logger = logging.getLogger(__name__)

_PBKDF2_ITERATIONS = 200_000
_UNKNOWN_EMAIL = "Unknown"


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class ActivityType(str, enum.Enum):
    """Kinds of user actions recorded in the activity log."""

    UPLOAD = "UPLOAD"
    GENERATE = "GENERATE"
    TRANSLATE = "TRANSLATE"
    DUB = "DUB"
    EXPORT = "EXPORT"


@dataclass
class User:
    id: str
    email: str
    name: str
    role: UserRole = UserRole.USER
    created_at: float = field(default_factory=time.time)
    last_login_at: float | None = None
    password_hash: str = field(default="", repr=False)

    def to_dict(self, include_secret: bool = False) -> dict[str, Any]:
        data = {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "createdAt": self.created_at,
            "lastLoginAt": self.last_login_at,
        }
        if include_secret:
            data["passwordHash"] = self.password_hash
        return data

    @classmethod
    def from_dict(cls, data: dict) -> User:
        return cls(
            id=data["id"],
            email=data["email"],
            name=data.get("name", ""),
            role=UserRole(data.get("role", UserRole.USER.value)),
            created_at=data.get("createdAt", 0.0),
            last_login_at=data.get("lastLoginAt"),
            password_hash=data.get("passwordHash", ""),
        )


@dataclass
class SessionLog:
    id: str
    user_id: str
    user_email: str
    start_time: float
    end_time: float | None = None
    duration_seconds: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "userEmail": self.user_email,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "durationSeconds": self.duration_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict) -> SessionLog:
        return cls(
            id=data["id"],
            user_id=data["userId"],
            user_email=data.get("userEmail", _UNKNOWN_EMAIL),
            start_time=data["startTime"],
            end_time=data.get("endTime"),
            duration_seconds=data.get("durationSeconds"),
        )


@dataclass
class ActivityLog:
    id: str
    user_id: str
    user_email: str
    timestamp: float
    type: ActivityType
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "userEmail": self.user_email,
            "timestamp": self.timestamp,
            "type": self.type.value,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ActivityLog:
        return cls(
            id=data["id"],
            user_id=data["userId"],
            user_email=data.get("userEmail", _UNKNOWN_EMAIL),
            timestamp=data["timestamp"],
            type=ActivityType(data["type"]),
            details=data.get("details") or {},
        )


@dataclass
class ProjectState:
    """The last saved cue list and project name for one user."""

    user_id: str
    cues: list[Cue]
    project_name: str = DEFAULT_PROJECT_NAME
    last_edited: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "subtitles": [cue.to_dict() for cue in self.cues],
            "mediaName": self.project_name,
            "lastEdited": self.last_edited,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ProjectState:
        return cls(
            user_id=data["userId"],
            cues=[Cue.from_dict(item) for item in data.get("subtitles") or []],
            project_name=data.get("mediaName") or DEFAULT_PROJECT_NAME,
            last_edited=data.get("lastEdited", 0.0),
        )


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(password: str, salt: bytes | None = None) -> str:
    """Return ``pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>``."""
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _PBKDF2_ITERATIONS)
    return "pbkdf2_sha256${}${}${}".format(_PBKDF2_ITERATIONS, salt.hex(), digest.hex())


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt_hex, digest_hex = encoded.split("$")
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), bytes.fromhex(salt_hex), int(iterations)
    )
    return hmac.compare_digest(digest.hex(), digest_hex)


def _new_id(prefix: str) -> str:
    return "{}_{}".format(prefix, uuid.uuid4().hex[:12])


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class PersistenceBackend(ABC):
    """The persistence collaborator consumed by a project session."""

    @abstractmethod
    def save_project_state(
        self, user_id: str, cues: Iterable[Cue], project_name: str | None = None
    ) -> None:
        """Replace the user's saved project with the given cues."""

    @abstractmethod
    def load_project_state(self, user_id: str) -> ProjectState | None:
        """Return the user's saved project, or None."""

    @abstractmethod
    def log_activity(
        self, user_id: str, activity_type: ActivityType, details: dict[str, Any] | None = None
    ) -> None:
        """Record one user action."""


class JsonFileBackend(PersistenceBackend):
    """PersistenceBackend plus account management over JSON files.

    Args:
        data_dir: Directory holding the JSON files (created on first write).
        activity_limit: Maximum number of activities kept.
        bootstrap_admin: Optional administrator account from configuration.
    """

    USERS_FILE = "users.json"
    SESSIONS_FILE = "sessions.json"
    ACTIVITIES_FILE = "activities.json"
    PROJECTS_FILE = "projects.json"

    def __init__(
        self,
        data_dir: Path = DATA_DIR,
        activity_limit: int = ACTIVITY_LOG_LIMIT,
        bootstrap_admin: BootstrapAdmin | None = None,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.activity_limit = activity_limit
        self._bootstrap_admin = bootstrap_admin
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    def _read(self, name: str) -> list[dict]:
        path = self.data_dir / name
        if not path.exists():
            return []
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            logger.warning("Could not read %s; treating it as empty", path, exc_info=True)
            return []
        return data if isinstance(data, list) else []

    def _write(self, name: str, records: list[dict]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self.data_dir / name
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)

    def _users(self) -> list[User]:
        users = [User.from_dict(d) for d in self._read(self.USERS_FILE)]
        admin = self._bootstrap_admin
        if admin is not None and not any(u.email.lower() == admin.email.lower() for u in users):
            user = User(
                id=_new_id("u"),
                email=admin.email,
                name=admin.name,
                role=UserRole.ADMIN,
                password_hash=hash_password(admin.password),
            )
            users.append(user)
            self._save_users(users)
            logger.info("Created bootstrap admin account %s", admin.email)
        return users

    def _save_users(self, users: list[User]) -> None:
        self._write(self.USERS_FILE, [u.to_dict(include_secret=True) for u in users])

    # ------------------------------------------------------------------
    # Accounts and sessions
    # ------------------------------------------------------------------

    def signup(self, email: str, password: str, name: str) -> User:
        """Create a user account and start a session for it.

        Raises:
            ValueError: If email or password is blank.
            AccountExistsError: If the email is already registered.
        """
        email = email.strip()
        if not email or not password:
            raise ValueError("Email and password are required")
        with self._lock:
            users = self._users()
            if any(u.email.lower() == email.lower() for u in users):
                raise AccountExistsError(
                    "This email is already associated with an account. Please log in."
                )
            now = time.time()
            user = User(
                id=_new_id("u"),
                email=email,
                name=name.strip() or email,
                created_at=now,
                last_login_at=now,
                password_hash=hash_password(password),
            )
            users.append(user)
            self._save_users(users)
            self._start_session(user)
        logger.info("Signed up user %s", user.id)
        return user

    def login(self, identifier: str, password: str) -> User:
        """Authenticate by email (case-insensitive) or display name.

        Raises:
            AuthenticationError: On unknown identifier or wrong password.
        """
        identifier = identifier.strip()
        with self._lock:
            users = self._users()
            user = next(
                (u for u in users if u.email.lower() == identifier.lower() or u.name == identifier),
                None,
            )
            if user is None or not verify_password(password, user.password_hash):
                raise AuthenticationError(
                    "Invalid credentials. Please check your username/email and password."
                )
            user.last_login_at = time.time()
            self._save_users(users)
            self._start_session(user)
        logger.info("User %s logged in", user.id)
        return user

    def logout(self, user_id: str) -> SessionLog | None:
        """End the user's most recent open session, if any."""
        with self._lock:
            sessions = [SessionLog.from_dict(d) for d in self._read(self.SESSIONS_FILE)]
            for session in reversed(sessions):
                if session.user_id == user_id and session.end_time is None:
                    session.end_time = time.time()
                    session.duration_seconds = session.end_time - session.start_time
                    self._write(self.SESSIONS_FILE, [s.to_dict() for s in sessions])
                    return session
        return None

    def _start_session(self, user: User) -> SessionLog:
        session = SessionLog(
            id=_new_id("s"),
            user_id=user.id,
            user_email=user.email,
            start_time=time.time(),
        )
        records = self._read(self.SESSIONS_FILE)
        records.append(session.to_dict())
        self._write(self.SESSIONS_FILE, records)
        return session

    def get_user(self, user_id: str) -> User | None:
        with self._lock:
            return next((u for u in self._users() if u.id == user_id), None)

    def list_users(self) -> list[User]:
        with self._lock:
            return self._users()

    def list_sessions(self) -> list[SessionLog]:
        """All sessions, newest first."""
        with self._lock:
            sessions = [SessionLog.from_dict(d) for d in self._read(self.SESSIONS_FILE)]
        return sorted(sessions, key=lambda s: s.start_time, reverse=True)

    def list_activities(self) -> list[ActivityLog]:
        """All activities, newest first."""
        with self._lock:
            return [ActivityLog.from_dict(d) for d in self._read(self.ACTIVITIES_FILE)]

    # ------------------------------------------------------------------
    # PersistenceBackend
    # ------------------------------------------------------------------

    def save_project_state(
        self, user_id: str, cues: Iterable[Cue], project_name: str | None = None
    ) -> None:
        state = ProjectState(
            user_id=user_id,
            cues=list(cues),
            project_name=project_name or DEFAULT_PROJECT_NAME,
        )
        with self._lock:
            records = [d for d in self._read(self.PROJECTS_FILE) if d.get("userId") != user_id]
            records.append(state.to_dict())
            self._write(self.PROJECTS_FILE, records)
        logger.debug("Saved %d cues for user %s", len(state.cues), user_id)

    def load_project_state(self, user_id: str) -> ProjectState | None:
        with self._lock:
            records = self._read(self.PROJECTS_FILE)
        for record in records:
            if record.get("userId") == user_id:
                return ProjectState.from_dict(record)
        return None

    def log_activity(
        self, user_id: str, activity_type: ActivityType, details: dict[str, Any] | None = None
    ) -> None:
        with self._lock:
            user = next((u for u in self._users() if u.id == user_id), None)
            entry = ActivityLog(
                id=_new_id("act"),
                user_id=user_id,
                user_email=user.email if user else _UNKNOWN_EMAIL,
                timestamp=time.time(),
                type=ActivityType(activity_type),
                details=dict(details or {}),
            )
            records = self._read(self.ACTIVITIES_FILE)
            records.insert(0, entry.to_dict())
            self._write(self.ACTIVITIES_FILE, records[: self.activity_limit])


class MemoryBackend(PersistenceBackend):
    """In-process PersistenceBackend for the CLI and tests."""

    def __init__(self) -> None:
        self.projects: dict[str, ProjectState] = {}
        self.activities: list[ActivityLog] = []

    def save_project_state(
        self, user_id: str, cues: Iterable[Cue], project_name: str | None = None
    ) -> None:
        self.projects[user_id] = ProjectState(
            user_id=user_id,
            cues=list(cues),
            project_name=project_name or DEFAULT_PROJECT_NAME,
        )

    def load_project_state(self, user_id: str) -> ProjectState | None:
        return self.projects.get(user_id)

    def log_activity(
        self, user_id: str, activity_type: ActivityType, details: dict[str, Any] | None = None
    ) -> None:
        self.activities.insert(0, ActivityLog(
            id=_new_id("act"),
            user_id=user_id,
            user_email=_UNKNOWN_EMAIL,
            timestamp=time.time(),
            type=ActivityType(activity_type),
            details=dict(details or {}),
        ))
