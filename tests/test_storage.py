"""Tests for the JSON file persistence backend.

WHY: Accounts, the admin audit trail and autosaved projects all live in
these files. Lost writes or leaked password material would be visible to
every user of a deployment.

HOW: Each test gets a JsonFileBackend rooted in pytest's tmp_path. Password
hashing uses the real PBKDF2 implementation.

RULES:
- No test writes outside tmp_path
- Files are inspected directly where the on-disk format matters
"""

from __future__ import annotations

import json

import pytest

from subtitle_studio.config import BootstrapAdmin, load_bootstrap_admin
from subtitle_studio.core.cues import Cue
from subtitle_studio.errors import AccountExistsError, AuthenticationError
from subtitle_studio.storage.backend import (
    ActivityType,
    JsonFileBackend,
    UserRole,
    hash_password,
    verify_password,
)


@pytest.fixture
def backend(tmp_path) -> JsonFileBackend:
    return JsonFileBackend(tmp_path / "data")


class TestPasswords:

    def test_hash_verifies(self):
        encoded = hash_password("s3cret")
        assert encoded.startswith("pbkdf2_sha256$")
        assert verify_password("s3cret", encoded)
        assert not verify_password("wrong", encoded)

    def test_salted(self):
        assert hash_password("same") != hash_password("same")

    def test_garbage_hash_does_not_verify(self):
        assert not verify_password("x", "plain-text")


class TestAccounts:

    def test_signup_then_login_by_email_or_name(self, backend):
        user = backend.signup("Ana@Example.com", "pw", "Ana")
        assert user.role is UserRole.USER
        assert backend.login("ana@example.com", "pw").id == user.id
        assert backend.login("Ana", "pw").id == user.id

    def test_password_never_stored_in_clear(self, backend, tmp_path):
        backend.signup("ana@example.com", "hunter2", "Ana")
        raw = (tmp_path / "data" / "users.json").read_text(encoding="utf-8")
        assert "hunter2" not in raw
        assert "passwordHash" in raw

    def test_duplicate_email_rejected(self, backend):
        backend.signup("ana@example.com", "pw", "Ana")
        with pytest.raises(AccountExistsError):
            backend.signup("ANA@example.com", "other", "Other")

    def test_blank_fields_rejected(self, backend):
        with pytest.raises(ValueError):
            backend.signup("  ", "pw", "x")
        with pytest.raises(ValueError):
            backend.signup("a@b.c", "", "x")

    @pytest.mark.parametrize("identifier,password", [
        ("ana@example.com", "wrong"),
        ("nobody@example.com", "pw"),
    ])
    def test_bad_login(self, backend, identifier, password):
        backend.signup("ana@example.com", "pw", "Ana")
        with pytest.raises(AuthenticationError):
            backend.login(identifier, password)

    def test_no_users_without_bootstrap(self, backend):
        assert backend.list_users() == []

    def test_bootstrap_admin_created_once(self, tmp_path):
        admin = BootstrapAdmin(email="ops@example.com", password="from-env", name="Ops")
        backend = JsonFileBackend(tmp_path, bootstrap_admin=admin)
        user = backend.login("ops@example.com", "from-env")
        assert user.role is UserRole.ADMIN
        backend.list_users()
        assert len(backend.list_users()) == 1


class TestBootstrapConfig:

    def test_unset_means_no_admin(self, monkeypatch):
        monkeypatch.delenv("ADMIN_BOOTSTRAP_EMAIL", raising=False)
        monkeypatch.delenv("ADMIN_BOOTSTRAP_PASSWORD", raising=False)
        assert load_bootstrap_admin() is None

    def test_loaded_from_environment(self, monkeypatch):
        monkeypatch.setenv("ADMIN_BOOTSTRAP_EMAIL", "ops@example.com")
        monkeypatch.setenv("ADMIN_BOOTSTRAP_PASSWORD", "pw")
        monkeypatch.delenv("ADMIN_BOOTSTRAP_NAME", raising=False)
        admin = load_bootstrap_admin()
        assert admin == BootstrapAdmin(email="ops@example.com", password="pw", name="Administrator")


class TestSessions:

    def test_login_and_logout_record_sessions(self, backend):
        user = backend.signup("ana@example.com", "pw", "Ana")
        backend.login("ana@example.com", "pw")
        ended = backend.logout(user.id)
        assert ended.end_time is not None
        assert ended.duration_seconds >= 0
        sessions = backend.list_sessions()
        assert len(sessions) == 2
        assert sessions[0].start_time >= sessions[1].start_time

    def test_logout_without_session(self, backend):
        assert backend.logout("u_missing") is None


class TestActivities:

    def test_newest_first_and_capped(self, tmp_path):
        backend = JsonFileBackend(tmp_path, activity_limit=3)
        user = backend.signup("ana@example.com", "pw", "Ana")
        for i in range(5):
            backend.log_activity(user.id, ActivityType.EXPORT, {"n": i})
        activities = backend.list_activities()
        assert [a.details["n"] for a in activities] == [4, 3, 2]
        assert activities[0].user_email == "ana@example.com"

    def test_unknown_user_logged_as_unknown(self, backend):
        backend.log_activity("u_gone", ActivityType.UPLOAD)
        assert backend.list_activities()[0].user_email == "Unknown"


class TestProjectState:

    def test_save_and_load(self, backend):
        cues = [Cue(id="c1", start_time=1.0, end_time=2.0, text="Hola", original_text="Hello")]
        backend.save_project_state("u1", cues, "clip.mp4")
        state = backend.load_project_state("u1")
        assert state.project_name == "clip.mp4"
        assert state.cues == cues

    def test_save_replaces_previous(self, backend, tmp_path):
        backend.save_project_state("u1", [Cue(id="a", start_time=0, end_time=1, text="a")])
        backend.save_project_state("u1", [])
        assert backend.load_project_state("u1").cues == []
        records = json.loads((tmp_path / "data" / "projects.json").read_text(encoding="utf-8"))
        assert len(records) == 1
        assert records[0]["mediaName"] == "Untitled Project"

    def test_missing_project(self, backend):
        assert backend.load_project_state("u1") is None

    def test_corrupt_file_reads_as_empty(self, backend, tmp_path):
        (tmp_path / "data").mkdir()
        (tmp_path / "data" / "projects.json").write_text("{not json", encoding="utf-8")
        assert backend.load_project_state("u1") is None
