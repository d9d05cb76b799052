"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and automatic OpenAPI documentation.

HOW: Each endpoint pair (request + response) has its own model. All models
include Field descriptions for the /docs UI. Conversion from core objects
(Cue, User, Job, ProjectSession) lives in small from_* classmethods so the
route handlers stay thin.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Response models never expose password hashes or internal paths
- Cue fields are snake_case here; the JSON export uses interchange names
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from subtitle_studio.core.cues import Cue
from subtitle_studio.core.project import ProjectSession
from subtitle_studio.server.jobs import Job
from subtitle_studio.storage.backend import ActivityLog, SessionLog, User


# ---------------------------------------------------------------------------
# Cues and project
# ---------------------------------------------------------------------------


class CueModel(BaseModel):
    """One subtitle cue."""

    id: str = Field(description="Opaque cue identifier, stable for the cue's lifetime.")
    start_time: float = Field(description="Start time in seconds.")
    end_time: float = Field(description="End time in seconds.")
    text: str = Field(description="Display text in the current language.")
    original_text: str | None = Field(
        default=None, description="Text before the first translation, if translated."
    )
    speaker: str | None = Field(default=None, description="Speaker label.")
    confidence: float | None = Field(default=None, description="Transcription confidence 0-1.")

    @classmethod
    def from_cue(cls, cue: Cue) -> CueModel:
        return cls(
            id=cue.id,
            start_time=cue.start_time,
            end_time=cue.end_time,
            text=cue.text,
            original_text=cue.original_text,
            speaker=cue.speaker,
            confidence=cue.confidence,
        )


class CueUpdateRequest(BaseModel):
    """Partial cue edit. Only the fields sent are changed."""

    start_time: float | None = Field(default=None, description="New start time in seconds.")
    end_time: float | None = Field(default=None, description="New end time in seconds.")
    text: str | None = Field(default=None, description="New display text.")
    speaker: str | None = Field(default=None, description="New speaker label.")
    commit: bool = Field(
        default=False,
        description="Record the edit as an undo step immediately instead of batching.",
    )


class SplitRequest(BaseModel):
    at: float = Field(description="Split time in seconds, strictly inside the cue.")


class ShiftRequest(BaseModel):
    delta_ms: float = Field(description="Offset in milliseconds (negative moves cues earlier).")


class TranslateRequest(BaseModel):
    target_language: str = Field(description="Language name, e.g. 'Spanish'.")


class DubRequest(BaseModel):
    voice: str | None = Field(default=None, description="Voice name. Defaults to the configured voice.")


class ProjectResponse(BaseModel):
    """The caller's current project."""

    name: str = Field(description="Project (media) name.")
    status: str = Field(description="Processing status.")
    status_message: str = Field(description="User-visible status message.")
    progress: float | None = Field(default=None, description="Dub progress 0-100.")
    detected_language: str | None = Field(default=None, description="Language of the transcript.")
    media: str | None = Field(default=None, description="Name of the imported media file.")
    has_dub: bool = Field(description="Whether an AI dub is available for download.")
    can_undo: bool = Field(description="Whether undo would change the cues.")
    can_redo: bool = Field(description="Whether redo would change the cues.")
    cues: list[CueModel] = Field(description="Cues in storage order.")

    @classmethod
    def from_session(cls, session: ProjectSession) -> ProjectResponse:
        return cls(
            name=session.project_name,
            status=session.status.value,
            status_message=session.status_message,
            progress=session.progress,
            detected_language=session.detected_language,
            media=session.media.name if session.media else None,
            has_dub=session.dub is not None,
            can_undo=session.history.can_undo,
            can_redo=session.history.can_redo,
            cues=[CueModel.from_cue(c) for c in session.cues],
        )


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


class JobCreatedResponse(BaseModel):
    """Response returned when a background operation is started."""

    id: str = Field(description="Job identifier for polling status.")
    kind: str = Field(description="Operation kind (transcribe, translate, dub).")
    status: str = Field(description="Initial job status (always 'pending').")


class JobResponse(BaseModel):
    """Background job status."""

    id: str = Field(description="Job identifier.")
    kind: str = Field(description="Operation kind.")
    status: str = Field(description="Current job status.")
    created_at: float = Field(description="Job creation timestamp (Unix epoch seconds).")
    progress: float | None = Field(default=None, description="Progress 0-100 when reported.")
    error: str | None = Field(
        default=None, description="Error message, only present when status is 'failed'."
    )
    result: dict[str, Any] = Field(default_factory=dict, description="Operation summary.")

    @classmethod
    def from_job(cls, job: Job) -> JobResponse:
        return cls(
            id=job.id,
            kind=job.kind.value,
            status=job.status.value,
            created_at=job.created_at,
            progress=job.progress,
            error=job.error,
            result=job.result,
        )


# ---------------------------------------------------------------------------
# Accounts and admin
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    email: str = Field(description="Account email (unique).")
    password: str = Field(description="Account password.")
    name: str = Field(default="", description="Display name.")


class LoginRequest(BaseModel):
    identifier: str = Field(description="Email or display name.")
    password: str = Field(description="Account password.")


class UserModel(BaseModel):
    id: str = Field(description="User identifier.")
    email: str = Field(description="Account email.")
    name: str = Field(description="Display name.")
    role: str = Field(description="'user' or 'admin'.")
    created_at: float = Field(description="Signup timestamp.")
    last_login_at: float | None = Field(default=None, description="Last login timestamp.")

    @classmethod
    def from_user(cls, user: User) -> UserModel:
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role.value,
            created_at=user.created_at,
            last_login_at=user.last_login_at,
        )


class AuthResponse(BaseModel):
    token: str = Field(description="Bearer token for subsequent requests.")
    user: UserModel = Field(description="The authenticated user.")


class SessionModel(BaseModel):
    id: str = Field(description="Session identifier.")
    user_id: str = Field(description="User the session belongs to.")
    user_email: str = Field(description="User email at session start.")
    start_time: float = Field(description="Login timestamp.")
    end_time: float | None = Field(default=None, description="Logout timestamp.")
    duration_seconds: float | None = Field(default=None, description="Session length.")

    @classmethod
    def from_session_log(cls, log: SessionLog) -> SessionModel:
        return cls(
            id=log.id,
            user_id=log.user_id,
            user_email=log.user_email,
            start_time=log.start_time,
            end_time=log.end_time,
            duration_seconds=log.duration_seconds,
        )


class ActivityModel(BaseModel):
    id: str = Field(description="Activity identifier.")
    user_id: str = Field(description="Acting user.")
    user_email: str = Field(description="Acting user's email.")
    timestamp: float = Field(description="When the action happened.")
    type: str = Field(description="UPLOAD, GENERATE, TRANSLATE, DUB or EXPORT.")
    details: dict[str, Any] = Field(description="Action-specific details.")

    @classmethod
    def from_activity(cls, log: ActivityLog) -> ActivityModel:
        return cls(
            id=log.id,
            user_id=log.user_id,
            user_email=log.user_email,
            timestamp=log.timestamp,
            type=log.type.value,
            details=log.details,
        )


# ---------------------------------------------------------------------------
# Misc
# ---------------------------------------------------------------------------


class FormatInfo(BaseModel):
    """Description of an available export format."""

    key: str = Field(description="Format identifier used in API requests.")
    name: str = Field(description="Human-readable format name.")
    suffix: str = Field(description="File suffix produced (e.g. '_subs.srt').")


class ErrorResponse(BaseModel):
    """Standard error response body."""

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
