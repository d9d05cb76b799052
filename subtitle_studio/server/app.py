"""FastAPI application: accounts, project editing, AI jobs and exports.

WHY: The browser editor talks to the authoring core over HTTP. Every
editor action (upload media, generate, translate, dub, edit cues,
nudge, undo/redo, export) maps to one endpoint on the caller's
ProjectSession, and the slow AI operations run as background jobs the
client polls.

HOW: create_app() builds a FastAPI app with its collaborators on
app.state (persistence backend, session registry, job store, AI client
factory, audio extractor) and includes the module's router. Route
handlers resolve the caller from a bearer token, fetch their
ProjectSession from the registry and delegate. Long-running operations
are async FastAPI BackgroundTasks, so they run on the event loop that
also serves edits and cue mutation stays single-threaded.

RULES:
- All endpoints have OpenAPI descriptions on every response
- Error responses use a consistent ErrorResponse schema
- 401 without a valid token, 403 for non-admins on /admin routes
- 409 when a long-running operation is already in flight or queued; the
  handler reserves the project before it returns 202
- The AI client is created per job through client_factory and always
  used as an async context manager
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Any

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    FastAPI,
    File,
    Header,
    HTTPException,
    Request,
    UploadFile,
)
from fastapi.responses import JSONResponse, Response

from subtitle_studio import __version__
from subtitle_studio.api.client import GeminiClient
from subtitle_studio.config import DATA_DIR, DEFAULT_VOICE, SUPPORTED_MEDIA_FORMATS, load_bootstrap_admin
from subtitle_studio.core.project import ProjectSession
from subtitle_studio.errors import (
    AccountExistsError,
    AuthenticationError,
    CueNotFound,
    InvalidTransition,
    OperationInProgress,
)
from subtitle_studio.formatters import FORMATTERS
from subtitle_studio.formatters.base import project_stem
from subtitle_studio.media import extract_audio_for_transcription
from subtitle_studio.server.jobs import JobKind, JobStatus, JobStore
from subtitle_studio.server.models import (
    ActivityModel,
    AuthResponse,
    CueModel,
    CueUpdateRequest,
    DubRequest,
    ErrorResponse,
    FormatInfo,
    HealthResponse,
    JobCreatedResponse,
    JobResponse,
    LoginRequest,
    ProjectResponse,
    SessionModel,
    ShiftRequest,
    SignupRequest,
    SplitRequest,
    TranslateRequest,
    UserModel,
)
from subtitle_studio.server.registry import SessionRegistry
from subtitle_studio.storage.backend import JsonFileBackend, User, UserRole

logger = logging.getLogger(__name__)

AudioExtractor = Callable[[Path], tuple[bytes, str]]

ProjectOperation = Callable[[Callable[[], bool]], Awaitable[dict[str, Any] | None]]
"""A job body. It receives claim(), which it calls right before touching the
project and which returns False if the project was reset while queued."""

router = APIRouter()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Expected 'Authorization: Bearer <token>'")
    return token.strip()


def current_user(
    request: Request,
    authorization: Annotated[str | None, Header(description="Bearer token from /auth/login.")] = None,
) -> User:
    token = _bearer_token(authorization)
    user_id = request.app.state.registry.user_id_for(token)
    user = request.app.state.backend.get_user(user_id) if user_id else None
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user


def admin_user(user: Annotated[User, Depends(current_user)]) -> User:
    if user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return user


def current_session(
    request: Request,
    user: Annotated[User, Depends(current_user)],
) -> ProjectSession:
    return request.app.state.registry.session_for(user.id)


CurrentUser = Annotated[User, Depends(current_user)]
AdminUser = Annotated[User, Depends(admin_user)]
CurrentSession = Annotated[ProjectSession, Depends(current_session)]


# ---------------------------------------------------------------------------
# Background jobs
# ---------------------------------------------------------------------------


async def run_project_job(
    store: JobStore,
    job_id: str,
    operation: Callable[[], Awaitable[dict[str, Any] | None]],
) -> None:
    """Run one project operation and record its outcome on the job.

    RULES:
    - Status goes running -> completed | failed
    - Any exception marks the job failed with its message
    - An operation superseded by a reset completes with {"superseded": True}
    """
    store.update_job(job_id, status=JobStatus.RUNNING)
    try:
        result = await operation()
    except Exception as exc:
        logger.exception("Job %s failed", job_id)
        store.update_job(job_id, status=JobStatus.FAILED, error=str(exc))
        return
    store.update_job(
        job_id,
        status=JobStatus.COMPLETED,
        result=result if result is not None else {"superseded": True},
    )


def _start_job(
    request: Request,
    background_tasks: BackgroundTasks,
    session: ProjectSession,
    kind: JobKind,
    operation: ProjectOperation,
    config: dict[str, Any] | None = None,
) -> JobCreatedResponse:
    ticket = session.reserve()
    store: JobStore = request.app.state.job_store
    try:
        job = store.create_job(kind, session.user_id, config=config)
    except ValueError as exc:
        session.release(ticket)
        raise HTTPException(status_code=429, detail=str(exc))

    async def reserved_operation() -> dict[str, Any] | None:
        try:
            return await operation(lambda: session.claim(ticket))
        finally:
            session.release(ticket)

    background_tasks.add_task(run_project_job, store, job.id, reserved_operation)
    return JobCreatedResponse(id=job.id, kind=job.kind.value, status=job.status.value)


# ---------------------------------------------------------------------------
# Endpoints: Health and formats
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


@router.get(
    "/formats",
    response_model=list[FormatInfo],
    tags=["formats"],
    summary="List available export formats",
)
async def list_formats() -> list[FormatInfo]:
    result = []
    for key, formatter_cls in sorted(FORMATTERS.items()):
        formatter = formatter_cls()
        result.append(FormatInfo(key=key, name=formatter.name, suffix=formatter.format([]).suffix))
    return result


# ---------------------------------------------------------------------------
# Endpoints: Accounts
# ---------------------------------------------------------------------------


@router.post(
    "/auth/signup",
    response_model=AuthResponse,
    status_code=201,
    tags=["auth"],
    summary="Create an account and log in",
    responses={
        400: {"model": ErrorResponse, "description": "Missing email or password"},
        409: {"model": ErrorResponse, "description": "Email already registered"},
    },
)
async def signup(body: SignupRequest, request: Request) -> AuthResponse:
    try:
        user = request.app.state.backend.signup(body.email, body.password, body.name)
    except AccountExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    token = request.app.state.registry.issue_token(user.id)
    return AuthResponse(token=token, user=UserModel.from_user(user))


@router.post(
    "/auth/login",
    response_model=AuthResponse,
    tags=["auth"],
    summary="Log in by email or display name",
    responses={401: {"model": ErrorResponse, "description": "Invalid credentials"}},
)
async def login(body: LoginRequest, request: Request) -> AuthResponse:
    try:
        user = request.app.state.backend.login(body.identifier, body.password)
    except AuthenticationError as exc:
        raise HTTPException(status_code=401, detail=str(exc))
    token = request.app.state.registry.issue_token(user.id)
    return AuthResponse(token=token, user=UserModel.from_user(user))


@router.post(
    "/auth/logout",
    status_code=204,
    tags=["auth"],
    summary="End the current session",
    responses={401: {"model": ErrorResponse, "description": "Not logged in"}},
)
async def logout(
    request: Request,
    user: CurrentUser,
    authorization: Annotated[str | None, Header()] = None,
) -> Response:
    request.app.state.registry.revoke(_bearer_token(authorization))
    request.app.state.backend.logout(user.id)
    return Response(status_code=204)


@router.get("/auth/me", response_model=UserModel, tags=["auth"], summary="Current user")
async def me(user: CurrentUser) -> UserModel:
    return UserModel.from_user(user)


# ---------------------------------------------------------------------------
# Endpoints: Admin
# ---------------------------------------------------------------------------


@router.get("/admin/users", response_model=list[UserModel], tags=["admin"], summary="List users")
async def admin_users(request: Request, _admin: AdminUser) -> list[UserModel]:
    return [UserModel.from_user(u) for u in request.app.state.backend.list_users()]


@router.get(
    "/admin/sessions", response_model=list[SessionModel], tags=["admin"],
    summary="List login sessions, newest first",
)
async def admin_sessions(request: Request, _admin: AdminUser) -> list[SessionModel]:
    return [SessionModel.from_session_log(s) for s in request.app.state.backend.list_sessions()]


@router.get(
    "/admin/activities", response_model=list[ActivityModel], tags=["admin"],
    summary="List user activities, newest first",
)
async def admin_activities(request: Request, _admin: AdminUser) -> list[ActivityModel]:
    return [ActivityModel.from_activity(a) for a in request.app.state.backend.list_activities()]


# ---------------------------------------------------------------------------
# Endpoints: Project
# ---------------------------------------------------------------------------


@router.get("/project", response_model=ProjectResponse, tags=["project"], summary="Current project")
async def get_project(session: CurrentSession) -> ProjectResponse:
    return ProjectResponse.from_session(session)


@router.post(
    "/project/media",
    response_model=ProjectResponse,
    tags=["project"],
    summary="Import a media file, starting a new project",
    responses={400: {"model": ErrorResponse, "description": "Unsupported file type"}},
)
async def upload_media(
    request: Request,
    user: CurrentUser,
    session: CurrentSession,
    file: Annotated[UploadFile, File(description="Audio or video file")],
) -> ProjectResponse:
    # Sanitize filename to prevent path traversal
    filename = Path(file.filename or "upload").name
    ext = Path(filename).suffix.lower()
    if ext not in SUPPORTED_MEDIA_FORMATS:
        raise HTTPException(
            status_code=400,
            detail="Unsupported file type '{}'. Supported formats: {}".format(
                ext, ", ".join(sorted(SUPPORTED_MEDIA_FORMATS))
            ),
        )
    content = await file.read()
    path = request.app.state.registry.media_dir(user.id) / filename
    path.write_bytes(content)
    session.import_media(filename, location=str(path), mime_type=file.content_type, size=len(content))
    return ProjectResponse.from_session(session)


@router.post(
    "/project/transcribe",
    response_model=JobCreatedResponse,
    status_code=202,
    tags=["jobs"],
    summary="Generate subtitles from the imported media",
    responses={
        400: {"model": ErrorResponse, "description": "No media imported"},
        409: {"model": ErrorResponse, "description": "Another operation is running"},
    },
)
async def transcribe(
    request: Request,
    background_tasks: BackgroundTasks,
    session: CurrentSession,
) -> JobCreatedResponse:
    if session.media is None or session.media.location is None:
        raise HTTPException(status_code=400, detail="No media imported")
    media_path = Path(session.media.location)
    extractor: AudioExtractor = request.app.state.audio_extractor
    client_factory = request.app.state.client_factory

    async def operation(claim: Callable[[], bool]) -> dict[str, Any] | None:
        audio, mime_type = await asyncio.to_thread(extractor, media_path)
        async with client_factory() as client:
            if not claim():
                return None
            cues = await session.generate_subtitles(client, audio, mime_type)
        if cues is None:
            return None
        return {"cue_count": len(cues), "language": session.detected_language}

    return _start_job(request, background_tasks, session, JobKind.TRANSCRIBE, operation)


@router.post(
    "/project/translate",
    response_model=JobCreatedResponse,
    status_code=202,
    tags=["jobs"],
    summary="Translate all cues",
    responses={
        400: {"model": ErrorResponse, "description": "No cues to translate"},
        409: {"model": ErrorResponse, "description": "Another operation is running"},
    },
)
async def translate(
    body: TranslateRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    session: CurrentSession,
) -> JobCreatedResponse:
    if not len(session.store):
        raise HTTPException(status_code=400, detail="No subtitles to translate")
    client_factory = request.app.state.client_factory

    async def operation(claim: Callable[[], bool]) -> dict[str, Any] | None:
        async with client_factory() as client:
            if not claim():
                return None
            cues = await session.translate(client, body.target_language)
        if cues is None:
            return None
        return {"cue_count": len(cues), "language": body.target_language}

    return _start_job(
        request, background_tasks, session, JobKind.TRANSLATE, operation,
        config={"target_language": body.target_language},
    )


@router.post(
    "/project/dub",
    response_model=JobCreatedResponse,
    status_code=202,
    tags=["jobs"],
    summary="Generate an AI dub from the cue text",
    responses={409: {"model": ErrorResponse, "description": "Another operation is running"}},
)
async def dub(
    request: Request,
    background_tasks: BackgroundTasks,
    session: CurrentSession,
    body: DubRequest | None = None,
) -> JobCreatedResponse:
    voice = (body.voice if body else None) or DEFAULT_VOICE
    client_factory = request.app.state.client_factory
    store: JobStore = request.app.state.job_store
    job_ref: dict[str, str] = {}

    async def operation(claim: Callable[[], bool]) -> dict[str, Any] | None:
        async with client_factory() as client:
            if not claim():
                return None
            resource = await session.generate_dub(
                client,
                voice=voice,
                on_progress=lambda pct: store.update_job(job_ref["id"], progress=pct),
            )
        if resource is None:
            return None
        return {
            "chunk_count": resource.chunk_count,
            "skipped_chunks": list(resource.skipped_chunks),
            "duration_s": resource.duration_s,
        }

    created = _start_job(
        request, background_tasks, session, JobKind.DUB, operation, config={"voice": voice}
    )
    job_ref["id"] = created.id
    return created


@router.get(
    "/project/dub",
    tags=["project"],
    summary="Download the current AI dub (WAV)",
    responses={404: {"model": ErrorResponse, "description": "No dub generated"}},
)
async def download_dub(session: CurrentSession) -> Response:
    if session.dub is None:
        raise HTTPException(status_code=404, detail="No dub has been generated")
    filename = "{}_dub.wav".format(project_stem(session.project_name))
    return Response(
        content=session.dub.data,
        media_type=session.dub.media_type,
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(filename)},
    )


@router.get(
    "/project/export/{format_key}",
    tags=["project"],
    summary="Download the cues in an export format",
    responses={404: {"model": ErrorResponse, "description": "Unknown format"}},
)
async def export(format_key: str, session: CurrentSession) -> Response:
    try:
        filename, output = session.export(format_key)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return Response(
        content=output.content,
        media_type=output.media_type,
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(filename)},
    )


# ---------------------------------------------------------------------------
# Endpoints: Cue editing
# ---------------------------------------------------------------------------


@router.patch(
    "/project/cues/{cue_id}",
    response_model=CueModel,
    tags=["cues"],
    summary="Edit one cue",
    responses={
        404: {"model": ErrorResponse, "description": "Cue not found"},
        422: {"model": ErrorResponse, "description": "Edit violates cue timing rules"},
    },
)
async def update_cue(cue_id: str, body: CueUpdateRequest, session: CurrentSession) -> CueModel:
    fields = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    commit = fields.pop("commit", False)
    try:
        cue = session.update_cue(cue_id, **fields)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    if cue is None:
        raise CueNotFound(cue_id)
    if commit:
        session.commit_changes()
    return CueModel.from_cue(cue)


@router.delete(
    "/project/cues/{cue_id}",
    status_code=204,
    tags=["cues"],
    summary="Delete one cue (undoable)",
    responses={404: {"model": ErrorResponse, "description": "Cue not found"}},
)
async def delete_cue(cue_id: str, session: CurrentSession) -> Response:
    if not session.delete_cue(cue_id):
        raise CueNotFound(cue_id)
    return Response(status_code=204)


@router.post(
    "/project/cues/{cue_id}/split",
    response_model=list[CueModel],
    tags=["cues"],
    summary="Split one cue into two at a time inside it",
    responses={
        404: {"model": ErrorResponse, "description": "Cue not found"},
        422: {"model": ErrorResponse, "description": "Split time outside the cue"},
    },
)
async def split_cue(cue_id: str, body: SplitRequest, session: CurrentSession) -> list[CueModel]:
    try:
        parts = session.split_cue(cue_id, body.at)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    if parts is None:
        raise CueNotFound(cue_id)
    return [CueModel.from_cue(c) for c in parts]


@router.post(
    "/project/commit", response_model=ProjectResponse, tags=["cues"],
    summary="Record pending cue edits as one undo step",
)
async def commit(session: CurrentSession) -> ProjectResponse:
    session.commit_changes()
    return ProjectResponse.from_session(session)


@router.post(
    "/project/shift", response_model=ProjectResponse, tags=["cues"],
    summary="Shift every cue by an offset in milliseconds",
)
async def shift(body: ShiftRequest, session: CurrentSession) -> ProjectResponse:
    session.shift_all_ms(body.delta_ms)
    return ProjectResponse.from_session(session)


@router.post("/project/undo", response_model=ProjectResponse, tags=["cues"], summary="Undo")
async def undo(session: CurrentSession) -> ProjectResponse:
    session.undo()
    return ProjectResponse.from_session(session)


@router.post("/project/redo", response_model=ProjectResponse, tags=["cues"], summary="Redo")
async def redo(session: CurrentSession) -> ProjectResponse:
    session.redo()
    return ProjectResponse.from_session(session)


@router.post(
    "/project/reset", response_model=ProjectResponse, tags=["project"],
    summary="Discard the project; running operations are superseded",
)
async def reset(session: CurrentSession) -> ProjectResponse:
    session.reset()
    return ProjectResponse.from_session(session)


# ---------------------------------------------------------------------------
# Endpoints: Jobs
# ---------------------------------------------------------------------------


@router.get(
    "/jobs/{job_id}",
    response_model=JobResponse,
    tags=["jobs"],
    summary="Get background job status",
    responses={404: {"model": ErrorResponse, "description": "Job not found"}},
)
async def get_job(job_id: str, request: Request, user: CurrentUser) -> JobResponse:
    job = request.app.state.job_store.get_job(job_id)
    if job is None or job.user_id != user.id:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return JobResponse.from_job(job)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


async def _periodic_cleanup(store: JobStore) -> None:
    """Run job cleanup every 5 minutes."""
    while True:
        await asyncio.sleep(300)
        store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic job cleanup on startup; cancel it and drop media on shutdown."""
    task = asyncio.create_task(_periodic_cleanup(app.state.job_store))
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    app.state.registry.close()


def create_app(
    backend: JsonFileBackend | None = None,
    client_factory: Callable[[], Any] | None = None,
    audio_extractor: AudioExtractor | None = None,
    job_store: JobStore | None = None,
) -> FastAPI:
    """Build the API app.

    Args:
        backend: Accounts and persistence; defaults to JSON files in
            DATA_DIR with the bootstrap admin from the environment.
        client_factory: Zero-argument callable returning an async context
            manager AI client; defaults to GeminiClient.
        audio_extractor: Media path -> (audio bytes, MIME type); defaults
            to the ffmpeg extractor.
        job_store: Background job store; a fresh one by default.
    """
    if backend is None:
        backend = JsonFileBackend(DATA_DIR, bootstrap_admin=load_bootstrap_admin())

    app = FastAPI(
        lifespan=lifespan,
        title="Subtitle Studio API",
        description=(
            "Subtitle authoring API: import media, generate subtitles with "
            "Gemini, edit cues with undo/redo, translate, produce an AI dub "
            "and export SRT or JSON."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.backend = backend
    app.state.registry = SessionRegistry(backend)
    app.state.job_store = job_store or JobStore()
    app.state.client_factory = client_factory or GeminiClient
    app.state.audio_extractor = audio_extractor or extract_audio_for_transcription

    @app.exception_handler(OperationInProgress)
    async def _operation_in_progress(request: Request, exc: OperationInProgress) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(InvalidTransition)
    async def _invalid_transition(request: Request, exc: InvalidTransition) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(CueNotFound)
    async def _cue_not_found(request: Request, exc: CueNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": "Cue not found: {}".format(exc.args[0])})

    app.include_router(router)
    return app


app = create_app()


def run_api():
    """Entry point for the subtitle-studio-api console script."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
