"""FastAPI application exposing the FBAR intake backend."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Annotated, Optional, Sequence

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, WebSocket, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import AppConfig, getenv_with_default, load_config
from .currency import CURRENCIES
from .database import SQLiteRepository
from .exceptions import AuthError, FbarIntakeError, ValidationError
from .export import EXCEL_MEDIA_TYPE, EXPORT_FILENAME
from .feed import SubmissionFeed
from .identity import IdentityProvider
from .logging_config import setup_logging
from .models import ACCOUNT_TYPE_LABELS, AdminUser, Submission
from .places import MANUAL_ENTRY_MESSAGE, PlacesClient
from .schemas import (
    AccountOut,
    AccountTypeOut,
    CurrencyOut,
    DraftCreated,
    ExportRequest,
    FormIn,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    PasswordChangeRequest,
    PlaceLookupOut,
    ReferenceOut,
    ResumedDraftOut,
    StatusUpdate,
    SubmissionCreated,
    SubmissionIn,
    SubmissionOut,
)
from .services import DraftService, ReviewService, SubmissionService

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


def _lifespan(config: Optional[AppConfig], configure_logging: bool):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialise shared services once and reuse them across requests."""

        settings = config or load_config()
        if configure_logging:
            setup_logging(settings.log_level, settings.log_format)

        repository = SQLiteRepository(settings.database_file)
        repository.initialise_schema()
        identity = IdentityProvider(repository, session_lifetime=timedelta(hours=settings.session_hours))
        if settings.admin_email and settings.admin_password:
            identity.ensure_admin(settings.admin_email, settings.admin_password)
        feed = SubmissionFeed(repository)

        app.state.config = settings
        app.state.repository = repository
        app.state.identity = identity
        app.state.feed = feed
        app.state.drafts = DraftService(repository, max_attempts=settings.max_code_attempts)
        app.state.submissions = SubmissionService(repository)
        app.state.review = ReviewService(repository)
        app.state.places = PlacesClient(settings)

        yield

        feed.close()
        repository.close()

    return lifespan


def _allowed_origins(config: Optional[AppConfig]) -> list[str]:
    if config is not None:
        return list(config.cors_origins)
    env_val = getenv_with_default("FBAR_CORS_ORIGINS", "*")
    return [origin.strip() for origin in env_val.split(",") if origin.strip()]


def create_app(config: Optional[AppConfig] = None, configure_logging: bool = False) -> FastAPI:
    app = FastAPI(
        lifespan=_lifespan(config, configure_logging),
        title="FBAR intake backend",
        version="0.1.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(config),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(FbarIntakeError, _handle_intake_error)
    app.include_router(public_router)
    app.include_router(admin_router)
    return app


async def _handle_intake_error(_: Request, exc: FbarIntakeError) -> JSONResponse:
    payload: dict[str, object] = {"detail": str(exc), "code": exc.code}
    if isinstance(exc, ValidationError) and exc.field:
        payload["field"] = exc.field
    return JSONResponse(status_code=exc.status_code, content=payload)


# Dependency injection ------------------------------------------------------

def get_draft_service(request: Request) -> DraftService:
    return request.app.state.drafts


def get_submission_service(request: Request) -> SubmissionService:
    return request.app.state.submissions


def get_review_service(request: Request) -> ReviewService:
    return request.app.state.review


def get_places_client(request: Request) -> PlacesClient:
    return request.app.state.places


def get_identity(request: Request) -> IdentityProvider:
    return request.app.state.identity


def get_token(credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(_bearer)]) -> str:
    if credentials is None or not credentials.credentials:
        raise AuthError("session-expired")
    return credentials.credentials


def get_current_admin(
    token: Annotated[str, Depends(get_token)],
    identity: Annotated[IdentityProvider, Depends(get_identity)],
) -> AdminUser:
    return identity.authenticate(token)


def _serialise(submissions: Sequence[Submission]) -> list[dict[str, object]]:
    return [SubmissionOut.from_model(submission).model_dump(mode="json", by_alias=True) for submission in submissions]


# Public routes -------------------------------------------------------------

public_router = APIRouter(tags=["intake"])


@public_router.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Return a basic heartbeat payload for monitoring purposes."""

    return HealthResponse(status="ok")


@public_router.get("/reference", response_model=ReferenceOut)
def reference_data() -> ReferenceOut:
    """Currencies and account types offered by the form."""

    return ReferenceOut(
        currencies=[CurrencyOut(code=c.code, name=c.name, rate=c.rate) for c in CURRENCIES],
        account_types=[
            AccountTypeOut(value=account_type.value, label=label, description=description)
            for account_type, (label, description) in ACCOUNT_TYPE_LABELS.items()
        ],
    )


@public_router.get("/places/lookup", response_model=PlaceLookupOut)
def lookup_place(
    q: Annotated[str, Query(min_length=1, max_length=256)],
    places: Annotated[PlacesClient, Depends(get_places_client)],
) -> PlaceLookupOut:
    suggestion = places.lookup(q)
    if suggestion is None:
        return PlaceLookupOut(available=places.available, message=MANUAL_ENTRY_MESSAGE)
    return PlaceLookupOut(
        available=True,
        name=suggestion.name,
        formatted_address=suggestion.formatted_address,
    )


@public_router.post("/drafts", response_model=DraftCreated, status_code=status.HTTP_201_CREATED)
def save_draft(
    payload: FormIn,
    drafts: Annotated[DraftService, Depends(get_draft_service)],
) -> DraftCreated:
    code = drafts.create_draft(payload.to_form())
    return DraftCreated(resume_code=code)


@public_router.get("/drafts/{resume_code}", response_model=ResumedDraftOut)
def resume_draft(
    resume_code: str,
    drafts: Annotated[DraftService, Depends(get_draft_service)],
) -> ResumedDraftOut:
    resumed = drafts.resume_draft(resume_code)
    return ResumedDraftOut(
        draft_id=resumed.draft_id,
        company_name=resumed.form.company_name,
        accounts=[AccountOut.from_model(account) for account in resumed.form.accounts],
    )


@public_router.post("/submissions", response_model=SubmissionCreated, status_code=status.HTTP_201_CREATED)
def submit_form(
    payload: SubmissionIn,
    submissions: Annotated[SubmissionService, Depends(get_submission_service)],
) -> SubmissionCreated:
    submission = submissions.submit(payload.to_form(), draft_id=payload.draft_id)
    return SubmissionCreated(id=submission.id)


# Admin routes --------------------------------------------------------------

admin_router = APIRouter(prefix="/admin", tags=["admin"])


@admin_router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    identity: Annotated[IdentityProvider, Depends(get_identity)],
) -> LoginResponse:
    session = identity.sign_in(payload.email, payload.password)
    return LoginResponse(access_token=session.token, email=session.email, expires_at=session.expires_at)


@admin_router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    token: Annotated[str, Depends(get_token)],
    identity: Annotated[IdentityProvider, Depends(get_identity)],
) -> Response:
    identity.sign_out(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin_router.post("/password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    payload: PasswordChangeRequest,
    token: Annotated[str, Depends(get_token)],
    identity: Annotated[IdentityProvider, Depends(get_identity)],
) -> Response:
    identity.change_password(token, payload.current_password, payload.new_password, payload.confirm_password)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin_router.get("/submissions", response_model=list[SubmissionOut])
def list_submissions(
    _: Annotated[AdminUser, Depends(get_current_admin)],
    review: Annotated[ReviewService, Depends(get_review_service)],
    q: Annotated[str, Query(max_length=256)] = "",
) -> list[SubmissionOut]:
    return [SubmissionOut.from_model(submission) for submission in review.list_submissions(q)]


@admin_router.patch("/submissions/{submission_id}/status", response_model=SubmissionOut)
def update_status(
    submission_id: str,
    payload: StatusUpdate,
    _: Annotated[AdminUser, Depends(get_current_admin)],
    review: Annotated[ReviewService, Depends(get_review_service)],
) -> SubmissionOut:
    return SubmissionOut.from_model(review.set_status(submission_id, payload.status))


@admin_router.delete("/submissions/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_submission(
    submission_id: str,
    _: Annotated[AdminUser, Depends(get_current_admin)],
    review: Annotated[ReviewService, Depends(get_review_service)],
    confirm: Annotated[bool, Query()] = False,
) -> Response:
    review.delete_submission(submission_id, confirmed=confirm)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin_router.post("/export")
def export_submissions(
    payload: ExportRequest,
    _: Annotated[AdminUser, Depends(get_current_admin)],
    review: Annotated[ReviewService, Depends(get_review_service)],
) -> Response:
    content = review.export(payload.ids)
    return Response(
        content=content,
        media_type=EXCEL_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


@admin_router.websocket("/submissions/stream")
async def stream_submissions(websocket: WebSocket, token: str = "") -> None:
    """Push the full submission list on connect and after every change."""

    identity: IdentityProvider = websocket.app.state.identity
    feed: SubmissionFeed = websocket.app.state.feed
    try:
        await run_in_threadpool(identity.authenticate, token)
    except AuthError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    await relay_snapshots(websocket, feed)


async def relay_snapshots(websocket: WebSocket, feed: SubmissionFeed) -> None:
    """Forward feed snapshots to an accepted ``websocket`` until either side stops.

    The relay ends when the client disconnects or a send fails. Both loops are
    awaited before returning and the feed subscription is always released.
    """

    loop = asyncio.get_running_loop()
    snapshots: asyncio.Queue[Sequence[Submission]] = asyncio.Queue()
    subscription = await run_in_threadpool(
        feed.subscribe,
        lambda snapshot: loop.call_soon_threadsafe(snapshots.put_nowait, snapshot),
    )

    async def _pump() -> None:
        while True:
            snapshot = await snapshots.get()
            await websocket.send_json({"submissions": _serialise(snapshot)})

    async def _receive() -> None:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    tasks = (asyncio.create_task(_pump()), asyncio.create_task(_receive()))
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        subscription.unsubscribe()
        for task in tasks:
            task.cancel()
        for result in await asyncio.gather(*tasks, return_exceptions=True):
            if isinstance(result, Exception):
                logger.warning("Submission stream closed after error: %s", result)


app = create_app(configure_logging=True)
