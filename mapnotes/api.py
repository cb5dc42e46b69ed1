"""FastAPI application exposing login and annotation routes."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import Settings, get_settings
from .persistence import DocumentStore, StoreError
from .schemas import Annotation, AnnotationPayload, LoginPayload, SuccessResponse
from .security import verify_password
from .sessions import SessionIdentity, SessionRegistry

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "sessionId"

# Unparseable request bodies answer the same way as a payload that fails validation.
_BODY_ERRORS = {
    "/api/login": (status.HTTP_401_UNAUTHORIZED, "Invalid credentials"),
    "/api/annotations": (status.HTTP_400_BAD_REQUEST, "Invalid annotation data"),
}


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_user(
    request: Request, sessions: SessionRegistry = Depends(get_sessions)
) -> SessionIdentity:
    """Dependency: resolve the ``sessionId`` cookie or reject with 401."""

    identity = sessions.resolve(request.cookies.get(SESSION_COOKIE_NAME))
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return identity


def _set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


def _clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


def login(
    response: Response,
    body: Any = Body(None),
    store: DocumentStore = Depends(get_store),
    sessions: SessionRegistry = Depends(get_sessions),
    settings: Settings = Depends(get_app_settings),
) -> SuccessResponse:
    """Check credentials and issue a session cookie."""

    invalid = HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    try:
        payload = LoginPayload.model_validate(body)
    except ValidationError:
        raise invalid

    user = store.find_user(payload.username)
    if user is None or not verify_password(payload.password, user.get("password", "")):
        logger.info("Rejected login for %r", payload.username)
        raise invalid

    sessions.purge_expired()
    token = sessions.create(user["id"], user["username"])
    _set_session_cookie(response, token, settings)
    logger.info("User %r logged in", user["username"])
    return SuccessResponse()


def logout(
    request: Request,
    response: Response,
    sessions: SessionRegistry = Depends(get_sessions),
    settings: Settings = Depends(get_app_settings),
) -> SuccessResponse:
    """Forget the caller's session. Safe to call without one."""

    sessions.destroy(request.cookies.get(SESSION_COOKIE_NAME))
    _clear_session_cookie(response, settings)
    return SuccessResponse()


def list_annotations(
    user: SessionIdentity = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> list[dict]:
    return store.annotations_for(user.id)


def create_annotation(
    body: Any = Body(None),
    user: SessionIdentity = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
) -> dict:
    """Store a new annotation for the caller; text beyond 255 chars is dropped."""

    try:
        payload = AnnotationPayload.model_validate(body)
    except ValidationError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid annotation data")

    try:
        annotation = store.add_annotation(payload.text, payload.x, payload.y, user.id)
    except StoreError:
        logger.exception("Error saving annotation")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save annotation"
        )
    logger.info("User %r created annotation %s", user.username, annotation["id"])
    return annotation


def delete_annotation(
    annotation_id: str,
    user: SessionIdentity = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    # Ownership is only checked when explicitly enabled.
    owner_id = user.id if settings.restrict_delete_to_owner else None
    try:
        removed = store.delete_annotation(annotation_id, owner_id=owner_id)
    except StoreError:
        logger.exception("Error deleting annotation")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete annotation"
        )
    if removed is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Annotation not found")
    logger.info("User %r deleted annotation %s", user.username, annotation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    status_code, message = _BODY_ERRORS.get(
        request.url.path, (status.HTTP_400_BAD_REQUEST, "Invalid request")
    )
    logger.debug("Rejected request body on %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=status_code, content={"error": message})


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Internal Server Error"}
    )


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    sessions: Optional[SessionRegistry] = None,
) -> FastAPI:
    """Build the application and open the store.

    Raises :class:`StoreError` when the store document cannot be prepared.
    """

    settings = settings or get_settings()
    if store is None:
        store = DocumentStore(
            settings.data_file,
            admin_password=settings.admin_password,
            bcrypt_rounds=settings.bcrypt_rounds,
        )
    if sessions is None:
        sessions = SessionRegistry(ttl_seconds=settings.session_ttl_seconds)

    app = FastAPI(title="Map Notes", version=__version__)
    app.state.settings = settings
    app.state.store = store
    app.state.sessions = sessions

    app.add_api_route("/api/login", login, methods=["POST"], response_model=SuccessResponse)
    app.add_api_route("/api/logout", logout, methods=["POST"], response_model=SuccessResponse)
    app.add_api_route(
        "/api/annotations", list_annotations, methods=["GET"], response_model=list[Annotation]
    )
    app.add_api_route(
        "/api/annotations", create_annotation, methods=["POST"], response_model=Annotation
    )
    app.add_api_route(
        "/api/annotations/{annotation_id}",
        delete_annotation,
        methods=["DELETE"],
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
    )

    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)

    if settings.public_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(settings.public_dir), html=True), name="public")

    return app
