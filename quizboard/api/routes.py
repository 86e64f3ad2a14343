import asyncio
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from loguru import logger

from quizboard.api.deps import (
    ApiError,
    get_bearer_token,
    get_current_user,
    get_event_repository,
    get_token_verifier,
    get_workspace,
    require_token,
)
from quizboard.google.workspace import (
    GoogleAccessDeniedError,
    GoogleApiError,
    GoogleAuthError,
    GoogleWorkspace,
    TokenVerifier,
)
from quizboard.models.api import (
    CreateEventRequest,
    CreateEventResponse,
    EventRecord,
    EventsResponse,
    ScoresResponse,
    SelectEventRequest,
    SessionStatus,
    SessionUser,
)
from quizboard.models.enums import AUTH_EXPIRED_CODE
from quizboard.parsing.sheet_id import extract_sheet_id
from quizboard.storage.events_repository import EventRepository, EventStorageError

router = APIRouter(prefix="/api")


def _session_response(status_code: int, status: SessionStatus) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content=status.model_dump(by_alias=True, exclude_none=True)
    )


@router.get("/scores", response_model=ScoresResponse)
async def get_scores(
    sheet_id: Optional[str] = Query(None, alias="sheetId"),
    token: Optional[str] = Depends(get_bearer_token),
    workspace: GoogleWorkspace = Depends(get_workspace),
):
    """Raw cell grid of the scoresheet."""
    resolved = extract_sheet_id(sheet_id)
    if not resolved:
        raise ApiError(400, "Missing or invalid sheetId")
    if not token and not workspace.service_account_file:
        raise ApiError(401, "Unauthorized")

    try:
        values = await asyncio.to_thread(workspace.read_values, resolved, token)
    except GoogleAuthError as e:
        raise ApiError(401, str(e), AUTH_EXPIRED_CODE)
    except GoogleAccessDeniedError as e:
        raise ApiError(403, str(e))
    except GoogleApiError as e:
        raise ApiError(500, str(e))
    return ScoresResponse(data=values)


@router.get("/session-status", response_model=SessionStatus, response_model_exclude_none=True)
async def session_status(
    token: Optional[str] = Depends(get_bearer_token),
    verifier: TokenVerifier = Depends(get_token_verifier),
):
    if not token:
        return _session_response(401, SessionStatus(authenticated=False))
    try:
        info = await verifier.token_info(token)
    except GoogleApiError as e:
        logger.error(f"Session check failed: {e}")
        return _session_response(500, SessionStatus(authenticated=False))
    if info is None:
        return _session_response(
            401, SessionStatus(authenticated=False, code=AUTH_EXPIRED_CODE)
        )
    return SessionStatus(
        authenticated=True,
        user=SessionUser(name=info.get("name"), email=info.get("email")),
    )


@router.get("/events", response_model=EventsResponse, response_model_by_alias=True)
async def list_events(
    user: str = Depends(get_current_user),
    token: str = Depends(require_token),
    repository: EventRepository = Depends(get_event_repository),
    workspace: GoogleWorkspace = Depends(get_workspace),
):
    """The organizer's events whose sheets still exist, plus the active sheet."""
    try:
        events = await repository.list_events(user)
        active_sheet_id = await repository.get_active_sheet(user)
    except EventStorageError as e:
        raise ApiError(500, str(e))

    available = []
    for event in events:
        try:
            exists = await asyncio.to_thread(workspace.file_exists, event.sheet_id, token)
        except GoogleAuthError as e:
            raise ApiError(401, str(e), AUTH_EXPIRED_CODE)
        if exists:
            available.append(event)
        else:
            logger.info(f"Hiding event {event.sheet_id}: sheet deleted or inaccessible.")
    return EventsResponse(events=available, active_sheet_id=active_sheet_id)


@router.post("/events")
async def select_event(
    request: SelectEventRequest,
    user: str = Depends(get_current_user),
    repository: EventRepository = Depends(get_event_repository),
) -> Dict[str, Any]:
    """Marks one of the organizer's sheets as the active event."""
    try:
        await repository.set_active_sheet(user, request.sheet_id)
    except EventStorageError as e:
        raise ApiError(500, str(e))
    return {"ok": True}


@router.post("/events/create", response_model=CreateEventResponse, response_model_by_alias=True)
async def create_event(
    request: CreateEventRequest,
    user: str = Depends(get_current_user),
    token: str = Depends(require_token),
    repository: EventRepository = Depends(get_event_repository),
    workspace: GoogleWorkspace = Depends(get_workspace),
):
    """Creates a scorecard spreadsheet from the template and records the event."""
    sheet_name = (request.sheet_name or "").strip()
    if not sheet_name:
        raise ApiError(400, "Missing sheetName")

    try:
        sheet_id, url = await asyncio.to_thread(workspace.create_scorecard, sheet_name, token)
        await repository.add_event(
            EventRecord(user=user, sheet_id=sheet_id, sheet_url=url, name=sheet_name)
        )
    except GoogleAuthError as e:
        raise ApiError(401, str(e), AUTH_EXPIRED_CODE)
    except GoogleAccessDeniedError as e:
        raise ApiError(403, str(e))
    except (GoogleApiError, EventStorageError) as e:
        logger.error(f"Error creating event {sheet_name!r}: {e}")
        raise ApiError(500, str(e) or "Failed to create event")
    return CreateEventResponse(sheet_id=sheet_id, sheet_url=url)
