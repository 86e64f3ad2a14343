from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from quizboard.google.workspace import GoogleApiError, GoogleWorkspace, TokenVerifier
from quizboard.models.enums import AUTH_EXPIRED_CODE
from quizboard.storage.events_repository import EventRepository, initialize_supabase


class ApiError(Exception):
    """Turned into an ``{error, code}`` JSON body by the app's exception handler."""

    def __init__(self, status_code: int, error: str, code: Optional[str] = None):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.code = code


def get_bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


@lru_cache
def get_workspace() -> GoogleWorkspace:
    return GoogleWorkspace()


@lru_cache
def get_token_verifier() -> TokenVerifier:
    return TokenVerifier()


async def get_event_repository() -> EventRepository:
    client = await initialize_supabase()
    if client is None:
        raise ApiError(503, "Event storage is not configured")
    return EventRepository(client)


def require_token(token: Optional[str] = Depends(get_bearer_token)) -> str:
    if not token:
        raise ApiError(401, "Unauthorized")
    return token


async def get_current_user(
    token: str = Depends(require_token),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> str:
    """Email of the organizer owning the bearer token."""
    try:
        info = await verifier.token_info(token)
    except GoogleApiError as e:
        raise ApiError(500, str(e))
    if info is None:
        raise ApiError(401, "Google session expired", AUTH_EXPIRED_CODE)
    email = (info.get("email") or "").strip().lower()
    if not email:
        raise ApiError(401, "Unauthorized")
    return email
