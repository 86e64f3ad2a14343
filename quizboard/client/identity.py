import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Union

from loguru import logger

from quizboard.client.errors import QuizboardError
from quizboard.client.scores_client import ScoresClient
from quizboard.models.api import SessionUser
from quizboard.models.enums import AuthStatus

AuthListener = Callable[[AuthStatus], None]
TokenReader = Callable[[], Optional[str]]


class IdentityProvider(Protocol):
    """Session of the signed-in organizer, as seen by the fetch machine."""

    @property
    def status(self) -> AuthStatus: ...

    @property
    def access_token(self) -> Optional[str]: ...

    def sign_in(self, access_token: str) -> None: ...

    def sign_out(self) -> None: ...

    def subscribe(self, listener: AuthListener) -> Callable[[], None]: ...


class TokenIdentityProvider:
    """Holds a Google OAuth access token in memory and tracks its status.

    The OAuth consent flow happens elsewhere (browser, gcloud, ...); this
    object only receives the resulting token. ``refresh()`` asks the API's
    session-status endpoint whether the token is still accepted. A token that
    can be checked starts out LOADING until the first ``refresh()``; later
    checks keep the status AUTHENTICATED while they wait for the answer.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        scores_client: Optional[ScoresClient] = None,
    ):
        self._access_token = access_token or None
        self._scores_client = scores_client
        if self._access_token is None:
            self._status = AuthStatus.UNAUTHENTICATED
        elif scores_client is not None:
            self._status = AuthStatus.LOADING
        else:
            self._status = AuthStatus.AUTHENTICATED
        self._listeners: List[AuthListener] = []
        self.user: Optional[SessionUser] = None
        self.rejected_token: Optional[str] = None

    @property
    def status(self) -> AuthStatus:
        return self._status

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_status(self, status: AuthStatus, force: bool = False) -> None:
        if status == self._status and not force:
            return
        logger.info(f"Identity status changed: {self._status.value} -> {status.value}")
        self._status = status
        for listener in list(self._listeners):
            listener(status)

    def sign_in(self, access_token: str) -> None:
        self._access_token = access_token
        # A new token is a new session even if the old one still looked valid
        self._set_status(AuthStatus.AUTHENTICATED, force=True)

    def sign_out(self) -> None:
        self._access_token = None
        self.user = None
        self._set_status(AuthStatus.UNAUTHENTICATED)

    async def refresh(self) -> AuthStatus:
        """Re-validates the current token against /api/session-status."""
        if self._scores_client is None or self._access_token is None:
            return self._status

        token = self._access_token
        try:
            session = await self._scores_client.session_status(token)
        except QuizboardError as e:
            # Unknown is not the same as rejected: keep the token for the next try
            logger.warning(f"Could not verify session status: {e}")
            self._set_status(AuthStatus.AUTHENTICATED)
            return self._status

        if session.authenticated:
            self.user = session.user
            self._set_status(AuthStatus.AUTHENTICATED)
        else:
            logger.warning(f"Session rejected by API (code={session.code}).")
            self.rejected_token = token
            self.sign_out()
        return self._status


def token_file_reader(path: Union[str, Path]) -> TokenReader:
    """Reads the current access token from a file some other tool keeps fresh."""
    path = Path(path)

    def read() -> Optional[str]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                token = f.read().strip()
        except OSError as e:
            logger.warning(f"Could not read access token file {path}: {e}")
            return None
        return token or None

    return read


async def revalidate_session(
    identity: TokenIdentityProvider, read_token: Optional[TokenReader] = None
) -> AuthStatus:
    """Signs in with a rotated token when one shows up, else re-checks the current one."""
    token = read_token() if read_token else None
    if token and token not in (identity.access_token, identity.rejected_token):
        logger.info("Picked up a new access token; starting a new session.")
        identity.sign_in(token)
        return identity.status
    return await identity.refresh()


async def keep_session_fresh(
    identity: TokenIdentityProvider,
    interval: float,
    read_token: Optional[TokenReader] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> None:
    """Re-validates the session every ``interval`` seconds until cancelled."""
    logger.debug(f"Re-validating session every {interval}s.")
    while True:
        await sleep(interval)
        await revalidate_session(identity, read_token)
