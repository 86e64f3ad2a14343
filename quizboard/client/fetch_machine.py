"""
Fetch cycle for the live scoreboard, as an explicit state machine.

States (FetchState): idle -> loading -> success | auth_error | transient_error.
Every change goes through ``dispatch()`` with a FetchEvent; the poll timer and
the retry backoff are side effects started or cancelled by transitions.

    - UserRequestedLoad  starts a cycle, superseding any cycle in flight.
    - TimerFired         starts a cycle unless one is running, the session is
                         known to be bad, or no sheet is loaded yet.
    - FetchSucceeded     stores the grid, parses teams, persists the sheet id.
    - FetchFailed(auth)  auth_error; the poll timer stops until re-auth.
    - FetchFailed(transient)
                         only after the backoff retries (2s, 4s, 8s) are
                         used up; the poll timer stops until a manual load.
    - AuthStatusChanged  re-auth clears auth_error and reloads; losing the
                         session cancels everything.

Results of a superseded cycle are dropped by comparing generations.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, computed_field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from quizboard.client.errors import (
    AuthenticationError,
    SheetIdValidationError,
    TransientFetchError,
)
from quizboard.client.identity import IdentityProvider
from quizboard.client.scores_client import ScoresClient
from quizboard.client.state_store import SheetIdStore
from quizboard.config.settings import settings
from quizboard.models.enums import (
    AUTH_EXPIRED_CODE,
    AuthStatus,
    FailureKind,
    FetchEventKind,
    FetchState,
)
from quizboard.models.team import Team
from quizboard.parsing.sheet_id import extract_sheet_id
from quizboard.parsing.sheet_parser import parse_sheet_data

INVALID_SHEET_MESSAGE = "Invalid Google Sheets URL or ID"
SIGN_IN_MESSAGE = "Please sign in with Google to load scores."
SESSION_EXPIRED_MESSAGE = "Your Google session has expired. Please sign in again."

SleepFn = Callable[[float], Awaitable[Any]]


def validate_sheet_reference(url_or_id: Optional[str]) -> str:
    sheet_id = extract_sheet_id(url_or_id)
    if not sheet_id:
        raise SheetIdValidationError(INVALID_SHEET_MESSAGE)
    return sheet_id


class FetchEvent(BaseModel):
    """A discrete input to the fetch state machine."""

    model_config = ConfigDict(frozen=True)

    kind: FetchEventKind
    generation: int = 0
    sheet_id: Optional[str] = None
    grid: Optional[List[List[str]]] = None
    failure: Optional[FailureKind] = None
    message: Optional[str] = None
    auth_status: Optional[AuthStatus] = None


class FetchSnapshot(BaseModel):
    """What the presentation layer needs to render one frame."""

    model_config = ConfigDict(frozen=True)

    state: FetchState
    sheet_id: Optional[str] = None
    teams: List[Team] = []
    error: Optional[str] = None
    retry_count: int = 0

    @computed_field  # type: ignore[misc]
    @property
    def loading(self) -> bool:
        return self.state is FetchState.LOADING

    @computed_field  # type: ignore[misc]
    @property
    def auth_error(self) -> bool:
        return self.state is FetchState.AUTH_ERROR


SnapshotListener = Callable[[FetchSnapshot], None]


class FetchMachine:
    """Owns when the sheet grid is fetched, retried, and re-fetched."""

    def __init__(
        self,
        client: ScoresClient,
        identity: IdentityProvider,
        store: SheetIdStore,
        poll_interval: Optional[float] = None,
        max_retries: Optional[int] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.client = client
        self.identity = identity
        self.store = store
        self.poll_interval = (
            settings.poll_interval_seconds if poll_interval is None else poll_interval
        )
        self.max_retries = settings.max_fetch_retries if max_retries is None else max_retries
        self._sleep = sleep

        self.state = FetchState.IDLE
        self.sheet_id: Optional[str] = None
        self.grid: List[List[str]] = []
        self.teams: List[Team] = []
        self.error: Optional[str] = None
        self.retry_count = 0

        self._generation = 0
        self._cycle_task: Optional[asyncio.Task] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._listeners: List[SnapshotListener] = []
        self._unsubscribe_identity = identity.subscribe(self.on_auth_status_changed)

    # --- Observers ---

    def snapshot(self) -> FetchSnapshot:
        return FetchSnapshot(
            state=self.state,
            sheet_id=self.sheet_id,
            teams=self.teams,
            error=self.error,
            retry_count=self.retry_count,
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    @property
    def current_cycle(self) -> Optional[asyncio.Task]:
        return self._cycle_task

    @property
    def in_flight(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    @property
    def polling(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    # --- Public API ---

    async def start(self) -> None:
        """Restores the last sheet from the persisted state and starts polling."""
        restored = self.store.load() if self.sheet_id is None else None
        if restored:
            logger.info(f"Restoring sheet {restored} from persisted state.")
            self.request_load(restored)
        self._start_timer()

    def request_load(self, url_or_id: str) -> Optional[asyncio.Task]:
        """Starts a fetch cycle for a pasted URL or id. Returns the cycle task."""
        try:
            sheet_id = validate_sheet_reference(url_or_id)
        except SheetIdValidationError as e:
            logger.warning(f"Rejected sheet reference {url_or_id!r}: {e}")
            self.error = str(e)
            self._notify()
            return None
        return self.dispatch(
            FetchEvent(kind=FetchEventKind.USER_REQUESTED_LOAD, sheet_id=sheet_id)
        )

    async def load(self, url_or_id: str) -> FetchSnapshot:
        """Like request_load, but waits for the cycle to settle."""
        task = self.request_load(url_or_id)
        if task is not None:
            await asyncio.wait({task})
            # A cancelled task was superseded; the newer cycle owns the state
            if not task.cancelled():
                task.result()
        return self.snapshot()

    def on_auth_status_changed(self, status: AuthStatus) -> None:
        self.dispatch(FetchEvent(kind=FetchEventKind.AUTH_STATUS_CHANGED, auth_status=status))

    async def stop(self) -> None:
        """Cancels the poll timer and any fetch in flight."""
        self._unsubscribe_identity()
        tasks = [task for task in (self._timer_task, self._cycle_task) if task is not None]
        self._stop_timer()
        self._cancel_cycle()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Fetch machine stopped.")

    # --- Transitions ---

    def dispatch(self, event: FetchEvent) -> Optional[asyncio.Task]:
        """Applies one event. Returns the new cycle task when one was started."""
        logger.debug(f"Fetch event {event.kind.value} in state {self.state.value}")

        if event.kind is FetchEventKind.USER_REQUESTED_LOAD:
            self._start_timer()
            return self._begin_cycle(event.sheet_id)

        if event.kind is FetchEventKind.TIMER_FIRED:
            if self.in_flight or not self.sheet_id or self.state is FetchState.AUTH_ERROR:
                logger.debug("Timer fired but no fetch is due.")
                return None
            return self._begin_cycle(self.sheet_id)

        if event.kind is FetchEventKind.AUTH_STATUS_CHANGED:
            return self._on_auth_event(event.auth_status)

        if event.generation != self._generation:
            logger.debug(
                f"Dropping stale {event.kind.value} from cycle {event.generation} "
                f"(current {self._generation})."
            )
            return None

        if event.kind is FetchEventKind.FETCH_SUCCEEDED:
            self.grid = event.grid or []
            self.teams = parse_sheet_data(self.grid)
            self.sheet_id = event.sheet_id
            self.error = None
            self.retry_count = 0
            self.state = FetchState.SUCCESS
            self.store.save(event.sheet_id)
            logger.success(f"Loaded sheet {event.sheet_id}: {len(self.teams)} teams.")
        elif event.failure is FailureKind.AUTH:
            self.state = FetchState.AUTH_ERROR
            self.error = event.message or SIGN_IN_MESSAGE
            self._stop_timer()
            logger.warning(f"Fetch stopped on authentication error: {self.error}")
        else:
            self.state = FetchState.TRANSIENT_ERROR
            self.error = event.message
            self._stop_timer()
            logger.error(
                f"Fetch for sheet {event.sheet_id} failed after {self.retry_count} retries: {self.error}"
            )
        self._notify()
        return None

    def _on_auth_event(self, status: Optional[AuthStatus]) -> Optional[asyncio.Task]:
        if status is AuthStatus.AUTHENTICATED and self.state is FetchState.AUTH_ERROR:
            logger.info("Session restored; clearing authentication error.")
            self.error = None
            self.state = FetchState.IDLE
            self._notify()
            self._start_timer()
            if self.sheet_id:
                return self._begin_cycle(self.sheet_id)
            return None

        if status is AuthStatus.UNAUTHENTICATED and self.state is not FetchState.AUTH_ERROR:
            logger.warning("Session lost; cancelling fetches.")
            self._generation += 1
            self._cancel_cycle()
            self._stop_timer()
            self.state = FetchState.AUTH_ERROR
            self.error = SIGN_IN_MESSAGE
            self._notify()
        return None

    # --- Side effects ---

    def _begin_cycle(self, sheet_id: str) -> asyncio.Task:
        self._cancel_cycle()
        self._generation += 1
        self.sheet_id = sheet_id
        self.retry_count = 0
        self._enter_loading()
        self._cycle_task = asyncio.create_task(self._run_cycle(self._generation, sheet_id))
        return self._cycle_task

    def _enter_loading(self) -> None:
        self.state = FetchState.LOADING
        self.error = None
        self._notify()

    def _cancel_cycle(self) -> None:
        task = self._cycle_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _retrying(self, generation: int) -> AsyncRetrying:
        def before_sleep(retry_state: RetryCallState) -> None:
            if generation != self._generation:
                return
            self.retry_count = retry_state.attempt_number
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            self.state = FetchState.TRANSIENT_ERROR
            self.error = f"{exc} (retry {self.retry_count}/{self.max_retries} in {delay:.0f}s)"
            logger.warning(f"Fetch attempt {self.retry_count} failed: {exc}. Retrying in {delay:.0f}s.")
            self._notify()

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            # 2s, 4s, 8s: delay = 2 ** attempt
            wait=wait_exponential(multiplier=2, exp_base=2),
            retry=retry_if_exception_type(TransientFetchError),
            before_sleep=before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

    async def _run_cycle(self, generation: int, sheet_id: str) -> None:
        def failed(kind: FailureKind, message: str) -> None:
            self.dispatch(
                FetchEvent(
                    kind=FetchEventKind.FETCH_FAILED,
                    generation=generation,
                    sheet_id=sheet_id,
                    failure=kind,
                    message=message,
                )
            )

        if self.identity.status is not AuthStatus.AUTHENTICATED:
            failed(FailureKind.AUTH, SIGN_IN_MESSAGE)
            return

        try:
            async for attempt in self._retrying(generation):
                with attempt:
                    if attempt.retry_state.attempt_number > 1 and generation == self._generation:
                        self._enter_loading()
                    grid = await self.client.fetch_grid(sheet_id, self.identity.access_token)
        except AuthenticationError as e:
            message = SESSION_EXPIRED_MESSAGE if e.code == AUTH_EXPIRED_CODE else SIGN_IN_MESSAGE
            failed(FailureKind.AUTH, message)
            return
        except TransientFetchError as e:
            failed(FailureKind.TRANSIENT, str(e))
            return

        self.dispatch(
            FetchEvent(
                kind=FetchEventKind.FETCH_SUCCEEDED,
                generation=generation,
                sheet_id=sheet_id,
                grid=grid,
            )
        )

    def _start_timer(self) -> None:
        if self.polling:
            return
        self._timer_task = asyncio.create_task(self._poll_loop())

    def _stop_timer(self) -> None:
        task = self._timer_task
        self._timer_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _poll_loop(self) -> None:
        logger.debug(f"Polling every {self.poll_interval}s.")
        while True:
            await asyncio.sleep(self.poll_interval)
            self.dispatch(FetchEvent(kind=FetchEventKind.TIMER_FIRED))
