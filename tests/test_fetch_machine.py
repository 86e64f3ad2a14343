import asyncio
from typing import Dict, List

import pytest

from quizboard.client.errors import (
    AuthenticationError,
    SheetIdValidationError,
    TransientFetchError,
)
from quizboard.client.fetch_machine import (
    INVALID_SHEET_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    SIGN_IN_MESSAGE,
    FetchEvent,
    FetchMachine,
    validate_sheet_reference,
)
from quizboard.client.identity import TokenIdentityProvider, revalidate_session
from quizboard.client.state_store import MemorySheetIdStore
from quizboard.models.enums import FetchEventKind, FetchState

GRID = [
    ["Team Names", "A", "B", "C", "D"],
    ["Team Number"],
    ["1", "1", "0", "1", "1"],
    ["Final Score", "1", "0", "1", "1"],
]


class FakeScoresClient:
    """Plays back a script of grids / exceptions, one per call."""

    def __init__(self, *script):
        self.script = list(script)
        self.calls: List[Dict[str, str]] = []
        self.gates: Dict[str, asyncio.Event] = {}

    async def fetch_grid(self, sheet_id, access_token):
        self.calls.append({"sheet_id": sheet_id, "token": access_token})
        if sheet_id in self.gates:
            await self.gates[sheet_id].wait()
        outcome = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def identity():
    return TokenIdentityProvider("token-1")


@pytest.fixture
def store():
    return MemorySheetIdStore()


def make_machine(client, identity, store, sleep, poll_interval=3600.0) -> FetchMachine:
    return FetchMachine(client, identity, store, poll_interval=poll_interval, max_retries=3, sleep=sleep)


async def settle(machine: FetchMachine) -> None:
    while machine.in_flight:
        await asyncio.wait({machine.current_cycle})


async def test_successful_load_parses_and_persists(identity, store, sleep):
    client = FakeScoresClient(GRID)
    machine = make_machine(client, identity, store, sleep)

    snapshot = await machine.load("https://docs.google.com/spreadsheets/d/sheet-1/edit")

    assert snapshot.state is FetchState.SUCCESS
    assert [t.name for t in snapshot.teams] == ["A", "B", "C", "D"]
    assert snapshot.error is None
    assert store.load() == "sheet-1"
    assert client.calls == [{"sheet_id": "sheet-1", "token": "token-1"}]
    assert machine.polling
    await machine.stop()
    assert not machine.polling


async def test_invalid_sheet_reference_never_reaches_network(identity, store, sleep):
    client = FakeScoresClient(GRID)
    machine = make_machine(client, identity, store, sleep)

    snapshot = await machine.load("https://example.com/some/page")

    assert snapshot.error == INVALID_SHEET_MESSAGE
    assert snapshot.state is FetchState.IDLE
    assert client.calls == []
    await machine.stop()


async def test_unauthenticated_session_skips_fetch(store, sleep):
    client = FakeScoresClient(GRID)
    machine = make_machine(client, TokenIdentityProvider(), store, sleep)

    snapshot = await machine.load("sheet-1")

    assert snapshot.state is FetchState.AUTH_ERROR
    assert snapshot.auth_error
    assert snapshot.error == SIGN_IN_MESSAGE
    assert client.calls == []
    assert not machine.polling
    await machine.stop()


async def test_expired_session_stops_polling_until_reauth(identity, store, sleep):
    client = FakeScoresClient(AuthenticationError("expired", code="AUTH_EXPIRED"), GRID)
    machine = make_machine(client, identity, store, sleep)

    snapshot = await machine.load("sheet-1")

    assert snapshot.state is FetchState.AUTH_ERROR
    assert snapshot.error == SESSION_EXPIRED_MESSAGE
    assert not machine.polling
    assert sleep.delays == []  # auth failures are not retried

    # Timer ticks are ignored while the session is known to be bad
    assert machine.dispatch(FetchEvent(kind=FetchEventKind.TIMER_FIRED)) is None
    assert len(client.calls) == 1

    identity.sign_in("token-2")
    await settle(machine)

    assert machine.state is FetchState.SUCCESS
    assert machine.error is None
    assert client.calls[-1] == {"sheet_id": "sheet-1", "token": "token-2"}
    assert machine.polling
    await machine.stop()


async def test_server_errors_back_off_then_surface(identity, store, sleep):
    client = FakeScoresClient(TransientFetchError("Upstream failure", status_code=500))
    machine = make_machine(client, identity, store, sleep)

    snapshot = await machine.load("sheet-1")

    assert len(client.calls) == 4  # first attempt + 3 retries
    assert sleep.delays == [2, 4, 8]
    assert snapshot.state is FetchState.TRANSIENT_ERROR
    assert snapshot.error == "Upstream failure"
    assert snapshot.retry_count == 3
    assert not machine.polling
    assert store.load() is None

    # A manual retry starts over and resumes polling
    client.script = [GRID]
    snapshot = await machine.load("sheet-1")
    assert snapshot.state is FetchState.SUCCESS
    assert snapshot.retry_count == 0
    assert machine.polling
    await machine.stop()


async def test_recovery_during_backoff(identity, store, sleep):
    client = FakeScoresClient(
        TransientFetchError("boom", status_code=502),
        TransientFetchError("boom", status_code=502),
        GRID,
    )
    machine = make_machine(client, identity, store, sleep)
    states = []
    machine.subscribe(lambda snapshot: states.append(snapshot.state))

    snapshot = await machine.load("sheet-1")

    assert snapshot.state is FetchState.SUCCESS
    assert sleep.delays == [2, 4]
    assert states == [
        FetchState.LOADING,
        FetchState.TRANSIENT_ERROR,
        FetchState.LOADING,
        FetchState.TRANSIENT_ERROR,
        FetchState.LOADING,
        FetchState.SUCCESS,
    ]
    await machine.stop()


async def test_newer_load_supersedes_in_flight_cycle(identity, store, sleep):
    client = FakeScoresClient(GRID)
    client.gates["old-sheet"] = asyncio.Event()
    machine = make_machine(client, identity, store, sleep)

    first = machine.request_load("old-sheet")
    await asyncio.sleep(0)  # let the first request reach the network
    second = machine.request_load("new-sheet")
    await asyncio.wait({first, second})

    assert first.cancelled()
    assert machine.sheet_id == "new-sheet"
    assert machine.state is FetchState.SUCCESS
    assert store.load() == "new-sheet"
    await machine.stop()


async def test_stale_results_are_dropped(identity, store, sleep):
    client = FakeScoresClient(GRID)
    machine = make_machine(client, identity, store, sleep)
    await machine.load("sheet-1")

    stale = FetchEvent(
        kind=FetchEventKind.FETCH_SUCCEEDED, generation=0, sheet_id="other", grid=[]
    )
    machine.dispatch(stale)

    assert machine.sheet_id == "sheet-1"
    assert len(machine.teams) == 4
    await machine.stop()


async def test_timer_refreshes_and_skips_while_in_flight(identity, store, sleep):
    client = FakeScoresClient(GRID)
    machine = make_machine(client, identity, store, sleep, poll_interval=0.01)

    await machine.load("sheet-1")
    await asyncio.sleep(0.05)
    await settle(machine)
    assert len(client.calls) >= 2

    client.gates["sheet-1"] = asyncio.Event()
    machine.request_load("sheet-1")
    await asyncio.sleep(0)
    assert machine.in_flight
    assert machine.dispatch(FetchEvent(kind=FetchEventKind.TIMER_FIRED)) is None
    await machine.stop()


async def test_start_restores_persisted_sheet(identity, sleep):
    client = FakeScoresClient(GRID)
    machine = make_machine(client, identity, MemorySheetIdStore("saved-sheet"), sleep)

    await machine.start()
    await settle(machine)

    assert machine.state is FetchState.SUCCESS
    assert client.calls[0]["sheet_id"] == "saved-sheet"
    assert machine.polling
    await machine.stop()


async def test_start_without_persisted_sheet_only_polls(identity, store, sleep):
    client = FakeScoresClient(GRID)
    machine = make_machine(client, identity, store, sleep)

    await machine.start()

    assert machine.state is FetchState.IDLE
    assert not machine.in_flight
    assert machine.dispatch(FetchEvent(kind=FetchEventKind.TIMER_FIRED)) is None
    await machine.stop()


async def test_sign_out_cancels_everything(identity, store, sleep):
    client = FakeScoresClient(GRID)
    machine = make_machine(client, identity, store, sleep)
    await machine.load("sheet-1")

    identity.sign_out()

    assert machine.state is FetchState.AUTH_ERROR
    assert not machine.polling
    await machine.stop()


async def test_rotated_token_file_resumes_after_expiry(identity, store, sleep):
    client = FakeScoresClient(AuthenticationError("expired", code="AUTH_EXPIRED"), GRID)
    machine = make_machine(client, identity, store, sleep)
    await machine.load("sheet-1")
    assert machine.state is FetchState.AUTH_ERROR

    await revalidate_session(identity, lambda: "token-2")
    await settle(machine)

    assert machine.state is FetchState.SUCCESS
    assert client.calls[-1]["token"] == "token-2"
    await machine.stop()


@pytest.mark.parametrize("reference", ["", "   ", "https://docs.google.com/document/d/abc/edit"])
def test_validate_sheet_reference_rejects(reference):
    with pytest.raises(SheetIdValidationError, match=INVALID_SHEET_MESSAGE):
        validate_sheet_reference(reference)


def test_validate_sheet_reference_accepts_url_and_id():
    assert validate_sheet_reference("https://docs.google.com/spreadsheets/d/a-B_1/edit") == "a-B_1"
    assert validate_sheet_reference(" abc ") == "abc"
