import sys
import asyncio
import argparse
from typing import Optional

# --- Settings/Logging ---
from quizboard.logging.setup import setup_logging
from quizboard.config.settings import settings

setup_logging()

from loguru import logger

from quizboard.client.fetch_machine import FetchMachine, FetchSnapshot
from quizboard.client.identity import (
    TokenIdentityProvider,
    keep_session_fresh,
    token_file_reader,
)
from quizboard.client.scores_client import ScoresClient
from quizboard.client.state_store import JsonFileSheetIdStore
from quizboard.models.enums import SortOption
from quizboard.presentation.scoreboard import render_scoreboard

from rich.console import Console
from rich.live import Live


async def watch(sheet: Optional[str], sort_by: SortOption, by_question: bool) -> None:
    """Live terminal scoreboard that keeps polling the sheet."""
    logger.info("Starting live scoreboard...")
    scores_client = ScoresClient()
    read_token = (
        token_file_reader(settings.google_access_token_file)
        if settings.google_access_token_file
        else None
    )
    initial_token = (read_token() if read_token else None) or settings.google_access_token
    identity = TokenIdentityProvider(initial_token, scores_client)
    store = JsonFileSheetIdStore(settings.sheet_state_file)
    machine = FetchMachine(scores_client, identity, store)

    console = Console()
    session_task: Optional[asyncio.Task] = None
    try:
        await identity.refresh()
        session_task = asyncio.create_task(
            keep_session_fresh(identity, settings.session_check_interval_seconds, read_token)
        )
        with Live(
            render_scoreboard(machine.snapshot(), sort_by, by_question),
            console=console,
            refresh_per_second=4,
        ) as live:

            def on_snapshot(snapshot: FetchSnapshot) -> None:
                live.update(render_scoreboard(snapshot, sort_by, by_question))

            machine.subscribe(on_snapshot)
            if sheet:
                machine.request_load(sheet)
            await machine.start()
            # Runs until interrupted; the machine's own timer drives refreshes
            await asyncio.Event().wait()
    finally:
        if session_task is not None:
            session_task.cancel()
        await machine.stop()
        await scores_client.close()


def serve(host: str, port: int) -> None:
    """Runs the quizboard API."""
    import uvicorn

    logger.info(f"Serving quizboard API on http://{host}:{port}")
    uvicorn.run("quizboard.api.app:app", host=host, port=port, log_config=None)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Live quiz scoreboard backed by Google Sheets.")
    commands = parser.add_subparsers(dest="command", required=True)

    watch_parser = commands.add_parser("watch", help="Show a live scoreboard in the terminal.")
    watch_parser.add_argument(
        "sheet",
        nargs="?",
        help="Google Sheets URL or ID (defaults to the last loaded sheet).",
    )
    watch_parser.add_argument(
        "--sort",
        choices=[option.value for option in SortOption],
        default=SortOption.POINTS.value,
    )
    watch_parser.add_argument(
        "--by-question", action="store_true", help="Show every question's score."
    )

    serve_parser = commands.add_parser("serve", help="Run the scores/events API.")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    if args.command == "serve":
        serve(args.host, args.port)
        return 0
    asyncio.run(watch(args.sheet, SortOption(args.sort), args.by_question))
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.info("Execution interrupted by user (KeyboardInterrupt).")
        sys.exit(0)
    except Exception as e:
        logger.exception(f"Unhandled exception in main execution: {e}")
        sys.exit(1)
