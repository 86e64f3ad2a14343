# quizboard/storage/events_repository.py
from typing import Any, Dict, List, Optional

from loguru import logger
from postgrest import APIResponse
from postgrest.exceptions import APIError
from supabase import AsyncClient, create_async_client

from quizboard.config.settings import settings
from quizboard.models.api import EventRecord

# Module-level storage for the async client instance
_async_supabase_client: Optional[AsyncClient] = None


class EventStorageError(Exception):
    """Raised when Supabase cannot read or write event records."""

    pass


async def initialize_supabase() -> Optional[AsyncClient]:
    """Initializes the global ASYNC Supabase client and returns it."""
    global _async_supabase_client
    if _async_supabase_client:
        logger.debug("Async Supabase client already initialized.")
        return _async_supabase_client

    if not settings.supabase_url or not settings.supabase_key:
        logger.warning("Supabase URL or Key not configured; event storage disabled.")
        return None

    logger.debug(
        f"Attempting to initialize Async Supabase client with URL: {settings.supabase_url}"
    )
    try:
        client: AsyncClient = await create_async_client(
            settings.supabase_url, settings.supabase_key
        )
        _async_supabase_client = client
        logger.success("Async Supabase client initialized successfully.")
        return client
    except Exception as e:
        logger.exception(f"Failed to initialize Async Supabase client: {e}")
        return None


def normalize_user(email: str) -> str:
    return email.strip().lower()


class EventRepository:
    """Per-organizer list of created event sheets and the active one."""

    def __init__(
        self,
        client: AsyncClient,
        events_table: Optional[str] = None,
        active_table: Optional[str] = None,
    ):
        self.client = client
        self.events_table = events_table or settings.events_table
        self.active_table = active_table or settings.active_sheets_table

    async def _execute(self, query: Any, action: str) -> List[Dict[str, Any]]:
        try:
            response: APIResponse = await query.execute()
        except APIError as e:
            logger.error(f"Supabase error while trying to {action}: {e.message}")
            logger.debug(f"Full APIError details: {e}")
            raise EventStorageError(f"Failed to {action}") from e
        return response.data or []

    async def list_events(self, user: str) -> List[EventRecord]:
        rows = await self._execute(
            self.client.table(self.events_table)
            .select("*")
            .eq("user", normalize_user(user))
            .order("created"),
            "list events",
        )
        events = [
            EventRecord(
                user=row["user"],
                sheet_id=row["sheet_id"],
                sheet_url=row["sheet_url"],
                name=row["name"],
                created=row["created"],
            )
            for row in rows
        ]
        logger.debug(f"Fetched {len(events)} events for {user}.")
        return events

    async def add_event(self, event: EventRecord) -> None:
        data = {
            "user": normalize_user(event.user),
            "sheet_id": event.sheet_id,
            "sheet_url": event.sheet_url,
            "name": event.name,
            "created": event.created.isoformat(),
        }
        await self._execute(self.client.table(self.events_table).insert(data), "save event")
        logger.success(f"Saved event {event.sheet_id} for {data['user']}.")

    async def get_active_sheet(self, user: str) -> Optional[str]:
        rows = await self._execute(
            self.client.table(self.active_table)
            .select("sheet_id")
            .eq("user", normalize_user(user))
            .limit(1),
            "read active sheet",
        )
        return rows[0]["sheet_id"] if rows else None

    async def set_active_sheet(self, user: str, sheet_id: str) -> None:
        await self._execute(
            self.client.table(self.active_table).upsert(
                {"user": normalize_user(user), "sheet_id": sheet_id}, on_conflict="user"
            ),
            "save active sheet",
        )
        logger.info(f"Active sheet for {normalize_user(user)} set to {sheet_id}.")
