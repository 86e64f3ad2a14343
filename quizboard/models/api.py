from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base for payloads exchanged with the browser (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)


class ScoresResponse(WireModel):
    # Unformatted reads hand back numbers; cells are strings everywhere else
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    data: List[List[str]] = []


class ErrorResponse(WireModel):
    error: str
    code: Optional[str] = None


class SessionUser(WireModel):
    name: Optional[str] = None
    email: Optional[str] = None


class SessionStatus(WireModel):
    authenticated: bool
    code: Optional[str] = None
    user: Optional[SessionUser] = None


class EventRecord(WireModel):
    """A scoresheet created by an organizer."""

    user: str
    sheet_id: str = Field(..., alias="sheetId")
    sheet_url: str = Field(..., alias="sheetUrl")
    name: str
    created: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EventsResponse(WireModel):
    events: List[EventRecord] = []
    active_sheet_id: Optional[str] = Field(None, alias="activeSheetId")


class SelectEventRequest(WireModel):
    sheet_id: str = Field(..., alias="sheetId", min_length=1)


class CreateEventRequest(WireModel):
    sheet_name: Optional[str] = Field(None, alias="sheetName")


class CreateEventResponse(WireModel):
    sheet_id: str = Field(..., alias="sheetId")
    sheet_url: str = Field(..., alias="sheetUrl")
