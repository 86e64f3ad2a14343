import json
from pathlib import Path
from typing import Optional, Protocol, Union
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

from loguru import logger

SHEET_ID_PARAM = "sheetId"


class SheetIdStore(Protocol):
    """Where the currently loaded sheet id survives a reload."""

    def load(self) -> Optional[str]: ...

    def save(self, sheet_id: str) -> None: ...


class MemorySheetIdStore:
    def __init__(self, sheet_id: Optional[str] = None):
        self.sheet_id = sheet_id

    def load(self) -> Optional[str]:
        return self.sheet_id

    def save(self, sheet_id: str) -> None:
        self.sheet_id = sheet_id


class QueryParamSheetIdStore:
    """Keeps the sheet id in the ``sheetId`` query parameter of a shareable URL."""

    def __init__(self, url: str):
        self.url = url

    def load(self) -> Optional[str]:
        values = parse_qs(urlsplit(self.url).query).get(SHEET_ID_PARAM)
        return values[0] if values and values[0] else None

    def save(self, sheet_id: str) -> None:
        parts = urlsplit(self.url)
        query = parse_qs(parts.query, keep_blank_values=True)
        query[SHEET_ID_PARAM] = [sheet_id]
        self.url = urlunsplit(parts._replace(query=urlencode(query, doseq=True)))


class JsonFileSheetIdStore:
    """Remembers the last sheet id in a small JSON file between runs."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                state = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return None
        sheet_id = state.get(SHEET_ID_PARAM) if isinstance(state, dict) else None
        return sheet_id or None

    def save(self, sheet_id: str) -> None:
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump({SHEET_ID_PARAM: sheet_id}, f, indent=2)
        except OSError as e:
            logger.error(f"Failed to write state file {self.path}: {e}")
