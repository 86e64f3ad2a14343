# quizboard/parsing/sheet_id.py
import re
from typing import Optional

SHEET_URL_PATTERN = re.compile(r"/spreadsheets/d/([a-zA-Z0-9_-]+)")


def extract_sheet_id(url_or_id: Optional[str]) -> Optional[str]:
    """Returns the spreadsheet id from a pasted Google Sheets URL or a bare id.

    Strings without a slash are taken as an id already and returned trimmed.
    Anything else must contain ``/spreadsheets/d/<id>``. Returns None when no
    id can be found; callers treat that as invalid input.
    """
    if not url_or_id:
        return None

    if "/" not in url_or_id:
        return url_or_id.strip() or None

    match = SHEET_URL_PATTERN.search(url_or_id)
    return match.group(1) if match else None


def sheet_url(sheet_id: str) -> str:
    return f"https://docs.google.com/spreadsheets/d/{sheet_id}/edit"
