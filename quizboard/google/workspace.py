"""
Google Sheets / Drive access for the API endpoints.

Requests are made on behalf of the organizer with their OAuth access token.
Reading scores can fall back to a service account file (the sheet must then
be shared with that account). The googleapiclient calls are blocking; async
callers go through ``asyncio.to_thread``.
"""

from typing import Any, Dict, List, Optional, Tuple

import httpx
from google.auth.exceptions import GoogleAuthError as _GoogleAuthLibError
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from loguru import logger

from quizboard.config.settings import settings
from quizboard.parsing.sheet_id import sheet_url

READONLY_SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]
SCORECARD_TAB = "Scorecard"
TEMPLATE_TEAM_COLUMNS = 8
TEMPLATE_QUESTIONS_PER_ROUND = 8
TEMPLATE_ROUNDS = 2


class GoogleAuthError(Exception):
    """Google rejected the credentials (expired or revoked token)."""

    pass


class GoogleApiError(Exception):
    """Any other Sheets/Drive failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GoogleAccessDeniedError(GoogleApiError):
    """The credentials are valid but may not open this file (HTTP 403)."""

    pass


def _column_letter(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA."""
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def scorecard_template(
    teams: int = TEMPLATE_TEAM_COLUMNS,
    rounds: int = TEMPLATE_ROUNDS,
    questions_per_round: int = TEMPLATE_QUESTIONS_PER_ROUND,
) -> List[List[str]]:
    """Initial cell values for a new event sheet, formulas included."""
    values: List[List[str]] = [
        ["Team Number"] + [f"# {n}" for n in range(1, teams + 1)],
        ["Team Names"],
    ]
    for round_number in range(1, rounds + 1):
        values.append([f"Round {round_number}"])
        values.extend([str(q)] for q in range(1, questions_per_round + 1))
    values.append([])

    # First question row through the last one, above the blank spacer row
    first_row, last_row = 4, len(values) - 1
    totals = ["Final Score"]
    for col in range(1, teams + 1):
        letter = _column_letter(col)
        totals.append(f"=SUM({letter}{first_row}:{letter}{last_row})")
    values.append(totals)
    return values


def template_range(values: List[List[str]]) -> str:
    width = max(len(row) for row in values)
    return f"{SCORECARD_TAB}!A1:{_column_letter(width - 1)}{len(values)}"


class GoogleWorkspace:
    """Thin wrapper over the Sheets v4 and Drive v3 discovery clients."""

    def __init__(
        self,
        service_account_file: Optional[str] = None,
        sheet_range: Optional[str] = None,
    ):
        self.service_account_file = service_account_file or settings.google_service_account_file
        self.sheet_range = sheet_range or settings.google_sheet_range

    def _credentials(self, access_token: Optional[str], allow_service_account: bool = False):
        if access_token:
            return Credentials(token=access_token)
        if allow_service_account and self.service_account_file:
            return service_account.Credentials.from_service_account_file(
                self.service_account_file, scopes=READONLY_SCOPES
            )
        raise GoogleAuthError("No Google credentials available")

    def _service(self, api: str, version: str, credentials: Any):
        return build(api, version, credentials=credentials, cache_discovery=False)

    def _execute(self, request: Any, action: str) -> Dict[str, Any]:
        try:
            return request.execute()
        except HttpError as e:
            status = e.resp.status if e.resp is not None else None
            if status == 401:
                logger.warning(f"Google rejected credentials while trying to {action}.")
                raise GoogleAuthError(f"Google rejected credentials ({action})") from e
            if status == 403:
                logger.warning(f"Google denied access while trying to {action}.")
                raise GoogleAccessDeniedError(
                    f"Google denied access ({action})", status_code=status
                ) from e
            logger.error(f"Google API error while trying to {action}: {status} - {e}")
            raise GoogleApiError(f"Failed to {action}: {e.reason}", status_code=status) from e
        except _GoogleAuthLibError as e:
            logger.warning(f"Google auth library error while trying to {action}: {e}")
            raise GoogleAuthError(str(e)) from e

    def read_values(self, sheet_id: str, access_token: Optional[str]) -> List[List[str]]:
        """Returns the scoresheet range as rows of display strings."""
        credentials = self._credentials(access_token, allow_service_account=True)
        sheets = self._service("sheets", "v4", credentials)
        result = self._execute(
            sheets.spreadsheets().values().get(spreadsheetId=sheet_id, range=self.sheet_range),
            f"read sheet {sheet_id}",
        )
        values = result.get("values", [])
        logger.debug(f"Read {len(values)} rows from sheet {sheet_id} ({self.sheet_range}).")
        return values

    def file_exists(self, file_id: str, access_token: str) -> bool:
        """False when the file was deleted or the user lost access to it."""
        drive = self._service("drive", "v3", self._credentials(access_token))
        try:
            self._execute(drive.files().get(fileId=file_id, fields="id"), f"look up file {file_id}")
        except GoogleApiError:
            return False
        return True

    def create_scorecard(self, title: str, access_token: str) -> Tuple[str, str]:
        """Creates a new event spreadsheet pre-filled with the quiz template."""
        credentials = self._credentials(access_token)
        sheets = self._service("sheets", "v4", credentials)
        created = self._execute(
            sheets.spreadsheets().create(
                body={
                    "properties": {"title": title},
                    "sheets": [{"properties": {"title": SCORECARD_TAB}}],
                }
            ),
            f"create sheet {title!r}",
        )
        sheet_id = created["spreadsheetId"]

        values = scorecard_template()
        self._execute(
            sheets.spreadsheets().values().update(
                spreadsheetId=sheet_id,
                range=template_range(values),
                valueInputOption="USER_ENTERED",
                body={"values": values},
            ),
            f"write template to sheet {sheet_id}",
        )

        drive = self._service("drive", "v3", credentials)
        try:
            self._execute(
                drive.permissions().create(
                    fileId=sheet_id, body={"type": "anyone", "role": "reader"}
                ),
                f"share sheet {sheet_id}",
            )
        except (GoogleApiError, GoogleAuthError) as e:
            # The sheet is still usable by its owner
            logger.error(f"Failed to set public permission on sheet {sheet_id}: {e}")

        logger.success(f"Created scorecard sheet {sheet_id} ({title!r}).")
        return sheet_id, sheet_url(sheet_id)


class TokenVerifier:
    """Checks an OAuth access token against Google's tokeninfo endpoint."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.request_timeout_seconds)
        )

    async def token_info(self, access_token: str) -> Optional[Dict[str, Any]]:
        """Token claims (email, expires_in, ...) or None when Google rejects it."""
        try:
            # Token in the form body: httpx logs request URLs
            response = await self.client.post(
                settings.google_tokeninfo_url, data={"access_token": access_token}
            )
        except httpx.RequestError as e:
            raise GoogleApiError(f"Could not reach Google tokeninfo: {e}") from e

        if response.status_code in {400, 401}:
            logger.info("Google tokeninfo rejected access token.")
            return None
        if not response.is_success:
            raise GoogleApiError(
                f"Google tokeninfo returned {response.status_code}",
                status_code=response.status_code,
            )
        return response.json()

    async def close(self):
        await self.client.aclose()
