from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from quizboard.client.errors import AuthenticationError, TransientFetchError
from quizboard.config.settings import settings
from quizboard.models.api import ScoresResponse, SessionStatus
from quizboard.models.enums import AUTH_EXPIRED_CODE

AUTH_STATUS_CODES = {401, 403}
DEFAULT_ERROR_MESSAGE = "Failed to fetch sheet data"


def _error_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class ScoresClient:
    """Async client for the quizboard API (/api/scores, /api/session-status)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.client = client or httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=httpx.Timeout(settings.request_timeout_seconds),
            follow_redirects=True,
            headers={"User-Agent": "quizboard/1.0", "Accept": "application/json"},
        )

    async def _make_request(
        self,
        method: str,
        url: str,
        access_token: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Sends one request and classifies any failure as auth or transient."""
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else None
        logger.debug(f"Making request {method} {url}", params=params)
        try:
            response = await self.client.request(
                method, url, headers=headers, params=params
            )
        except httpx.RequestError as e:
            logger.warning(f"Request error for {url}: {e}")
            raise TransientFetchError(f"Network error: {e}") from e

        if response.is_success:
            logger.debug(f"Request successful: {response.status_code} for {url}")
            return response

        body = _error_body(response)
        message = body.get("error") or DEFAULT_ERROR_MESSAGE
        code = body.get("code")

        if response.status_code in AUTH_STATUS_CODES or code == AUTH_EXPIRED_CODE:
            logger.warning(
                f"Authentication error ({response.status_code}, code={code}) at {url}."
            )
            raise AuthenticationError(message, code=code)

        logger.error(f"HTTP error during request to {url}: {response.status_code} - {message}")
        raise TransientFetchError(message, status_code=response.status_code)

    async def fetch_grid(self, sheet_id: str, access_token: Optional[str]) -> List[List[str]]:
        """Fetches the raw cell grid of a sheet through /api/scores."""
        response = await self._make_request(
            "GET", "/api/scores", access_token=access_token, params={"sheetId": sheet_id}
        )
        try:
            payload = ScoresResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Malformed /api/scores payload for sheet {sheet_id}: {e}")
            raise TransientFetchError("Malformed response from scores endpoint") from e
        logger.debug(f"Fetched {len(payload.data)} rows for sheet {sheet_id}")
        return payload.data

    async def session_status(self, access_token: Optional[str]) -> SessionStatus:
        """Asks the API whether the access token still represents a live session."""
        try:
            response = await self._make_request(
                "GET", "/api/session-status", access_token=access_token
            )
        except AuthenticationError as e:
            return SessionStatus(authenticated=False, code=e.code)
        try:
            return SessionStatus.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Malformed /api/session-status payload: {e}")
            raise TransientFetchError("Malformed response from session-status endpoint") from e

    async def close(self):
        """Closes the underlying HTTP client."""
        await self.client.aclose()
        logger.info("Closed HTTP client for scores API")
