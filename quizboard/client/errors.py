from typing import Optional


class QuizboardError(Exception):
    """Base exception for scoreboard fetch errors."""

    pass


class SheetIdValidationError(QuizboardError):
    """The pasted value is not a Google Sheets URL or id. Never sent to the API."""

    pass


class AuthenticationError(QuizboardError):
    """No session, a rejected session, or an explicit expiry signal (401/403)."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class TransientFetchError(QuizboardError):
    """Network or server failure not related to authentication; safe to retry."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
