import logging
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    # Scores API
    api_base_url: str = Field(
        "http://127.0.0.1:8000",
        description="Base URL of the quizboard API serving /api/scores.",
    )
    request_timeout_seconds: float = Field(15.0, gt=0)

    # Google
    google_access_token: Optional[str] = Field(
        None, description="OAuth access token of the organizer (Sheets + Drive scopes)."
    )
    google_access_token_file: Optional[str] = Field(
        None,
        description="File holding the current access token; re-read to pick up rotated tokens.",
    )
    google_service_account_file: Optional[str] = Field(
        None,
        description="Service account JSON used for /api/scores when no user token is given.",
    )
    google_sheet_range: str = Field("A1:I100", description="Cell range read from the sheet.")
    google_tokeninfo_url: str = "https://oauth2.googleapis.com/tokeninfo"

    # Supabase (event storage)
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    events_table: str = "events"
    active_sheets_table: str = "active_sheets"

    # Polling / parsing
    poll_interval_seconds: float = Field(30.0, gt=0)
    max_fetch_retries: int = Field(3, ge=0)
    min_teams: int = Field(4, ge=1)
    max_teams: int = Field(11, ge=1)
    header_row_count: int = Field(2, ge=0)

    # Terminal scoreboard
    sheet_state_file: str = ".quizboard_state.json"
    session_check_interval_seconds: float = Field(300.0, gt=0)

    # Logging Configuration
    log_level: str = Field(
        "INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


def load_settings() -> AppSettings:
    """Loads and validates application settings."""
    try:
        settings = AppSettings()
        log_level_upper = settings.log_level.upper()
        # Validate log_level even if loaded from .env
        if log_level_upper not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            logging.warning(
                f"Invalid LOG_LEVEL '{settings.log_level}' found in .env or default. Using INFO."
            )
            settings.log_level = "INFO"
        else:
            settings.log_level = log_level_upper
        if settings.max_teams < settings.min_teams:
            logging.warning(
                f"MAX_TEAMS ({settings.max_teams}) is below MIN_TEAMS ({settings.min_teams}). Using MIN_TEAMS for both."
            )
            settings.max_teams = settings.min_teams
        return settings
    except Exception as e:
        logging.exception(f"Error loading application settings: {e}")
        raise SystemExit("Failed to load application settings. Exiting.")


settings: AppSettings = load_settings()
