import sys
import logging
from typing import Any, Optional

from loguru import logger

from quizboard.config.settings import settings

SENSITIVE_KEYS = ["key", "token", "password", "secret", "authorization"]


def _mask(value: str) -> str:
    if len(value) > 8:
        return value[:4] + "****" + value[-4:]
    return "********"


def sensitive_data_filter(record: dict[str, Any]) -> bool:
    """Filter function to mask sensitive data in log records."""

    def mask_extra(value: Any, key: str = "") -> Any:
        if isinstance(value, dict):
            return {k: mask_extra(v, k) for k, v in value.items()}
        if isinstance(value, list):
            return [mask_extra(item, key) for item in value]
        if isinstance(value, str) and any(sk in key.lower() for sk in SENSITIVE_KEYS):
            return _mask(value)
        return value

    if "extra" in record and isinstance(record["extra"], dict):
        record["extra"] = mask_extra(record["extra"])

    # Secrets from settings must never reach the sink verbatim
    secrets = [settings.google_access_token, settings.supabase_key]
    for secret in secrets:
        if secret and secret in record["message"]:
            record["message"] = record["message"].replace(secret, "********")

    return True


class InterceptHandler(logging.Handler):
    """Routes standard logging records (uvicorn, httpx, googleapiclient) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(level: Optional[str] = None) -> None:
    """Configures Loguru logger based on application settings."""
    log_level = (level or settings.log_level).upper()
    logger.remove()  # Remove default handler

    logger.add(
        sys.stderr,
        level=log_level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        colorize=True,
        backtrace=True,
        diagnose=False,  # locals may hold access tokens
        filter=sensitive_data_filter,
    )

    logger.info(f"Logging initialized with level: {log_level}")

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False
    logger.info("Standard logging intercepted.")
