import logging
from typing import Optional

# Per-request lines from the Distance Matrix client are noise at INFO.
QUIET_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure the log format shared by the API and the analysis services."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "schedule_insights")
