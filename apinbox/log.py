import sys

from loguru import logger

from apinbox.config import DEBUG

LOGGER_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{extra[activity_type]} {extra[activity_id]} - <level>{message}</level>"
)


def configure_logging(level: str | None = None) -> None:
    """Install the stdout sink, every line carries the activity being processed."""
    logger.configure(extra={"activity_type": "-", "activity_id": "no_activity"})
    logger.remove()
    logger.add(
        sys.stdout,
        format=LOGGER_FORMAT,
        level=level or ("DEBUG" if DEBUG else "INFO"),
    )
