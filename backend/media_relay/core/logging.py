"""Structured logging configuration."""
import hashlib
import logging
import sys
from urllib.parse import urlparse

from media_relay.core.config import Settings

# Logger that receives yt-dlp stderr lines
TOOL_LOGGER_NAME = "media_relay.tool"


def setup_logging(settings: Settings) -> None:
    """Configure structured logging for the application."""
    log_level = getattr(logging, settings.LOG_LEVEL.upper())

    # Create formatter
    if settings.is_production:
        # JSON logs for production (easier for log aggregators)
        log_format = '{"time":"%(asctime)s","level":"%(levelname)s","name":"%(name)s","message":"%(message)s"}'
    else:
        # Human-readable logs for development
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("fastapi").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def safe_url(url: str) -> str:
    """Create a safe version of URL for logging (hide query params)."""
    try:
        parsed = urlparse(url)
        url_hash = hashlib.sha256(url.encode()).hexdigest()[:8]
        return f"{parsed.scheme}://{parsed.hostname}{parsed.path} (hash:{url_hash})"
    except ValueError:
        return "invalid-url"
