"""
Structured logging helpers for consistent log formatting.

Provides utilities for structured, clean logging of sync cycles.
"""
import logging
from datetime import datetime, timezone


def log_section_start(logger: logging.Logger, section_name: str) -> None:
    """
    Log the start of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being started
    """
    logger.info(f"Starting: {section_name}")


def log_section_end(logger: logging.Logger, section_name: str) -> None:
    """
    Log the end of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being ended
    """
    logger.info(f"Completed: {section_name}")


def log_sync_start(logger: logging.Logger) -> None:
    """Log sync cycle start."""
    logger.info(f"Catalog sync started at {datetime.now(timezone.utc).isoformat()}")


def log_sync_end(logger: logging.Logger, status: str) -> None:
    """Log sync cycle end."""
    logger.info(f"Catalog sync finished ({status}) at {datetime.now(timezone.utc).isoformat()}")


def sanitize_url(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    if "://" not in url:
        return url
    try:
        protocol, rest = url.split("://", 1)
        if "@" in rest.split("/", 1)[0]:
            rest = rest.split("@", 1)[1]
            return f"{protocol}://***:***@{rest}"
        return url
    except (ValueError, IndexError):
        return url
