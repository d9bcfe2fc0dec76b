"""Shared API dependencies: the studio instance and the rate limiter."""

from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address

from mvstudio.core.config import get_config
from mvstudio.core.logging_config import get_logger
from mvstudio.media.studio import MediaStudio

logger = get_logger("api.dependencies")

# Rate limiter for provider-backed endpoints
limiter = Limiter(key_func=get_remote_address)

_studio: Optional[MediaStudio] = None


def get_studio() -> MediaStudio:
    """
    Get the process-wide studio, creating it on first use.

    Raises:
        MissingConfigError: If no Gemini API key is configured
    """
    global _studio
    if _studio is None:
        _studio = MediaStudio.from_config(get_config())
        logger.info("Media studio initialized")
    return _studio


def peek_studio() -> Optional[MediaStudio]:
    """Return the studio if it has been created, without creating it."""
    return _studio


def set_studio(studio: Optional[MediaStudio]) -> None:
    """Replace the process-wide studio (None resets it)."""
    global _studio
    _studio = studio
