"""
Retry schedule for media generation.

The orchestrator walks a fixed ladder (models, degraded requests, then a
short and a long backoff wait) instead of an open-ended exponential loop.
This module holds the knobs of that ladder and the attempt budget derived
from it.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from mvstudio.core.logging_config import get_logger

logger = get_logger("core.retry")

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class RetryConfig:
    """Configuration for the generation retry ladder."""
    short_backoff_seconds: float = 3.0   # First wait, after every model failed
    long_backoff_seconds: float = 30.0   # Second wait, for strict rate limits
    expansion_long_backoff_seconds: float = 60.0  # Cell expansion may run longer
    enable_backoff: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "RetryConfig":
        """Create RetryConfig from dictionary."""
        defaults = cls()
        return cls(
            short_backoff_seconds=float(data.get("short_backoff_seconds", defaults.short_backoff_seconds)),
            long_backoff_seconds=float(data.get("long_backoff_seconds", defaults.long_backoff_seconds)),
            expansion_long_backoff_seconds=float(
                data.get("expansion_long_backoff_seconds", defaults.expansion_long_backoff_seconds)
            ),
            enable_backoff=bool(data.get("enable_backoff", defaults.enable_backoff)),
        )

    def to_dict(self) -> dict:
        return {
            "short_backoff_seconds": self.short_backoff_seconds,
            "long_backoff_seconds": self.long_backoff_seconds,
            "expansion_long_backoff_seconds": self.expansion_long_backoff_seconds,
            "enable_backoff": self.enable_backoff,
        }


def max_attempts(model_count: int, degradation_stages: int, config: RetryConfig) -> int:
    """
    Upper bound on provider calls for one orchestrated request.

    Args:
        model_count: Number of models in the ordered model list
        degradation_stages: Passes over the model list (full request included)
        config: Retry configuration

    Returns:
        Maximum number of attempts the ladder can make
    """
    backoff_attempts = 2 if config.enable_backoff else 0
    return model_count * degradation_stages + backoff_attempts


async def wait_before_retry(seconds: float, stage: str, sleep: SleepFunc = asyncio.sleep) -> None:
    """Wait a fixed interval before a backoff retry."""
    if seconds > 0:
        logger.info(f"{stage}: waiting {seconds:.0f}s before retrying")
    await sleep(seconds)


# Zero-wait ladder for tests and offline tooling
NO_WAIT_RETRY_CONFIG = RetryConfig(
    short_backoff_seconds=0.0,
    long_backoff_seconds=0.0,
    expansion_long_backoff_seconds=0.0,
)
