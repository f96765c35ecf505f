"""
Reconnect backoff for the shared transport.

When a dashboard backend restarts, every open browser tab loses its
multiplexer at the same moment. Delays grow exponentially up to a cap and are
spread by random jitter so those tabs come back at different times.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Final

from ws_multiplexer.components.core.constants import MuxConstants


# =============================================================================
# Constants
# =============================================================================


# Fraction of the delay added or removed at random
DEFAULT_JITTER_FACTOR: Final[float] = 0.25

# Reconnects spread a little wider than generic retries
RECONNECT_JITTER_FACTOR: Final[float] = 0.3

DEFAULT_BACKOFF_BASE: Final[float] = 2.0


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """
    Backoff parameters.

    Attributes:
        initial_delay: Delay before the first retry, in seconds.
        max_delay: Cap applied before jitter.
        backoff_base: Growth factor per attempt.
        jitter_factor: Jitter as a fraction of the capped delay (0 to 1).
        max_attempts: Attempts before giving up.
    """

    initial_delay: float = MuxConstants.RECONNECT_INITIAL_DELAY
    max_delay: float = MuxConstants.RECONNECT_MAX_DELAY
    backoff_base: float = DEFAULT_BACKOFF_BASE
    jitter_factor: float = DEFAULT_JITTER_FACTOR
    max_attempts: int = MuxConstants.RECONNECT_MAX_ATTEMPTS

    def __post_init__(self) -> None:
        problems = []
        if self.initial_delay <= 0:
            problems.append("initial_delay must be positive")
        elif self.max_delay < self.initial_delay:
            problems.append("max_delay must be >= initial_delay")
        if self.backoff_base < 1:
            problems.append("backoff_base must be >= 1")
        if not 0 <= self.jitter_factor <= 1:
            problems.append("jitter_factor must be between 0 and 1")
        if self.max_attempts < 1:
            problems.append("max_attempts must be >= 1")
        if problems:
            raise ValueError("; ".join(problems))


def create_reconnect_retry_config(
    initial_delay: float = MuxConstants.RECONNECT_INITIAL_DELAY,
    max_delay: float = MuxConstants.RECONNECT_MAX_DELAY,
    max_attempts: int = MuxConstants.RECONNECT_MAX_ATTEMPTS,
) -> RetryConfig:
    """Backoff used by the connection manager's background reconnect."""
    return RetryConfig(
        initial_delay=initial_delay,
        max_delay=max_delay,
        jitter_factor=RECONNECT_JITTER_FACTOR,
        max_attempts=max_attempts,
    )


# =============================================================================
# Delay Calculation
# =============================================================================


def calculate_delay_with_jitter(
    attempt: int,
    config: RetryConfig | None = None,
) -> float:
    """
    Delay before retry number ``attempt`` (0-indexed).

    ``min(initial_delay * backoff_base ** attempt, max_delay)`` scaled by a
    random factor in ``[1 - jitter_factor, 1 + jitter_factor]``. Never negative.

    Example:
        >>> config = RetryConfig(initial_delay=1.0, max_delay=30.0, jitter_factor=0)
        >>> [calculate_delay_with_jitter(n, config) for n in (0, 1, 5)]
        [1.0, 2.0, 30.0]
    """
    config = config or RetryConfig()

    # Past the cap the exponent only risks float overflow
    try:
        raw = config.initial_delay * config.backoff_base ** attempt
    except OverflowError:
        raw = config.max_delay
    delay = min(raw, config.max_delay)

    spread = delay * config.jitter_factor
    return max(0.0, delay + random.uniform(-spread, spread))


def should_retry(attempt: int, max_attempts: int) -> bool:
    """Whether ``attempt`` retries already made leave room for another."""
    return attempt < max_attempts


# =============================================================================
# Stateful Backoff
# =============================================================================


@dataclass(slots=True)
class ReconnectBackoff:
    """
    Attempt counter for one reconnect episode.

    Usage:
        backoff = ReconnectBackoff(config)
        while not backoff.exhausted:
            await asyncio.sleep(backoff.next_delay())
            ...
    """

    config: RetryConfig = field(default_factory=RetryConfig)
    attempt: int = 0

    @property
    def exhausted(self) -> bool:
        return not should_retry(self.attempt, self.config.max_attempts)

    def next_delay(self) -> float:
        """Delay for the upcoming attempt; advances the counter."""
        delay = calculate_delay_with_jitter(self.attempt, self.config)
        self.attempt += 1
        return delay

    def reset(self) -> None:
        self.attempt = 0
