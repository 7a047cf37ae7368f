"""
Redirect Attempt Guard

Circuit breaker for redirect sign-in. When the provider silently rejects a
session the browser bounces provider -> app -> provider forever; the guard
turns that into at most ``max_attempts`` redirects per sliding window.
"""

import time
from collections.abc import Callable

from core.logger import get_logger

from .storage import KeyValueStore, StorageKeys

logger = get_logger(__name__)


class RedirectAttemptGuard:
    """
    Sliding-window limit on redirect sign-in attempts.

    The guard is the only writer of the attempt collection. Attempt records
    are plain UNIX timestamps persisted as a JSON list.

    Args:
        store: Durable storage shared across page loads
        max_attempts: Attempts allowed inside the window
        window_seconds: Length of the sliding window
        clock: Time source returning seconds since the epoch
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_attempts: int = 3,
        window_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.store = store
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock

    def _load(self) -> list[float]:
        raw = self.store.get(StorageKeys.ATTEMPTS)
        if not isinstance(raw, list):
            return []
        return [float(ts) for ts in raw if isinstance(ts, (int, float)) and not isinstance(ts, bool)]

    def attempts(self) -> list[float]:
        """Load attempts, drop those outside the window and write the pruned list back."""
        now = self._clock()
        stored = self._load()
        valid = [ts for ts in stored if now - ts < self.window_seconds]
        if valid != stored:
            self.store.set(StorageKeys.ATTEMPTS, valid)
            logger.debug(f"Pruned {len(stored) - len(valid)} expired redirect attempt(s)")
        return valid

    def may_attempt(self) -> bool:
        valid = self.attempts()
        if len(valid) >= self.max_attempts:
            logger.warning(
                f"Redirect limit reached ({len(valid)}/{self.max_attempts} in {self.window_seconds:.0f}s), "
                "blocking redirect"
            )
            return False
        return True

    def record_attempt(self) -> None:
        valid = self.attempts()
        valid.append(self._clock())
        self.store.set(StorageKeys.ATTEMPTS, valid)
        logger.info(f"Recorded redirect attempt {len(valid)}/{self.max_attempts}")

    def retry_after(self) -> float:
        """Seconds until enough attempts age out for a redirect to be allowed again."""
        valid = sorted(self.attempts())
        if len(valid) < self.max_attempts:
            return 0.0
        # The attempt that must expire to bring the count under the limit
        blocking = valid[len(valid) - self.max_attempts]
        return max(0.0, blocking + self.window_seconds - self._clock())

    def reset(self) -> None:
        self.store.delete(StorageKeys.ATTEMPTS)
        logger.info("Reset redirect attempts")

    def force_reset(self) -> None:
        """Clear attempts and every session-scoped redirect flag."""
        self.store.delete(*StorageKeys.ALL)
        logger.warning("Force reset of all redirect tracking state")
