"""
Failure throttle for token verification.

Reading claims happens before the signature can be checked, so every
verification costs a directory lookup keyed on attacker-supplied data.
Clients that keep failing verification are cut off before that lookup.
"""

import time
from typing import Dict, List, Optional


class VerificationThrottle:
    """Sliding-window counter of failed verifications per client."""

    def __init__(self, limit: int = 20, window_seconds: int = 300):
        self.limit = limit
        self.window_seconds = window_seconds
        self._failures: Dict[str, List[float]] = {}

    def _prune(self, client: str, now: float) -> List[float]:
        failures = [
            ts for ts in self._failures.get(client, [])
            if now - ts < self.window_seconds
        ]
        if failures:
            self._failures[client] = failures
        else:
            self._failures.pop(client, None)
        return failures

    def allow(self, client: Optional[str]) -> bool:
        """
        Check whether a client may trigger another directory lookup.

        Args:
            client: Client key (usually the remote address); None is never throttled

        Returns:
            True if under the failure limit
        """
        if not client:
            return True
        return len(self._prune(client, time.time())) < self.limit

    def record_failure(self, client: Optional[str]) -> int:
        """Record a failed verification and return the count in the window."""
        if not client:
            return 0
        now = time.time()
        failures = self._prune(client, now)
        failures.append(now)
        self._failures[client] = failures
        return len(failures)

    def failures(self, client: str) -> int:
        return len(self._prune(client, time.time()))

    def retry_after(self, client: str) -> int:
        """Seconds until the oldest failure in the window expires."""
        failures = self._prune(client, time.time())
        if not failures:
            return 0
        return max(0, int(failures[0] + self.window_seconds - time.time()) + 1)

    def reset(self, client: Optional[str] = None) -> None:
        if client is None:
            self._failures.clear()
        else:
            self._failures.pop(client, None)
