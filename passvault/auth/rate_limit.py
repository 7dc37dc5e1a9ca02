"""Sliding-window throttle for Google sign-in attempts, keyed by client address."""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional


class SignInThrottle:
    """
    Allow at most `max_attempts` sign-in attempts per client within `window_seconds`.

    Every attempt counts, successful or not; a successful sign-in clears the client's
    history. Safe to share between the worker threads serving sync routes.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window_seconds: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._attempts: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def hit(self, client: str) -> Optional[int]:
        """
        Record an attempt for `client`.

        Returns None when the attempt is allowed, otherwise the number of seconds
        until the oldest attempt in the window expires (the attempt is not recorded).
        """
        now = self._clock()
        with self._lock:
            window = self._attempts.setdefault(client, deque())
            while window and now - window[0] >= self.window_seconds:
                window.popleft()
            if len(window) >= self.max_attempts:
                return max(1, math.ceil(self.window_seconds - (now - window[0])))
            window.append(now)
            return None

    def clear(self, client: str) -> None:
        with self._lock:
            self._attempts.pop(client, None)


_throttle: Optional[SignInThrottle] = None
_throttle_lock = threading.Lock()


def get_signin_throttle(max_attempts: int = 5, window_seconds: int = 300) -> SignInThrottle:
    """Process-wide throttle; limits are fixed by the first caller."""
    global _throttle
    with _throttle_lock:
        if _throttle is None:
            _throttle = SignInThrottle(max_attempts=max_attempts, window_seconds=window_seconds)
        return _throttle


def reset_signin_throttle() -> None:
    global _throttle
    with _throttle_lock:
        _throttle = None
