from dataclasses import dataclass
import math
import threading
import time


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int


@dataclass
class _Window:
    opened_at: float
    length: float
    hits: int = 0

    def expired(self, now: float) -> bool:
        return now >= self.opened_at + self.length


class RateLimitService:
    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def check(self, key: str, *, limit: int, window_seconds: int) -> RateLimitDecision:
        limit = max(1, int(limit))
        length = float(max(1, int(window_seconds)))
        now = self._clock()
        with self._lock:
            self._windows = {
                window_key: window
                for window_key, window in self._windows.items()
                if not window.expired(now)
            }
            window = self._windows.get(key)
            if window is None:
                window = self._windows[key] = _Window(opened_at=now, length=length)
            window.hits += 1
            hits = window.hits
            closes_in = window.opened_at + window.length - now

        if hits <= limit:
            return RateLimitDecision(allowed=True, limit=limit, remaining=limit - hits, retry_after_seconds=0)
        return RateLimitDecision(
            allowed=False,
            limit=limit,
            remaining=0,
            retry_after_seconds=max(1, math.ceil(closes_in)),
        )

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


rate_limit_service = RateLimitService()
