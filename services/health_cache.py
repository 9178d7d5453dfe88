import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class ProxyHealthState:
    timestamp: float
    healthy: bool


class HealthCache:
    """Short-lived memo of the backend health check.

    Reads may be stale by up to ``ttl_s``; concurrent writers simply overwrite
    each other.
    """

    def __init__(self, ttl_s: float = 5.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_s = ttl_s
        self._clock = clock
        self._state = ProxyHealthState(timestamp=float("-inf"), healthy=False)

    @property
    def state(self) -> ProxyHealthState:
        return self._state

    def fresh(self) -> Optional[ProxyHealthState]:
        if self._clock() - self._state.timestamp < self.ttl_s:
            return self._state
        return None

    def record(self, healthy: bool, *, at: Optional[float] = None) -> ProxyHealthState:
        self._state = ProxyHealthState(timestamp=self._clock() if at is None else at, healthy=healthy)
        return self._state

    def now(self) -> float:
        return self._clock()
