import time
import threading
from typing import Dict, Optional


class RateLimiter:
    """Spaces requests evenly at requests_per_minute across threads.

    Each acquire reserves the next free slot and sleeps until it arrives.
    A 429 pushes every slot back by the provider's retry_after.
    """
    def __init__(self, requests_per_minute: Optional[int] = None, clock=time.monotonic, sleep=time.sleep):
        self.requests_per_minute = requests_per_minute
        self.lock = threading.Lock()
        self._clock = clock
        self._sleep = sleep
        self._next_slot = 0.0

        self.total_acquired = 0
        self.total_waited = 0.0
        self.last_429_time: Optional[float] = None

    @property
    def interval(self) -> float:
        if not self.requests_per_minute:
            return 0.0
        return 60.0 / self.requests_per_minute

    def acquire(self) -> float:
        """Block until a request may be sent. Returns seconds waited."""
        with self.lock:
            now = self._clock()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self.interval
            wait_time = slot - now
            self.total_acquired += 1
            self.total_waited += wait_time

        if wait_time > 0:
            self._sleep(wait_time)
        return wait_time

    def record_429(self, retry_after: Optional[float] = None):
        with self.lock:
            now = self._clock()
            self.last_429_time = now
            if retry_after:
                self._next_slot = max(self._next_slot, now + retry_after)

    def get_status(self) -> Dict:
        with self.lock:
            return {
                'requests_per_minute': self.requests_per_minute,
                'next_slot_in_sec': max(0.0, self._next_slot - self._clock()),
                'total_acquired': self.total_acquired,
                'total_waited_sec': self.total_waited,
                'last_429': self.last_429_time,
            }
