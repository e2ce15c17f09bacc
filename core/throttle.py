"""Spaziatura minima tra chiamate verso un servizio esterno, condivisa tra thread."""

import threading
import time
from typing import Callable, Optional


class Throttle:
    """Garantisce almeno `min_interval` secondi tra due acquire() consecutivi, tra tutti i thread."""

    def __init__(self, min_interval: float,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last: Optional[float] = None

    def acquire(self) -> None:
        with self._lock:
            now = self._clock()
            if self._last is not None:
                wait = self._last + self.min_interval - now
                if wait > 0:
                    self._sleep(wait)
                    now = self._clock()
            self._last = now
