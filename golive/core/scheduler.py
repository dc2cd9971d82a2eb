"""Self-rescheduling one-shot timer used for credential and webhook renewal"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger("golive.scheduler")


class RenewalTimer:
    """Runs ``renew`` after a delay, then again after whatever delay it returns.

    The next delay always comes from the latest renewal, never from a fixed
    period. If ``renew`` raises, the exception is handed to ``on_error`` and
    the cycle stops.
    """

    def __init__(
        self,
        name: str,
        renew: Callable[[], float],
        on_error: Callable[[Exception], None],
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.name = name
        self._renew = renew
        self._on_error = on_error
        self._timer_factory = timer_factory
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._cancelled = False

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def start(self, delay: float) -> None:
        """Arm the timer, replacing any outstanding one"""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._cancelled = False
            self._arm(delay)

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _arm(self, delay: float) -> None:
        delay = max(float(delay), 0.0)
        timer = self._timer_factory(delay, self._fire)
        timer.daemon = True
        self._timer = timer
        timer.start()
        logger.debug(f"Armed {self.name} renewal in {delay:.0f}s")

    def _fire(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._timer = None

        try:
            next_delay = self._renew()
        except Exception as e:
            logger.error(f"{self.name} renewal failed: {e}")
            self._on_error(e)
            return

        with self._lock:
            if not self._cancelled and self._timer is None:
                self._arm(next_delay)
