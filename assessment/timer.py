"""
Countdown timer with visibility-aware pausing.

Elapsed time is accumulated from clock deltas only while the page is
visible; hidden spans are never counted, regardless of how often tick() is
called. Expiry fires once.
"""
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class CountdownTimer:
    def __init__(
        self,
        limit_sec: Optional[int],
        clock: Callable[[], float] = time.monotonic,
        on_expire: Optional[Callable[[], None]] = None,
        elapsed: float = 0.0,
    ):
        self.limit_sec = int(limit_sec or 0)
        self._clock = clock
        self._on_expire = on_expire
        self._elapsed = max(0.0, float(elapsed))
        self._visible = True
        self._running = False
        self._mark: Optional[float] = None
        self._expired = False

    @property
    def timed(self) -> bool:
        return self.limit_sec > 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def elapsed(self) -> float:
        live = 0.0
        if self._running and self._visible and self._mark is not None:
            live = max(0.0, self._clock() - self._mark)
        return self._elapsed + live

    @property
    def remaining(self) -> Optional[int]:
        """Whole seconds left, or None when untimed."""
        if not self.timed:
            return None
        return max(0, self.limit_sec - int(self.elapsed))

    def _account(self):
        if self._running and self._visible and self._mark is not None:
            now = self._clock()
            self._elapsed += max(0.0, now - self._mark)
            self._mark = now

    def start(self):
        if self._running or self._expired:
            return
        self._running = True
        self._mark = self._clock() if self._visible else None
        self.tick()

    def stop(self):
        self._account()
        self._running = False
        self._mark = None

    def set_visible(self, visible: bool):
        if visible == self._visible:
            return
        self._account()
        self._visible = visible
        self._mark = self._clock() if (visible and self._running) else None
        logger.debug(f"Timer {'resumed' if visible else 'paused'} at {self._elapsed:.1f}s")

    def tick(self) -> bool:
        """Account elapsed time and fire expiry if the limit is reached. Returns expired."""
        self._account()
        if self.timed and not self._expired and self._elapsed >= self.limit_sec:
            self._expired = True
            self.stop()
            # A late tick must not report more time than the limit allowed
            self._elapsed = float(self.limit_sec)
            logger.info(f"Timer expired after {self.limit_sec}s")
            if self._on_expire:
                self._on_expire()
        return self._expired


def format_clock(seconds: Optional[float]) -> str:
    if seconds is None:
        return "--:--"
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
