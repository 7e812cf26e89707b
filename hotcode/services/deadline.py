"""Startup deadline: a cancellable one-shot timer."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class StartupDeadline:
    """Fires ``on_expired(generation)`` once if not cancelled within ``timeout`` seconds.

    Re-arming cancels the previous timer. Each arm gets a generation number
    and a fire whose generation is no longer current is dropped, so a timer
    that was already running when it got cancelled never reaches the callback.

    A fire leaves the deadline armed. The callback may hand the expiry to
    another thread, which then calls :meth:`expire` with the generation it was
    given; that only succeeds if nothing cancelled or re-armed the deadline in
    between.
    """

    def __init__(self, timeout: float, on_expired: Callable[[int], None]) -> None:
        self.timeout = timeout
        self._on_expired = on_expired
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0

    @property
    def armed(self) -> bool:
        with self._lock:
            return self._timer is not None

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def arm(self) -> None:
        with self._lock:
            self._cancel_locked()
            self._generation += 1
            generation = self._generation
            timer = threading.Timer(self.timeout, self._fire, args=(generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()
        logger.debug("Startup deadline armed for %.1fs", self.timeout)

    def cancel(self) -> None:
        with self._lock:
            if self._cancel_locked():
                logger.debug("Startup deadline cancelled")

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return self._timer is not None and generation == self._generation

    def expire(self, generation: int) -> bool:
        """Disarm the deadline if ``generation`` is still the armed one.

        Returns whether the expiry was taken.
        """
        with self._lock:
            if self._timer is None or generation != self._generation:
                return False
            self._timer = None
            return True

    def _cancel_locked(self) -> bool:
        if self._timer is None:
            return False
        self._timer.cancel()
        self._timer = None
        self._generation += 1
        return True

    def _fire(self, generation: int) -> None:
        if not self.is_current(generation):
            return
        logger.warning("Startup was not confirmed within %.1fs", self.timeout)
        self._on_expired(generation)
