"""
Start gate: at most one backend start request in flight per cooldown window.

All state changes happen in plain (non-async) methods. Under asyncio a method
without an ``await`` runs to completion before any other task is scheduled, so
the check-then-set in ``try_acquire`` is a single indivisible step no matter
how many login handshakes are being processed concurrently.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Optional

from core.contracts import Acquired, AlreadyInFlight, GateDecision

logger = logging.getLogger("StartGate")

Scheduler = Callable[[float, Callable[[], None]], Any]


def _loop_scheduler(delay: float, callback: Callable[[], None]):
    return asyncio.get_running_loop().call_later(delay, callback)


class StartGate:
    IDLE = "idle"
    IN_FLIGHT = "in_flight"

    def __init__(
        self,
        cooldown_sec: float = 30.0,
        clock: Callable[[], float] = time.time,
        scheduler: Optional[Scheduler] = None,
    ):
        self.cooldown_sec = float(cooldown_sec)
        self._clock = clock
        self._scheduler = scheduler or _loop_scheduler
        self._in_flight_since: Optional[float] = None
        # When the current boot was requested; survives cooldown expiry so the
        # "started N min ago" text keeps counting while the backend loads
        self._last_start_at: Optional[float] = None
        self._expiry_handle = None
        # Bumped on every transition so a stale expiry never releases a newer acquisition
        self._generation = 0

    # ---------------- state ----------------

    @property
    def state(self) -> str:
        return StartGate.IN_FLIGHT if self._in_flight_since is not None else StartGate.IDLE

    @property
    def in_flight(self) -> bool:
        return self._in_flight_since is not None

    @property
    def in_flight_since(self) -> Optional[float]:
        return self._in_flight_since

    @property
    def last_start_at(self) -> Optional[float]:
        return self._last_start_at

    def elapsed_minutes(self, now: Optional[float] = None) -> int:
        if self._last_start_at is None:
            return 0
        now = self._clock() if now is None else now
        return max(0, int((now - self._last_start_at) // 60))

    # ---------------- transitions ----------------

    def try_acquire(self, now: Optional[float] = None) -> GateDecision:
        if self._in_flight_since is not None:
            return AlreadyInFlight(self._in_flight_since)
        since = self._clock() if now is None else now
        self._last_start_at = since
        self._enter_in_flight(since)
        logger.info("🔒 Start gate acquired (cooldown=%.1fs).", self.cooldown_sec)
        return Acquired(since)

    def mark_starting(self, now: Optional[float] = None) -> float:
        """
        The panel says the backend is already starting. Make sure the gate
        reflects that so a login during boot never sends a second start, e.g.
        after this process restarted or the cooldown ran out. An existing
        start timestamp is kept.
        """
        now = self._clock() if now is None else now
        if self._last_start_at is None:
            self._last_start_at = now
        if self._in_flight_since is None:
            self._enter_in_flight(now)
            logger.info("🔒 Backend reported starting while gate idle; marking in flight.")
        return self._last_start_at

    def release(self) -> None:
        """Back to idle and forget the start timestamp (backend up, or start failed)."""
        self._last_start_at = None
        if self._in_flight_since is None:
            return
        self._leave_in_flight()
        logger.info("🔓 Start gate released.")

    # ---------------- internals ----------------

    def _enter_in_flight(self, since: float) -> None:
        self._generation += 1
        self._in_flight_since = since
        generation = self._generation
        self._expiry_handle = self._scheduler(self.cooldown_sec, lambda: self._expire(generation))

    def _leave_in_flight(self) -> None:
        handle, self._expiry_handle = self._expiry_handle, None
        if handle is not None:
            cancel = getattr(handle, "cancel", None)
            if callable(cancel):
                cancel()
        self._generation += 1
        self._in_flight_since = None

    def _expire(self, generation: int) -> None:
        if generation != self._generation or self._in_flight_since is None:
            return
        self._expiry_handle = None
        self._generation += 1
        self._in_flight_since = None
        logger.info("⏱️ Start gate cooldown expired (%.1fs); accepting new start requests.", self.cooldown_sec)
