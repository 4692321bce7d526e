"""Countdown timer engine — pure logic, no I/O.

All time values are integer seconds, except the audit timestamp which is
epoch milliseconds. The wall clock is injected via now_ms parameters for
deterministic testing. The decrementing counter is the only source of truth
for remaining time; started_at_ms is never used to recompute it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .rewards import RewardLedger

DEFAULT_DURATION_SECONDS = 25 * 60
MIN_DURATION_SECONDS = 1

DURATION_KEY = "timer.duration"
REMAINING_KEY = "timer.remaining"
RUNNING_KEY = "timer.running"
STARTED_AT_KEY = "timer.startedAt"


class TimerPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    EXPIRED = "expired"


class TimerEvent(Enum):
    TICK = "tick"
    EXPIRED = "expired"


@dataclass
class TickResult:
    events: list[TimerEvent] = field(default_factory=list)
    completed_minutes: int | None = None
    unlocked_rewards: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.events)

    @property
    def expired(self) -> bool:
        return TimerEvent.EXPIRED in self.events


def format_timer_time(seconds: int) -> str:
    """Format seconds as 'MM:SS', or 'H:MM:SS' from one hour up."""
    seconds = max(0, seconds)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def _as_int(data: dict, key: str, default):
    value = data.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Invalid {key}: {value!r}")
    return value


class CountdownTimer:
    """A resumable single countdown that reports finished minutes to a RewardLedger.

    Not thread-safe: callers run every method on the same event loop.
    """

    def __init__(self, ledger: RewardLedger, duration_seconds: int = DEFAULT_DURATION_SECONDS):
        duration_seconds = max(MIN_DURATION_SECONDS, duration_seconds)
        self._ledger = ledger
        self._duration_seconds: int = duration_seconds
        self._remaining_seconds: int = duration_seconds
        self._is_running: bool = False
        self._started_at_ms: int | None = None

    # ---- Read-only properties ----

    @property
    def duration_seconds(self) -> int:
        return self._duration_seconds

    @property
    def remaining_seconds(self) -> int:
        return self._remaining_seconds

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def started_at_ms(self) -> int | None:
        return self._started_at_ms

    @property
    def ledger(self) -> RewardLedger:
        return self._ledger

    @property
    def phase(self) -> TimerPhase:
        if self._is_running:
            return TimerPhase.RUNNING
        if self._remaining_seconds == 0:
            return TimerPhase.EXPIRED
        if self._remaining_seconds == self._duration_seconds:
            return TimerPhase.IDLE
        return TimerPhase.PAUSED

    # ---- Core methods ----

    def set_duration(self, seconds: int) -> int:
        """Set the cycle length (clamped to >= 1s) and refill remaining time.

        Applies immediately, even mid-run. Returns the duration actually set.
        """
        seconds = max(MIN_DURATION_SECONDS, seconds)
        self._duration_seconds = seconds
        self._remaining_seconds = seconds
        return seconds

    def start(self, now_ms: int) -> bool:
        """Begin counting down. Returns True on a stopped -> running transition."""
        if self._is_running or self._remaining_seconds == 0:
            return False
        self._is_running = True
        self._started_at_ms = now_ms
        return True

    def pause(self) -> bool:
        """Stop counting down. Returns True if the timer was running."""
        was_running = self._is_running
        self._is_running = False
        return was_running

    def reset(self) -> None:
        self._remaining_seconds = self._duration_seconds
        self._is_running = False
        self._started_at_ms = None

    def adjust_time(self, delta_minutes: int) -> int:
        """Shift remaining time by whole minutes, floored at zero.

        While stopped the duration follows the new remaining time, but never
        drops below 1s: adjusting an idle timer down to zero leaves it Expired
        with a 1-second duration, and a later reset() starts a 1-second cycle.
        While running the duration only grows, so remaining never exceeds it;
        a run adjusted down to zero stops without counting as a finished session.
        Returns the new remaining seconds.
        """
        remaining = max(0, self._remaining_seconds + delta_minutes * 60)
        self._remaining_seconds = remaining
        if not self._is_running:
            self._duration_seconds = max(MIN_DURATION_SECONDS, remaining)
        elif remaining > self._duration_seconds:
            self._duration_seconds = remaining
        elif remaining == 0:
            self._is_running = False
        return remaining

    def tick(self) -> TickResult:
        """Advance one second. No-op unless running with time left.

        On reaching zero, reports duration // 60 minutes to the ledger and
        stops. This is the only automatic way out of the running state.
        """
        result = TickResult()
        if not self._is_running or self._remaining_seconds <= 0:
            return result

        self._remaining_seconds = max(0, self._remaining_seconds - 1)
        result.events.append(TimerEvent.TICK)

        if self._remaining_seconds == 0:
            completed = self._duration_seconds // 60
            result.unlocked_rewards = self._ledger.accumulate(completed)
            result.completed_minutes = completed
            self._is_running = False
            result.events.append(TimerEvent.EXPIRED)

        return result

    # ---- Serialization ----

    def to_dict(self) -> dict:
        """Serialize state for persistence, keyed by store key."""
        return {
            DURATION_KEY: self._duration_seconds,
            REMAINING_KEY: self._remaining_seconds,
            RUNNING_KEY: self._is_running,
            STARTED_AT_KEY: self._started_at_ms,
        }

    def to_export_dict(self) -> dict:
        """CamelCase dict for API export."""
        return {
            "durationSeconds": self._duration_seconds,
            "remainingSeconds": self._remaining_seconds,
            "isRunning": self._is_running,
            "startedAtEpochMillis": self._started_at_ms,
            "phase": self.phase.value,
            "display": format_timer_time(self._remaining_seconds),
        }

    def from_dict(self, data: dict) -> None:
        """Restore state from persisted values. Missing keys mean defaults.

        Raises ValueError on malformed data; the timer is left untouched then.
        """
        duration = _as_int(data, DURATION_KEY, self._duration_seconds)
        if duration is None or duration < MIN_DURATION_SECONDS:
            raise ValueError(f"Invalid {DURATION_KEY}: {duration!r}")
        remaining = _as_int(data, REMAINING_KEY, duration)
        if remaining is None or not 0 <= remaining <= duration:
            raise ValueError(f"Invalid {REMAINING_KEY}: {remaining!r}")
        running = data.get(RUNNING_KEY, False)
        if not isinstance(running, bool):
            raise ValueError(f"Invalid {RUNNING_KEY}: {running!r}")
        started_at = _as_int(data, STARTED_AT_KEY, None)

        self._duration_seconds = duration
        self._remaining_seconds = remaining
        self._is_running = running and remaining > 0
        self._started_at_ms = started_at
