"""Focus service: wires the countdown timer and reward ledger to storage and the scheduler.

One FocusService is built at startup and handed to whatever needs it. All
operations run on the event loop and are serialised by a single lock, so a
tick's persistence and reward accumulation finish before the next tick or
request is applied.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Sequence

import aiosqlite
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .rewards import COSMIC_REWARDS, LedgerSnapshot, Reward, RewardLedger
from .state_store import StateStore
from .timer import DEFAULT_DURATION_SECONDS, CountdownTimer, TickResult, format_timer_time

logger = logging.getLogger("tasko_focus.service")

TICK_JOB_ID = "countdown_tick"
PURGE_JOB_ID = "purge_old_events"
EVENT_RETENTION_DAYS = 30


def _now_ms() -> int:
    return int(time.time() * 1000)


class FocusService:
    """Owns the timer, the ledger, their persistence and the tick job."""

    def __init__(
        self,
        store: StateStore,
        scheduler: AsyncIOScheduler,
        tiers: Sequence[Reward] = COSMIC_REWARDS,
        default_duration_seconds: int = DEFAULT_DURATION_SECONDS,
        tick_seconds: int = 1,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.ledger = RewardLedger(tiers)
        self.timer = CountdownTimer(self.ledger, default_duration_seconds)
        self._tick_seconds = tick_seconds
        self._clock = clock or _now_ms
        self._lock = asyncio.Lock()

    # ── Startup ────────────────────────────────────────────────

    async def restore(self):
        """Load persisted state, falling back to defaults per component.

        A timer persisted as running resumes ticking from its stored counter.
        """
        async with self._lock:
            ledger_state = await self._load_component("ledger")
            try:
                self.ledger.from_dict(ledger_state)
            except ValueError as e:
                logger.warning(f"Restore: ledger state unreadable ({e}), starting from zero")
                await self.store.log_event("state_reset", {"component": "ledger", "error": str(e)})
                await self.store.save(self.ledger.to_dict())

            timer_state = await self._load_component("timer")
            try:
                self.timer.from_dict(timer_state)
            except ValueError as e:
                logger.warning(f"Restore: timer state unreadable ({e}), using defaults")
                await self.store.log_event("state_reset", {"component": "timer", "error": str(e)})
                await self.store.save(self.timer.to_dict())

            logger.info(
                f"Restore: {self.ledger.total_focus_minutes} focus minutes, "
                f"timer {self.timer.phase.value} at {format_timer_time(self.timer.remaining_seconds)}"
            )
            if self.timer.is_running:
                logger.info("Restore: timer was running, resuming ticks")
                self._schedule_ticks()

    def register_maintenance_jobs(self):
        """Nightly purge of old audit events."""
        self.scheduler.add_job(
            self.purge_old_events,
            trigger=CronTrigger(hour=3, minute=0),
            id=PURGE_JOB_ID,
            replace_existing=True,
        )

    async def purge_old_events(self) -> dict:
        deleted = await self.store.purge_events(EVENT_RETENTION_DAYS)
        if deleted:
            logger.info(f"Purged {deleted} events older than {EVENT_RETENTION_DAYS} days")
        return {"deleted": deleted}

    # ── Timer operations ───────────────────────────────────────

    async def start(self) -> bool:
        async with self._lock:
            started = self.timer.start(self._clock())
            if not started:
                logger.info(f"Timer: start ignored ({self.timer.phase.value})")
                return False
            self._schedule_ticks()
            await self._persist_timer()
            await self.store.log_event("timer_started", {"remaining_seconds": self.timer.remaining_seconds})
            logger.info(f"Timer: started with {format_timer_time(self.timer.remaining_seconds)} left")
            return True

    async def pause(self) -> bool:
        async with self._lock:
            self._cancel_ticks()
            was_running = self.timer.pause()
            await self._persist_timer()
            if was_running:
                await self.store.log_event("timer_paused", {"remaining_seconds": self.timer.remaining_seconds})
                logger.info(f"Timer: paused at {format_timer_time(self.timer.remaining_seconds)}")
            return was_running

    async def reset(self):
        async with self._lock:
            self._cancel_ticks()
            self.timer.reset()
            await self._persist_timer()
            await self.store.log_event("timer_reset", {"duration_seconds": self.timer.duration_seconds})
            logger.info(f"Timer: reset to {format_timer_time(self.timer.duration_seconds)}")

    async def adjust_time(self, delta_minutes: int) -> int:
        async with self._lock:
            remaining = self.timer.adjust_time(delta_minutes)
            if not self.timer.is_running:
                self._cancel_ticks()
            await self._persist_timer()
            await self.store.log_event("time_adjusted", {"delta_minutes": delta_minutes, "remaining_seconds": remaining})
            logger.info(f"Timer: adjusted by {delta_minutes:+d}m, {format_timer_time(remaining)} left")
            return remaining

    async def set_duration(self, seconds: int) -> int:
        async with self._lock:
            if seconds < 1:
                logger.warning(f"Timer: duration {seconds}s clamped to 1s")
            duration = self.timer.set_duration(seconds)
            await self._persist_timer()
            await self.store.log_event("duration_set", {"duration_seconds": duration})
            logger.info(f"Timer: duration set to {format_timer_time(duration)}")
            return duration

    async def tick(self) -> TickResult:
        """Scheduled once per tick interval while the timer runs."""
        async with self._lock:
            result = self.timer.tick()
            if not self.timer.is_running:
                self._cancel_ticks()
            if not result.changed:
                return result

            if not result.expired:
                await self._persist_timer()
            else:
                # expired timer and credited minutes land in one transaction
                await self.store.save({**self.timer.to_dict(), **self.ledger.to_dict()})
                await self.store.log_event("timer_expired", {
                    "completed_minutes": result.completed_minutes,
                    "total_focus_minutes": self.ledger.total_focus_minutes,
                })
                logger.info(
                    f"Timer: session complete, +{result.completed_minutes}m "
                    f"(total {self.ledger.total_focus_minutes}m)"
                )
                await self._record_unlocks(result.unlocked_rewards, source="accumulate")
            return result

    # ── Ledger operations ──────────────────────────────────────

    async def accumulate(self, minutes: int) -> list[str]:
        async with self._lock:
            if minutes < 0:
                logger.warning(f"Ledger: negative minutes ({minutes}) ignored")
            unlocked = self.ledger.accumulate(minutes)
            await self._persist_ledger()
            await self._record_unlocks(unlocked, source="accumulate")
            return unlocked

    async def unlock_reward(self, reward_id: str) -> bool:
        async with self._lock:
            if not any(tier.id == reward_id for tier in self.ledger.tiers):
                logger.info(f"Ledger: unlock ignored, unknown reward {reward_id!r}")
                return False
            changed = self.ledger.unlock_manually(reward_id)
            await self._persist_ledger()
            if changed:
                await self._record_unlocks([reward_id], source="manual")
            return changed

    def snapshot(self) -> LedgerSnapshot:
        return self.ledger.snapshot()

    # ── Internal ───────────────────────────────────────────────

    def _schedule_ticks(self):
        self.scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self._tick_seconds),
            id=TICK_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def _cancel_ticks(self):
        if self.scheduler.get_job(TICK_JOB_ID):
            self.scheduler.remove_job(TICK_JOB_ID)

    async def _load_component(self, component: str) -> dict:
        """Read one component's keys; a database error reads as empty state."""
        try:
            return await self.store.load(f"{component}.")
        except aiosqlite.Error as e:
            logger.warning(f"Restore: cannot read {component} state ({e}), using defaults")
            await self.store.log_event("state_reset", {"component": component, "error": str(e)})
            return {}

    async def _persist_timer(self):
        await self.store.save(self.timer.to_dict())

    async def _persist_ledger(self):
        await self.store.save(self.ledger.to_dict())

    async def _record_unlocks(self, reward_ids: list[str], source: str):
        for reward_id in reward_ids:
            await self.store.log_event("reward_unlocked", {"reward_id": reward_id, "source": source})
            logger.info(f"Ledger: unlocked {reward_id} ({source})")
