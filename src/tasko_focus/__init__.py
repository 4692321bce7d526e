"""Tasko focus engine: countdown timer, cosmic reward ledger and their local service."""

from .rewards import COSMIC_REWARDS, LedgerSnapshot, Reward, RewardLedger
from .timer import CountdownTimer, TickResult, TimerEvent, TimerPhase, format_timer_time

__all__ = [
    "COSMIC_REWARDS",
    "CountdownTimer",
    "LedgerSnapshot",
    "Reward",
    "RewardLedger",
    "TickResult",
    "TimerEvent",
    "TimerPhase",
    "format_timer_time",
]
