"""Reward ledger — pure logic, no I/O.

Accumulates focused minutes and derives which cosmic reward tiers are
unlocked. A tier is unlocked when its threshold is reached, or when it was
unlocked by hand (a sticky override bit that never clears).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

logger = logging.getLogger("tasko_focus.rewards")

TOTAL_MINUTES_KEY = "ledger.totalMinutes"
REWARDS_KEY = "ledger.rewards"


@dataclass(frozen=True)
class Reward:
    id: str
    name: str
    description: str
    required_minutes: int
    image_url: str = ""


# Canonical cosmic progression, smallest threshold first.
COSMIC_REWARDS: tuple[Reward, ...] = (
    Reward(
        id="dust",
        name="Stardust",
        description="The first fragments of your universe begin to shine",
        required_minutes=10,
        image_url="https://images.pexels.com/photos/816608/pexels-photo-816608.jpeg",
    ),
    Reward(
        id="nebula",
        name="Violet Nebula",
        description="A magnificent nebula takes shape in your galaxy",
        required_minutes=30,
        image_url="https://images.pexels.com/photos/7672255/pexels-photo-7672255.jpeg",
    ),
    Reward(
        id="planet",
        name="Nascent Planet",
        description="A new planet emerges from the cosmic dust",
        required_minutes=60,
        image_url="https://images.pexels.com/photos/7672256/pexels-photo-7672256.jpeg",
    ),
    Reward(
        id="rings",
        name="Planetary Rings",
        description="Majestic rings form around your planet",
        required_minutes=180,
        image_url="https://images.pexels.com/photos/7672257/pexels-photo-7672257.jpeg",
    ),
    Reward(
        id="galaxy",
        name="Complete Galaxy",
        description="Your galaxy reaches its final form, a dazzling cosmic show",
        required_minutes=300,
        image_url="https://images.pexels.com/photos/7672258/pexels-photo-7672258.jpeg",
    ),
)


@dataclass(frozen=True)
class RewardStatus:
    reward: Reward
    unlocked: bool

    def to_dict(self) -> dict:
        return {
            "id": self.reward.id,
            "name": self.reward.name,
            "description": self.reward.description,
            "requiredMinutes": self.reward.required_minutes,
            "imageUrl": self.reward.image_url,
            "unlocked": self.unlocked,
        }


@dataclass(frozen=True)
class LedgerSnapshot:
    total_focus_minutes: int
    rewards: tuple[RewardStatus, ...]

    @property
    def unlocked_count(self) -> int:
        return sum(1 for status in self.rewards if status.unlocked)

    @property
    def next_reward(self) -> Reward | None:
        """First locked tier in progression order, if any."""
        for status in self.rewards:
            if not status.unlocked:
                return status.reward
        return None

    @property
    def minutes_to_next(self) -> int | None:
        upcoming = self.next_reward
        if upcoming is None:
            return None
        return max(0, upcoming.required_minutes - self.total_focus_minutes)

    def to_dict(self) -> dict:
        """CamelCase dict for API export."""
        upcoming = self.next_reward
        return {
            "totalFocusMinutes": self.total_focus_minutes,
            "unlockedCount": self.unlocked_count,
            "rewardCount": len(self.rewards),
            "nextRewardId": upcoming.id if upcoming else None,
            "minutesToNext": self.minutes_to_next,
            "rewards": [status.to_dict() for status in self.rewards],
        }


def validate_tiers(tiers: Iterable[Reward]) -> tuple[Reward, ...]:
    """Check ids/thresholds are unique and non-negative; return tiers sorted by threshold."""
    tiers = tuple(tiers)
    ids = [tier.id for tier in tiers]
    thresholds = [tier.required_minutes for tier in tiers]
    if len(set(ids)) != len(ids):
        raise ValueError(f"Duplicate reward ids: {ids}")
    if len(set(thresholds)) != len(thresholds):
        raise ValueError(f"Duplicate reward thresholds: {thresholds}")
    for tier in tiers:
        if isinstance(tier.required_minutes, bool) or not isinstance(tier.required_minutes, int):
            raise ValueError(f"Reward {tier.id!r} threshold must be an integer")
        if tier.required_minutes < 0:
            raise ValueError(f"Reward {tier.id!r} has a negative threshold")
    return tuple(sorted(tiers, key=lambda tier: tier.required_minutes))


def load_reward_tiers(path: Path | None) -> tuple[Reward, ...]:
    """Load tier definitions from a JSON list, falling back to COSMIC_REWARDS.

    Each entry: {"id", "name", "description", "requiredMinutes", "imageUrl"?}.
    """
    if path is None:
        return COSMIC_REWARDS
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
        tiers = [
            Reward(
                id=str(entry["id"]),
                name=str(entry.get("name", entry["id"])),
                description=str(entry.get("description", "")),
                required_minutes=entry["requiredMinutes"],
                image_url=str(entry.get("imageUrl", "")),
            )
            for entry in raw
        ]
        if not tiers:
            raise ValueError("no tiers defined")
        return validate_tiers(tiers)
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Reward tiers: could not load {path} ({e}), using built-in tiers")
        return COSMIC_REWARDS


class RewardLedger:
    """Total focus minutes plus the derived unlock state of each reward tier."""

    def __init__(self, tiers: Sequence[Reward] = COSMIC_REWARDS):
        self._tiers: tuple[Reward, ...] = validate_tiers(tiers)
        self._total_focus_minutes: int = 0
        self._manual_unlocks: set[str] = set()

    # ---- Read-only properties ----

    @property
    def total_focus_minutes(self) -> int:
        return self._total_focus_minutes

    @property
    def tiers(self) -> tuple[Reward, ...]:
        return self._tiers

    def is_unlocked(self, reward_id: str) -> bool:
        for tier in self._tiers:
            if tier.id == reward_id:
                return self._unlocked(tier)
        return False

    def unlocked_ids(self) -> list[str]:
        return [tier.id for tier in self._tiers if self._unlocked(tier)]

    # ---- Core methods ----

    def accumulate(self, minutes: int) -> list[str]:
        """Add completed minutes. Negative input counts as 0.

        Returns the ids of tiers newly unlocked by this call.
        """
        minutes = max(0, minutes)
        before = set(self.unlocked_ids())
        self._total_focus_minutes += minutes
        return [rid for rid in self.unlocked_ids() if rid not in before]

    def unlock_manually(self, reward_id: str) -> bool:
        """Force one tier unlocked. Unknown ids are ignored.

        Returns True if the tier was locked before the call.
        """
        for tier in self._tiers:
            if tier.id == reward_id:
                was_unlocked = self._unlocked(tier)
                self._manual_unlocks.add(reward_id)
                return not was_unlocked
        return False

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            total_focus_minutes=self._total_focus_minutes,
            rewards=tuple(RewardStatus(tier, self._unlocked(tier)) for tier in self._tiers),
        )

    # ---- Serialization ----

    def to_dict(self) -> dict:
        """Persisted representation: total plus the ordered {id, unlocked} overlay."""
        return {
            TOTAL_MINUTES_KEY: self._total_focus_minutes,
            REWARDS_KEY: [
                {"id": tier.id, "unlocked": self._unlocked(tier)} for tier in self._tiers
            ],
        }

    def from_dict(self, data: dict) -> None:
        """Restore from persisted values. Missing keys mean defaults.

        Raises ValueError on malformed data; the ledger is left untouched then.
        """
        total = data.get(TOTAL_MINUTES_KEY, 0)
        if isinstance(total, bool) or not isinstance(total, int) or total < 0:
            raise ValueError(f"Invalid {TOTAL_MINUTES_KEY}: {total!r}")

        overlay = data.get(REWARDS_KEY, [])
        if not isinstance(overlay, list):
            raise ValueError(f"Invalid {REWARDS_KEY}: expected a list")

        thresholds = {tier.id: tier.required_minutes for tier in self._tiers}
        manual: set[str] = set()
        for entry in overlay:
            if not isinstance(entry, dict) or not isinstance(entry.get("id"), str):
                raise ValueError(f"Invalid reward entry: {entry!r}")
            unlocked = entry.get("unlocked", False)
            if not isinstance(unlocked, bool):
                raise ValueError(f"Invalid unlocked flag for {entry['id']!r}")
            required = thresholds.get(entry["id"])
            # Unlocked below its threshold can only come from a manual unlock
            if unlocked and required is not None and required > total:
                manual.add(entry["id"])

        self._total_focus_minutes = total
        self._manual_unlocks = manual

    # ---- Internal ----

    def _unlocked(self, tier: Reward) -> bool:
        return tier.required_minutes <= self._total_focus_minutes or tier.id in self._manual_unlocks
