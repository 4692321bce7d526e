"""Unit tests for RewardLedger: threshold unlocking, overrides, persistence."""

import json
import random

import pytest

from tasko_focus.rewards import (
    COSMIC_REWARDS,
    REWARDS_KEY,
    TOTAL_MINUTES_KEY,
    Reward,
    RewardLedger,
    load_reward_tiers,
    validate_tiers,
)


def unlocked_map(ledger: RewardLedger) -> dict[str, bool]:
    return {status.reward.id: status.unlocked for status in ledger.snapshot().rewards}


class TestDefaults:
    def test_reference_tiers(self):
        assert [r.required_minutes for r in COSMIC_REWARDS] == [10, 30, 60, 180, 300]
        assert [r.id for r in COSMIC_REWARDS] == ["dust", "nebula", "planet", "rings", "galaxy"]

    def test_fresh_ledger_all_locked(self):
        ledger = RewardLedger()
        snap = ledger.snapshot()
        assert snap.total_focus_minutes == 0
        assert snap.unlocked_count == 0
        assert snap.next_reward.id == "dust"
        assert snap.minutes_to_next == 10


class TestAccumulate:
    def test_threshold_boundaries(self):
        ledger = RewardLedger()
        ledger.accumulate(9)
        assert not ledger.is_unlocked("dust")

        assert ledger.accumulate(1) == ["dust"]
        assert ledger.total_focus_minutes == 10

        ledger.accumulate(19)
        assert not ledger.is_unlocked("nebula")
        assert ledger.accumulate(1) == ["nebula"]
        assert ledger.is_unlocked("dust")
        assert not ledger.is_unlocked("planet")

    def test_multiple_unlocks_in_one_call(self):
        ledger = RewardLedger()
        assert ledger.accumulate(200) == ["dust", "nebula", "planet", "rings"]

    def test_zero_is_noop(self):
        ledger = RewardLedger()
        ledger.accumulate(15)
        before = ledger.snapshot()
        assert ledger.accumulate(0) == []
        assert ledger.snapshot() == before

    def test_negative_rejected(self):
        ledger = RewardLedger()
        ledger.accumulate(12)
        before = unlocked_map(ledger)
        assert ledger.accumulate(-5) == []
        assert ledger.total_focus_minutes == 12
        assert unlocked_map(ledger) == before

    def test_monotonic_unlocking(self):
        rng = random.Random(7)
        ledger = RewardLedger()
        seen: set[str] = set()
        for _ in range(100):
            ledger.accumulate(rng.randint(-5, 15))
            now = {rid for rid, unlocked in unlocked_map(ledger).items() if unlocked}
            assert seen <= now
            seen = now


class TestManualUnlock:
    def test_unlock_above_threshold(self):
        ledger = RewardLedger()
        assert ledger.unlock_manually("galaxy")
        assert ledger.is_unlocked("galaxy")
        assert ledger.total_focus_minutes == 0
        assert not ledger.is_unlocked("dust")

    def test_unknown_id_is_noop(self):
        ledger = RewardLedger()
        before = ledger.snapshot()
        assert not ledger.unlock_manually("black-hole")
        assert ledger.snapshot() == before

    def test_already_unlocked_reports_no_change(self):
        ledger = RewardLedger()
        ledger.accumulate(10)
        assert not ledger.unlock_manually("dust")

    def test_manual_unlock_survives_accumulation(self):
        ledger = RewardLedger()
        ledger.unlock_manually("rings")
        assert ledger.accumulate(5) == []
        assert ledger.is_unlocked("rings")

    def test_accumulate_does_not_report_manual_unlocks(self):
        ledger = RewardLedger()
        ledger.unlock_manually("nebula")
        assert ledger.accumulate(40) == ["dust"]


class TestSnapshot:
    def test_badge_numbers(self):
        ledger = RewardLedger()
        ledger.accumulate(45)
        data = ledger.snapshot().to_dict()
        assert data["totalFocusMinutes"] == 45
        assert data["unlockedCount"] == 2
        assert data["rewardCount"] == 5
        assert data["nextRewardId"] == "planet"
        assert data["minutesToNext"] == 15
        assert data["rewards"][0]["requiredMinutes"] == 10

    def test_all_unlocked(self):
        ledger = RewardLedger()
        ledger.accumulate(300)
        snap = ledger.snapshot()
        assert snap.next_reward is None
        assert snap.minutes_to_next is None


class TestSerialization:
    def test_round_trip(self):
        ledger = RewardLedger()
        ledger.accumulate(35)
        ledger.unlock_manually("galaxy")

        restored = RewardLedger()
        restored.from_dict(json.loads(json.dumps(ledger.to_dict())))
        assert restored.snapshot() == ledger.snapshot()
        # override survives reload and further accumulation
        restored.accumulate(1)
        assert restored.is_unlocked("galaxy")

    def test_persisted_shape(self):
        ledger = RewardLedger()
        ledger.accumulate(10)
        data = ledger.to_dict()
        assert data[TOTAL_MINUTES_KEY] == 10
        assert data[REWARDS_KEY][0] == {"id": "dust", "unlocked": True}
        assert [entry["id"] for entry in data[REWARDS_KEY]] == ["dust", "nebula", "planet", "rings", "galaxy"]

    def test_unknown_ids_ignored(self):
        ledger = RewardLedger()
        ledger.from_dict({TOTAL_MINUTES_KEY: 5, REWARDS_KEY: [{"id": "comet", "unlocked": True}]})
        assert ledger.total_focus_minutes == 5
        assert ledger.unlocked_ids() == []

    def test_stale_locked_flag_recomputed(self):
        ledger = RewardLedger()
        ledger.from_dict({TOTAL_MINUTES_KEY: 60, REWARDS_KEY: [{"id": "dust", "unlocked": False}]})
        assert ledger.unlocked_ids() == ["dust", "nebula", "planet"]

    @pytest.mark.parametrize("data", [
        {TOTAL_MINUTES_KEY: -3},
        {TOTAL_MINUTES_KEY: "ten"},
        {TOTAL_MINUTES_KEY: False},
        {REWARDS_KEY: "dust"},
        {REWARDS_KEY: [{"unlocked": True}]},
        {REWARDS_KEY: [{"id": "dust", "unlocked": "yes"}]},
    ])
    def test_malformed_raises(self, data):
        ledger = RewardLedger()
        ledger.accumulate(20)
        with pytest.raises(ValueError):
            ledger.from_dict(data)
        assert ledger.total_focus_minutes == 20


class TestTierConfig:
    def test_sorted_by_threshold(self):
        tiers = validate_tiers([Reward("b", "B", "", 50), Reward("a", "A", "", 5)])
        assert [t.id for t in tiers] == ["a", "b"]

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            RewardLedger([Reward("a", "A", "", 5), Reward("a", "B", "", 6)])

    def test_duplicate_thresholds_rejected(self):
        with pytest.raises(ValueError):
            RewardLedger([Reward("a", "A", "", 5), Reward("b", "B", "", 5)])

    def test_negative_threshold_rejected(self):
        with pytest.raises(ValueError):
            RewardLedger([Reward("a", "A", "", -1)])

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "tiers.json"
        path.write_text(json.dumps([
            {"id": "spark", "name": "Spark", "requiredMinutes": 1},
            {"id": "star", "name": "Star", "description": "Shines", "requiredMinutes": 20},
        ]), encoding="utf-8")
        tiers = load_reward_tiers(path)
        assert [t.id for t in tiers] == ["spark", "star"]
        assert tiers[1].description == "Shines"

    def test_load_none_uses_builtin(self):
        assert load_reward_tiers(None) == COSMIC_REWARDS

    @pytest.mark.parametrize("content", ["not json", "[]", '[{"name": "x"}]', '[{"id": "a", "requiredMinutes": -2}]'])
    def test_invalid_file_falls_back(self, tmp_path, content):
        path = tmp_path / "tiers.json"
        path.write_text(content, encoding="utf-8")
        assert load_reward_tiers(path) == COSMIC_REWARDS

    def test_missing_file_falls_back(self, tmp_path):
        assert load_reward_tiers(tmp_path / "nope.json") == COSMIC_REWARDS
