"""Game constants: level curve, upgrade ranks, founder modifiers, milestone events."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


MAX_LEVEL = 20
UP_PER_LEVEL = 1

# XP needed to go from (level - 1) to level. Experience is spent on level-up.
XP_THRESHOLDS: dict[int, int] = {
    1: 0,
    2: 100,
    3: 220,
    4: 360,
    5: 520,
    6: 700,
    7: 900,
    8: 1120,
    9: 1360,
    10: 1620,
    11: 1900,
    12: 2200,
    13: 2520,
    14: 2860,
    15: 3220,
    16: 3600,
    17: 4000,
    18: 4420,
    19: 4860,
    20: 5320,
}

STARTING_CASH = 5000
STARTING_RESEARCH_POINTS = 0

# +1% task speed per level above 1.
LEVEL_EFFICIENCY_PER_LEVEL = 0.01
# Each active junior researcher speeds up training runs by 10%.
JUNIOR_TRAINING_SPEEDUP = 0.1


class UpgradeType(StrEnum):
    queue = "queue"
    staff = "staff"
    compute = "compute"


@dataclass(frozen=True, slots=True)
class UpgradeDefinition:
    id: UpgradeType
    name: str
    base: int
    per_rank: int
    max_rank: int
    unit: str


LAB_UPGRADES: dict[UpgradeType, UpgradeDefinition] = {
    UpgradeType.queue: UpgradeDefinition(UpgradeType.queue, "Queue Capacity", 1, 1, 8, "slots"),
    UpgradeType.staff: UpgradeDefinition(UpgradeType.staff, "Staff Capacity", 1, 1, 6, "hires"),
    UpgradeType.compute: UpgradeDefinition(UpgradeType.compute, "Compute", 1, 1, 10, "CU"),
}

# (min_rank, max_rank, required_level)
RANK_LEVEL_GATES: tuple[tuple[int, int, int], ...] = (
    (0, 2, 1),
    (3, 4, 6),
    (5, 6, 11),
    (7, 10, 16),
)


def upgrade_value(upgrade: UpgradeType, rank: int) -> int:
    d = LAB_UPGRADES[upgrade]
    return d.base + d.per_rank * rank


def required_level_for_rank(rank: int) -> int:
    for lo, hi, level in RANK_LEVEL_GATES:
        if lo <= rank <= hi:
            return level
    return MAX_LEVEL


def max_available_rank(level: int) -> int:
    best = 0
    for _lo, hi, required in RANK_LEVEL_GATES:
        if level >= required:
            best = hi
    return best


class FounderType(StrEnum):
    technical = "technical"
    business = "business"


@dataclass(frozen=True, slots=True)
class FounderModifiers:
    research_speed: float
    model_score: float
    money_rewards: float


FOUNDER_MODIFIERS: dict[FounderType, FounderModifiers] = {
    FounderType.technical: FounderModifiers(research_speed=1.25, model_score=1.1, money_rewards=0.8),
    FounderType.business: FounderModifiers(research_speed=0.8, model_score=1.0, money_rewards=1.3),
}


@dataclass(frozen=True, slots=True)
class MilestoneEvent:
    event_id: str
    trigger: str
    title: str
    message: str
    view: str
    target: str | None = None


MILESTONE_EVENTS: tuple[MilestoneEvent, ...] = (
    MilestoneEvent(
        "evt_first_level_up",
        "first_level_up",
        "Level Up! Upgrade Points Unlocked",
        "You earned UP from leveling. Spend them in Lab > Upgrades to increase your queue, staff, or compute capacity.",
        "lab",
        "upgrades",
    ),
    MilestoneEvent(
        "evt_first_research",
        "first_research",
        "Research Unlocked!",
        "Use Research Points to unlock new models, capabilities, and perks.",
        "research",
    ),
    MilestoneEvent(
        "evt_first_model",
        "first_model",
        "First Model Trained!",
        "Your model is now in Lab > Models. Train more versions to improve scores, or use it for contracts.",
        "lab",
        "models",
    ),
    MilestoneEvent(
        "evt_publishing_unlocked",
        "publishing_unlocked",
        "Publishing Unlocked!",
        "You can now publish models to compete on the World leaderboards.",
        "lab",
        "models",
    ),
    MilestoneEvent(
        "evt_level_5",
        "level_5",
        "Passive Income Available",
        "At level 5 you can unlock Model API Income in Research.",
        "research",
    ),
)


def milestone_for(trigger: str) -> MilestoneEvent | None:
    return next((m for m in MILESTONE_EVENTS if m.trigger == trigger), None)


# Time Warp (dev only).
ALLOWED_TIME_SCALES: tuple[int, ...] = (1, 5, 20, 100)
