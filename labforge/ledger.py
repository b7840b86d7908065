"""Ledger mutation rules: spending, level progression, perks and upgrade ranks.

All helpers mutate a `PlayerLedger` in memory; callers persist it inside the
player's transaction. The model re-validates every assignment, so an
overdraft raises before anything is written.
"""

from __future__ import annotations

import math

from labforge.api.models import PlayerLedger, ResourceAmounts
from labforge.catalog.registry import ActionDefinition, ResearchNode
from labforge.errors import UpgradeUnavailable
from labforge.game_config import (
    FOUNDER_MODIFIERS,
    JUNIOR_TRAINING_SPEEDUP,
    LAB_UPGRADES,
    LEVEL_EFFICIENCY_PER_LEVEL,
    MAX_LEVEL,
    STARTING_CASH,
    STARTING_RESEARCH_POINTS,
    UP_PER_LEVEL,
    XP_THRESHOLDS,
    FounderType,
    UpgradeType,
    required_level_for_rank,
)


def new_ledger(*, player_id: str, lab_name: str, founder_type: FounderType, now: int) -> PlayerLedger:
    return PlayerLedger(
        player_id=player_id,
        lab_name=lab_name,
        founder_type=founder_type,
        created_at=now,
        cash=STARTING_CASH,
        research_points=STARTING_RESEARCH_POINTS,
    )


def xp_to_next_level(level: int) -> int | None:
    """XP needed to leave `level`; None at the cap."""

    if level >= MAX_LEVEL:
        return None
    return XP_THRESHOLDS[level + 1]


def apply_experience(ledger: PlayerLedger, xp: int) -> list[int]:
    """Add XP and run the level-up loop. Returns every level reached, in order."""

    ledger.experience = ledger.experience + xp
    reached: list[int] = []
    while True:
        need = xp_to_next_level(ledger.level)
        if need is None or ledger.experience < need:
            break
        ledger.experience = ledger.experience - need
        ledger.level = ledger.level + 1
        ledger.upgrade_points = ledger.upgrade_points + UP_PER_LEVEL
        reached.append(ledger.level)
    return reached


# ---- costs ----


def shortfall(ledger: PlayerLedger, action: ActionDefinition) -> dict[str, int]:
    """Missing amount per resource; empty when the action is affordable."""

    out: dict[str, int] = {}
    cost = action.cost
    if ledger.cash < cost.cash:
        out["cash"] = cost.cash - ledger.cash
    if ledger.compute_units.current < cost.compute:
        out["compute"] = cost.compute - ledger.compute_units.current
    if ledger.research_points < cost.rp:
        out["rp"] = cost.rp - ledger.research_points
    free_staff = ledger.staff_capacity - ledger.junior_researchers
    if free_staff < action.staff_required:
        out["staff"] = action.staff_required - free_staff
    return out


def debit(ledger: PlayerLedger, action: ActionDefinition) -> ResourceAmounts:
    """Spend the action's cost and reserve its compute and staff. Returns what was paid."""

    cost = action.cost
    ledger.cash = ledger.cash - cost.cash
    ledger.research_points = ledger.research_points - cost.rp
    ledger.compute_units.current = ledger.compute_units.current - cost.compute
    if action.staff_required:
        ledger.junior_researchers = ledger.junior_researchers + action.staff_required
    return ResourceAmounts(cash=cost.cash, compute=cost.compute, rp=cost.rp)


def release(ledger: PlayerLedger, *, compute: int, staff: int) -> None:
    cu = ledger.compute_units
    cu.current = min(cu.max, cu.current + compute)
    if staff:
        ledger.junior_researchers = max(0, ledger.junior_researchers - staff)


def refund(ledger: PlayerLedger, paid: ResourceAmounts) -> None:
    ledger.cash = ledger.cash + paid.cash
    ledger.research_points = ledger.research_points + paid.rp


# ---- modifiers ----


def effective_duration_ms(ledger: PlayerLedger, action: ActionDefinition) -> int:
    """Base duration divided by the product of all speed modifiers, rounded down."""

    if action.is_hire:
        return action.duration_ms

    speed = 1 + (ledger.level - 1) * LEVEL_EFFICIENCY_PER_LEVEL
    if ledger.speed_bonus:
        speed *= 1 + ledger.speed_bonus / 100
    if action.is_research_node or action.category == "research":
        speed *= FOUNDER_MODIFIERS[ledger.founder_type].research_speed
    if action.trains is not None and ledger.junior_researchers:
        speed *= 1 + JUNIOR_TRAINING_SPEEDUP * ledger.junior_researchers
    return math.floor(action.duration_ms / speed)


def cash_multiplier(ledger: PlayerLedger) -> float:
    return ledger.money_multiplier * FOUNDER_MODIFIERS[ledger.founder_type].money_rewards


def reward_amounts(ledger: PlayerLedger, action: ActionDefinition) -> ResourceAmounts:
    r = action.rewards
    return ResourceAmounts(
        cash=math.floor(r.cash * cash_multiplier(ledger)),
        rp=r.rp,
        xp=r.xp,
    )


def credit(ledger: PlayerLedger, amounts: ResourceAmounts) -> None:
    ledger.cash = ledger.cash + amounts.cash
    ledger.research_points = ledger.research_points + amounts.rp


def format_rewards(amounts: ResourceAmounts) -> str:
    parts: list[str] = []
    if amounts.cash:
        parts.append(f"+${amounts.cash:,}")
    if amounts.rp:
        parts.append(f"+{amounts.rp} RP")
    if amounts.xp:
        parts.append(f"+{amounts.xp} XP")
    return ", ".join(parts) if parts else "Task completed"


# ---- perks / upgrades ----


def apply_perk(ledger: PlayerLedger, node: ResearchNode) -> None:
    value = node.perk_value
    kind = node.perk_type
    if kind == "speed":
        ledger.speed_bonus = ledger.speed_bonus + int(value)
    elif kind == "money_multiplier":
        ledger.money_multiplier = round(ledger.money_multiplier + float(value), 4)
    elif kind == "queue_slots":
        ledger.queue_slots = ledger.queue_slots + int(value)
    elif kind == "staff_capacity":
        ledger.staff_capacity = ledger.staff_capacity + int(value)
    elif kind == "compute_units":
        cu = ledger.compute_units
        cu.max = cu.max + int(value)
        cu.current = cu.current + int(value)


def apply_upgrade(ledger: PlayerLedger, upgrade: UpgradeType) -> int:
    """Spend one UP on the next rank of `upgrade`. Returns the new rank."""

    d = LAB_UPGRADES[upgrade]
    rank = getattr(ledger.ranks, upgrade.value)

    if ledger.upgrade_points < 1:
        raise UpgradeUnavailable("Not enough Upgrade Points")
    if rank >= d.max_rank:
        raise UpgradeUnavailable(f"{d.name} is already at max rank")
    next_rank = rank + 1
    needed = required_level_for_rank(next_rank)
    if ledger.level < needed:
        raise UpgradeUnavailable(f"{d.name} rank {next_rank} requires level {needed}")

    ledger.upgrade_points = ledger.upgrade_points - 1
    setattr(ledger.ranks, upgrade.value, next_rank)
    if upgrade == UpgradeType.queue:
        ledger.queue_slots = ledger.queue_slots + d.per_rank
    elif upgrade == UpgradeType.staff:
        ledger.staff_capacity = ledger.staff_capacity + d.per_rank
    else:
        cu = ledger.compute_units
        cu.max = cu.max + d.per_rank
        cu.current = cu.current + d.per_rank
    return next_rank
