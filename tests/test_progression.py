from __future__ import annotations

import pytest

from labforge import store
from labforge.api.models import NotificationType
from labforge.errors import (
    AlreadyUnlocked,
    InsufficientResources,
    Locked,
    PlayerExists,
    UnknownAction,
    UpgradeUnavailable,
)
from labforge.game_config import STARTING_CASH, FounderType, UpgradeType
from labforge.players import create_player
from labforge.progression import purchase_node, purchase_upgrade

T0 = 1_700_000_000_000


def test_create_player_grants_starter_nodes(r, player) -> None:
    assert player.cash == STARTING_CASH
    assert player.level == 1
    assert player.parallel_task_limit == 1
    assert store.get_purchased(r=r, player_id="p1") == frozenset({"rn_contracts", "rn_bp_llm"})
    assert store.list_player_ids(r=r) == ["p1"]


def test_create_player_twice_fails(r, player) -> None:
    with pytest.raises(PlayerExists):
        create_player(r=r, player_id="p1", lab_name="Again", founder_type=FounderType.business, now=T0)


def test_purchase_node_spends_rp_and_applies_perk(r, player, edit_ledger) -> None:
    edit_ledger("p1", research_points=30)
    result = purchase_node(r=r, player_id="p1", node_id="rn_money", now=T0)

    assert result.ledger.research_points == 10
    assert result.ledger.money_multiplier == 1.5
    assert store.require_ledger(r=r, player_id="p1") == result.ledger
    assert "rn_money" in store.get_purchased(r=r, player_id="p1")
    assert [n.type for n in result.notifications] == [NotificationType.research_complete, NotificationType.milestone]


def test_purchase_node_twice_is_rejected(r, player, edit_ledger) -> None:
    edit_ledger("p1", research_points=100)
    purchase_node(r=r, player_id="p1", node_id="rn_money", now=T0)
    with pytest.raises(AlreadyUnlocked):
        purchase_node(r=r, player_id="p1", node_id="rn_money", now=T0)
    assert store.require_ledger(r=r, player_id="p1").research_points == 80


def test_purchase_node_checks_lock_and_rp(r, player, edit_ledger) -> None:
    with pytest.raises(Locked):
        purchase_node(r=r, player_id="p1", node_id="rn_advanced", now=T0)
    with pytest.raises(InsufficientResources) as ei:
        purchase_node(r=r, player_id="p1", node_id="rn_speed", now=T0)
    assert ei.value.shortfall == {"rp": 50}


def test_purchase_node_rejects_plain_actions(r, player) -> None:
    with pytest.raises(UnknownAction):
        purchase_node(r=r, player_id="p1", node_id="act_quick", now=T0)


def test_first_research_milestone_fires_once(r, player, edit_ledger) -> None:
    edit_ledger("p1", research_points=200)
    first = purchase_node(r=r, player_id="p1", node_id="rn_money", now=T0)
    second = purchase_node(r=r, player_id="p1", node_id="rn_queue", now=T0 + 1)

    assert [n.event_id for n in first.notifications if n.event_id] == ["evt_first_research"]
    assert [n.event_id for n in second.notifications if n.event_id] == []
    assert second.ledger.queue_slots == 2


def test_publishing_node_emits_publishing_milestone(r, player, edit_ledger) -> None:
    edit_ledger("p1", research_points=10)
    result = purchase_node(r=r, player_id="p1", node_id="rn_publishing", now=T0)
    assert "evt_publishing_unlocked" in [n.event_id for n in result.notifications]


# ---- lab upgrades ----


def test_upgrade_needs_upgrade_points(r, player) -> None:
    with pytest.raises(UpgradeUnavailable, match="Not enough Upgrade Points"):
        purchase_upgrade(r=r, player_id="p1", upgrade_type=UpgradeType.queue, now=T0)


def test_queue_upgrade_adds_a_slot(r, player, edit_ledger) -> None:
    edit_ledger("p1", upgrade_points=2)
    result = purchase_upgrade(r=r, player_id="p1", upgrade_type=UpgradeType.queue, now=T0)

    ledger = result.ledger
    assert ledger.upgrade_points == 1
    assert ledger.ranks.queue == 1
    assert ledger.queue_slots == 2
    assert ledger.parallel_task_limit == 2
    assert [(n.title, n.message) for n in result.notifications] == [("Queue Capacity Upgraded", "Rank 1: 2 slots")]


def test_compute_upgrade_raises_current_and_max(r, player, edit_ledger) -> None:
    edit_ledger("p1", upgrade_points=1)
    ledger = purchase_upgrade(r=r, player_id="p1", upgrade_type=UpgradeType.compute, now=T0).ledger
    assert (ledger.compute_units.current, ledger.compute_units.max) == (2, 2)


def test_upgrade_rank_is_level_gated(r, player, edit_ledger) -> None:
    ledger = store.require_ledger(r=r, player_id="p1")
    ledger.ranks.staff = 2
    edit_ledger("p1", upgrade_points=1, ranks=ledger.ranks)

    with pytest.raises(UpgradeUnavailable, match="rank 3 requires level 6"):
        purchase_upgrade(r=r, player_id="p1", upgrade_type=UpgradeType.staff, now=T0)
    assert store.require_ledger(r=r, player_id="p1").upgrade_points == 1
