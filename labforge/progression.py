from __future__ import annotations

import logging
from dataclasses import dataclass, field

import redis

from labforge import notifications, store
from labforge.admission import PURCHASE_PIPELINE, AdmissionContext
from labforge.api.models import DeepLink, Notification, NotificationType, PlayerLedger
from labforge.catalog.registry import ActionDefinition, Catalog, ResearchNode
from labforge.catalog.singleton import get_catalog
from labforge.errors import UnknownAction
from labforge.game_config import (
    LAB_UPGRADES,
    UP_PER_LEVEL,
    UpgradeType,
    milestone_for,
    upgrade_value,
)
from labforge.ledger import apply_perk, apply_upgrade
from labforge.lock import player_lock
from labforge.notifications import NotificationDraft, milestone_draft


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProgressResult:
    ledger: PlayerLedger
    notifications: list[Notification] = field(default_factory=list)


def _milestone(trigger: str) -> list[NotificationDraft]:
    event = milestone_for(trigger)
    return [milestone_draft(event)] if event is not None else []


def level_up_drafts(*, old_level: int, reached: list[int]) -> list[NotificationDraft]:
    """One level_up per level gained, then any level milestones."""

    drafts = [
        NotificationDraft(
            type=NotificationType.level_up,
            title="Level Up!",
            message=f"You've reached level {lvl}! +{UP_PER_LEVEL} UP",
            deep_link=DeepLink(view="lab", target="upgrades"),
        )
        for lvl in reached
    ]
    if reached and old_level == 1:
        drafts += _milestone("first_level_up")
    if 5 in reached:
        drafts += _milestone("level_5")
    return drafts


def grant_unlocks(
    *,
    ledger: PlayerLedger,
    catalog: Catalog,
    source: ActionDefinition,
    purchased: frozenset[str],
) -> tuple[list[str], list[NotificationDraft]]:
    """Purchase the research nodes `source` grants and apply their perks.

    Nodes already owned are skipped. Returns (newly purchased ids, drafts).
    """

    new_ids: list[str] = []
    drafts: list[NotificationDraft] = []
    for nid in source.granted_unlocks:
        if nid in purchased or nid in new_ids:
            continue
        node = catalog.get(nid)
        if not isinstance(node, ResearchNode):
            raise RuntimeError(f"{source.id} grants unknown research node {nid!r}")

        apply_perk(ledger, node)
        new_ids.append(nid)

        message = f"{node.name} unlocked!"
        if node.unlock_description:
            message = f"{message} {node.unlock_description}"
        if nid == source.id:
            drafts.append(
                NotificationDraft(
                    type=NotificationType.research_complete,
                    title="Research Complete",
                    message=message,
                    deep_link=DeepLink(view="research", target=node.category),
                )
            )
            drafts += _milestone("first_research")
        else:
            drafts.append(
                NotificationDraft(
                    type=NotificationType.unlock,
                    title=f"Unlocked: {node.name}",
                    message=message,
                    deep_link=DeepLink(view="research", target=node.category),
                )
            )
        if node.unlock_type == "system_flag" and node.unlock_target == "publishing":
            drafts += _milestone("publishing_unlocked")
    return new_ids, drafts


def purchase_node(
    *,
    r: redis.Redis,
    player_id: str,
    node_id: str,
    now: int,
    catalog: Catalog | None = None,
) -> ProgressResult:
    """Buy a research node outright with RP. Same lock rules as researching it."""

    cat = catalog or get_catalog()
    node = cat.get(node_id)
    if not isinstance(node, ResearchNode):
        raise UnknownAction(node_id)

    def _txn(pipe: redis.client.Pipeline) -> ProgressResult:
        ledger = store.require_ledger(r=pipe, player_id=player_id)
        purchased = store.get_purchased(r=pipe, player_id=player_id)
        running = tuple(store.list_running_tasks(r=pipe, player_id=player_id))

        ctx = AdmissionContext(
            player_id=player_id,
            action=node,
            ledger=ledger,
            running=running,
            purchased=purchased,
            model_types=frozenset(),
            catalog=cat,
        )
        PURCHASE_PIPELINE.validate(ctx=ctx)

        ledger.research_points = ledger.research_points - node.rp_cost
        new_ids, drafts = grant_unlocks(ledger=ledger, catalog=cat, source=node, purchased=purchased)
        out = notifications.prepare(pipe, user_id=player_id, drafts=drafts, now=now)

        pipe.multi()
        store.stage_ledger(pipe, ledger)
        store.stage_purchase(pipe, player_id, new_ids, now=now)
        notifications.stage(pipe, out)
        return ProgressResult(ledger=ledger, notifications=out)

    with player_lock(r=r, player_id=player_id):
        result = store.player_transaction(
            r=r, player_id=player_id, fn=_txn, extra_watch=(notifications.events_key(player_id),)
        )
    logger.info("Player %s purchased research node %s for %d RP", player_id, node_id, node.rp_cost)
    return result


def purchase_upgrade(*, r: redis.Redis, player_id: str, upgrade_type: UpgradeType, now: int) -> ProgressResult:
    """Spend one UP on the next rank of a lab upgrade."""

    d = LAB_UPGRADES[upgrade_type]

    def _txn(pipe: redis.client.Pipeline) -> ProgressResult:
        ledger = store.require_ledger(r=pipe, player_id=player_id)
        rank = apply_upgrade(ledger, upgrade_type)
        drafts = [
            NotificationDraft(
                type=NotificationType.unlock,
                title=f"{d.name} Upgraded",
                message=f"Rank {rank}: {upgrade_value(upgrade_type, rank)} {d.unit}",
                deep_link=DeepLink(view="lab", target="upgrades"),
            )
        ]
        out = notifications.prepare(pipe, user_id=player_id, drafts=drafts, now=now)

        pipe.multi()
        store.stage_ledger(pipe, ledger)
        notifications.stage(pipe, out)
        return ProgressResult(ledger=ledger, notifications=out)

    with player_lock(r=r, player_id=player_id):
        result = store.player_transaction(r=r, player_id=player_id, fn=_txn)
    rank = getattr(result.ledger.ranks, upgrade_type.value)
    logger.info("Player %s upgraded %s to rank %d", player_id, upgrade_type.value, rank)
    return result
