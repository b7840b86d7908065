"""Operator tooling: player reset and catalog validation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import redis

from labforge import notifications, store
from labforge.catalog.registry import load_catalog_json
from labforge.unlocks import transitive_prerequisites


logger = logging.getLogger(__name__)


def reset_player(*, r: redis.Redis, player_id: str) -> dict[str, int]:
    """Delete every document belonging to a player, including their feed.

    This is the only way purchased research nodes are ever removed.
    """

    feed = notifications.feed_key(player_id)
    note_ids = r.zrange(feed, 0, -1)
    task_ids = r.hkeys(store.tasks_key(player_id))

    pipe = r.pipeline(transaction=True)
    pipe.delete(*store.player_keys(player_id))
    if note_ids:
        pipe.delete(*(f"{notifications.NOTIFICATION_KEY_PREFIX}{nid}" for nid in note_ids))
    pipe.delete(feed, notifications.unread_key(player_id), notifications.events_key(player_id))
    if task_ids:
        pipe.zrem(store.DUE_INDEX_KEY, *(store.due_member(player_id, t) for t in task_ids))
    pipe.srem(store.PLAYERS_SET_KEY, player_id)
    pipe.execute()

    logger.warning("Reset player %s (%d tasks, %d notifications)", player_id, len(task_ids), len(note_ids))
    return {"tasks": len(task_ids), "notifications": len(note_ids)}


def validate_catalog(*, root: Path) -> dict[str, Any]:
    """Strictly load `<root>/catalog/*.json` and summarize it.

    Raises CatalogLoadError / CatalogIntegrityError on bad content.
    """

    catalog_dir = root / "catalog"
    cat = load_catalog_json(
        actions_path=catalog_dir / "actions.json",
        nodes_path=catalog_dir / "research_nodes.json",
    )
    widest = max((len(transitive_prerequisites(cat, e.id)) for e in cat), default=0)
    return {
        "actions": len(cat.actions()),
        "research_nodes": len(cat.research_nodes()),
        "categories": list(cat.categories()),
        "starter_nodes": sorted(cat.starter_node_ids()),
        "most_transitive_prerequisites": widest,
    }
