from __future__ import annotations

import logging

import redis

from labforge import store
from labforge.api.models import PlayerLedger
from labforge.catalog.registry import Catalog, ResearchNode
from labforge.catalog.singleton import get_catalog
from labforge.errors import PlayerExists
from labforge.game_config import FounderType
from labforge.ledger import apply_perk, new_ledger


logger = logging.getLogger(__name__)


def create_player(
    *,
    r: redis.Redis,
    player_id: str,
    lab_name: str,
    founder_type: FounderType,
    now: int,
    catalog: Catalog | None = None,
) -> PlayerLedger:
    """Create a fresh ledger and grant the catalog's free starter nodes."""

    cat = catalog if catalog is not None else get_catalog()
    starters = sorted(cat.starter_node_ids())

    def _txn(pipe: redis.client.Pipeline) -> PlayerLedger:
        if store.player_exists(r=pipe, player_id=player_id):
            raise PlayerExists(player_id)

        ledger = new_ledger(player_id=player_id, lab_name=lab_name, founder_type=founder_type, now=now)
        for nid in starters:
            node = cat.get(nid)
            if isinstance(node, ResearchNode):
                apply_perk(ledger, node)

        pipe.multi()
        store.stage_ledger(pipe, ledger)
        store.stage_purchase(pipe, player_id, starters, now=now)
        pipe.sadd(store.PLAYERS_SET_KEY, player_id)
        return ledger

    ledger = store.player_transaction(r=r, player_id=player_id, fn=_txn)
    logger.info("Created player %s (%s, %s founder)", player_id, lab_name, founder_type.value)
    return ledger
