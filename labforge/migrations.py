"""Forward migrations for persisted player ledgers.

Ledgers are stored as JSON documents carrying `schema_version`. Each entry in
`MIGRATIONS` upgrades a payload from its key version to the next one. Reads
migrate lazily in memory; `migrate_all_ledgers` rewrites every stored ledger.
Documents written before versioning existed have no `schema_version` and are
version 1.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

import redis

from labforge.api.models import LEDGER_SCHEMA_VERSION, PlayerLedger


logger = logging.getLogger(__name__)

Payload = dict[str, Any]


def _v1_to_v2(payload: Payload) -> Payload:
    # Reputation was retired.
    payload.pop("reputation", None)
    return payload


def _v2_to_v3(payload: Payload) -> Payload:
    cu = payload.get("compute_units", 1)
    if not isinstance(cu, dict):
        n = int(cu)
        payload["compute_units"] = {"current": n, "max": n}

    if "queue_slots" not in payload:
        # v2 stored the derived total; juniors are now added on read.
        total = int(payload.pop("parallel_tasks", 1))
        juniors = int(payload.get("junior_researchers", 0))
        payload["queue_slots"] = max(1, total - juniors)
    payload.pop("parallel_tasks", None)
    return payload


MIGRATIONS: dict[int, Callable[[Payload], Payload]] = {
    1: _v1_to_v2,
    2: _v2_to_v3,
}


def migrate_ledger_payload(payload: Payload) -> tuple[Payload, bool]:
    """Upgrade a raw ledger payload to the current schema.

    Returns the payload and whether anything changed.
    """

    version = int(payload.get("schema_version", 1))
    if version > LEDGER_SCHEMA_VERSION:
        raise ValueError(
            f"Ledger schema_version {version} is newer than supported version {LEDGER_SCHEMA_VERSION}"
        )

    changed = False
    while version < LEDGER_SCHEMA_VERSION:
        payload = MIGRATIONS[version](payload)
        version += 1
        payload["schema_version"] = version
        changed = True
    return payload, changed


def load_ledger(raw: str) -> PlayerLedger:
    data = json.loads(raw)
    data, _ = migrate_ledger_payload(data)
    return PlayerLedger.model_validate(data)


def migrate_all_ledgers(*, r: redis.Redis) -> dict[str, int]:
    """Rewrite every stored ledger at the current schema version."""

    from labforge.store import PLAYERS_SET_KEY, ledger_key

    updated = 0
    total = 0
    for player_id in sorted(r.smembers(PLAYERS_SET_KEY)):
        key = ledger_key(player_id)

        def _migrate(pipe: redis.client.Pipeline) -> bool:
            raw = pipe.get(key)
            if not raw:
                return False
            data, changed = migrate_ledger_payload(json.loads(raw))
            if not changed:
                return False
            ledger = PlayerLedger.model_validate(data)
            pipe.multi()
            pipe.set(key, ledger.model_dump_json())
            return True

        total += 1
        if r.transaction(_migrate, key, value_from_callable=True):
            updated += 1
            logger.info("Migrated ledger for player %s", player_id)

    return {"updated": updated, "total": total}
