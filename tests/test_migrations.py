from __future__ import annotations

import json

import pytest

from labforge import store
from labforge.api.models import LEDGER_SCHEMA_VERSION
from labforge.migrations import load_ledger, migrate_all_ledgers, migrate_ledger_payload

T0 = 1_700_000_000_000


def _v1_payload(player_id: str = "old") -> dict:
    # No schema_version: written before versioning existed.
    return {
        "player_id": player_id,
        "lab_name": "Legacy Lab",
        "founder_type": "business",
        "created_at": T0,
        "cash": 1234,
        "research_points": 7,
        "reputation": 55,
        "compute_units": 2,
        "parallel_tasks": 3,
        "staff_capacity": 2,
        "junior_researchers": 1,
        "level": 4,
        "experience": 12,
    }


def test_v1_payload_is_upgraded_to_current() -> None:
    payload, changed = migrate_ledger_payload(_v1_payload())
    assert changed
    assert payload["schema_version"] == LEDGER_SCHEMA_VERSION
    assert "reputation" not in payload
    assert "parallel_tasks" not in payload
    assert payload["compute_units"] == {"current": 2, "max": 2}
    assert payload["queue_slots"] == 2


def test_current_payload_is_untouched() -> None:
    payload = {"schema_version": LEDGER_SCHEMA_VERSION, "player_id": "x"}
    out, changed = migrate_ledger_payload(dict(payload))
    assert changed is False
    assert out == payload


def test_newer_schema_is_refused() -> None:
    with pytest.raises(ValueError, match="newer"):
        migrate_ledger_payload({"schema_version": LEDGER_SCHEMA_VERSION + 1})


def test_load_ledger_keeps_values() -> None:
    ledger = load_ledger(json.dumps(_v1_payload()))
    assert ledger.cash == 1234
    assert ledger.level == 4
    assert ledger.founder_type == "business"
    # 2 queue slots + 1 junior
    assert ledger.parallel_task_limit == 3


def test_reads_migrate_lazily(r) -> None:
    r.set(store.ledger_key("old"), json.dumps(_v1_payload()))
    ledger = store.require_ledger(r=r, player_id="old")
    assert ledger.schema_version == LEDGER_SCHEMA_VERSION
    # The stored document is only rewritten by a write or the batch migration.
    assert "schema_version" not in json.loads(r.get(store.ledger_key("old")))


def test_migrate_all_ledgers_rewrites_once(r, player) -> None:
    r.set(store.ledger_key("old"), json.dumps(_v1_payload()))
    r.sadd(store.PLAYERS_SET_KEY, "old")

    assert migrate_all_ledgers(r=r) == {"updated": 1, "total": 2}
    stored = json.loads(r.get(store.ledger_key("old")))
    assert stored["schema_version"] == LEDGER_SCHEMA_VERSION
    assert stored["queue_slots"] == 2

    assert migrate_all_ledgers(r=r) == {"updated": 0, "total": 2}
