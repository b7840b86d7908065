"""Unlock graph evaluation.

Pure functions over (ledger, catalog, purchased set). Nothing here is cached:
lock state is recomputed from the inputs on every call.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import networkx as nx

from labforge.api.models import PlayerLedger
from labforge.catalog.registry import ActionDefinition, Catalog


@dataclass(frozen=True, slots=True)
class NodeState:
    is_purchased: bool
    is_locked: bool
    # Human-readable; level gap is reported before missing research.
    lock_reason: str | None = None
    missing_prerequisites: tuple[str, ...] = ()


def node_state(
    *,
    ledger: PlayerLedger,
    entry: ActionDefinition,
    purchased: frozenset[str] | set[str],
    catalog: Catalog | None = None,
) -> NodeState:
    is_purchased = entry.is_research_node and entry.id in purchased
    if is_purchased:
        return NodeState(is_purchased=True, is_locked=False)

    missing = tuple(p for p in entry.prerequisite_node_ids if p not in purchased)
    if ledger.level < entry.min_level:
        return NodeState(
            is_purchased=False,
            is_locked=True,
            lock_reason=f"Requires level {entry.min_level}",
            missing_prerequisites=missing,
        )
    if missing:
        first = missing[0]
        name = first
        if catalog is not None and (node := catalog.get(first)) is not None:
            name = node.name
        return NodeState(
            is_purchased=False,
            is_locked=True,
            lock_reason=f"Requires research: {name}",
            missing_prerequisites=missing,
        )
    return NodeState(is_purchased=False, is_locked=False)


def ordered_entries(catalog: Catalog) -> list[ActionDefinition]:
    """Catalog entries grouped by category (first-declared order), declaration order within."""

    rank = {c: i for i, c in enumerate(catalog.categories())}
    indexed = list(enumerate(catalog.entries))
    indexed.sort(key=lambda pair: (rank[pair[1].category], pair[0]))
    return [e for _i, e in indexed]


def evaluate(
    *,
    ledger: PlayerLedger,
    catalog: Catalog,
    purchased: Iterable[str],
) -> dict[str, NodeState]:
    """Lock state for every catalog entry, keyed by id in listing order."""

    owned = frozenset(purchased)
    return {
        e.id: node_state(ledger=ledger, entry=e, purchased=owned, catalog=catalog) for e in ordered_entries(catalog)
    }


def available_per_category(states: dict[str, NodeState], catalog: Catalog) -> dict[str, int]:
    """Count of unlocked, not-yet-purchased research nodes per category."""

    out: dict[str, int] = {}
    for node in catalog.research_nodes():
        out.setdefault(node.category, 0)
        st = states.get(node.id)
        if st is not None and not st.is_locked and not st.is_purchased:
            out[node.category] += 1
    return out


def transitive_prerequisites(catalog: Catalog, entry_id: str) -> list[str]:
    """All research nodes `entry_id` depends on, nearest first, each listed once."""

    if entry_id not in catalog:
        return []
    return [dep for _, dep in nx.bfs_edges(catalog.graph, entry_id, reverse=True)]
