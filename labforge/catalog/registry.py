from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import networkx as nx

from labforge import settings
from labforge.api.models import ModelType


MODEL_TYPES = frozenset(t.value for t in ModelType)
PERK_TYPES = frozenset({"speed", "money_multiplier", "queue_slots", "staff_capacity", "compute_units"})


class CatalogLoadError(RuntimeError):
    """Catalog files are missing or malformed."""


class CatalogIntegrityError(RuntimeError):
    """Catalog content is inconsistent (duplicates, dangling references, cycles)."""


@dataclass(frozen=True, slots=True)
class ActionCost:
    cash: int = 0
    compute: int = 0
    rp: int = 0


@dataclass(frozen=True, slots=True)
class ActionRewards:
    xp: int = 0
    cash: int = 0
    rp: int = 0
    unlocks: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ModelBlueprint:
    blueprint_id: str
    model_type: str
    score_min: int
    score_max: int


@dataclass(frozen=True, slots=True)
class ActionDefinition:
    id: str
    name: str
    category: str
    duration_ms: int
    cost: ActionCost = ActionCost()
    rewards: ActionRewards = ActionRewards()
    min_level: int = 1
    prerequisite_node_ids: tuple[str, ...] = ()
    description: str = ""
    cancellable: bool = True
    refund_on_cancel: bool = False
    requires_model_type: str | None = None
    trains: ModelBlueprint | None = None
    staff_required: int = 0

    @property
    def is_research_node(self) -> bool:
        return False

    @property
    def is_hire(self) -> bool:
        return self.staff_required > 0

    @property
    def granted_unlocks(self) -> tuple[str, ...]:
        return self.rewards.unlocks


@dataclass(frozen=True, slots=True)
class ResearchNode(ActionDefinition):
    """A purchasable node of the unlock graph.

    Researching it as a task (or buying it outright with RP) marks it purchased
    for the player; perks apply to the ledger at that moment.
    """

    unlock_type: str = "perk"
    unlock_target: str = ""
    unlock_description: str = ""
    perk_type: str | None = None
    perk_value: float = 0

    @property
    def is_research_node(self) -> bool:
        return True

    @property
    def node_id(self) -> str:
        return self.id

    @property
    def rp_cost(self) -> int:
        return self.cost.rp

    @property
    def prerequisite_nodes(self) -> tuple[str, ...]:
        return self.prerequisite_node_ids

    @property
    def granted_unlocks(self) -> tuple[str, ...]:
        return (self.id, *self.rewards.unlocks)


@dataclass(frozen=True, slots=True)
class Catalog:
    """Immutable action + research node definitions, in declaration order."""

    entries: tuple[ActionDefinition, ...]
    _by_id: dict[str, ActionDefinition] = field(repr=False)
    # Edges run prerequisite -> dependent.
    graph: nx.DiGraph = field(repr=False, compare=False)

    @staticmethod
    def from_entries(entries: list[ActionDefinition]) -> "Catalog":
        by_id: dict[str, ActionDefinition] = {}
        for e in entries:
            if e.id in by_id:
                raise CatalogIntegrityError(f"Duplicate catalog id: {e.id}")
            by_id[e.id] = e

        node_ids = {e.id for e in entries if e.is_research_node}
        for e in entries:
            for p in e.prerequisite_node_ids:
                if p not in node_ids:
                    raise CatalogIntegrityError(f"{e.id}: prerequisite {p!r} is not a research node")
            for u in e.rewards.unlocks:
                if u not in node_ids:
                    raise CatalogIntegrityError(f"{e.id}: unlock {u!r} is not a research node")

        graph = nx.DiGraph()
        graph.add_nodes_from(e.id for e in entries)
        for e in entries:
            graph.add_edges_from((p, e.id) for p in e.prerequisite_node_ids)
        if not nx.is_directed_acyclic_graph(graph):
            cycle = " -> ".join(u for u, _ in nx.find_cycle(graph))
            raise CatalogIntegrityError(f"Prerequisite cycle: {cycle}")

        return Catalog(entries=tuple(entries), _by_id=by_id, graph=graph)

    def get(self, id: str) -> ActionDefinition | None:
        return self._by_id.get(id)

    def __contains__(self, item: object) -> bool:
        return isinstance(item, str) and item in self._by_id

    def __iter__(self) -> Iterator[ActionDefinition]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def research_nodes(self) -> tuple[ResearchNode, ...]:
        return tuple(e for e in self.entries if isinstance(e, ResearchNode))

    def actions(self) -> tuple[ActionDefinition, ...]:
        return tuple(e for e in self.entries if not e.is_research_node)

    def categories(self) -> tuple[str, ...]:
        """Categories in first-declared order."""

        return tuple(dict.fromkeys(e.category for e in self.entries))

    def starter_node_ids(self) -> frozenset[str]:
        """Free level-1 nodes with no prerequisites; every player owns these from the start."""

        return frozenset(
            n.id for n in self.research_nodes() if n.rp_cost == 0 and n.min_level <= 1 and not n.prerequisite_node_ids
        )


# ---- JSON loading ----


def _read_json_rows(path: Path, key: str) -> list[dict[str, Any]]:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise CatalogLoadError(f"Catalog file not found: {path}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CatalogLoadError(f"Invalid JSON in {path}: {e}") from e

    rows = data.get(key) if isinstance(data, dict) else None
    if not isinstance(rows, list):
        raise CatalogLoadError(f"{path}: expected an object with a {key!r} list")
    if not all(isinstance(row, dict) for row in rows):
        raise CatalogLoadError(f"{path}: every {key!r} entry must be an object")
    return rows


def _int(row: dict[str, Any], name: str, default: int = 0, *, where: str) -> int:
    value = row.get(name, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise CatalogLoadError(f"{where}: {name!r} must be a non-negative integer, got {value!r}")
    return value


def _str_list(row: dict[str, Any], name: str, *, where: str) -> tuple[str, ...]:
    value = row.get(name, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise CatalogLoadError(f"{where}: {name!r} must be a list of ids")
    return tuple(value)


def _common_fields(row: dict[str, Any], *, where: str) -> dict[str, Any]:
    rid = row.get("id")
    name = row.get("name")
    category = row.get("category")
    if not isinstance(rid, str) or not rid:
        raise CatalogLoadError(f"{where}: missing 'id'")
    where = f"{where} ({rid})"
    if not isinstance(name, str) or not name:
        raise CatalogLoadError(f"{where}: missing 'name'")
    if not isinstance(category, str) or not category:
        raise CatalogLoadError(f"{where}: missing 'category'")

    cost = row.get("cost", {})
    rewards = row.get("rewards", {})
    if not isinstance(cost, dict) or not isinstance(rewards, dict):
        raise CatalogLoadError(f"{where}: 'cost' and 'rewards' must be objects")

    min_level = _int(row, "min_level", 1, where=where)
    if min_level < 1:
        raise CatalogLoadError(f"{where}: 'min_level' must be >= 1")

    return {
        "id": rid,
        "name": name,
        "category": category,
        "description": str(row.get("description", "")),
        "duration_ms": _int(row, "duration_ms", where=where),
        "cost": ActionCost(
            cash=_int(cost, "cash", where=where),
            compute=_int(cost, "compute", where=where),
            rp=_int(cost, "rp", where=where),
        ),
        "rewards": ActionRewards(
            xp=_int(rewards, "xp", where=where),
            cash=_int(rewards, "cash", where=where),
            rp=_int(rewards, "rp", where=where),
            unlocks=_str_list(rewards, "unlocks", where=where),
        ),
        "min_level": min_level,
        "prerequisite_node_ids": _str_list(row, "prerequisites", where=where),
    }


def action_from_row(row: dict[str, Any], *, where: str = "action") -> ActionDefinition:
    fields = _common_fields(row, where=where)
    where = f"{where} ({fields['id']})"

    trains = row.get("trains")
    blueprint: ModelBlueprint | None = None
    if trains is not None:
        if not isinstance(trains, dict) or not trains.get("blueprint_id") or not trains.get("model_type"):
            raise CatalogLoadError(f"{where}: 'trains' needs blueprint_id and model_type")
        if trains["model_type"] not in MODEL_TYPES:
            raise CatalogLoadError(f"{where}: unknown model_type {trains['model_type']!r}")
        lo = _int(trains, "score_min", where=where)
        hi = _int(trains, "score_max", where=where)
        if lo > hi:
            raise CatalogLoadError(f"{where}: score_min > score_max")
        blueprint = ModelBlueprint(
            blueprint_id=str(trains["blueprint_id"]),
            model_type=str(trains["model_type"]),
            score_min=lo,
            score_max=hi,
        )

    requires = row.get("requires_model_type")
    if requires and requires not in MODEL_TYPES:
        raise CatalogLoadError(f"{where}: unknown requires_model_type {requires!r}")
    return ActionDefinition(
        **fields,
        # Training runs are never cancellable.
        cancellable=bool(row.get("cancellable", True)) and blueprint is None,
        refund_on_cancel=bool(row.get("refund_on_cancel", False)),
        requires_model_type=str(requires) if requires else None,
        trains=blueprint,
        staff_required=_int(row, "staff_required", where=where),
    )


def node_from_row(row: dict[str, Any], *, where: str = "research node") -> ResearchNode:
    fields = _common_fields(row, where=where)
    where = f"{where} ({fields['id']})"

    perk_value = row.get("perk_value", 0)
    if isinstance(perk_value, bool) or not isinstance(perk_value, (int, float)):
        raise CatalogLoadError(f"{where}: 'perk_value' must be a number")
    perk_type = row.get("perk_type") or None
    if perk_type is not None and perk_type not in PERK_TYPES:
        raise CatalogLoadError(f"{where}: unknown perk_type {perk_type!r}")

    return ResearchNode(
        **fields,
        cancellable=bool(row.get("cancellable", True)),
        refund_on_cancel=bool(row.get("refund_on_cancel", False)),
        unlock_type=str(row.get("unlock_type", "perk")),
        unlock_target=str(row.get("unlock_target", "")),
        unlock_description=str(row.get("unlock_description", "")),
        perk_type=perk_type,
        perk_value=perk_value,
    )


def load_catalog_json(*, actions_path: Path, nodes_path: Path) -> Catalog:
    actions = [
        action_from_row(row, where=f"{actions_path.name}[{i}]")
        for i, row in enumerate(_read_json_rows(actions_path, "actions"))
    ]
    nodes = [
        node_from_row(row, where=f"{nodes_path.name}[{i}]")
        for i, row in enumerate(_read_json_rows(nodes_path, "research_nodes"))
    ]
    return Catalog.from_entries([*actions, *nodes])


def load_catalog(*, root: Path) -> Catalog:
    """Load `<root>/catalog/{actions,research_nodes}.json`.

    Falls back to the built-in catalog when the files are missing or malformed,
    unless LABFORGE_STRICT_CATALOG=1. Integrity errors always propagate.
    """

    catalog_dir = root / "catalog"

    try:
        return load_catalog_json(
            actions_path=catalog_dir / "actions.json",
            nodes_path=catalog_dir / "research_nodes.json",
        )
    except CatalogLoadError:
        if settings.strict_catalog():
            raise
        from labforge.catalog.defaults import default_catalog

        return default_catalog()
