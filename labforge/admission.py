from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from labforge.api.models import PlayerLedger, TaskInstance
from labforge.catalog.registry import ActionDefinition, Catalog
from labforge.errors import AlreadyUnlocked, CapacityExceeded, InsufficientResources, Locked
from labforge.ledger import shortfall
from labforge.unlocks import node_state


@dataclass(frozen=True, slots=True)
class AdmissionContext:
    """Everything a validator may look at; read inside the player's transaction."""

    player_id: str
    action: ActionDefinition
    ledger: PlayerLedger
    running: tuple[TaskInstance, ...]
    purchased: frozenset[str]
    model_types: frozenset[str]
    catalog: Catalog


class AdmissionValidator(ABC):
    """One admission check. Raises an EngineError subclass to reject."""

    @abstractmethod
    def validate(self, *, ctx: AdmissionContext) -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class UnlockValidator(AdmissionValidator):
    def validate(self, *, ctx: AdmissionContext) -> None:
        action = ctx.action
        if action.is_research_node:
            if action.id in ctx.purchased:
                raise AlreadyUnlocked(action.id)
            if any(t.action_id == action.id for t in ctx.running):
                raise AlreadyUnlocked(action.id, in_progress=True)

        st = node_state(ledger=ctx.ledger, entry=action, purchased=ctx.purchased, catalog=ctx.catalog)
        if st.is_locked:
            level_gap = ctx.ledger.level < action.min_level
            raise Locked(
                action.id,
                required_level=action.min_level if level_gap else None,
                current_level=ctx.ledger.level if level_gap else None,
                missing_prerequisites=st.missing_prerequisites,
            )


@dataclass(frozen=True, slots=True)
class ModelRequirementValidator(AdmissionValidator):
    """Contracts need at least one trained model of the right type."""

    def validate(self, *, ctx: AdmissionContext) -> None:
        needed = ctx.action.requires_model_type
        if needed and needed not in ctx.model_types:
            raise Locked(ctx.action.id, required_model_type=needed)


@dataclass(frozen=True, slots=True)
class CapacityValidator(AdmissionValidator):
    def validate(self, *, ctx: AdmissionContext) -> None:
        limit = ctx.ledger.parallel_task_limit
        if len(ctx.running) >= limit:
            raise CapacityExceeded(current=len(ctx.running), limit=limit)


@dataclass(frozen=True, slots=True)
class ResourceValidator(AdmissionValidator):
    def validate(self, *, ctx: AdmissionContext) -> None:
        short = shortfall(ctx.ledger, ctx.action)
        if short:
            raise InsufficientResources(short)


@dataclass(frozen=True, slots=True)
class ValidatorPipeline:
    validators: tuple[AdmissionValidator, ...]

    def validate(self, *, ctx: AdmissionContext) -> None:
        for v in self.validators:
            v.validate(ctx=ctx)


# Order matters: callers see the first failing check.
START_PIPELINE = ValidatorPipeline(
    validators=(
        UnlockValidator(),
        ModelRequirementValidator(),
        CapacityValidator(),
        ResourceValidator(),
    )
)

# Instant RP purchase of a research node: no task slot involved.
PURCHASE_PIPELINE = ValidatorPipeline(
    validators=(
        UnlockValidator(),
        ResourceValidator(),
    )
)
