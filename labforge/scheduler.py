"""Task admission, cancellation and resolution.

Every command takes the player's lock, then reads and writes the player's
documents in one WATCH/MULTI transaction. Time is always passed in as `now`
(effective game time in epoch ms); nothing here waits on a timer. Due tasks
are resolved when a caller (a read path or the resolver worker) invokes
`resolve_completed`.
"""

from __future__ import annotations

import logging
import math
from uuid import uuid4

import redis

from labforge import notifications, store
from labforge.admission import START_PIPELINE, AdmissionContext
from labforge.api.models import (
    DeepLink,
    ModelType,
    Notification,
    NotificationType,
    PlayerLedger,
    ResourceAmounts,
    TaskInstance,
    TaskStatus,
    TrainedModel,
)
from labforge.catalog.registry import ActionDefinition, Catalog, ModelBlueprint
from labforge.catalog.singleton import get_catalog
from labforge.clock import real_time_for_effective
from labforge.errors import EngineError, NotCancellable, PlayerNotFound, TaskNotFound, UnknownAction
from labforge.fsm import TaskFSM
from labforge.game_config import FOUNDER_MODIFIERS, milestone_for
from labforge.ledger import (
    apply_experience,
    credit,
    debit,
    effective_duration_ms,
    format_rewards,
    refund,
    release,
    reward_amounts,
)
from labforge.lock import player_lock
from labforge.notifications import NotificationDraft, milestone_draft
from labforge.prng import create_stream, generate_random_seed, uniform
from labforge.progression import grant_unlocks, level_up_drafts


logger = logging.getLogger(__name__)


def _catalog(catalog: Catalog | None) -> Catalog:
    return catalog if catalog is not None else get_catalog()


# ---- admission ----


def start_action(
    *,
    r: redis.Redis,
    player_id: str,
    action_id: str,
    now: int,
    seed: int | None = None,
    catalog: Catalog | None = None,
) -> TaskInstance:
    """Admit an action as a running task.

    Checks run in order: unknown action, lock state, capacity, resources. The
    first failure is raised and nothing is written.
    """

    cat = _catalog(catalog)
    action = cat.get(action_id)
    if action is None:
        raise UnknownAction(action_id)

    task_seed = generate_random_seed() if seed is None else seed

    def _txn(pipe: redis.client.Pipeline) -> TaskInstance:
        ledger = store.require_ledger(r=pipe, player_id=player_id)
        running = tuple(store.list_running_tasks(r=pipe, player_id=player_id))
        purchased = store.get_purchased(r=pipe, player_id=player_id)
        model_types = frozenset(m.model_type.value for m in store.list_models(r=pipe, player_id=player_id))
        warp = store.get_time_warp(r=pipe, player_id=player_id)

        ctx = AdmissionContext(
            player_id=player_id,
            action=action,
            ledger=ledger,
            running=running,
            purchased=purchased,
            model_types=model_types,
            catalog=cat,
        )
        START_PIPELINE.validate(ctx=ctx)

        duration = effective_duration_ms(ledger, action)
        paid = debit(ledger, action)
        task = TaskInstance(
            id=uuid4().hex,
            player_id=player_id,
            action_id=action.id,
            started_at=now,
            completes_at=now + duration,
            seed=task_seed,
            paid=paid,
            staff_reserved=action.staff_required,
        )

        pipe.multi()
        store.stage_ledger(pipe, ledger)
        store.stage_running_task(pipe, task, due_at=real_time_for_effective(warp, task.completes_at))
        return task

    with player_lock(r=r, player_id=player_id):
        task = store.player_transaction(r=r, player_id=player_id, fn=_txn)

    logger.info(
        "Player %s started %s as task %s (completes_at=%d)", player_id, action.id, task.id, task.completes_at
    )
    return task


# ---- cancellation ----


def cancel_task(
    *,
    r: redis.Redis,
    player_id: str,
    task_id: str,
    now: int,
    catalog: Catalog | None = None,
) -> TaskInstance:
    """Cancel a running task, releasing what it reserved.

    Cash and RP come back only for actions flagged `refund_on_cancel`.
    """

    cat = _catalog(catalog)

    def _txn(pipe: redis.client.Pipeline) -> TaskInstance:
        ledger = store.require_ledger(r=pipe, player_id=player_id)
        task = store.get_task(r=pipe, player_id=player_id, task_id=task_id)
        if task is None or task.status != TaskStatus.running:
            raise TaskNotFound(task_id)

        action = cat.get(task.action_id)
        if action is not None and not action.cancellable:
            raise NotCancellable(task_id, task.action_id)

        fsm = TaskFSM(task)
        fsm.cancel()
        fsm.sync_status_to_model()
        task.resolved_at = now

        release(ledger, compute=task.paid.compute, staff=task.staff_reserved)
        if action is not None and action.refund_on_cancel:
            refund(ledger, task.paid)

        pipe.multi()
        store.stage_ledger(pipe, ledger)
        store.stage_finished_task(pipe, task)
        return task

    with player_lock(r=r, player_id=player_id):
        task = store.player_transaction(r=r, player_id=player_id, fn=_txn)

    logger.info("Player %s cancelled task %s (%s)", player_id, task.id, task.action_id)
    return task


# ---- resolution ----


def model_score(*, blueprint: ModelBlueprint, seed: int, ledger: PlayerLedger) -> int:
    """Score drawn from the blueprint range with the task's own stream."""

    stream = create_stream(seed)
    base = uniform(stream, blueprint.score_min, blueprint.score_max)
    bonus = (1 + ledger.speed_bonus / 100) * FOUNDER_MODIFIERS[ledger.founder_type].model_score
    return math.floor(base * bonus + 0.5)


def _train(
    *,
    ledger: PlayerLedger,
    action: ActionDefinition,
    bp: ModelBlueprint,
    task: TaskInstance,
    existing: list[TrainedModel],
    now: int,
) -> tuple[TrainedModel, list[NotificationDraft]]:
    version = 1 + sum(1 for m in existing if m.blueprint_id == bp.blueprint_id)
    model = TrainedModel(
        id=uuid4().hex,
        blueprint_id=bp.blueprint_id,
        model_type=ModelType(bp.model_type),
        name=f"{action.name} v{version}",
        version=version,
        score=model_score(blueprint=bp, seed=task.seed, ledger=ledger),
        trained_at=now,
        task_id=task.id,
    )
    drafts: list[NotificationDraft] = []
    if not existing and (event := milestone_for("first_model")) is not None:
        drafts.append(milestone_draft(event))
    return model, drafts


def _resolve_task(
    *,
    r: redis.Redis,
    player_id: str,
    task_id: str,
    now: int,
    catalog: Catalog,
) -> list[Notification]:
    def _txn(pipe: redis.client.Pipeline) -> list[Notification]:
        ledger = store.require_ledger(r=pipe, player_id=player_id)
        task = store.get_task(r=pipe, player_id=player_id, task_id=task_id)
        # Already resolved (or cancelled) by an earlier pass.
        if task is None or task.status != TaskStatus.running or task.completes_at > now:
            return []

        action = catalog.get(task.action_id)
        if action is None:
            raise RuntimeError(f"Task {task.id} references unknown action {task.action_id!r}")

        purchased = store.get_purchased(r=pipe, player_id=player_id)
        drafts: list[NotificationDraft] = []

        rewards = reward_amounts(ledger, action)
        credit(ledger, rewards)
        old_level = ledger.level
        reached = apply_experience(ledger, rewards.xp)
        drafts += level_up_drafts(old_level=old_level, reached=reached)

        new_ids, unlock_drafts = grant_unlocks(ledger=ledger, catalog=catalog, source=action, purchased=purchased)
        drafts += unlock_drafts

        model: TrainedModel | None = None
        if action.trains is not None:
            existing = store.list_models(r=pipe, player_id=player_id)
            model, model_drafts = _train(
                ledger=ledger, action=action, bp=action.trains, task=task, existing=existing, now=now
            )
            drafts += model_drafts

        release(ledger, compute=task.paid.compute, staff=task.staff_reserved)

        fsm = TaskFSM(task)
        fsm.complete()
        fsm.archive()
        fsm.sync_status_to_model()
        task.rewards = ResourceAmounts(cash=rewards.cash, rp=rewards.rp, xp=rewards.xp)
        task.resolved_at = now

        summary = format_rewards(rewards)
        if model is not None:
            summary = f"{model.name} trained (score {model.score}). {summary}"
        drafts.append(
            NotificationDraft(
                type=NotificationType.hire_complete if action.is_hire else NotificationType.task_complete,
                title=f"{action.name} Complete",
                message=summary,
                deep_link=DeepLink(view="lab", target="models") if model is not None else None,
                task_id=task.id,
            )
        )

        out = notifications.prepare(pipe, user_id=player_id, drafts=drafts, now=now)

        pipe.multi()
        store.stage_ledger(pipe, ledger)
        store.stage_finished_task(pipe, task)
        store.stage_purchase(pipe, player_id, new_ids, now=now)
        if model is not None:
            store.stage_model(pipe, player_id, model)
        notifications.stage(pipe, out)
        return out

    return store.player_transaction(
        r=r, player_id=player_id, fn=_txn, extra_watch=(notifications.events_key(player_id),)
    )


def resolve_completed(
    *,
    r: redis.Redis,
    player_id: str,
    now: int,
    catalog: Catalog | None = None,
) -> list[Notification]:
    """Resolve every task with `completes_at <= now`, oldest first.

    Each task resolves in its own transaction. A task whose resolution fails
    stays running (and is logged); the rest of the pass continues. Calling
    this again for the same `now` resolves nothing new.
    """

    cat = _catalog(catalog)
    emitted: list[Notification] = []

    with player_lock(r=r, player_id=player_id):
        if not store.player_exists(r=r, player_id=player_id):
            raise PlayerNotFound(player_id)

        due = [t for t in store.list_running_tasks(r=r, player_id=player_id) if t.completes_at <= now]
        due.sort(key=lambda t: (t.completes_at, t.started_at, t.id))

        for task in due:
            try:
                out = _resolve_task(r=r, player_id=player_id, task_id=task.id, now=now, catalog=cat)
            except EngineError:
                raise
            except Exception:
                logger.exception("Failed to resolve task %s for player %s; leaving it running", task.id, player_id)
                continue
            if out:
                logger.info("Resolved task %s (%s) for player %s", task.id, task.action_id, player_id)
            emitted.extend(out)

    return emitted
