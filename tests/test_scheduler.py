from __future__ import annotations

import pytest

from labforge import store
from labforge.api.models import TaskStatus
from labforge.errors import (
    CapacityExceeded,
    InsufficientResources,
    Locked,
    NotCancellable,
    PlayerNotFound,
    TaskNotFound,
    UnknownAction,
)
from labforge.scheduler import cancel_task, start_action

T0 = 1_700_000_000_000


def test_start_action_debits_and_records_running_task(r, player) -> None:
    task = start_action(r=r, player_id="p1", action_id="act_quick", now=T0, seed=99)

    assert task.status == TaskStatus.running
    assert task.started_at == T0
    # Technical founders research 25% faster.
    assert task.completes_at == T0 + 48_000
    assert task.seed == 99
    assert task.paid.cash == 100

    ledger = store.require_ledger(r=r, player_id="p1")
    assert ledger.cash == 4_900
    assert [t.id for t in store.list_running_tasks(r=r, player_id="p1")] == [task.id]
    assert r.zscore(store.DUE_INDEX_KEY, store.due_member("p1", task.id)) == task.completes_at


def test_start_action_debits_the_ledger_written_mid_transaction(r, player, edit_ledger, interfere_once) -> None:
    attempts = interfere_once(lambda: edit_ledger("p1", cash=1_000))
    task = start_action(r=r, player_id="p1", action_id="act_quick", now=T0)

    assert attempts == [1, 2]
    assert store.require_ledger(r=r, player_id="p1").cash == 1_000 - task.paid.cash
    assert [t.id for t in store.list_running_tasks(r=r, player_id="p1")] == [task.id]


def test_seed_is_generated_when_omitted(r, player) -> None:
    task = start_action(r=r, player_id="p1", action_id="act_quick", now=T0)
    assert 0 <= task.seed <= 2**53 - 1


def test_unknown_action(r, player) -> None:
    with pytest.raises(UnknownAction):
        start_action(r=r, player_id="p1", action_id="act_nope", now=T0)


def test_unknown_player(r) -> None:
    with pytest.raises(PlayerNotFound):
        start_action(r=r, player_id="ghost", action_id="act_quick", now=T0)


def test_capacity_exceeded_leaves_state_untouched(r, player, edit_ledger) -> None:
    edit_ledger("p1", queue_slots=2)
    start_action(r=r, player_id="p1", action_id="act_quick", now=T0)
    start_action(r=r, player_id="p1", action_id="act_paid_job", now=T0)
    cash_before = store.require_ledger(r=r, player_id="p1").cash

    with pytest.raises(CapacityExceeded) as ei:
        start_action(r=r, player_id="p1", action_id="act_big_xp", now=T0)
    assert (ei.value.current, ei.value.limit) == (2, 2)

    assert len(store.list_running_tasks(r=r, player_id="p1")) == 2
    assert store.require_ledger(r=r, player_id="p1").cash == cash_before


def test_insufficient_resources_reports_exact_shortfall(r, player, edit_ledger) -> None:
    edit_ledger("p1", cash=100, research_points=50)
    with pytest.raises(InsufficientResources) as ei:
        start_action(r=r, player_id="p1", action_id="act_expensive", now=T0)
    assert ei.value.shortfall == {"cash": 20}

    ledger = store.require_ledger(r=r, player_id="p1")
    assert ledger.cash == 100
    assert ledger.research_points == 50
    assert store.list_running_tasks(r=r, player_id="p1") == []


def test_locked_action_is_rejected(r, player) -> None:
    with pytest.raises(Locked) as ei:
        start_action(r=r, player_id="p1", action_id="act_gated", now=T0)
    assert ei.value.required_level == 3


def test_compute_is_reserved_while_running(r, player) -> None:
    start_action(r=r, player_id="p1", action_id="act_train_llm", now=T0)
    ledger = store.require_ledger(r=r, player_id="p1")
    assert ledger.compute_units.current == 0
    assert ledger.compute_units.max == 1
    assert ledger.cash == 4_500


def test_hire_reserves_a_staff_slot_and_a_task_slot(r, player) -> None:
    hire = start_action(r=r, player_id="p1", action_id="act_hire", now=T0)
    # Hiring is never sped up.
    assert hire.completes_at == T0 + 600_000
    assert hire.staff_reserved == 1

    ledger = store.require_ledger(r=r, player_id="p1")
    assert ledger.junior_researchers == 1
    assert ledger.parallel_task_limit == 2

    start_action(r=r, player_id="p1", action_id="act_quick", now=T0)
    with pytest.raises(CapacityExceeded):
        start_action(r=r, player_id="p1", action_id="act_paid_job", now=T0)


# ---- cancellation ----


def test_cancel_releases_slot_without_refund(r, player) -> None:
    task = start_action(r=r, player_id="p1", action_id="act_quick", now=T0)
    cancelled = cancel_task(r=r, player_id="p1", task_id=task.id, now=T0 + 1_000)

    assert cancelled.status == TaskStatus.cancelled
    assert cancelled.resolved_at == T0 + 1_000
    assert store.list_running_tasks(r=r, player_id="p1") == []
    assert r.zscore(store.DUE_INDEX_KEY, store.due_member("p1", task.id)) is None
    assert store.require_ledger(r=r, player_id="p1").cash == 4_900

    history = store.list_task_history(r=r, player_id="p1")
    assert [(t.id, t.status) for t in history] == [(task.id, TaskStatus.cancelled)]


def test_cancel_refunds_when_flagged(r, player) -> None:
    hire = start_action(r=r, player_id="p1", action_id="act_hire", now=T0)
    cancel_task(r=r, player_id="p1", task_id=hire.id, now=T0 + 1_000)

    ledger = store.require_ledger(r=r, player_id="p1")
    assert ledger.cash == 5_000
    assert ledger.junior_researchers == 0
    assert ledger.parallel_task_limit == 1


def test_training_cannot_be_cancelled(r, player) -> None:
    task = start_action(r=r, player_id="p1", action_id="act_train_llm", now=T0)
    with pytest.raises(NotCancellable):
        cancel_task(r=r, player_id="p1", task_id=task.id, now=T0 + 1_000)
    assert [t.id for t in store.list_running_tasks(r=r, player_id="p1")] == [task.id]


def test_cancel_unknown_or_finished_task(r, player) -> None:
    with pytest.raises(TaskNotFound):
        cancel_task(r=r, player_id="p1", task_id="nope", now=T0)

    task = start_action(r=r, player_id="p1", action_id="act_quick", now=T0)
    cancel_task(r=r, player_id="p1", task_id=task.id, now=T0)
    with pytest.raises(TaskNotFound):
        cancel_task(r=r, player_id="p1", task_id=task.id, now=T0)
