from __future__ import annotations

import pytest
from pydantic import ValidationError
from statemachine.exceptions import TransitionNotAllowed

from labforge.api.models import ResourceAmounts, TaskInstance, TaskStatus
from labforge.catalog.singleton import get_catalog
from labforge.fsm import TaskFSM
from labforge.game_config import MAX_LEVEL, XP_THRESHOLDS, FounderType
from labforge.ledger import apply_experience, debit, effective_duration_ms, format_rewards, new_ledger, xp_to_next_level

T0 = 1_700_000_000_000


def _ledger(founder: FounderType = FounderType.technical):
    return new_ledger(player_id="p1", lab_name="Lab", founder_type=founder, now=T0)


def test_multi_level_jump_reports_every_level() -> None:
    ledger = _ledger()
    reached = apply_experience(ledger, XP_THRESHOLDS[2] + XP_THRESHOLDS[3] + 5)
    assert reached == [2, 3]
    assert ledger.level == 3
    assert ledger.experience == 5
    assert ledger.upgrade_points == 2


def test_level_is_capped() -> None:
    ledger = _ledger()
    ledger.level = MAX_LEVEL
    assert xp_to_next_level(MAX_LEVEL) is None
    assert apply_experience(ledger, 10_000) == []
    assert ledger.level == MAX_LEVEL
    assert ledger.experience == 10_000


def test_counters_cannot_go_negative() -> None:
    ledger = _ledger()
    with pytest.raises(ValidationError):
        ledger.cash = -1
    with pytest.raises(ValidationError):
        ledger.compute_units.current = 5
    with pytest.raises(ValidationError):
        ledger.junior_researchers = 2
    assert ledger.cash == 5_000


def test_debit_overdraft_raises_instead_of_persisting() -> None:
    ledger = _ledger()
    ledger.cash = 50
    with pytest.raises(ValidationError):
        debit(ledger, get_catalog().get("act_quick"))


@pytest.mark.parametrize(
    ("action_id", "founder", "level", "expected"),
    [
        ("act_paid_job", FounderType.technical, 1, 120_000),
        ("act_quick", FounderType.technical, 1, 48_000),
        ("act_quick", FounderType.business, 1, 75_000),
        # floor(120000 / 1.05)
        ("act_paid_job", FounderType.business, 6, 114_285),
        ("act_hire", FounderType.technical, 20, 600_000),
    ],
)
def test_effective_duration(action_id: str, founder: FounderType, level: int, expected: int) -> None:
    ledger = _ledger(founder)
    ledger.level = level
    assert effective_duration_ms(ledger, get_catalog().get(action_id)) == expected


def test_juniors_speed_up_training_only() -> None:
    cat = get_catalog()
    ledger = _ledger()
    ledger.staff_capacity = 2
    ledger.junior_researchers = 2
    # floor(300000 / 1.2)
    assert effective_duration_ms(ledger, cat.get("act_train_llm")) == 250_000
    assert effective_duration_ms(ledger, cat.get("act_paid_job")) == 120_000


def test_format_rewards() -> None:
    assert format_rewards(ResourceAmounts(cash=1500, rp=20, xp=5)) == "+$1,500, +20 RP, +5 XP"
    assert format_rewards(ResourceAmounts()) == "Task completed"


def _task(status: TaskStatus = TaskStatus.running) -> TaskInstance:
    return TaskInstance(
        id="t1", player_id="p1", action_id="act_quick", started_at=T0, completes_at=T0 + 1, seed=1, status=status
    )


def test_fsm_complete_then_archive() -> None:
    task = _task()
    fsm = TaskFSM(task)
    fsm.complete()
    fsm.archive()
    fsm.sync_status_to_model()
    assert task.status == TaskStatus.archived


def test_fsm_rejects_moves_out_of_final_states() -> None:
    fsm = TaskFSM(_task(TaskStatus.cancelled))
    with pytest.raises(TransitionNotAllowed):
        fsm.complete()

    fsm = TaskFSM(_task())
    with pytest.raises(TransitionNotAllowed):
        fsm.archive()
