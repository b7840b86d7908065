"""Redis document layout for player state.

Per player:
  labforge:player:{id}:ledger        JSON PlayerLedger (schema-versioned)
  labforge:player:{id}:tasks         hash task_id -> JSON TaskInstance (running only)
  labforge:player:{id}:task_history  list of JSON TaskInstance, newest first
  labforge:player:{id}:research      hash node_id -> purchased_at
  labforge:player:{id}:models        list of JSON TrainedModel, oldest first
  labforge:player:{id}:time_warp     JSON TimeWarp

Global:
  labforge:players                   set of player ids
  labforge:due                       zset "{player_id}|{task_id}" -> real due time (ms)

Readers accept a client or a WATCHing pipeline (immediate mode), so the same
helpers serve plain reads and the read phase of a transaction. `stage_*`
helpers queue writes on a pipeline after `multi()`.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

import redis

from labforge.api.models import PlayerLedger, TaskInstance, TimeWarp, TrainedModel
from labforge.errors import PlayerNotFound
from labforge.migrations import load_ledger


PLAYERS_SET_KEY = "labforge:players"
DUE_INDEX_KEY = "labforge:due"
PLAYER_KEY_PREFIX = "labforge:player:"  # + {player_id}:{doc}

HISTORY_LIMIT = 200

T = TypeVar("T")


def _player_key(player_id: str, doc: str) -> str:
    return f"{PLAYER_KEY_PREFIX}{player_id}:{doc}"


def ledger_key(player_id: str) -> str:
    return _player_key(player_id, "ledger")


def tasks_key(player_id: str) -> str:
    return _player_key(player_id, "tasks")


def history_key(player_id: str) -> str:
    return _player_key(player_id, "task_history")


def research_key(player_id: str) -> str:
    return _player_key(player_id, "research")


def models_key(player_id: str) -> str:
    return _player_key(player_id, "models")


def time_warp_key(player_id: str) -> str:
    return _player_key(player_id, "time_warp")


def player_keys(player_id: str) -> tuple[str, ...]:
    return (
        ledger_key(player_id),
        tasks_key(player_id),
        history_key(player_id),
        research_key(player_id),
        models_key(player_id),
        time_warp_key(player_id),
    )


def due_member(player_id: str, task_id: str) -> str:
    return f"{player_id}|{task_id}"


def parse_due_member(member: str) -> tuple[str, str]:
    player_id, _, task_id = member.rpartition("|")
    return player_id, task_id


# ---- reads ----


def player_exists(*, r: redis.Redis, player_id: str) -> bool:
    return bool(r.exists(ledger_key(player_id)))


def get_ledger(*, r: redis.Redis, player_id: str) -> PlayerLedger | None:
    raw = r.get(ledger_key(player_id))
    if not raw:
        return None
    return load_ledger(raw)


def require_ledger(*, r: redis.Redis, player_id: str) -> PlayerLedger:
    ledger = get_ledger(r=r, player_id=player_id)
    if ledger is None:
        raise PlayerNotFound(player_id)
    return ledger


def get_task(*, r: redis.Redis, player_id: str, task_id: str) -> TaskInstance | None:
    raw = r.hget(tasks_key(player_id), task_id)
    if not raw:
        return None
    return TaskInstance.model_validate_json(raw)


def list_running_tasks(*, r: redis.Redis, player_id: str) -> list[TaskInstance]:
    raw = r.hvals(tasks_key(player_id))
    tasks = [TaskInstance.model_validate_json(v) for v in raw]
    tasks.sort(key=lambda t: (t.started_at, t.id))
    return tasks


def list_task_history(*, r: redis.Redis, player_id: str, limit: int = 50) -> list[TaskInstance]:
    raw = r.lrange(history_key(player_id), 0, max(0, limit - 1))
    return [TaskInstance.model_validate_json(v) for v in raw]


def get_purchased(*, r: redis.Redis, player_id: str) -> frozenset[str]:
    return frozenset(r.hkeys(research_key(player_id)))


def list_models(*, r: redis.Redis, player_id: str) -> list[TrainedModel]:
    raw = r.lrange(models_key(player_id), 0, -1)
    return [TrainedModel.model_validate_json(v) for v in raw]


def get_time_warp(*, r: redis.Redis, player_id: str) -> TimeWarp:
    raw = r.get(time_warp_key(player_id))
    if not raw:
        return TimeWarp()
    return TimeWarp.model_validate_json(raw)


def list_player_ids(*, r: redis.Redis) -> list[str]:
    return sorted(r.smembers(PLAYERS_SET_KEY))


# ---- staged writes (pipeline after multi()) ----


def stage_ledger(pipe: redis.client.Pipeline, ledger: PlayerLedger) -> None:
    pipe.set(ledger_key(ledger.player_id), ledger.model_dump_json())


def stage_running_task(pipe: redis.client.Pipeline, task: TaskInstance, *, due_at: int) -> None:
    pipe.hset(tasks_key(task.player_id), task.id, task.model_dump_json())
    pipe.zadd(DUE_INDEX_KEY, {due_member(task.player_id, task.id): due_at})


def stage_finished_task(pipe: redis.client.Pipeline, task: TaskInstance) -> None:
    pipe.hdel(tasks_key(task.player_id), task.id)
    pipe.zrem(DUE_INDEX_KEY, due_member(task.player_id, task.id))
    pipe.lpush(history_key(task.player_id), task.model_dump_json())
    pipe.ltrim(history_key(task.player_id), 0, HISTORY_LIMIT - 1)


def stage_purchase(pipe: redis.client.Pipeline, player_id: str, node_ids: list[str], *, now: int) -> None:
    if node_ids:
        pipe.hset(research_key(player_id), mapping={nid: now for nid in node_ids})


def stage_model(pipe: redis.client.Pipeline, player_id: str, model: TrainedModel) -> None:
    pipe.rpush(models_key(player_id), model.model_dump_json())


# ---- transactions ----


def player_transaction(
    *,
    r: redis.Redis,
    player_id: str,
    fn: Callable[[redis.client.Pipeline], T],
    extra_watch: tuple[str, ...] = (),
) -> T:
    """Run `fn` under WATCH on the player's documents and return its value.

    `fn` reads through the pipeline, calls `pipe.multi()`, then queues writes.
    redis-py retries `fn` if a watched key changes before EXEC.
    """

    return r.transaction(fn, *player_keys(player_id), *extra_watch, value_from_callable=True)
