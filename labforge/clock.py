"""Wall clock and the dev-only per-player Time Warp.

With a warp active, effective game time runs `time_scale` times faster than
real time from the moment the scale was last changed:

    effective = warp_effective_ms + (real_now - warp_real_ms) * time_scale

Setting the scale back to 1 clears the baselines, so effective time snaps
back to real time.
"""

from __future__ import annotations

import logging
import math
import time

import redis

from labforge import settings, store
from labforge.api.models import TimeWarp
from labforge.errors import EngineError
from labforge.game_config import ALLOWED_TIME_SCALES


logger = logging.getLogger(__name__)


class TimeWarpNotAllowed(EngineError):
    code = "time_warp_not_allowed"


def now_ms() -> int:
    return int(time.time() * 1000)


def effective_now(warp: TimeWarp, real_now: int) -> int:
    if warp.time_scale == 1 or warp.warp_real_ms is None or warp.warp_effective_ms is None:
        return real_now
    return warp.warp_effective_ms + (real_now - warp.warp_real_ms) * warp.time_scale


def real_time_for_effective(warp: TimeWarp, target: int) -> int:
    """Real time at which effective time reaches `target`."""

    if warp.time_scale == 1 or warp.warp_real_ms is None or warp.warp_effective_ms is None:
        return target
    return warp.warp_real_ms + math.ceil((target - warp.warp_effective_ms) / warp.time_scale)


def player_now(*, r: redis.Redis, player_id: str, real_now: int | None = None) -> int:
    real = now_ms() if real_now is None else real_now
    return effective_now(store.get_time_warp(r=r, player_id=player_id), real)


def set_time_scale(*, r: redis.Redis, player_id: str, time_scale: int, real_now: int | None = None) -> TimeWarp:
    """Change a player's time scale and re-index their running tasks' due times."""

    if player_id not in settings.dev_admin_ids():
        raise TimeWarpNotAllowed("Time Warp is restricted to dev admins")
    if time_scale not in ALLOWED_TIME_SCALES:
        allowed = ", ".join(str(s) for s in ALLOWED_TIME_SCALES)
        raise TimeWarpNotAllowed(f"time_scale must be one of: {allowed}")

    real = now_ms() if real_now is None else real_now

    def _txn(pipe: redis.client.Pipeline) -> TimeWarp:
        store.require_ledger(r=pipe, player_id=player_id)
        current = store.get_time_warp(r=pipe, player_id=player_id)
        running = store.list_running_tasks(r=pipe, player_id=player_id)

        if time_scale == 1:
            warp = TimeWarp(time_scale=1, updated_at=real)
        else:
            warp = TimeWarp(
                time_scale=time_scale,
                warp_real_ms=real,
                warp_effective_ms=effective_now(current, real),
                updated_at=real,
            )

        pipe.multi()
        pipe.set(store.time_warp_key(player_id), warp.model_dump_json())
        for task in running:
            due_at = real_time_for_effective(warp, task.completes_at)
            pipe.zadd(store.DUE_INDEX_KEY, {store.due_member(player_id, task.id): due_at})
        return warp

    warp = store.player_transaction(r=r, player_id=player_id, fn=_txn)
    logger.info("Time scale for %s set to %dx", player_id, warp.time_scale)
    return warp
