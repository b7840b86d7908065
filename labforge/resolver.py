"""Background resolution worker.

Polls the global due index and resolves due tasks for every affected player,
so completions land (and notifications appear) even when the player is not
making requests. Run it as a separate process:

    python -m labforge.resolver
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import redis

from labforge import settings, store
from labforge.api.models import Notification
from labforge.clock import now_ms, player_now
from labforge.errors import PlayerBusy, PlayerNotFound
from labforge.scheduler import resolve_completed


logger = logging.getLogger(__name__)

OnResolved = Callable[[str, list[Notification]], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class ResolverConfig:
    # Max due-index entries scanned per pass.
    batch_size: int = 100
    # Entries still due after a pass are pushed this far past `real_now`.
    retry_delay_ms: int = 30_000


def due_player_ids(*, r: redis.Redis, real_now: int, limit: int) -> list[str]:
    """Players with at least one task due by `real_now`, most overdue first."""

    members = r.zrangebyscore(store.DUE_INDEX_KEY, "-inf", real_now, start=0, num=limit)
    return list(dict.fromkeys(store.parse_due_member(m)[0] for m in members))


def _drop_due_entries(*, r: redis.Redis, player_id: str) -> None:
    prefix = store.due_member(player_id, "")
    stale = [m for m in r.zrange(store.DUE_INDEX_KEY, 0, -1) if m.startswith(prefix)]
    if stale:
        r.zrem(store.DUE_INDEX_KEY, *stale)


def _defer_stuck_entries(*, r: redis.Redis, player_id: str, real_now: int, retry_delay_ms: int) -> int:
    """Re-score this player's entries that are still due so other players get the next batch."""

    prefix = store.due_member(player_id, "")
    stuck = [m for m in r.zrangebyscore(store.DUE_INDEX_KEY, "-inf", real_now) if m.startswith(prefix)]
    if not stuck:
        return 0
    # xx: never re-add an entry a concurrent resolution just removed.
    r.zadd(store.DUE_INDEX_KEY, {m: real_now + retry_delay_ms for m in stuck}, xx=True)
    return len(stuck)


def run_resolver_once(
    *,
    r: redis.Redis,
    real_now: int | None = None,
    config: ResolverConfig | None = None,
) -> dict[str, list[Notification]]:
    """One pass over the due index. Returns notifications emitted per player."""

    cfg = config or ResolverConfig()
    real = now_ms() if real_now is None else real_now

    out: dict[str, list[Notification]] = {}
    for player_id in due_player_ids(r=r, real_now=real, limit=cfg.batch_size):
        try:
            now = player_now(r=r, player_id=player_id, real_now=real)
            emitted = resolve_completed(r=r, player_id=player_id, now=now)
        except PlayerBusy:
            # Someone else is mutating this player; the next pass picks it up.
            logger.debug("Player %s busy; skipping this pass", player_id)
            continue
        except PlayerNotFound:
            logger.warning("Due tasks for missing player %s; dropping index entries", player_id)
            _drop_due_entries(r=r, player_id=player_id)
            continue
        deferred = _defer_stuck_entries(r=r, player_id=player_id, real_now=real, retry_delay_ms=cfg.retry_delay_ms)
        if deferred:
            logger.warning("Deferred %d unresolved due task(s) for %s", deferred, player_id)
        if emitted:
            out[player_id] = emitted
    return out


async def run_resolver_forever(
    *,
    r: redis.Redis,
    stop: asyncio.Event,
    interval_ms: int | None = None,
    config: ResolverConfig | None = None,
    on_resolved: OnResolved | None = None,
) -> None:
    interval = (settings.resolver_interval_ms() if interval_ms is None else interval_ms) / 1000
    logger.info("Resolver started (interval %.3fs)", interval)

    while not stop.is_set():
        try:
            results = run_resolver_once(r=r, config=config)
        except redis.RedisError:
            logger.exception("Resolver pass failed")
            results = {}

        for player_id, emitted in results.items():
            logger.info("Resolver emitted %d notification(s) for %s", len(emitted), player_id)
            if on_resolved is not None:
                await on_resolved(player_id, emitted)

        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass

    logger.info("Resolver stopped")


def main() -> None:
    from labforge.catalog.startup import init_catalog_for_app
    from labforge.infra.redis_client import create_redis

    logging.basicConfig(level=settings.get_log_level())
    init_catalog_for_app()

    r = create_redis()
    try:
        asyncio.run(run_resolver_forever(r=r, stop=asyncio.Event()))
    except KeyboardInterrupt:
        pass
    finally:
        r.close()


if __name__ == "__main__":
    main()
