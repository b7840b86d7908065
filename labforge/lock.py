from __future__ import annotations

import time
from contextlib import contextmanager
from uuid import uuid4

import redis

from labforge import settings
from labforge.errors import PlayerBusy


def _lock_key(player_id: str) -> str:
    return f"lock:player:{player_id}"


def _release(*, r: redis.Redis, key: str, token: str) -> None:
    # Only delete the key if we still own it (the TTL may have handed it to someone else).
    def _del_if_owner(pipe: redis.client.Pipeline) -> None:
        if pipe.get(key) != token:
            return
        pipe.multi()
        pipe.delete(key)

    r.transaction(_del_if_owner, key)


@contextmanager
def player_lock(
    *,
    r: redis.Redis,
    player_id: str,
    ttl_ms: int | None = None,
    wait_ms: int | None = None,
):
    """Per-player mutex held for the duration of one command.

    Waits up to `wait_ms` with a short backoff, then raises PlayerBusy.
    """

    ttl = settings.lock_ttl_ms() if ttl_ms is None else ttl_ms
    wait = settings.lock_wait_ms() if wait_ms is None else wait_ms

    key = _lock_key(player_id)
    token = uuid4().hex
    deadline = time.monotonic() + wait / 1000
    delay = 0.005

    while not r.set(key, token, nx=True, px=ttl):
        if time.monotonic() >= deadline:
            raise PlayerBusy(player_id)
        time.sleep(delay)
        delay = min(delay * 2, 0.1)

    try:
        yield
    finally:
        _release(r=r, key=key, token=token)
