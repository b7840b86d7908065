"""Per-player notification feed.

Notifications are immutable documents except for `read`. Each user has two
sorted sets of notification ids (all, unread). Every member has score 0 and
ids are `{created_at:015d}-{seq:012d}`, so lexicographic order is
chronological order with a global sequence breaking same-millisecond ties.
Newest-first listing and cursor paging are ZREVRANGEBYLEX calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import redis

from labforge.api.models import DeepLink, Notification, NotificationType
from labforge.errors import NotificationNotFound
from labforge.game_config import MilestoneEvent


logger = logging.getLogger(__name__)

NOTIFICATION_KEY_PREFIX = "labforge:notification:"  # + {id}
NOTIFICATION_SEQ_KEY = "labforge:notification_seq"

DEFAULT_UNREAD_LIMIT = 20
DEFAULT_ALL_LIMIT = 50
DEFAULT_SINCE_WINDOW = 10
DEFAULT_ACTIVITY_LIMIT = 5


def _doc_key(notification_id: str) -> str:
    return f"{NOTIFICATION_KEY_PREFIX}{notification_id}"


def feed_key(user_id: str) -> str:
    return f"labforge:user:{user_id}:notifications"


def unread_key(user_id: str) -> str:
    return f"labforge:user:{user_id}:notifications:unread"


def events_key(user_id: str) -> str:
    """hash event_id -> notification id, for once-per-user milestones."""

    return f"labforge:user:{user_id}:events"


def notification_id(*, created_at: int, seq: int) -> str:
    return f"{created_at:015d}-{seq:012d}"


@dataclass(frozen=True, slots=True)
class NotificationDraft:
    type: NotificationType
    title: str
    message: str
    deep_link: DeepLink | None = None
    task_id: str | None = None
    event_id: str | None = None


def milestone_draft(event: MilestoneEvent) -> NotificationDraft:
    return NotificationDraft(
        type=NotificationType.milestone,
        title=event.title,
        message=event.message,
        deep_link=DeepLink(view=event.view, target=event.target),
        event_id=event.event_id,
    )


# ---- append ----


def prepare(
    pipe: redis.client.Pipeline,
    *,
    user_id: str,
    drafts: list[NotificationDraft],
    now: int,
) -> list[Notification]:
    """Assign ids to drafts, dropping milestones the user already has.

    Must run in the read phase of a transaction that WATCHes `events_key(user_id)`.
    """

    seen_events: set[str] = set()
    event_ids = [d.event_id for d in drafts if d.event_id]
    if event_ids:
        existing = pipe.hmget(events_key(user_id), event_ids)
        seen_events = {eid for eid, nid in zip(event_ids, existing) if nid}

    kept: list[NotificationDraft] = []
    for d in drafts:
        if d.event_id:
            if d.event_id in seen_events:
                continue
            seen_events.add(d.event_id)
        kept.append(d)

    if not kept:
        return []

    last = int(pipe.incrby(NOTIFICATION_SEQ_KEY, len(kept)))
    first = last - len(kept) + 1
    return [
        Notification(
            id=notification_id(created_at=now, seq=first + i),
            user_id=user_id,
            type=d.type,
            title=d.title,
            message=d.message,
            created_at=now,
            deep_link=d.deep_link,
            task_id=d.task_id,
            event_id=d.event_id,
        )
        for i, d in enumerate(kept)
    ]


def stage(pipe: redis.client.Pipeline, notifications: list[Notification]) -> None:
    for n in notifications:
        pipe.set(_doc_key(n.id), n.model_dump_json())
        pipe.zadd(feed_key(n.user_id), {n.id: 0})
        pipe.zadd(unread_key(n.user_id), {n.id: 0})
        if n.event_id:
            pipe.hset(events_key(n.user_id), n.event_id, n.id)


def append(*, r: redis.Redis, user_id: str, drafts: list[NotificationDraft], now: int) -> list[Notification]:
    """Append outside of any other transaction."""

    def _txn(pipe: redis.client.Pipeline) -> list[Notification]:
        out = prepare(pipe, user_id=user_id, drafts=drafts, now=now)
        pipe.multi()
        stage(pipe, out)
        return out

    return r.transaction(_txn, events_key(user_id), value_from_callable=True)


# ---- queries ----


def _load(r: redis.Redis, ids: list[str]) -> list[Notification]:
    if not ids:
        return []
    raws = r.mget([_doc_key(i) for i in ids])
    return [Notification.model_validate_json(raw) for raw in raws if raw]


def get_notification(*, r: redis.Redis, notification_id: str) -> Notification | None:
    raw = r.get(_doc_key(notification_id))
    if not raw:
        return None
    return Notification.model_validate_json(raw)


def list_all(*, r: redis.Redis, user_id: str, limit: int = DEFAULT_ALL_LIMIT) -> list[Notification]:
    ids = r.zrevrangebylex(feed_key(user_id), "+", "-", start=0, num=limit)
    return _load(r, ids)


def list_unread(*, r: redis.Redis, user_id: str, limit: int = DEFAULT_UNREAD_LIMIT) -> list[Notification]:
    ids = r.zrevrangebylex(unread_key(user_id), "+", "-", start=0, num=limit)
    return _load(r, ids)


def list_since(
    *,
    r: redis.Redis,
    user_id: str,
    since: int,
    window: int = DEFAULT_SINCE_WINDOW,
) -> list[Notification]:
    """Newest `window` notifications, keeping those created at or after `since`.

    Bounded: a burst larger than `window` is truncated. Use `list_page` for a
    complete walk.
    """

    return [n for n in list_all(r=r, user_id=user_id, limit=window) if n.created_at >= since]


def list_page(
    *,
    r: redis.Redis,
    user_id: str,
    before: str | None = None,
    limit: int = DEFAULT_ALL_LIMIT,
) -> list[Notification]:
    """Page through the whole feed newest-first; pass the last id seen as `before`."""

    upper = "+" if before is None else f"({before}"
    ids = r.zrevrangebylex(feed_key(user_id), upper, "-", start=0, num=limit)
    return _load(r, ids)


def recent_activity(*, r: redis.Redis, user_id: str, limit: int = DEFAULT_ACTIVITY_LIMIT) -> list[Notification]:
    return list_all(r=r, user_id=user_id, limit=limit)


def count_unread(*, r: redis.Redis, user_id: str) -> int:
    return int(r.zcard(unread_key(user_id)))


# ---- read flags ----


def mark_read(*, r: redis.Redis, notification_id: str, user_id: str | None = None) -> Notification:
    key = _doc_key(notification_id)

    def _txn(pipe: redis.client.Pipeline) -> Notification:
        raw = pipe.get(key)
        if not raw:
            raise NotificationNotFound(notification_id)
        n = Notification.model_validate_json(raw)
        if user_id is not None and n.user_id != user_id:
            raise NotificationNotFound(notification_id)
        if n.read:
            return n
        n.read = True
        pipe.multi()
        pipe.set(key, n.model_dump_json())
        pipe.zrem(unread_key(n.user_id), n.id)
        return n

    return r.transaction(_txn, key, value_from_callable=True)


def mark_all_read(*, r: redis.Redis, user_id: str) -> int:
    """Flag every unread notification read in one transaction. Returns how many changed."""

    ukey = unread_key(user_id)

    def _txn(pipe: redis.client.Pipeline) -> int:
        ids = pipe.zrange(ukey, 0, -1)
        if not ids:
            return 0
        raws = pipe.mget([_doc_key(i) for i in ids])
        updated: list[Notification] = []
        for raw in raws:
            if not raw:
                continue
            n = Notification.model_validate_json(raw)
            n.read = True
            updated.append(n)
        pipe.multi()
        for n in updated:
            pipe.set(_doc_key(n.id), n.model_dump_json())
        pipe.delete(ukey)
        return len(updated)

    count = r.transaction(_txn, ukey, value_from_callable=True)
    if count:
        logger.info("Marked %d notification(s) read for %s", count, user_id)
    return count
