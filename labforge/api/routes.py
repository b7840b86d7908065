from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
import redis

from labforge import notifications, store
from labforge.api.deps import catalog_dep, get_redis
from labforge.api.models import (
    CatalogEntryView,
    CatalogResponse,
    ModelListResponse,
    NodeStateView,
    Notification,
    NotificationListResponse,
    PlayerCreateRequest,
    PlayerLedger,
    ProgressResponse,
    ResourceAmounts,
    StartActionRequest,
    TaskInstance,
    TaskListResponse,
    TimeWarp,
    TimeWarpRequest,
    UnlockStateResponse,
    UnreadCountResponse,
)
from labforge.catalog.registry import Catalog
from labforge.clock import TimeWarpNotAllowed, now_ms, player_now, set_time_scale
from labforge.errors import (
    AlreadyUnlocked,
    CapacityExceeded,
    EngineError,
    NotificationNotFound,
    PlayerBusy,
    PlayerExists,
    PlayerNotFound,
    TaskNotFound,
    UnknownAction,
)
from labforge.game_config import UpgradeType
from labforge.players import create_player
from labforge.progression import purchase_node, purchase_upgrade
from labforge.resolver import ResolverConfig, run_resolver_once
from labforge.scheduler import cancel_task, resolve_completed, start_action
from labforge.unlocks import available_per_category, evaluate
from labforge.websocket_hub import hub

router = APIRouter()

_NOT_FOUND = (PlayerNotFound, UnknownAction, TaskNotFound, NotificationNotFound)
_CONFLICT = (PlayerExists, PlayerBusy, CapacityExceeded, AlreadyUnlocked)


def _http_error(e: EngineError) -> HTTPException:
    if isinstance(e, _NOT_FOUND):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, _CONFLICT):
        code = status.HTTP_409_CONFLICT
    elif isinstance(e, TimeWarpNotAllowed):
        code = status.HTTP_403_FORBIDDEN
    else:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(status_code=code, detail=e.detail())


async def _settle(*, r: redis.Redis, player_id: str) -> int:
    """Resolve anything due before serving the player. Returns effective now."""

    now = player_now(r=r, player_id=player_id)
    try:
        emitted = resolve_completed(r=r, player_id=player_id, now=now)
    except EngineError as e:
        raise _http_error(e) from e
    if emitted:
        await hub.player_updated(player_id, reason="resolved", notifications=len(emitted))
    return now


@router.websocket("/ws/player/{player_id}")
async def player_updates_ws(websocket: WebSocket, player_id: str) -> None:
    await hub.connect(player_id, websocket)

    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(player_id, websocket)
    except Exception:
        await hub.disconnect(player_id, websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


# ---- catalog ----


@router.get("/catalog", response_model=CatalogResponse)
async def catalog_route(catalog: Catalog = Depends(catalog_dep)) -> CatalogResponse:
    entries = [
        CatalogEntryView(
            id=e.id,
            name=e.name,
            category=e.category,
            description=e.description,
            duration_ms=e.duration_ms,
            cost=ResourceAmounts(cash=e.cost.cash, compute=e.cost.compute, rp=e.cost.rp),
            rewards=ResourceAmounts(cash=e.rewards.cash, rp=e.rewards.rp, xp=e.rewards.xp),
            unlocks=list(e.granted_unlocks),
            min_level=e.min_level,
            prerequisite_node_ids=list(e.prerequisite_node_ids),
            cancellable=e.cancellable,
            is_research_node=e.is_research_node,
            requires_model_type=e.requires_model_type,
        )
        for e in catalog
    ]
    return CatalogResponse(entries=entries)


# ---- players ----


@router.post("/players", response_model=PlayerLedger, status_code=status.HTTP_201_CREATED)
async def create_player_route(payload: PlayerCreateRequest, r: redis.Redis = Depends(get_redis)) -> PlayerLedger:
    try:
        return create_player(
            r=r,
            player_id=payload.player_id,
            lab_name=payload.lab_name,
            founder_type=payload.founder_type,
            now=now_ms(),
        )
    except EngineError as e:
        raise _http_error(e) from e


@router.get("/players/{player_id}/ledger", response_model=PlayerLedger)
async def get_ledger_route(player_id: str, r: redis.Redis = Depends(get_redis)) -> PlayerLedger:
    await _settle(r=r, player_id=player_id)
    try:
        return store.require_ledger(r=r, player_id=player_id)
    except EngineError as e:
        raise _http_error(e) from e


@router.get("/players/{player_id}/unlocks", response_model=UnlockStateResponse)
async def get_unlocks_route(
    player_id: str,
    r: redis.Redis = Depends(get_redis),
    catalog: Catalog = Depends(catalog_dep),
) -> UnlockStateResponse:
    await _settle(r=r, player_id=player_id)
    try:
        ledger = store.require_ledger(r=r, player_id=player_id)
    except EngineError as e:
        raise _http_error(e) from e

    states = evaluate(ledger=ledger, catalog=catalog, purchased=store.get_purchased(r=r, player_id=player_id))
    views: list[NodeStateView] = []
    for entry_id, st in states.items():
        entry = catalog.get(entry_id)
        if entry is None:
            raise RuntimeError(f"Unlock state for {entry_id!r} has no catalog entry")
        views.append(
            NodeStateView(
                id=entry.id,
                name=entry.name,
                category=entry.category,
                is_research_node=entry.is_research_node,
                is_purchased=st.is_purchased,
                is_locked=st.is_locked,
                lock_reason=st.lock_reason,
            )
        )
    return UnlockStateResponse(entries=views, available_per_category=available_per_category(states, catalog))


@router.get("/players/{player_id}/tasks", response_model=TaskListResponse)
async def list_tasks_route(player_id: str, r: redis.Redis = Depends(get_redis)) -> TaskListResponse:
    await _settle(r=r, player_id=player_id)
    return TaskListResponse(tasks=store.list_running_tasks(r=r, player_id=player_id))


@router.get("/players/{player_id}/tasks/history", response_model=TaskListResponse)
async def task_history_route(player_id: str, limit: int = 50, r: redis.Redis = Depends(get_redis)) -> TaskListResponse:
    if limit < 1 or limit > 200:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="limit must be 1..200")
    return TaskListResponse(tasks=store.list_task_history(r=r, player_id=player_id, limit=limit))


@router.get("/players/{player_id}/models", response_model=ModelListResponse)
async def list_models_route(player_id: str, r: redis.Redis = Depends(get_redis)) -> ModelListResponse:
    await _settle(r=r, player_id=player_id)
    return ModelListResponse(models=store.list_models(r=r, player_id=player_id))


# ---- commands ----


@router.post(
    "/players/{player_id}/actions/{action_id}",
    response_model=TaskInstance,
    status_code=status.HTTP_201_CREATED,
)
async def start_action_route(
    player_id: str,
    action_id: str,
    payload: StartActionRequest | None = None,
    r: redis.Redis = Depends(get_redis),
) -> TaskInstance:
    now = await _settle(r=r, player_id=player_id)
    try:
        task = start_action(
            r=r,
            player_id=player_id,
            action_id=action_id,
            now=now,
            seed=payload.seed if payload is not None else None,
        )
    except EngineError as e:
        raise _http_error(e) from e

    await hub.player_updated(player_id, reason="task_started")
    return task


@router.post("/players/{player_id}/tasks/{task_id}/cancel", response_model=TaskInstance)
async def cancel_task_route(player_id: str, task_id: str, r: redis.Redis = Depends(get_redis)) -> TaskInstance:
    # A task that is already due resolves instead of being cancelled.
    now = await _settle(r=r, player_id=player_id)
    try:
        task = cancel_task(r=r, player_id=player_id, task_id=task_id, now=now)
    except EngineError as e:
        raise _http_error(e) from e

    await hub.player_updated(player_id, reason="task_cancelled")
    return task


@router.post("/players/{player_id}/resolve", response_model=NotificationListResponse)
async def resolve_route(player_id: str, r: redis.Redis = Depends(get_redis)) -> NotificationListResponse:
    now = player_now(r=r, player_id=player_id)
    try:
        emitted = resolve_completed(r=r, player_id=player_id, now=now)
    except EngineError as e:
        raise _http_error(e) from e

    if emitted:
        await hub.player_updated(player_id, reason="resolved", notifications=len(emitted))
    return NotificationListResponse(notifications=emitted)


@router.post("/players/{player_id}/research/{node_id}/purchase", response_model=ProgressResponse)
async def purchase_node_route(player_id: str, node_id: str, r: redis.Redis = Depends(get_redis)) -> ProgressResponse:
    now = await _settle(r=r, player_id=player_id)
    try:
        result = purchase_node(r=r, player_id=player_id, node_id=node_id, now=now)
    except EngineError as e:
        raise _http_error(e) from e

    await hub.player_updated(player_id, reason="research_purchased", notifications=len(result.notifications))
    return ProgressResponse(ledger=result.ledger, notifications=result.notifications)


@router.post("/players/{player_id}/upgrades/{upgrade_type}", response_model=ProgressResponse)
async def purchase_upgrade_route(
    player_id: str,
    upgrade_type: UpgradeType,
    r: redis.Redis = Depends(get_redis),
) -> ProgressResponse:
    now = await _settle(r=r, player_id=player_id)
    try:
        result = purchase_upgrade(r=r, player_id=player_id, upgrade_type=upgrade_type, now=now)
    except EngineError as e:
        raise _http_error(e) from e

    await hub.player_updated(player_id, reason="upgrade_purchased", notifications=len(result.notifications))
    return ProgressResponse(ledger=result.ledger, notifications=result.notifications)


# ---- notifications ----


@router.get("/players/{player_id}/notifications", response_model=NotificationListResponse)
async def list_notifications_route(
    player_id: str,
    unread: bool = False,
    limit: int | None = None,
    before: str | None = None,
    r: redis.Redis = Depends(get_redis),
) -> NotificationListResponse:
    if limit is not None and (limit < 1 or limit > 200):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="limit must be 1..200")

    if unread:
        out = notifications.list_unread(r=r, user_id=player_id, limit=limit or notifications.DEFAULT_UNREAD_LIMIT)
    else:
        out = notifications.list_page(
            r=r, user_id=player_id, before=before, limit=limit or notifications.DEFAULT_ALL_LIMIT
        )
    return NotificationListResponse(notifications=out)


@router.get("/players/{player_id}/notifications/since", response_model=NotificationListResponse)
async def notifications_since_route(
    player_id: str,
    since: int,
    window: int = notifications.DEFAULT_SINCE_WINDOW,
    r: redis.Redis = Depends(get_redis),
) -> NotificationListResponse:
    if window < 1 or window > 100:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="window must be 1..100")
    return NotificationListResponse(
        notifications=notifications.list_since(r=r, user_id=player_id, since=since, window=window)
    )


@router.get("/players/{player_id}/notifications/count", response_model=UnreadCountResponse)
async def unread_count_route(player_id: str, r: redis.Redis = Depends(get_redis)) -> UnreadCountResponse:
    return UnreadCountResponse(count=notifications.count_unread(r=r, user_id=player_id))


@router.get("/players/{player_id}/activity", response_model=NotificationListResponse)
async def recent_activity_route(
    player_id: str,
    limit: int = notifications.DEFAULT_ACTIVITY_LIMIT,
    r: redis.Redis = Depends(get_redis),
) -> NotificationListResponse:
    if limit < 1 or limit > 50:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="limit must be 1..50")
    return NotificationListResponse(notifications=notifications.recent_activity(r=r, user_id=player_id, limit=limit))


@router.post("/players/{player_id}/notifications/read_all")
async def mark_all_read_route(player_id: str, r: redis.Redis = Depends(get_redis)) -> dict[str, int]:
    updated = notifications.mark_all_read(r=r, user_id=player_id)
    if updated:
        await hub.player_updated(player_id, reason="notifications_read")
    return {"updated": updated}


@router.post("/players/{player_id}/notifications/{notification_id}/read", response_model=Notification)
async def mark_read_route(player_id: str, notification_id: str, r: redis.Redis = Depends(get_redis)) -> Notification:
    try:
        return notifications.mark_read(r=r, notification_id=notification_id, user_id=player_id)
    except EngineError as e:
        raise _http_error(e) from e


# ---- dev ----


@router.post("/players/{player_id}/time_warp", response_model=TimeWarp)
async def time_warp_route(player_id: str, payload: TimeWarpRequest, r: redis.Redis = Depends(get_redis)) -> TimeWarp:
    """Dev endpoint: run a player's game clock faster than real time."""

    try:
        warp = set_time_scale(r=r, player_id=player_id, time_scale=payload.time_scale)
    except EngineError as e:
        raise _http_error(e) from e

    await hub.player_updated(player_id, reason="time_warp")
    return warp


@router.post("/resolver/run_once")
async def run_resolver_once_route(batch_size: int = 100, r: redis.Redis = Depends(get_redis)) -> dict[str, object]:
    """Dev endpoint: one resolver pass over the due index, without running the worker process."""

    if batch_size < 1 or batch_size > 1000:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="batch_size must be 1..1000")

    results = run_resolver_once(r=r, config=ResolverConfig(batch_size=batch_size))
    for player_id, emitted in results.items():
        await hub.player_updated(player_id, reason="resolved", notifications=len(emitted))

    return {"players": {pid: len(emitted) for pid, emitted in results.items()}}
