from __future__ import annotations

import asyncio
from collections import defaultdict

from fastapi import WebSocket


class PlayerWebSocketHub:
    """In-process WebSocket fan-out keyed by player_id.

    Events are hints (`{"type": "player_updated", ...}`); clients re-read the
    views they care about over HTTP. Single process only: several API
    replicas would need Redis pub/sub instead.
    """

    def __init__(self) -> None:
        self._subs: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, player_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._subs[player_id].add(websocket)

    async def disconnect(self, player_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._drop(player_id, [websocket])

    def _drop(self, player_id: str, sockets: list[WebSocket]) -> None:
        conns = self._subs.get(player_id)
        if conns is None:
            return
        conns.difference_update(sockets)
        if not conns:
            del self._subs[player_id]

    def subscriber_count(self, player_id: str) -> int:
        return len(self._subs.get(player_id, ()))

    async def broadcast(self, player_id: str, payload: dict[str, object]) -> None:
        async with self._lock:
            conns = list(self._subs.get(player_id, ()))
        if not conns:
            return

        results = await asyncio.gather(*(ws.send_json(payload) for ws in conns), return_exceptions=True)
        dead = [ws for ws, res in zip(conns, results) if isinstance(res, Exception)]
        if dead:
            async with self._lock:
                self._drop(player_id, dead)

    async def player_updated(self, player_id: str, *, reason: str, notifications: int = 0) -> None:
        await self.broadcast(
            player_id,
            {"type": "player_updated", "player_id": player_id, "reason": reason, "notifications": notifications},
        )


hub = PlayerWebSocketHub()
