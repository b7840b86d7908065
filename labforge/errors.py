from __future__ import annotations

from typing import Any


class EngineError(ValueError):
    """Base class for command-surface errors.

    These are expected outcomes of a player command (returned to the caller as a
    typed result), never crashes. `detail()` is what the API sends back.
    """

    code = "engine_error"

    def detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class PlayerNotFound(EngineError):
    code = "player_not_found"

    def __init__(self, player_id: str) -> None:
        super().__init__(f"Player not found: {player_id}")
        self.player_id = player_id


class PlayerExists(EngineError):
    code = "player_exists"

    def __init__(self, player_id: str) -> None:
        super().__init__(f"Player already exists: {player_id}")
        self.player_id = player_id


class PlayerBusy(EngineError):
    code = "player_busy"

    def __init__(self, player_id: str) -> None:
        super().__init__(f"Player is busy: {player_id}")
        self.player_id = player_id


class UnknownAction(EngineError):
    code = "unknown_action"

    def __init__(self, action_id: str) -> None:
        super().__init__(f"Unknown action: {action_id}")
        self.action_id = action_id

    def detail(self) -> dict[str, Any]:
        return {**super().detail(), "action_id": self.action_id}


class Locked(EngineError):
    code = "locked"

    def __init__(
        self,
        action_id: str,
        *,
        required_level: int | None = None,
        current_level: int | None = None,
        missing_prerequisites: tuple[str, ...] = (),
        required_model_type: str | None = None,
    ) -> None:
        parts: list[str] = []
        if required_level is not None:
            parts.append(f"requires level {required_level} (current {current_level})")
        if missing_prerequisites:
            parts.append(f"requires research: {', '.join(missing_prerequisites)}")
        if required_model_type is not None:
            parts.append(f"needs a trained {required_model_type.upper()} model")
        super().__init__(f"{action_id} is locked: {'; '.join(parts) or 'unavailable'}")
        self.action_id = action_id
        self.required_level = required_level
        self.current_level = current_level
        self.missing_prerequisites = missing_prerequisites
        self.required_model_type = required_model_type

    def detail(self) -> dict[str, Any]:
        out: dict[str, Any] = {**super().detail(), "action_id": self.action_id}
        if self.required_level is not None:
            out["required_level"] = self.required_level
            out["level_gap"] = self.required_level - (self.current_level or 0)
        if self.missing_prerequisites:
            out["missing_prerequisites"] = list(self.missing_prerequisites)
        if self.required_model_type is not None:
            out["required_model_type"] = self.required_model_type
        return out


class AlreadyUnlocked(EngineError):
    code = "already_unlocked"

    def __init__(self, node_id: str, *, in_progress: bool = False) -> None:
        what = "is already being researched" if in_progress else "is already purchased"
        super().__init__(f"{node_id} {what}")
        self.node_id = node_id
        self.in_progress = in_progress

    def detail(self) -> dict[str, Any]:
        return {**super().detail(), "node_id": self.node_id, "in_progress": self.in_progress}


class CapacityExceeded(EngineError):
    code = "capacity_exceeded"

    def __init__(self, *, current: int, limit: int) -> None:
        super().__init__(f"All {limit} task slot(s) in use ({current} running)")
        self.current = current
        self.limit = limit

    def detail(self) -> dict[str, Any]:
        return {**super().detail(), "current": self.current, "limit": self.limit}


class InsufficientResources(EngineError):
    code = "insufficient_resources"

    def __init__(self, shortfall: dict[str, int]) -> None:
        short = ", ".join(f"{k}: {v}" for k, v in shortfall.items())
        super().__init__(f"Insufficient resources ({short})")
        self.shortfall = dict(shortfall)

    def detail(self) -> dict[str, Any]:
        return {**super().detail(), "shortfall": dict(self.shortfall)}


class TaskNotFound(EngineError):
    code = "task_not_found"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Running task not found: {task_id}")
        self.task_id = task_id


class NotCancellable(EngineError):
    code = "not_cancellable"

    def __init__(self, task_id: str, action_id: str) -> None:
        super().__init__(f"Task {task_id} ({action_id}) cannot be cancelled")
        self.task_id = task_id
        self.action_id = action_id


class UpgradeUnavailable(EngineError):
    code = "upgrade_unavailable"


class NotificationNotFound(EngineError):
    code = "notification_not_found"

    def __init__(self, notification_id: str) -> None:
        super().__init__(f"Notification not found: {notification_id}")
        self.notification_id = notification_id
