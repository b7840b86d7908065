from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from labforge.game_config import MAX_LEVEL, STARTING_CASH, FounderType


LEDGER_SCHEMA_VERSION = 3


class ComputeUnits(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    current: int = Field(1, ge=0)
    max: int = Field(1, ge=0)

    @model_validator(mode="after")
    def _current_within_max(self) -> "ComputeUnits":
        if self.current > self.max:
            raise ValueError(f"compute_units.current ({self.current}) exceeds max ({self.max})")
        return self


class UpgradeRanks(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    queue: int = Field(0, ge=0)
    staff: int = Field(0, ge=0)
    compute: int = Field(0, ge=0)


class PlayerLedger(BaseModel):
    """Per-player counters.

    Every assignment is re-validated, so a mutation that would take a counter
    negative (or juniors past staff capacity) raises instead of persisting.
    """

    model_config = ConfigDict(validate_assignment=True)

    schema_version: int = LEDGER_SCHEMA_VERSION
    player_id: str
    lab_name: str
    founder_type: FounderType = FounderType.technical
    created_at: int

    cash: int = Field(STARTING_CASH, ge=0)
    research_points: int = Field(0, ge=0)
    compute_units: ComputeUnits = Field(default_factory=ComputeUnits)

    queue_slots: int = Field(1, ge=1)
    staff_capacity: int = Field(1, ge=0)
    junior_researchers: int = Field(0, ge=0)

    level: int = Field(1, ge=1, le=MAX_LEVEL)
    # Progress toward the next level; spent on level-up.
    experience: int = Field(0, ge=0)
    upgrade_points: int = Field(0, ge=0)
    ranks: UpgradeRanks = Field(default_factory=UpgradeRanks)

    # Percent, from research perks.
    speed_bonus: int = Field(0, ge=0)
    money_multiplier: float = Field(1.0, ge=1.0)

    @model_validator(mode="after")
    def _juniors_within_capacity(self) -> "PlayerLedger":
        if self.junior_researchers > self.staff_capacity:
            raise ValueError(
                f"junior_researchers ({self.junior_researchers}) exceeds staff_capacity ({self.staff_capacity})"
            )
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def parallel_task_limit(self) -> int:
        return self.queue_slots + self.junior_researchers


class ResourceAmounts(BaseModel):
    cash: int = Field(0, ge=0)
    compute: int = Field(0, ge=0)
    rp: int = Field(0, ge=0)
    xp: int = Field(0, ge=0)


class TaskStatus(StrEnum):
    running = "running"
    completed = "completed"
    archived = "archived"
    cancelled = "cancelled"


class TaskInstance(BaseModel):
    id: str
    player_id: str
    action_id: str
    started_at: int
    completes_at: int
    status: TaskStatus = TaskStatus.running

    # Fixed at admission so the outcome is reproducible.
    seed: int
    paid: ResourceAmounts = Field(default_factory=ResourceAmounts)
    staff_reserved: int = 0

    # Filled on resolution.
    rewards: ResourceAmounts | None = None
    resolved_at: int | None = None


class NotificationType(StrEnum):
    level_up = "level_up"
    task_complete = "task_complete"
    unlock = "unlock"
    hire_complete = "hire_complete"
    research_complete = "research_complete"
    message = "message"
    milestone = "milestone"


class DeepLink(BaseModel):
    view: str
    target: str | None = None


class Notification(BaseModel):
    id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    created_at: int
    read: bool = False
    deep_link: DeepLink | None = None
    task_id: str | None = None
    event_id: str | None = None


class ModelType(StrEnum):
    llm = "llm"
    tts = "tts"
    vlm = "vlm"


class TrainedModel(BaseModel):
    id: str
    blueprint_id: str
    model_type: ModelType
    name: str
    version: int
    score: int
    trained_at: int
    task_id: str


class TimeWarp(BaseModel):
    time_scale: int = 1
    # Baselines captured when the scale last changed.
    warp_real_ms: int | None = None
    warp_effective_ms: int | None = None
    updated_at: int | None = None


# ---- requests / responses ----


class PlayerCreateRequest(BaseModel):
    player_id: str = Field(..., min_length=1, max_length=128)
    lab_name: str = Field(..., min_length=1, max_length=80)
    founder_type: FounderType = FounderType.technical


class StartActionRequest(BaseModel):
    # Pins the task's PRNG stream; random when omitted.
    seed: int | None = Field(None, ge=0, le=2**53 - 1)


class TimeWarpRequest(BaseModel):
    time_scale: int


class NodeStateView(BaseModel):
    id: str
    name: str
    category: str
    is_research_node: bool
    is_purchased: bool
    is_locked: bool
    lock_reason: str | None = None


class UnlockStateResponse(BaseModel):
    entries: list[NodeStateView]
    available_per_category: dict[str, int]


class CatalogEntryView(BaseModel):
    id: str
    name: str
    category: str
    description: str
    duration_ms: int
    cost: ResourceAmounts
    rewards: ResourceAmounts
    unlocks: list[str]
    min_level: int
    prerequisite_node_ids: list[str]
    cancellable: bool
    is_research_node: bool
    requires_model_type: str | None = None


class CatalogResponse(BaseModel):
    entries: list[CatalogEntryView]


class TaskListResponse(BaseModel):
    tasks: list[TaskInstance]


class ModelListResponse(BaseModel):
    models: list[TrainedModel]


class NotificationListResponse(BaseModel):
    notifications: list[Notification]


class UnreadCountResponse(BaseModel):
    count: int


class ProgressResponse(BaseModel):
    """Ledger plus the notifications the command produced."""

    ledger: PlayerLedger
    notifications: list[Notification] = Field(default_factory=list)
