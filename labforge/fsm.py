from __future__ import annotations

from statemachine import State, StateMachine

from labforge.api.models import TaskInstance, TaskStatus


class TaskFSM(StateMachine):
    """Lifecycle guard around a TaskInstance.

    running -> completed -> archived, or running -> cancelled.
    The scheduler applies side effects; the FSM only rejects illegal moves.
    """

    running = State(TaskStatus.running.value, value=TaskStatus.running.value, initial=True)
    completed = State(TaskStatus.completed.value, value=TaskStatus.completed.value)
    archived = State(TaskStatus.archived.value, value=TaskStatus.archived.value, final=True)
    cancelled = State(TaskStatus.cancelled.value, value=TaskStatus.cancelled.value, final=True)

    complete = running.to(completed)
    archive = completed.to(archived)
    cancel = running.to(cancelled)

    def __init__(self, task: TaskInstance):
        self.task = task
        super().__init__(start_value=task.status.value)

    def sync_status_to_model(self) -> None:
        self.task.status = TaskStatus(str(self.current_state.value))
