"""Abstract store interface.

A backend persists two things per PR: the task set and the checkpoint of an
in-flight incremental run. prtasks_core and the CLI depend on BaseStore only,
so backends are swappable without touching either.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from prtasks_store.models import utc_now

if TYPE_CHECKING:
    from prtasks_store.models import CheckpointState, PersistedTask

_FINAL_STATUSES = ("done", "cancelled")


class BaseStore(ABC):
    """Pluggable persistence for tasks and checkpoints.

    All writes are whole-snapshot writes made from the single sequential
    batch loop, so implementations need no locking of their own.
    """

    # -- tasks -------------------------------------------------------------

    @abstractmethod
    def list_tasks(self, pr_number: int | None = None) -> list[PersistedTask]:
        """Return stored tasks, optionally for one PR. Empty list when none exist."""

    @abstractmethod
    def _write_tasks(self, pr_number: int, tasks: list[PersistedTask]) -> None:
        """Replace the stored task set of one PR."""

    def merge_tasks(self, pr_number: int, tasks: list[PersistedTask]) -> list[PersistedTask]:
        """Upsert tasks by id and return the resulting task set for the PR.

        Same id means same logical task: content fields are overwritten by the
        later write, while the stored status and creation time are kept. Tasks
        of a comment present in ``tasks`` whose id was not produced this time
        are superseded (cancelled unless already final).
        """
        existing = {t.id: t for t in self.list_tasks(pr_number)}
        incoming_ids = {t.id for t in tasks}
        touched_comments = {t.source_comment_id for t in tasks}
        now = utc_now()

        for task in tasks:
            task.pr_number = pr_number
            previous = existing.get(task.id)
            if previous is not None:
                task.status = previous.status
                task.created_at = previous.created_at or task.created_at
                task.updated_at = now
            existing[task.id] = task

        for task in existing.values():
            if task.id in incoming_ids or task.source_comment_id not in touched_comments:
                continue
            if task.status not in _FINAL_STATUSES:
                task.status = "cancelled"
                task.updated_at = now

        merged = list(existing.values())
        self._write_tasks(pr_number, merged)
        return merged

    def update_status(self, pr_number: int, task_id: str, status: str) -> PersistedTask:
        """Set the lifecycle status of one task. Raises KeyError for an unknown id."""
        tasks = self.list_tasks(pr_number)
        for task in tasks:
            if task.id == task_id:
                task.status = status
                task.updated_at = utc_now()
                self._write_tasks(pr_number, tasks)
                return task
        raise KeyError(f"Task {task_id} not found in PR #{pr_number}")

    # -- checkpoints -------------------------------------------------------

    @abstractmethod
    def save_checkpoint(self, pr_number: int, state: CheckpointState) -> None:
        """Persist the checkpoint snapshot for a PR, replacing any previous one."""

    @abstractmethod
    def load_checkpoint(self, pr_number: int) -> CheckpointState | None:
        """Return the stored checkpoint for a PR, or None if there is none."""

    @abstractmethod
    def delete_checkpoint(self, pr_number: int) -> None:
        """Remove the checkpoint for a PR. Missing checkpoints are not an error."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Default is a no-op so callers can always call close() safely.
        """
