"""FileStore: JSON snapshots on the local filesystem, one directory per PR.

Layout under the base directory (default ``.pr-review``)::

    PR-<n>/tasks.json        {"generated_at": ..., "tasks": [...]}
    PR-<n>/checkpoint.json   CheckpointState as a JSON object

Every write replaces the whole file. The batch loop is the only writer, so a
read-modify-write of the snapshot needs no file locking.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from prtasks_store.base import BaseStore
from prtasks_store.models import CheckpointState, PersistedTask, utc_now

logger = logging.getLogger(__name__)

_TASKS_FILENAME = "tasks.json"
_CHECKPOINT_FILENAME = "checkpoint.json"


class FileStore(BaseStore):
    """Stores tasks and checkpoints as JSON files under ``base_dir``."""

    def __init__(self, base_dir: str = ".pr-review"):
        self._base = Path(base_dir)

    def _pr_dir(self, pr_number: int) -> Path:
        return self._base / f"PR-{pr_number}"

    def _write_json(self, path: Path, payload) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write to a sibling file and rename so an interrupted write never
        # leaves a half-written snapshot behind.
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)

    # -- tasks -------------------------------------------------------------

    def list_tasks(self, pr_number: int | None = None) -> list[PersistedTask]:
        if pr_number is not None:
            return self._read_tasks(self._pr_dir(pr_number) / _TASKS_FILENAME)

        if not self._base.exists():
            return []
        tasks: list[PersistedTask] = []
        for pr_dir in sorted(self._base.glob("PR-*")):
            if pr_dir.is_dir():
                tasks.extend(self._read_tasks(pr_dir / _TASKS_FILENAME))
        return tasks

    def _write_tasks(self, pr_number: int, tasks: list[PersistedTask]) -> None:
        payload = {"generated_at": utc_now(), "tasks": [t.to_dict() for t in tasks]}
        self._write_json(self._pr_dir(pr_number) / _TASKS_FILENAME, payload)

    def _read_tasks(self, path: Path) -> list[PersistedTask]:
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning("Ignoring unreadable task file %s: %s", path, e)
            return []
        return [PersistedTask.from_dict(t) for t in data.get("tasks", [])]

    # -- checkpoints -------------------------------------------------------

    def save_checkpoint(self, pr_number: int, state: CheckpointState) -> None:
        state.last_processed_at = utc_now()
        self._write_json(self._pr_dir(pr_number) / _CHECKPOINT_FILENAME, state.to_dict())

    def load_checkpoint(self, pr_number: int) -> CheckpointState | None:
        path = self._pr_dir(pr_number) / _CHECKPOINT_FILENAME
        if not path.exists():
            return None
        try:
            return CheckpointState.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except json.JSONDecodeError as e:
            # A corrupt checkpoint only costs a restart from scratch.
            logger.warning("Ignoring unreadable checkpoint %s: %s", path, e)
            return None

    def delete_checkpoint(self, pr_number: int) -> None:
        (self._pr_dir(pr_number) / _CHECKPOINT_FILENAME).unlink(missing_ok=True)
