"""Crash-safe run progress for the QA pipeline.

One JSON file per pipeline name under the checkpoint directory. Every write
goes to a temp file in the same directory and is moved into place with
os.replace, so a crash leaves either the previous or the new checkpoint.

Only one pipeline process may use a checkpoint path at a time. Running two
processes against the same path is unsupported and its outcome undefined.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone

from core.errors import CheckpointCorruption
from core.state import Task

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def _now():
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PipelineCheckpoint:
    mode: str
    phase_name: str | None
    total_tasks: int
    task_list: list = field(default_factory=list)        # [Task]
    completed_tasks: list = field(default_factory=list)  # [int], increasing
    results: list = field(default_factory=list)          # one dict per completed task
    started_at: str = ""
    updated_at: str = ""
    finished: bool = False
    finished_at: str | None = None
    last_completed_task: str | None = None

    def pending_indices(self):
        done = set(self.completed_tasks)
        return [i for i in range(self.total_tasks) if i not in done]

    def to_dict(self):
        return {
            "schemaVersion": SCHEMA_VERSION,
            "mode": self.mode,
            "phaseName": self.phase_name,
            "totalTasks": self.total_tasks,
            "taskList": [t.to_dict() for t in self.task_list],
            "completedTasks": list(self.completed_tasks),
            "results": list(self.results),
            "startedAt": self.started_at,
            "updatedAt": self.updated_at,
            "finished": self.finished,
            "finishedAt": self.finished_at,
            "lastCompletedTask": self.last_completed_task,
        }

    @classmethod
    def from_dict(cls, data):
        """Rebuild and validate a checkpoint. Raises CheckpointCorruption."""
        if not isinstance(data, dict):
            raise CheckpointCorruption("checkpoint is not a JSON object")
        version = data.get("schemaVersion", SCHEMA_VERSION)
        if not isinstance(version, int) or version > SCHEMA_VERSION:
            raise CheckpointCorruption(f"unsupported schema version: {version!r}")
        try:
            checkpoint = cls(
                mode=data["mode"],
                phase_name=data.get("phaseName"),
                total_tasks=int(data["totalTasks"]),
                task_list=[Task.from_dict(t) for t in data.get("taskList", [])],
                completed_tasks=[int(i) for i in data.get("completedTasks", [])],
                results=list(data.get("results", [])),
                started_at=data.get("startedAt", ""),
                updated_at=data.get("updatedAt", ""),
                finished=bool(data.get("finished", False)),
                finished_at=data.get("finishedAt"),
                last_completed_task=data.get("lastCompletedTask"),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise CheckpointCorruption(f"malformed checkpoint: {e}") from e
        checkpoint.validate()
        return checkpoint

    def validate(self):
        done = self.completed_tasks
        if len(self.task_list) != self.total_tasks:
            raise CheckpointCorruption("taskList length does not match totalTasks")
        if any(i < 0 or i >= self.total_tasks for i in done):
            raise CheckpointCorruption("completed task index out of range")
        if any(b <= a for a, b in zip(done, done[1:])):
            raise CheckpointCorruption("completedTasks must be increasing and unique")
        if not all(isinstance(r, dict) for r in self.results):
            raise CheckpointCorruption("results must be JSON objects")
        if [r.get("index") for r in self.results] != done:
            raise CheckpointCorruption("results do not match completedTasks")


class CheckpointManager:
    """Owns the checkpoint file for one pipeline name."""

    def __init__(self, directory=".checkpoints", pipeline_name="qa-pipeline"):
        self.directory = directory
        self.pipeline_name = pipeline_name
        self.path = os.path.join(directory, f"{pipeline_name}.json")
        self.state = None

    def _save(self):
        """Atomic write of self.state."""
        self.state.updated_at = _now()
        os.makedirs(self.directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.directory, prefix=f".{self.pipeline_name}.", suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.state.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def load(self):
        """Return the persisted checkpoint, or None if absent or unreadable."""
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = f.read()
        except FileNotFoundError:
            self.state = None
            return None
        try:
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as e:
                raise CheckpointCorruption(f"invalid JSON: {e}") from e
            self.state = PipelineCheckpoint.from_dict(data)
        except CheckpointCorruption as e:
            logger.warning("Ignoring corrupt checkpoint %s: %s", self.path, e)
            self.state = None
        return self.state

    def start(self, mode, phase_name, tasks):
        """Begin a new run, replacing any previous checkpoint."""
        now = _now()
        self.state = PipelineCheckpoint(
            mode=mode,
            phase_name=phase_name,
            total_tasks=len(tasks),
            task_list=list(tasks),
            started_at=now,
            updated_at=now,
        )
        self._save()
        return self.state

    def complete_task(self, index, file_path, result):
        """Record one finished task. The only mutation made during a run."""
        if self.state is None:
            raise RuntimeError("complete_task() called before start() or load()")
        done = self.state.completed_tasks
        if not 0 <= index < self.state.total_tasks:
            raise ValueError(f"task index {index} out of range 0..{self.state.total_tasks - 1}")
        if done and index <= done[-1]:
            raise ValueError(f"task {index} already completed or out of order")

        self.state.completed_tasks = done + [index]
        self.state.results = self.state.results + [{"index": index, "filePath": file_path, **result}]
        self.state.last_completed_task = file_path
        self._save()

    def finish(self):
        """Flag the run as complete. History stays on disk."""
        if self.state is None:
            return
        self.state.finished = True
        self.state.finished_at = _now()
        self._save()

    def clear(self):
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
        self.state = None

    def pending_indices(self):
        return self.state.pending_indices() if self.state else []

    def summary(self):
        """Short description of the loaded checkpoint for resume prompts."""
        if self.state is None:
            return None
        s = self.state
        return {
            "mode": s.mode,
            "phaseName": s.phase_name,
            "completed": len(s.completed_tasks),
            "total": s.total_tasks,
            "lastTask": s.last_completed_task or "Unknown",
            "updatedAt": s.updated_at or "Unknown",
            "finished": s.finished,
        }
