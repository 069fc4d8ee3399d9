"""Session data for reflection, from a checkpoint or a session log."""

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_TASK_HEADER = re.compile(r"TASK (\d+)/(\d+): (.+)")
_ITERATION = re.compile(r"QA PIPELINE - Iteration")
_SCORE = re.compile(r"Overall Score: ([\d.]+)%")


@dataclass
class SessionData:
    tasks: list = field(default_factory=list)   # result dicts, one per task
    logs: str = ""
    duration: float | None = None


def from_checkpoint(checkpoint):
    """Session from a PipelineCheckpoint's results, or None if it has none."""
    if checkpoint is None or not checkpoint.results:
        return None
    return SessionData(tasks=[dict(r) for r in checkpoint.results])


def parse_log(text):
    """Rebuild per-task results from session log text."""
    headers = list(_TASK_HEADER.finditer(text))
    tasks = []
    for i, m in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(text)
        block = text[m.start():end]
        scores = [float(s) for s in _SCORE.findall(block)]
        tasks.append({
            "filePath": m.group(3).strip(),
            "passed": "Quality Gate: PASSED" in block or "Saving approved code" in block,
            "iterations": len(_ITERATION.findall(block)) or 1,
            "scores": {"overall": scores[-1]} if scores else {},
            "issues": [],
        })
    return SessionData(tasks=tasks, logs=text)


def load_log_file(path):
    """Parse a session log file. Missing or unreadable -> None."""
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        logger.info("No session log at %s: %s", path, e)
        return None
    return parse_log(text)


def load_last_session(log_path, checkpoints):
    """Most recent session: the session log if present, else the checkpoint."""
    session = load_log_file(log_path)
    if session is not None and session.tasks:
        return session
    checkpoint = checkpoints.load()
    from_cp = from_checkpoint(checkpoint)
    if from_cp is not None and session is not None:
        from_cp.logs = session.logs
    return from_cp
