"""Per-task iteration controller.

    PENDING -> GENERATING -> REVIEWING -> ACCEPTED
                   ^             |
                   |             v
                REVISING <-------+  (failed, iteration < max_iterations)
                                 |
                                 v
                             EXHAUSTED (failed, iteration == max_iterations)

ACCEPTED and EXHAUSTED are terminal. An exhausted task is recorded as failed;
the pipeline moves on to the next task. A passing candidate that cannot be
saved (path outside the project, write error) also ends EXHAUSTED.
"""

import logging
import os

from core.errors import ServiceError
from core.knowledge import detect_task_type
from core.state import IterationRecord, TaskOutcome, TaskState
from utils.logs import session_logger

logger = logging.getLogger(__name__)


def write_project_file(project_root, relative_path, content):
    """Write content inside project_root, creating directories as needed."""
    full_path = os.path.join(project_root, relative_path)
    resolved = os.path.realpath(full_path)
    if not resolved.startswith(os.path.realpath(project_root) + os.sep):
        raise ValueError(f"Path escapes project directory: {relative_path}")
    os.makedirs(os.path.dirname(resolved), exist_ok=True)
    with open(resolved, "w", encoding="utf-8") as f:
        f.write(content)
    return resolved


class IterationController:
    """Cycles generation and review for one task until accept or exhaustion."""

    def __init__(self, generator, quality_gate, knowledge, project_root,
                 max_iterations=3, plan_excerpt="", on_transition=None):
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self.generator = generator
        self.quality_gate = quality_gate
        self.knowledge = knowledge
        self.project_root = project_root
        self.max_iterations = max_iterations
        self.plan_excerpt = plan_excerpt
        self.on_transition = on_transition

    def _enter(self, index, task, state):
        if self.on_transition:
            self.on_transition(index, task, state)
        return state

    def run_task(self, index, task):
        """Drive one task to a terminal state and return its TaskOutcome."""
        state = self._enter(index, task, TaskState.PENDING)
        bundle = self.knowledge.resolve(detect_task_type(task.file_path))
        records = []
        feedback = None
        previous_code = None

        for iteration in range(1, self.max_iterations + 1):
            session_logger.info("QA PIPELINE - Iteration %d/%d", iteration, self.max_iterations)
            session_logger.info("Generating code for %s", task.file_path)
            state = self._enter(index, task, TaskState.GENERATING)
            try:
                code = self.generator.generate(task, bundle, feedback=feedback,
                                               previous_code=previous_code)
            except ServiceError as e:
                logger.warning("Generation failed for %s (iteration %d): %s",
                               task.file_path, iteration, e)
                session_logger.info("Generation failed: %s", e)
                records.append(IterationRecord(number=iteration, code="", error=str(e)))
                feedback = f"The previous generation attempt failed: {e}. Produce the complete file."
                if iteration < self.max_iterations:
                    state = self._enter(index, task, TaskState.REVISING)
                continue

            state = self._enter(index, task, TaskState.REVIEWING)
            session_logger.info("Running quality checks")
            report = self.quality_gate.review(code, task, self.plan_excerpt)
            records.append(IterationRecord(number=iteration, code=code, report=report))
            session_logger.info("Overall Score: %.1f%% (min: %g%%)",
                                report.overall_score, report.threshold)

            if report.passed:
                session_logger.info("Quality Gate: PASSED")
                try:
                    written = write_project_file(self.project_root, task.file_path, code)
                except (ValueError, OSError) as e:
                    logger.error("Could not save %s: %s", task.file_path, e)
                    session_logger.info("Save failed: %s", e)
                    records[-1].error = str(e)
                    state = self._enter(index, task, TaskState.EXHAUSTED)
                    return TaskOutcome(index=index, task=task, state=state,
                                       records=tuple(records))
                session_logger.info("Saving approved code to %s", task.file_path)
                state = self._enter(index, task, TaskState.ACCEPTED)
                return TaskOutcome(index=index, task=task, state=state,
                                   records=tuple(records), written_path=written)

            session_logger.info("Quality Gate: FAILED (%d issues)", len(report.findings))
            feedback = report.feedback
            previous_code = code
            if iteration < self.max_iterations:
                session_logger.info("Failed QA, attempting rework (iteration %d)", iteration + 1)
                state = self._enter(index, task, TaskState.REVISING)

        session_logger.info("Maximum iterations reached - manual review needed")
        state = self._enter(index, task, TaskState.EXHAUSTED)
        return TaskOutcome(index=index, task=task, state=state, records=tuple(records))
