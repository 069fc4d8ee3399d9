"""Pipeline run — plan → task selection → checkpointed per-task iteration → summary."""

import logging
import os
import time
from dataclasses import dataclass, field

from agents.generator import GeneratorAgent
from agents.reviewer import QualityGate
from core.checkpoint import CheckpointManager
from core.controller import IterationController
from core.cost import CostTracker
from core.errors import PipelineError, ServiceError
from core.knowledge import KnowledgeStore
from core.plan_parser import parse_plan, select_tasks
from utils.llm import call_llm
from utils.logs import close_session_log, open_session_log, session_logger

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    mode: str
    phase_name: str | None = None
    total_tasks: int = 0
    outcomes: list = field(default_factory=list)   # [TaskOutcome] for this process
    previously_completed: int = 0                  # done before a resume
    needs_choice: bool = False                      # unfinished checkpoint, no flag given
    checkpoint_summary: dict | None = None
    resumed: bool = False
    cost: object = None                             # CostSummary
    error: str = ""

    @property
    def passed(self):
        return [o for o in self.outcomes if o.passed]

    @property
    def failed(self):
        return [o for o in self.outcomes if not o.passed]

    @property
    def manual_review(self):
        return [o for o in self.outcomes if o.needs_manual_review]


class Pipeline:
    """Runs the quality-gated generation loop over a plan's tasks.

    Collaborators are built from config unless injected; tests inject fakes.
    """

    def __init__(self, config, llm=None, knowledge=None, cost_tracker=None,
                 checkpoints=None, out=print, sleep=time.sleep):
        self.config = config
        self.llm = llm or call_llm
        self.project_root = config["project_path"]
        self.knowledge = knowledge or KnowledgeStore(self._in_project(config["knowledge_dir"]))
        self.cost_tracker = cost_tracker or CostTracker()
        self.checkpoints = checkpoints or CheckpointManager(
            self._in_project(config["checkpoint_dir"]), config["pipeline_name"],
        )
        self.out = out
        self.sleep = sleep

        timeout = config.get("api_timeout") or None
        self.generator = GeneratorAgent(
            llm=self.llm,
            cost_tracker=self.cost_tracker,
            model=config["model"],
            max_tokens=config["max_tokens"],
            timeout=timeout,
        )
        self.quality_gate = QualityGate(
            llm=self.llm,
            cost_tracker=self.cost_tracker,
            knowledge=self.knowledge,
            model=config["review_model"],
            max_tokens=config["review_max_tokens"],
            timeout=timeout,
            threshold=config["min_pass_score"],
        )

    def _in_project(self, path):
        return path if os.path.isabs(path) else os.path.join(self.project_root, path)

    @property
    def log_path(self):
        return self._in_project(self.config["qa_log_path"])

    # -- plan ---------------------------------------------------------------

    def read_plan(self):
        path = self._in_project(self.config["plan_path"])
        try:
            with open(path, encoding="utf-8") as f:
                return f.read()
        except OSError as e:
            raise PipelineError(f"Cannot read plan {path}: {e}") from e

    def load_tasks(self):
        """Parse the plan. An empty task list is fatal."""
        text = self.read_plan()
        tasks = parse_plan(text)
        if not tasks:
            raise PipelineError("No tasks found in plan")
        return text, tasks

    # -- run ----------------------------------------------------------------

    def run(self, mode, phase_name=None, resume=False, fresh=False):
        """Run the pipeline and return a RunReport.

        With an unfinished checkpoint on disk and neither resume nor fresh,
        nothing runs: the report has needs_choice set.
        """
        plan_text, tasks = self.load_tasks()
        checkpoint = self.checkpoints.load()
        unfinished = checkpoint is not None and not checkpoint.finished

        if unfinished and not (resume or fresh):
            return RunReport(mode=mode, phase_name=phase_name, needs_choice=True,
                             checkpoint_summary=self.checkpoints.summary())

        if resume and unfinished:
            mode, phase_name = checkpoint.mode, checkpoint.phase_name
            selected = checkpoint.task_list
            pending = checkpoint.pending_indices()
            report = RunReport(mode=mode, phase_name=phase_name, total_tasks=len(selected),
                               previously_completed=len(checkpoint.completed_tasks), resumed=True)
            self.out(f"Resuming: {report.previously_completed}/{len(selected)} tasks already done")
        else:
            if resume:
                logger.info("Nothing to resume, starting a new run")
            if fresh:
                self.checkpoints.clear()
            selected = select_tasks(tasks, mode, phase_name)
            if not selected:
                raise PipelineError(f"No tasks match {mode}" + (f" '{phase_name}'" if phase_name else ""))
            self.checkpoints.start(mode, phase_name, selected)
            pending = list(range(len(selected)))
            report = RunReport(mode=mode, phase_name=phase_name, total_tasks=len(selected))

        controller = IterationController(
            self.generator,
            self.quality_gate,
            self.knowledge,
            self.project_root,
            max_iterations=self.config["max_iterations"],
            plan_excerpt=plan_text[: self.config["plan_excerpt_chars"]],
        )

        handler = open_session_log(self.log_path, resume=report.resumed)
        try:
            for n, index in enumerate(pending):
                if n:
                    self.sleep(self.config["task_delay"])
                task = selected[index]
                self.out(f"\n[{index + 1}/{len(selected)}] {task.file_path} ({task.action})")
                session_logger.info("TASK %d/%d: %s", index + 1, len(selected), task.file_path)

                outcome = controller.run_task(index, task)
                self.checkpoints.complete_task(index, task.file_path, outcome.to_result())
                report.outcomes.append(outcome)
                self.print_outcome(outcome)
            self.checkpoints.finish()
        except ServiceError as e:
            logger.error("Pipeline stopped: %s", e)
            report.error = str(e)
        finally:
            close_session_log(handler)
            report.cost = self.cost_tracker.summary()
            self.print_summary(report)
        return report

    # -- output -------------------------------------------------------------

    def print_outcome(self, outcome):
        score = outcome.scores.get("overall")
        score_text = f", score {score:g}%" if score is not None else ""
        if outcome.passed:
            self.out(f"   PASSED after {outcome.iterations} iteration(s){score_text}")
        else:
            self.out(f"   NEEDS MANUAL REVIEW after {outcome.iterations} iteration(s){score_text}")
            report = outcome.last_report
            for finding in (report.critical_findings if report else [])[:5]:
                self.out(f"     [{finding.severity.upper()}] {finding.message}")

    def print_summary(self, report):
        out = self.out
        out("\n" + "=" * 60)
        out("PIPELINE SUMMARY")
        out("=" * 60)
        out(f"   Mode: {report.mode}" + (f" ({report.phase_name})" if report.phase_name else ""))
        out(f"   Tasks this run: {len(report.outcomes)}/{report.total_tasks}"
            + (f" ({report.previously_completed} done earlier)" if report.previously_completed else ""))
        out(f"   Passed: {len(report.passed)}")
        out(f"   Failed: {len(report.failed)}")
        if report.manual_review:
            out("\n   Needs manual review:")
            for outcome in report.manual_review:
                out(f"      - {outcome.task.file_path}")
        if report.error:
            out(f"\n   Stopped early: {report.error}")
            out("   Progress is checkpointed; rerun with --resume to continue.")
        out("")
        out(self.cost_tracker.format_summary())
