"""Reviewer panel and quality gate — scores one candidate and explains failures.

Four independent reviewers run concurrently (architecture, integration,
security, best practices). Their findings are folded into a final
quality-gate call, and core.quality combines all scores into the verdict.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from agents.base import BaseAgent
from agents.patch_composer import compose_feedback
from core.errors import ServiceError, ValidationError
from core.quality import REVIEWER_WEIGHTS, coerce_score, overall_score, quality_gate_pass
from core.state import Finding, QAReport
from utils.json_extract import parse_json
from utils.template_engine import render_prompt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reviewer:
    name: str
    prompt: str
    score_key: str
    verdict_key: str
    findings_key: str


PANEL = (
    Reviewer("architecture", "architecture", "alignment", "consistent", "deviations"),
    Reviewer("integration", "integration", "compatibilityScore", "integrated", "issues"),
    Reviewer("security", "security", "securityScore", "secure", "vulnerabilities"),
    Reviewer("best_practices", "best_practices", "practiceScore", "followsBestPractices", "violations"),
)
AGGREGATOR = Reviewer("quality_gate", "quality_gate", "score", "approved", "issues")


def _as_line(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_findings(reviewer, items):
    """Normalise a reviewer's issue list into Findings. Non-dict items are skipped."""
    findings = []
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            continue
        severity = str(item.get("severity") or item.get("impact") or "medium").lower()
        findings.append(Finding(
            reviewer=reviewer,
            severity=severity,
            message=item.get("description") or item.get("issue") or item.get("message") or "",
            fix=item.get("fix") or item.get("suggestion") or "",
            line=_as_line(item.get("line")),
            category=item.get("type") or item.get("category") or "",
        ))
    return findings


@dataclass
class _Verdict:
    score: float | None = None
    approved: bool | None = None
    findings: tuple = ()
    strengths: tuple = ()


class QualityGate(BaseAgent):
    """review(candidate, task) -> QAReport.

    A reviewer whose call fails (service error, timeout, unparseable JSON)
    contributes nothing and is listed in report.degraded; it never fails the
    review on its own.
    """

    name = "quality_gate"

    def __init__(self, llm=None, cost_tracker=None, knowledge=None, model="",
                 max_tokens=2000, timeout=None, threshold=80, weights=None):
        super().__init__(llm, cost_tracker, model, max_tokens, timeout)
        self.knowledge = knowledge
        self.threshold = threshold
        self.weights = weights or REVIEWER_WEIGHTS

    # -- prompts ------------------------------------------------------------

    def _minimal_knowledge(self):
        return self.knowledge.resolve_minimal() if self.knowledge else ""

    def _lessons(self, task_type):
        if not self.knowledge:
            return ""
        return f"## KNOWN LESSONS (from past reviews)\n{self.knowledge.lessons(task_type)}"

    def _system_prompt(self, reviewer, task, panel_summary=""):
        if reviewer.name == "security":
            return render_prompt("security", lessons=self._lessons("api"))
        if reviewer.name == "best_practices":
            task_type = "frontend" if "react" in task.file_type else "backend"
            return render_prompt("best_practices", file_type=task.file_type,
                                 lessons=self._lessons(task_type))
        return render_prompt(reviewer.prompt, knowledge=self._minimal_knowledge(),
                             panel=panel_summary or "(none)")

    def _user_message(self, reviewer, candidate, task, plan_excerpt):
        parts = [f"File: {task.file_path}", f"Type: {task.file_type}", f"\nCode:\n{candidate}"]
        if reviewer.name == "architecture":
            parts.append(f"\nProject Plan:\n{plan_excerpt or '(not provided)'}")
        elif reviewer.name in ("integration", "quality_gate"):
            parts.append(f"\nTask:\n{task.title}\n{task.description}")
        return "\n".join(parts)

    # -- calls --------------------------------------------------------------

    def _ask(self, reviewer, candidate, task, plan_excerpt, panel_summary=""):
        """Run one reviewer. Returns a _Verdict, or None when degraded."""
        try:
            text = self._complete(
                self._system_prompt(reviewer, task, panel_summary),
                self._user_message(reviewer, candidate, task, plan_excerpt),
                agent_name=reviewer.name,
            )
        except ServiceError as e:
            logger.warning("Reviewer %s unavailable: %s", reviewer.name, e)
            return None

        result = parse_json(text)
        if not result.ok or not isinstance(result.value, dict):
            logger.warning("Reviewer %s returned unparseable output: %s",
                           reviewer.name, result.error or "not a JSON object")
            return None

        data = result.value
        verdict = data.get(reviewer.verdict_key)
        strengths = data.get("strengths")
        if not isinstance(strengths, list):
            strengths = []
        return _Verdict(
            score=coerce_score(data.get(reviewer.score_key)),
            approved=verdict if isinstance(verdict, bool) else None,
            findings=tuple(parse_findings(reviewer.name, data.get(reviewer.findings_key))),
            strengths=tuple(s for s in strengths if isinstance(s, str)),
        )

    def run_panel(self, candidate, task, plan_excerpt=""):
        """Issue the panel concurrently. Returns {reviewer name: _Verdict | None}."""
        with ThreadPoolExecutor(max_workers=len(PANEL), thread_name_prefix="review") as pool:
            futures = {
                r.name: pool.submit(self._ask, r, candidate, task, plan_excerpt)
                for r in PANEL
            }
            # Panel order, regardless of completion order.
            return {name: futures[name].result() for name in (r.name for r in PANEL)}

    @staticmethod
    def summarize_panel(verdicts):
        lines = []
        for name, verdict in verdicts.items():
            if verdict is None:
                lines.append(f"- {name}: unavailable")
                continue
            score = "n/a" if verdict.score is None else f"{verdict.score:g}"
            lines.append(f"- {name}: score {score}, {len(verdict.findings)} finding(s)")
            for f in verdict.findings:
                lines.append(f"    [{f.severity}] {f.message}")
        return "\n".join(lines)

    def review(self, candidate, task, plan_excerpt=""):
        """Score candidate for task and return a QAReport."""
        verdicts = self.run_panel(candidate, task, plan_excerpt)
        verdicts[AGGREGATOR.name] = self._ask(
            AGGREGATOR, candidate, task, plan_excerpt, self.summarize_panel(verdicts),
        )

        degraded = tuple(name for name, v in verdicts.items() if v is None)
        answered = {name: v for name, v in verdicts.items() if v is not None}
        scores = {name: v.score for name, v in answered.items() if v.score is not None}
        findings = tuple(f for v in answered.values() for f in v.findings)
        strengths = tuple(s for v in answered.values() for s in v.strengths)
        vetoes = tuple(name for name, v in answered.items() if v.approved is False)

        try:
            aggregate = answered.get(AGGREGATOR.name)
            if aggregate is not None and aggregate.score is None:
                raise ValidationError("quality gate response has no numeric score")
            score = overall_score(scores, self.weights)
        except ValidationError as e:
            logger.warning("Review of %s is structurally invalid: %s", task.file_path, e)
            feedback = compose_feedback(findings, 0.0, self.threshold, vetoes, degraded)
            return QAReport(
                overall_score=0.0,
                passed=False,
                threshold=self.threshold,
                scores=scores,
                findings=findings,
                feedback=f"Review invalid: {e}.\n{feedback}",
                degraded=degraded,
                strengths=strengths,
            )

        passed = quality_gate_pass(score, self.threshold, vetoes)
        return QAReport(
            overall_score=score,
            passed=passed,
            threshold=self.threshold,
            scores=scores,
            findings=findings,
            feedback="" if passed else compose_feedback(findings, score, self.threshold, vetoes, degraded),
            degraded=degraded,
            strengths=strengths,
        )
