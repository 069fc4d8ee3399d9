"""Pipeline state models shared across all stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class Task:
    phase: str          # "Phase 1: Database Setup"
    title: str
    description: str
    file_path: str      # relative to the project root
    file_type: str      # "react", "model", "route", ...
    action: str         # "create" | "modify"

    def to_dict(self):
        return {
            "phase": self.phase,
            "title": self.title,
            "description": self.description,
            "filePath": self.file_path,
            "fileType": self.file_type,
            "action": self.action,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            phase=data.get("phase", ""),
            title=data.get("title", ""),
            description=data.get("description", ""),
            file_path=data["filePath"],
            file_type=data.get("fileType", "javascript"),
            action=data.get("action", "create"),
        )


@dataclass(frozen=True)
class Finding:
    reviewer: str       # "architecture", "security", ...
    severity: str       # "critical", "high", "medium", "low"
    message: str
    fix: str = ""
    line: int | None = None
    category: str = ""


@dataclass(frozen=True)
class QAReport:
    overall_score: float
    passed: bool
    threshold: float
    scores: dict = field(default_factory=dict)
    findings: tuple = ()
    feedback: str = ""
    degraded: tuple = ()            # reviewers whose call failed
    strengths: tuple = ()

    @property
    def critical_findings(self):
        return [f for f in self.findings if f.severity in ("critical", "high")]


@dataclass
class IterationRecord:
    number: int
    code: str
    report: QAReport | None = None  # None when generation itself failed
    error: str = ""


class TaskState(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    REVIEWING = "reviewing"
    REVISING = "revising"
    ACCEPTED = "accepted"
    EXHAUSTED = "exhausted"

    @property
    def terminal(self):
        return self in (TaskState.ACCEPTED, TaskState.EXHAUSTED)


@dataclass
class TaskOutcome:
    index: int
    task: Task
    state: TaskState
    records: tuple = ()
    written_path: str = ""

    @property
    def passed(self):
        return self.state is TaskState.ACCEPTED

    @property
    def iterations(self):
        return len(self.records)

    @property
    def last_report(self):
        for record in reversed(self.records):
            if record.report is not None:
                return record.report
        return None

    @property
    def scores(self):
        report = self.last_report
        if report is None:
            return {}
        scores = dict(report.scores)
        scores["overall"] = round(report.overall_score, 1)
        return scores

    @property
    def issue_count(self):
        report = self.last_report
        return len(report.findings) if report else 0

    @property
    def needs_manual_review(self):
        return self.state is TaskState.EXHAUSTED

    def to_result(self):
        """Checkpoint result payload (index and filePath are added by the manager)."""
        report = self.last_report
        return {
            "passed": self.passed,
            "iterations": self.iterations,
            "scores": self.scores,
            "issueCount": self.issue_count,
            "issues": [
                {"reviewer": f.reviewer, "severity": f.severity, "message": f.message}
                for f in (report.critical_findings if report else [])
            ],
            "needsManualReview": self.needs_manual_review,
        }
