"""Reflect agent — mines a finished session for lessons and files them in the knowledge base.

Nothing is written by analyze_session(); proposed updates are applied
separately by apply_learnings() or the interactive approval_loop().
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import date

from agents.base import BaseAgent
from core.errors import ServiceError
from utils.json_extract import parse_json
from utils.template_engine import render_prompt

logger = logging.getLogger(__name__)

CONFIDENCE_LEVELS = ("high", "medium", "low")
DOMAINS = ("security", "architecture", "frontend", "backend", "database")

_PLACEHOLDER = re.compile(r"\*No lessons yet\.[^*]*\*")
# A comment block on its own lines, closing the file, with no lesson heading inside.
_TRAILER = re.compile(r"^<!--(?:(?!^## ).)*?-->\s*\Z", re.S | re.M)

SYSTEM_PROMPT = (
    "You are a learning extraction specialist. Analyze development sessions "
    "and extract specific, actionable lessons. Return ONLY valid JSON."
)


@dataclass(frozen=True)
class Learning:
    type: str          # "avoid" | "follow"
    confidence: str    # "high" | "medium" | "low"
    domain: str
    title: str
    rule: str
    reason: str = ""
    example: str = ""
    source: str = ""

    @classmethod
    def from_dict(cls, data):
        """Build from model output. Returns None when title or rule is missing."""
        title = str(data.get("title") or "").strip()
        rule = str(data.get("rule") or "").strip()
        if not title or not rule:
            return None
        confidence = str(data.get("confidence") or "low").lower()
        domain = str(data.get("domain") or "backend").lower()
        return cls(
            type="avoid" if str(data.get("type", "")).lower() == "avoid" else "follow",
            confidence=confidence if confidence in CONFIDENCE_LEVELS else "low",
            domain=domain if domain in DOMAINS else "backend",
            title=title,
            rule=rule,
            reason=str(data.get("reason") or ""),
            example=str(data.get("example") or ""),
            source=str(data.get("source") or ""),
        )

    @property
    def icon(self):
        return "❌" if self.type == "avoid" else "✅"


@dataclass(frozen=True)
class ProposedUpdate:
    file: str           # relative to the knowledge root
    content: str
    learning: Learning

    @property
    def confidence(self):
        return self.learning.confidence


@dataclass
class Conflict:
    learning: Learning
    existing_file: str
    reason: str = "Similar lesson may already exist"


@dataclass
class Reflection:
    summary: dict
    learnings: dict = field(default_factory=lambda: {c: [] for c in CONFIDENCE_LEVELS})
    conflicts: list = field(default_factory=list)
    proposed_updates: list = field(default_factory=list)

    @property
    def all_learnings(self):
        return [l for c in CONFIDENCE_LEVELS for l in self.learnings[c]]


def lesson_file_for(domain):
    return f"learned/lessons/{domain}.md"


def build_session_summary(tasks):
    """Counts plus the corrections and first-try successes worth learning from."""
    summary = {
        "totalTasks": len(tasks),
        "passedFirstTry": 0,
        "requiredRework": 0,
        "failedAllAttempts": 0,
        "corrections": [],
        "successes": [],
    }
    for task in tasks:
        path = task.get("filePath") or task.get("taskPath") or ""
        iterations = task.get("iterations") or 1
        if not task.get("passed"):
            summary["failedAllAttempts"] += 1
        elif iterations == 1:
            summary["passedFirstTry"] += 1
            summary["successes"].append({"file": path, "scores": task.get("scores", {})})
        else:
            summary["requiredRework"] += 1
            summary["corrections"].append({
                "file": path,
                "iterations": iterations,
                "scores": task.get("scores", {}),
                "issues": task.get("issues", []),
            })
    return summary


def format_update(learning, learned_on):
    lines = [
        f"## {learning.icon} {learning.title}",
        f"**Rule:** {learning.rule}",
        f"**Reason:** {learning.reason}",
    ]
    if learning.example:
        lines.append(f"**Example:** `{learning.example}`")
    lines.append(f"**Learned:** {learned_on.isoformat()} from {learning.source or 'QA session'}")
    return "\n".join(lines)


def append_lesson(existing, content, domain="backend"):
    """Insert content into lesson file text.

    The "No lessons yet" placeholder is dropped and new content goes before
    a trailing <!-- ... --> comment block, which stays at the end.
    """
    if existing is None or not existing.strip():
        existing = f"# {domain.capitalize()} Lessons\n\n## Lessons\n"

    text = _PLACEHOLDER.sub("", existing)
    trailer = ""
    match = _TRAILER.search(text)
    if match:
        trailer = match.group().strip()
        text = text[:match.start()]

    updated = text.rstrip() + "\n\n" + content.strip() + "\n"
    if trailer:
        updated += "\n" + trailer + "\n"
    return updated


class ReflectAgent(BaseAgent):
    name = "reflect"

    def __init__(self, llm=None, cost_tracker=None, knowledge=None, model="",
                 max_tokens=3000, timeout=None, prompt=input, today=date.today, out=print):
        super().__init__(llm, cost_tracker, model, max_tokens, timeout)
        self.knowledge = knowledge
        self.prompt = prompt
        self.today = today
        self.out = out

    # -- analysis -----------------------------------------------------------

    def analyze_session(self, session):
        """Extract learnings from a SessionData. Writes nothing."""
        summary = build_session_summary(session.tasks)
        learnings = self.extract_learnings(summary, session.logs)
        categorized = self.categorize(learnings)
        reflection = Reflection(summary=summary, learnings=categorized)
        reflection.conflicts = self.detect_conflicts(reflection.all_learnings)
        reflection.proposed_updates = self.generate_updates(reflection.all_learnings)
        return reflection

    def extract_learnings(self, summary, logs=""):
        message = render_prompt(
            "reflect",
            total=summary["totalTasks"],
            passed_first_try=summary["passedFirstTry"],
            required_rework=summary["requiredRework"],
            failed=summary["failedAllAttempts"],
            corrections=json.dumps(summary["corrections"], indent=2),
            successes=json.dumps(summary["successes"], indent=2),
            logs=logs[-20000:] if logs else "No detailed logs available",
        )
        try:
            text = self._complete(SYSTEM_PROMPT, message)
        except ServiceError as e:
            logger.error("Failed to extract learnings: %s", e)
            return []

        result = parse_json(text)
        if not result.ok:
            logger.error("Learning extraction returned no JSON: %s", result.error)
            return []
        raw = result.get("learnings", [])
        if isinstance(result.value, list):
            raw = result.value
        learnings = []
        for item in raw if isinstance(raw, list) else []:
            learning = Learning.from_dict(item) if isinstance(item, dict) else None
            if learning is not None:
                learnings.append(learning)
        return learnings

    @staticmethod
    def categorize(learnings):
        buckets = {c: [] for c in CONFIDENCE_LEVELS}
        for learning in learnings:
            buckets[learning.confidence].append(learning)
        return buckets

    def _read_lesson(self, relative):
        path = os.path.join(self.knowledge.root, relative)
        try:
            with open(path, encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def detect_conflicts(self, learnings):
        """Naive duplicate check: the title appears anywhere in the domain's lesson file."""
        conflicts = []
        for learning in learnings:
            relative = lesson_file_for(learning.domain)
            existing = self._read_lesson(relative)
            if existing and learning.title.lower() in existing.lower():
                conflicts.append(Conflict(learning=learning, existing_file=relative))
        return conflicts

    def generate_updates(self, learnings):
        learned_on = self.today()
        return [
            ProposedUpdate(
                file=lesson_file_for(l.domain),
                content=format_update(l, learned_on),
                learning=l,
            )
            for l in learnings
        ]

    # -- applying -----------------------------------------------------------

    def append_to_lesson_file(self, relative, content):
        path = os.path.join(self.knowledge.root, relative)
        domain = os.path.splitext(os.path.basename(relative))[0]
        updated = append_lesson(self._read_lesson(relative), content, domain)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(updated)

    def _apply(self, updates):
        for update in updates:
            self.append_to_lesson_file(update.file, update.content)
        if updates:
            self.knowledge.clear_cache()
        return list(updates)

    def apply_learnings(self, reflection, auto_approve=("high",), skip_confirm=False):
        """Apply updates whose confidence is auto-approved (or all, with skip_confirm).

        Returns (applied, skipped).
        """
        applied, skipped = [], []
        for update in reflection.proposed_updates:
            (applied if skip_confirm or update.confidence in auto_approve else skipped).append(update)
        return self._apply(applied), skipped

    def _show(self, reflection):
        out = self.out
        out("\n=== SESSION REFLECTION ===\n")
        out(f"Learnings extracted: {len(reflection.proposed_updates)}")
        for level, label in (("high", "HIGH CONFIDENCE (auto-applied)"),
                             ("medium", "MEDIUM CONFIDENCE (requires approval)"),
                             ("low", "LOW CONFIDENCE (logged only)")):
            items = reflection.learnings[level]
            if not items:
                continue
            out(f"\n{label}\n")
            for i, l in enumerate(items, 1):
                out(f"  {i}. [{l.domain.upper()}] {l.icon} {l.title}")
                if level != "low":
                    out(f"     Rule: {l.rule}")
                    out(f"     Source: {l.source or 'QA session'}")
        if reflection.conflicts:
            out("\nPOTENTIAL CONFLICTS\n")
            for c in reflection.conflicts:
                out(f'  - "{c.learning.title}" may conflict with {c.existing_file}')
        out("\nActions:")
        out("  [Y] Apply high confidence + approved medium")
        out("  [H] Apply only high confidence")
        out("  [A] Apply all (including low)")
        out("  [N] Skip all\n")

    def approval_loop(self, reflection):
        """Interactive approval. Returns (applied, skipped)."""
        self._show(reflection)
        answer = self._ask("Choice: ").upper()
        updates = reflection.proposed_updates

        if answer == "Y":
            applied = self._apply([u for u in updates if u.confidence == "high"])
            skipped = [u for u in updates if u.confidence == "low"]
            for update in (u for u in updates if u.confidence == "medium"):
                if self._ask(f'Apply "{update.learning.title}"? [y/n]: ').lower() == "y":
                    applied += self._apply([update])
                else:
                    skipped.append(update)
        elif answer == "H":
            applied, skipped = self.apply_learnings(reflection, auto_approve=("high",))
        elif answer == "A":
            applied, skipped = self.apply_learnings(reflection, skip_confirm=True)
        else:
            applied, skipped = [], list(updates)

        self.out(f"\nReflection complete: applied {len(applied)}, skipped {len(skipped)}")
        for file in dict.fromkeys(u.file for u in applied):
            self.out(f"   updated knowledge/{file}")
        return applied, skipped

    def _ask(self, question):
        try:
            return self.prompt(question).strip()
        except (EOFError, KeyboardInterrupt):
            self.out("")
            return ""

