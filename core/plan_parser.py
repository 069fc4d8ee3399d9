"""Plan parser — turns a PROJECT_PLAN.md document into an ordered task list.

The plan grammar, one token per line:

    PHASE      ## Phase 2: Backend API
    TASK       ### ✅ Task 4: Add booking routes
    SECTION    **Files to Create:** | **Files to Modify:** | **Actions:** | **Anything:**
    FILE_ITEM  - `backend/routes/bookings.js` (optional commentary)
    ITEM       - any other bullet
    HEADING    any other markdown heading
    TEXT       everything else, blank lines included

    plan     := (PHASE | task | other)*
    task     := TASK body
    body     := (section | TEXT | ITEM | FILE_ITEM)*    up to the next TASK/PHASE/HEADING
    section  := SECTION (FILE_ITEM | ITEM | TEXT)*      up to the next SECTION/TASK/PHASE/HEADING

A task body is never read further than PLAN_LOOKAHEAD lines past its header.
"""

import re
from dataclasses import dataclass

from core.state import Task

PLAN_LOOKAHEAD = 50

PHASE, TASK, SECTION, FILE_ITEM, ITEM, HEADING, TEXT = (
    "PHASE", "TASK", "SECTION", "FILE_ITEM", "ITEM", "HEADING", "TEXT",
)

_PHASE_RE = re.compile(r"^##\s+(Phase\s+\d+:.*)$")
_TASK_RE = re.compile(r"^###\s+(?:\S+\s+)?Task\s+\d+:\s*(.*)$")
_SECTION_RE = re.compile(r"^\*\*(.+?):?\*\*:?")
_FILE_ITEM_RE = re.compile(r"^\s*[-*]\s+`([^`]+)`")
_ITEM_RE = re.compile(r"^\s*[-*]\s+(.*)$")
_HEADING_RE = re.compile(r"^#{1,6}\s")

_SECTION_KINDS = {
    "files to create": "create",
    "files to modify": "modify",
    "actions": "actions",
}

_BOUNDARY = (TASK, PHASE, HEADING)


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    line: int


def tokenize(text):
    """Classify each line of the plan."""
    tokens = []
    for lineno, raw in enumerate(text.splitlines()):
        line = raw.rstrip()
        m = _PHASE_RE.match(line)
        if m:
            tokens.append(Token(PHASE, m.group(1).strip(), lineno))
            continue
        m = _TASK_RE.match(line)
        if m:
            tokens.append(Token(TASK, m.group(1).strip(), lineno))
            continue
        if _HEADING_RE.match(line):
            tokens.append(Token(HEADING, line.lstrip("#").strip(), lineno))
            continue
        m = _SECTION_RE.match(line)
        if m:
            label = m.group(1).strip().rstrip(":").lower()
            tokens.append(Token(SECTION, _SECTION_KINDS.get(label, "other"), lineno))
            continue
        m = _FILE_ITEM_RE.match(line)
        if m:
            tokens.append(Token(FILE_ITEM, m.group(1).strip(), lineno))
            continue
        m = _ITEM_RE.match(line)
        if m:
            tokens.append(Token(ITEM, m.group(1).strip(), lineno))
            continue
        tokens.append(Token(TEXT, line, lineno))
    return tokens


def infer_file_type(file_path):
    if file_path.endswith(".jsx"):
        return "react"
    if file_path.endswith(".css"):
        return "css"
    if file_path.endswith(".tsx"):
        return "react-typescript"
    if file_path.endswith(".ts"):
        return "typescript"
    if "/models/" in file_path:
        return "model"
    if "/routes/" in file_path:
        return "route"
    if "/controllers/" in file_path:
        return "controller"
    return "javascript"


class _Parser:
    def __init__(self, tokens):
        self.tokens = tokens
        self.pos = 0
        self.phase = ""
        self.tasks = []

    def peek(self):
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def parse(self):
        while self.peek() is not None:
            tok = self.peek()
            if tok.kind == PHASE:
                self.phase = tok.value
                self.pos += 1
            elif tok.kind == TASK:
                self.parse_task()
            else:
                self.pos += 1
        return self.tasks

    def parse_task(self):
        header = self.peek()
        self.pos += 1
        limit = header.line + PLAN_LOOKAHEAD
        files = {"create": [], "modify": []}
        actions = []

        while True:
            tok = self.peek()
            if tok is None or tok.kind in _BOUNDARY or tok.line > limit:
                break
            if tok.kind == SECTION:
                self.parse_section(tok.value, files, actions, limit)
            else:
                self.pos += 1

        self.emit(header.value, files, actions)

    def parse_section(self, kind, files, actions, limit):
        self.pos += 1
        while True:
            tok = self.peek()
            if tok is None or tok.kind in _BOUNDARY or tok.kind == SECTION or tok.line > limit:
                return
            self.pos += 1
            if kind in files and tok.kind == FILE_ITEM:
                if tok.value not in files[kind]:
                    files[kind].append(tok.value)
            elif kind == "actions" and tok.kind == FILE_ITEM:
                actions.append(f"`{tok.value}`")
            elif kind == "actions" and tok.kind == ITEM:
                actions.append(tok.value)

    def emit(self, title, files, actions):
        description = "\n".join(actions)
        creates = files["create"]
        # A path in both lists is emitted once, as a create.
        modifies = [p for p in files["modify"] if p not in creates]
        for action, paths in (("create", creates), ("modify", modifies)):
            for file_path in paths:
                self.tasks.append(Task(
                    phase=self.phase,
                    title=title,
                    description=description,
                    file_path=file_path,
                    file_type=infer_file_type(file_path),
                    action=action,
                ))


def parse_plan(text):
    """Parse plan text into Tasks. Returns [] when the plan has no tasks."""
    if not text:
        return []
    return _Parser(tokenize(text)).parse()


def list_phases(tasks):
    """Ordered (phase, task_count) pairs."""
    counts = {}
    for task in tasks:
        counts[task.phase] = counts.get(task.phase, 0) + 1
    return list(counts.items())


def select_tasks(tasks, mode, phase_name=None):
    """Filter the parsed tasks for a run mode: test, phase or all."""
    if mode == "test":
        return tasks[:1]
    if mode == "all":
        return list(tasks)
    if mode == "phase":
        if not phase_name:
            raise ValueError("phase mode needs a phase name")
        needle = phase_name.lower()
        return [
            t for t in tasks
            if needle in t.phase.lower() or needle in t.title.lower()
            or needle in t.file_path.lower()
        ]
    raise ValueError(f"Unknown mode: {mode}")
