"""Shared fixtures: a routing fake completion service and a scratch knowledge base."""

import json
import threading

import pytest

from core.knowledge import KnowledgeStore
from utils.llm import Completion

# System prompt fragment -> role
_ROLES = (
    ("expert code generator", "generator"),
    ("architecture consistency checker", "architecture"),
    ("integration validator", "integration"),
    ("security auditor", "security"),
    ("best practices enforcer", "best_practices"),
    ("final quality gate", "quality_gate"),
    ("learning extraction specialist", "reflect"),
)

_REVIEW_KEYS = {
    "architecture": ("alignment", "consistent", "deviations"),
    "integration": ("compatibilityScore", "integrated", "issues"),
    "security": ("securityScore", "secure", "vulnerabilities"),
    "best_practices": ("practiceScore", "followsBestPractices", "violations"),
    "quality_gate": ("score", "approved", "issues"),
}


def review_json(role, score, approved=True, findings=()):
    """A reviewer response in the shape the given reviewer is asked for."""
    score_key, verdict_key, findings_key = _REVIEW_KEYS[role]
    return json.dumps({
        score_key: score,
        verdict_key: approved,
        findings_key: list(findings),
        "strengths": [],
    })


class FakeLLM:
    """Stands in for utils.llm.call_llm.

    responses maps role -> str | Exception | list of those. A list is
    consumed one item per call; its last item repeats.
    """

    def __init__(self, responses=None, score=90):
        self.responses = {role: review_json(role, score) for role in _REVIEW_KEYS}
        self.responses["generator"] = "const value = 1;\nmodule.exports = value;"
        self.responses["reflect"] = json.dumps({"learnings": []})
        self.responses.update(responses or {})
        self.calls = []     # (role, user message)
        self.prompts = []   # (role, system prompt)
        self._lock = threading.Lock()

    @staticmethod
    def role_of(system_prompt):
        for fragment, role in _ROLES:
            if fragment in system_prompt:
                return role
        raise AssertionError(f"unrecognised system prompt: {system_prompt[:80]!r}")

    def __call__(self, model, system_prompt, user_message, max_tokens):
        role = self.role_of(system_prompt)
        with self._lock:
            self.calls.append((role, user_message))
            self.prompts.append((role, system_prompt))
            response = self.responses[role]
            if isinstance(response, list):
                response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, Exception):
            raise response
        return Completion(text=response, input_tokens=1000, output_tokens=500)

    def count(self, role):
        return sum(1 for r, _ in self.calls if r == role)


@pytest.fixture
def fake_llm():
    return FakeLLM()


LESSON_SKELETON = """# {title} Lessons

## Lessons

*No lessons yet. The reflect step adds them after pipeline runs.*

<!--
Lesson format (each lesson is a level-2 heading starting with a mark):
**Rule:** what to do
-->
"""


@pytest.fixture
def knowledge_root(tmp_path):
    root = tmp_path / "knowledge"
    (root / "static").mkdir(parents=True)
    (root / "learned" / "lessons").mkdir(parents=True)
    (root / "learned" / "patterns").mkdir(parents=True)

    (root / "config.json").write_text(json.dumps({
        "staticFiles": ["static/TECH_STACK.md"],
        "maxPatternsToInclude": 1,
        "relevanceMapping": {
            "general": {"lessons": ["security.md"], "patterns": []},
            "api": {"lessons": ["backend.md", "security.md"], "patterns": ["api.js", "extra.js"]},
            "backend": {"lessons": ["backend.md"], "patterns": ["api.js"]},
            "frontend": {"lessons": ["frontend.md"], "patterns": []},
            "database": {"lessons": ["database.md"], "patterns": []},
        },
        "reflect": {"enabled": True, "mode": "balanced", "autoApprove": ["high"]},
    }))
    (root / "static" / "TECH_STACK.md").write_text("# Tech Stack\n\nExpress and React.\n")
    for domain in ("security", "backend", "frontend", "database", "architecture"):
        (root / "learned" / "lessons" / f"{domain}.md").write_text(
            LESSON_SKELETON.format(title=domain.capitalize())
        )
    (root / "learned" / "patterns" / "api.js").write_text(
        "/**\n * Pattern header\n */\nconst router = express.Router();\n"
    )
    (root / "learned" / "patterns" / "extra.js").write_text("const extra = true;\n")
    return root


@pytest.fixture
def knowledge(knowledge_root):
    return KnowledgeStore(str(knowledge_root))
