"""Tests for core.knowledge."""

import json

import pytest

from core.knowledge import (
    TRUNCATION_MARKER, KnowledgeStore, detect_task_type, extract_lessons,
    format_title, trim_pattern,
)


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_format_title():
    assert format_title("coding-standards") == "Coding Standards"
    assert format_title("TECH_STACK") == "TECH STACK"


@pytest.mark.parametrize("path,expected", [
    ("frontend/src/App.jsx", "frontend"),
    ("src/components/Nav.js", "frontend"),
    ("backend/models/User.js", "database"),
    ("backend/routes/users.js", "api"),
    ("backend/server.js", "backend"),
    ("README.md", "general"),
    ("", "general"),
])
def test_detect_task_type(path, expected):
    assert detect_task_type(path) == expected


def test_extract_lessons_skips_placeholder():
    assert extract_lessons("# X\n\n## Lessons\n\n*No lessons yet. Later.*\n") is None
    body = extract_lessons("# X\n\n## Lessons\n\n## ✅ Use helmet\n**Rule:** r\n\n<!-- c -->\n")
    assert body.startswith("## ✅ Use helmet")
    assert "<!--" not in body


def test_trim_pattern_drops_header_comment():
    assert trim_pattern("/**\n * header\n */\nconst a = 1;") == "const a = 1;"


def test_resolve_includes_static_and_skips_placeholder_lessons(knowledge):
    bundle = knowledge.resolve("backend")
    assert "Express and React." in bundle
    assert "### TECH STACK" in bundle
    assert "No lessons yet" not in bundle
    assert "*No lessons learned yet for this domain.*" in bundle


def test_resolve_adds_lessons_and_limits_patterns(knowledge, knowledge_root):
    lesson = knowledge_root / "learned" / "lessons" / "backend.md"
    lesson.write_text("# Backend Lessons\n\n## Lessons\n\n## ❌ Raw SQL\n**Rule:** Use params\n")
    bundle = knowledge.resolve("api")
    assert "#### Backend Lessons" in bundle
    assert "Use params" in bundle
    assert "#### Pattern: api.js" in bundle
    assert "Pattern header" not in bundle
    # maxPatternsToInclude is 1
    assert "extra.js" not in bundle


def test_resolve_without_patterns_and_with_decisions(knowledge, knowledge_root):
    (knowledge_root / "learned" / "decisions.md").write_text(
        "# Decisions\n\n## Decisions\n\n### ADR-1: Use Postgres\n"
    )
    bundle = knowledge.resolve("api", include_patterns=False, include_decisions=True)
    assert "Approved Code Patterns" not in bundle
    assert "ADR-1: Use Postgres" in bundle


def test_resolve_truncates_with_marker(knowledge):
    bundle = knowledge.resolve("backend", max_length=40)
    assert bundle.endswith(TRUNCATION_MARKER)
    assert len(bundle) == 40 + len(TRUNCATION_MARKER)


def test_resolve_for_file_uses_detected_type(knowledge, knowledge_root):
    (knowledge_root / "learned" / "lessons" / "frontend.md").write_text(
        "# Frontend Lessons\n\n## Lessons\n\n## ✅ Keys in lists\n**Rule:** Always set key\n"
    )
    assert "Always set key" in knowledge.resolve_for_file("frontend/src/List.jsx")


def test_reads_are_cached_until_ttl(knowledge_root):
    clock = Clock()
    store = KnowledgeStore(str(knowledge_root), ttl=300, clock=clock)
    static = knowledge_root / "static" / "TECH_STACK.md"
    assert "Express" in store.read("static/TECH_STACK.md")

    static.write_text("# Tech Stack\n\nDjango.\n")
    clock.now = 299
    assert "Express" in store.read("static/TECH_STACK.md")
    clock.now = 301
    assert "Django" in store.read("static/TECH_STACK.md")


def test_clear_cache_invalidates(knowledge, knowledge_root):
    knowledge.read("static/TECH_STACK.md")
    (knowledge_root / "static" / "TECH_STACK.md").write_text("changed")
    knowledge.clear_cache()
    assert knowledge.read("static/TECH_STACK.md") == "changed"


def test_missing_file_reads_none(knowledge):
    assert knowledge.read("static/NOPE.md") is None


def test_missing_config_uses_defaults(tmp_path):
    store = KnowledgeStore(str(tmp_path / "empty"))
    assert store.load_config()["maxPatternsToInclude"] == 3
    assert store.reflect_settings() == {"enabled": True, "mode": "balanced", "autoApprove": ["high"]}


def test_set_reflect_enabled_persists(knowledge, knowledge_root):
    knowledge.set_reflect_enabled(False)
    saved = json.loads((knowledge_root / "config.json").read_text())
    assert saved["reflect"]["enabled"] is False
    assert saved["staticFiles"] == ["static/TECH_STACK.md"]
    assert KnowledgeStore(str(knowledge_root)).reflect_settings()["enabled"] is False


def test_stats(knowledge, knowledge_root):
    (knowledge_root / "learned" / "lessons" / "security.md").write_text(
        "# Security Lessons\n\n## Lessons\n\n## ❌ One\n\n## ✅ Two\n"
    )
    stats = knowledge.stats()
    assert stats == {
        "staticFiles": 1,
        "lessonFiles": 5,
        "patternFiles": 2,
        "totalLessons": 2,
        "totalDecisions": 0,
    }
