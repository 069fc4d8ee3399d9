"""Knowledge store — static facts, learned lessons and approved patterns.

Layout under the knowledge root:

    config.json                   task type -> {lessons, patterns}, reflect settings
    static/*.md                   always-loaded project facts
    learned/lessons/<domain>.md   lessons appended by the reflect agent
    learned/patterns/*            example code snippets
    learned/decisions.md          optional architecture decisions

The read cache is in-process only; there is no coherency with other
processes editing the same directory.
"""

import json
import logging
import os
import re
import tempfile
import time

logger = logging.getLogger(__name__)

CACHE_TTL = 5 * 60
NO_LESSONS_MARKER = "No lessons yet"
TRUNCATION_MARKER = "\n\n*[Knowledge truncated due to length]*"

DEFAULT_CONFIG = {
    "staticFiles": [
        "static/PROJECT_CONTEXT.md",
        "static/TECH_STACK.md",
        "static/CODING_STANDARDS.md",
    ],
    "maxPatternsToInclude": 3,
    "relevanceMapping": {
        "general": {
            "lessons": ["security.md", "architecture.md"],
            "patterns": ["error-handling.js"],
        },
    },
    "reflect": {"enabled": True, "mode": "balanced", "autoApprove": ["high"]},
}

_PATTERN_LANGUAGES = {
    ".js": "javascript", ".jsx": "jsx", ".ts": "typescript", ".tsx": "tsx",
    ".py": "python", ".css": "css", ".sql": "sql",
}


def format_title(name):
    """'coding-standards' -> 'Coding Standards'."""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), re.sub(r"[-_]", " ", name))


def detect_task_type(file_path):
    """Map a target file path onto a knowledge task type."""
    if not file_path:
        return "general"
    p = file_path.lower()
    if "frontend" in p or "component" in p or p.endswith((".jsx", ".tsx")):
        return "frontend"
    if "model" in p or "migration" in p or "schema" in p:
        return "database"
    if "route" in p or "controller" in p or "api" in p:
        return "api"
    if "backend" in p or "server" in p:
        return "backend"
    return "general"


def extract_lessons(content):
    """Return the body of the '## Lessons' section, or None if empty."""
    m = re.search(r"## Lessons\n\n(.*?)(?=\n<!--|\n---|\n\*Last|\Z)", content, re.DOTALL)
    if not m:
        return None
    lessons = m.group(1).strip()
    if not lessons or NO_LESSONS_MARKER in lessons:
        return None
    return lessons


def extract_decisions(content):
    m = re.search(r"## Decisions\n\n(.*?)(?=\n---|\n\*Last|\Z)", content, re.DOTALL)
    return m.group(1).strip() if m else content.strip()


def trim_pattern(content):
    """Drop a leading /** ... */ header comment, keep the code."""
    lines = content.split("\n")
    for idx, line in enumerate(lines):
        stripped = line.strip()
        if not stripped or stripped.startswith(("/*", "*", "*/")):
            continue
        return "\n".join(lines[idx:]).strip()
    return content.strip()


class KnowledgeStore:
    """Resolves knowledge bundles for prompts. Construct one per pipeline."""

    def __init__(self, root, ttl=CACHE_TTL, clock=time.monotonic):
        self.root = os.path.realpath(root)
        self.ttl = ttl
        self.clock = clock
        self._cache = {}     # resolved path -> (loaded_at, content)
        self._config = None

    # -- files --------------------------------------------------------------

    def path(self, relative):
        return os.path.join(self.root, relative)

    def read(self, relative):
        """Read a knowledge file through the TTL cache. Missing -> None."""
        full = os.path.realpath(self.path(relative))
        cached = self._cache.get(full)
        now = self.clock()
        if cached and now - cached[0] < self.ttl:
            return cached[1]
        try:
            with open(full, encoding="utf-8") as f:
                content = f.read()
        except OSError:
            logger.warning("Knowledge file not found: %s", relative)
            return None
        self._cache[full] = (now, content)
        return content

    def clear_cache(self):
        """Forget cached files and config. Call after writing knowledge."""
        self._cache.clear()
        self._config = None

    # -- config -------------------------------------------------------------

    def load_config(self):
        if self._config is not None:
            return self._config
        try:
            with open(self.path("config.json"), encoding="utf-8") as f:
                self._config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Using default knowledge config: %s", e)
            self._config = json.loads(json.dumps(DEFAULT_CONFIG))
        return self._config

    def save_config(self, config):
        """Write config.json atomically and refresh the cached copy."""
        os.makedirs(self.root, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=".config.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(config, f, indent=2)
                f.write("\n")
            os.replace(tmp_path, self.path("config.json"))
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        self._config = config

    def reflect_settings(self):
        reflect = self.load_config().get("reflect") or {}
        return {
            "enabled": reflect.get("enabled", True) is not False,
            "mode": reflect.get("mode", "balanced"),
            "autoApprove": list(reflect.get("autoApprove", ["high"])),
        }

    def set_reflect_enabled(self, enabled):
        config = self.load_config()
        config.setdefault("reflect", {})["enabled"] = bool(enabled)
        self.save_config(config)

    def _mapping(self, task_type):
        mapping = self.load_config().get("relevanceMapping", {})
        return mapping.get(task_type) or mapping.get("general") or {}

    # -- sections -----------------------------------------------------------

    def static_knowledge(self):
        sections = []
        for relative in self.load_config().get("staticFiles", []):
            content = self.read(relative)
            if content:
                name = os.path.splitext(os.path.basename(relative))[0]
                sections.append(f"### {format_title(name)}\n\n{content.strip()}")
        return "\n\n---\n\n".join(sections)

    def lessons(self, task_type="general"):
        sections = []
        for lesson_file in self._mapping(task_type).get("lessons", []):
            content = self.read(f"learned/lessons/{lesson_file}")
            body = extract_lessons(content) if content else None
            if body:
                domain = os.path.splitext(lesson_file)[0]
                sections.append(f"#### {format_title(domain)} Lessons\n\n{body}")
        if not sections:
            return "*No lessons learned yet for this domain.*"
        return "\n\n".join(sections)

    def patterns(self, task_type="general"):
        limit = self.load_config().get("maxPatternsToInclude", 3)
        sections = []
        for pattern_file in self._mapping(task_type).get("patterns", [])[:limit]:
            content = self.read(f"learned/patterns/{pattern_file}")
            if content:
                lang = _PATTERN_LANGUAGES.get(os.path.splitext(pattern_file)[1], "")
                sections.append(
                    f"#### Pattern: {pattern_file}\n\n```{lang}\n{trim_pattern(content)}\n```"
                )
        if not sections:
            return "*No patterns defined yet.*"
        return "\n\n".join(sections)

    def decisions(self):
        content = self.read("learned/decisions.md")
        if not content or "No decisions recorded yet" in content:
            return "*No architecture decisions recorded yet.*"
        return extract_decisions(content)

    # -- bundles ------------------------------------------------------------

    def resolve(self, task_type="general", include_patterns=True,
                include_decisions=False, max_length=8000):
        """Assemble the knowledge bundle for a task type.

        The result is capped at max_length characters; a truncated bundle
        ends with TRUNCATION_MARKER.
        """
        sections = [f"## Project Knowledge Base\n\n{self.static_knowledge()}"]
        sections.append(f"## Lessons Learned ({task_type})\n\n{self.lessons(task_type)}")
        if include_patterns:
            sections.append(f"## Approved Code Patterns\n\n{self.patterns(task_type)}")
        if include_decisions:
            sections.append(f"## Architecture Decisions\n\n{self.decisions()}")
        return _truncate("\n\n---\n\n".join(sections), max_length)

    def resolve_for_file(self, file_path, **options):
        return self.resolve(detect_task_type(file_path), **options)

    def resolve_minimal(self, max_length=4000):
        """Static facts only, for reviewers that just need conventions."""
        return _truncate(f"## Project Knowledge Base\n\n{self.static_knowledge()}", max_length)

    # -- stats --------------------------------------------------------------

    def _list(self, relative, suffix=None):
        try:
            names = sorted(os.listdir(self.path(relative)))
        except OSError:
            return []
        return [n for n in names if not n.startswith(".") and (suffix is None or n.endswith(suffix))]

    def stats(self):
        lesson_files = self._list("learned/lessons", ".md")
        total_lessons = 0
        for name in lesson_files:
            content = self.read(f"learned/lessons/{name}") or ""
            total_lessons += len(re.findall(r"^## (?!Lessons\b)", content, re.MULTILINE))
        decisions = self.read("learned/decisions.md") or ""
        return {
            "staticFiles": len(self._list("static", ".md")),
            "lessonFiles": len(lesson_files),
            "patternFiles": len(self._list("learned/patterns")),
            "totalLessons": total_lessons,
            "totalDecisions": len(re.findall(r"^### ", decisions, re.MULTILINE)),
        }


def _truncate(text, max_length):
    if max_length and len(text) > max_length:
        return text[:max_length] + TRUNCATION_MARKER
    return text
