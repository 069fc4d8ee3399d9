"""Default pipeline settings."""

import logging
import os

logger = logging.getLogger(__name__)

DEFAULTS = {
    "max_iterations": 3,
    "hard_max_iterations": 5,   # absolute ceiling, cannot be overridden
    # Quality gate pass threshold: a candidate passes when its weighted
    # overall score is >= this value and no reviewer vetoed it.
    "min_pass_score": 80,
    "api_timeout": 120,         # seconds per completion call
    "model": "claude-opus-4-5-20251101",
    "review_model": "claude-opus-4-5-20251101",
    "reflect_model": "claude-sonnet-4-5-20250929",
    "max_tokens": 8000,
    "review_max_tokens": 2000,
    "reflect_max_tokens": 3000,
    "project_path": "",          # empty = current working directory
    "plan_path": "PROJECT_PLAN.md",
    "knowledge_dir": "knowledge",
    "checkpoint_dir": ".checkpoints",
    "pipeline_name": "qa-pipeline",
    "qa_log_path": "qa_pipeline.log",
    "task_delay": 2.0,           # seconds between tasks, eases rate limits
    "plan_excerpt_chars": 2000,
}

# Environment variable -> (config key, type)
_ENV_OVERRIDES = {
    "PROJECT_PATH": ("project_path", str),
    "PLAN_PATH": ("plan_path", str),
    "KNOWLEDGE_DIR": ("knowledge_dir", str),
    "CHECKPOINT_DIR": ("checkpoint_dir", str),
    "QA_LOG_PATH": ("qa_log_path", str),
    "MAX_ITERATIONS": ("max_iterations", int),
    "MIN_PASS_SCORE": ("min_pass_score", int),
    "API_TIMEOUT": ("api_timeout", int),
    "CLAUDE_MODEL": ("model", str),
    "REVIEW_MODEL": ("review_model", str),
    "REFLECT_MODEL": ("reflect_model", str),
}


def load_config(env=None, **overrides):
    """Return DEFAULTS merged with environment overrides and explicit kwargs.

    Invalid integers are ignored with a warning. max_iterations is always
    clamped to hard_max_iterations.
    """
    env = os.environ if env is None else env
    config = dict(DEFAULTS)

    for var, (key, cast) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        try:
            config[key] = cast(raw)
        except ValueError:
            logger.warning("Ignoring %s=%r: expected %s", var, raw, cast.__name__)

    for key, value in overrides.items():
        if value is not None:
            config[key] = value

    hard_max = DEFAULTS["hard_max_iterations"]
    config["max_iterations"] = max(1, min(int(config["max_iterations"]), hard_max))
    if not config["project_path"]:
        config["project_path"] = os.getcwd()
    return config
