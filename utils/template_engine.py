"""Prompt templates rendered with string.Template."""

import os
from string import Template


def get_prompts_dir():
    """Return the absolute path to the prompts directory."""
    return os.path.join(os.path.dirname(os.path.dirname(__file__)), "agents", "prompts")


def load_prompt(name):
    """Load agents/prompts/<name>.txt and return its contents."""
    prompts_dir = get_prompts_dir()
    resolved = os.path.realpath(os.path.join(prompts_dir, f"{name}.txt"))
    if not resolved.startswith(os.path.realpath(prompts_dir) + os.sep):
        raise ValueError(f"Prompt path escapes prompts directory: {name}")
    with open(resolved, "r", encoding="utf-8") as f:
        return f.read()


def render_prompt(name, **variables):
    """Load and render a prompt.

    Uses safe_substitute so stray "$" in knowledge or code text is left
    as-is rather than raising.
    """
    return Template(load_prompt(name)).safe_substitute(variables).strip()
