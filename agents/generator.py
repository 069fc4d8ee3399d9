"""Generator agent — produces a code candidate for one task."""

from agents.base import BaseAgent
from utils.llm import strip_fences
from utils.template_engine import render_prompt


class GeneratorAgent(BaseAgent):
    """Generates a file from its task, or rewrites the previous candidate from feedback.

    Exactly one completion call per generate(). No retries here: the
    iteration controller owns the retry budget.
    """

    name = "generator"

    def __init__(self, llm=None, cost_tracker=None, model="", max_tokens=8000,
                 timeout=None, context=""):
        super().__init__(llm, cost_tracker, model, max_tokens, timeout)
        self.context = context

    def system_prompt(self, task, knowledge_bundle):
        return render_prompt(
            "generator",
            knowledge=knowledge_bundle,
            file_type=task.file_type,
            file_path=task.file_path,
            action=task.action,
            phase=task.phase,
            context=self.context or "(none)",
        )

    def user_message(self, task, feedback=None, previous_code=None):
        parts = [
            f"Task: {task.title}",
            f"File: {task.file_path} ({task.action})",
        ]
        if task.description:
            parts.append(f"\nDetails:\n{task.description}")

        if feedback:
            if previous_code:
                parts.append(f"\n=== PREVIOUS CODE ===\n{previous_code}")
            parts.append(f"\n=== QA FEEDBACK ===\n{feedback}")
            parts.append(
                "\n=== YOUR TASK ===\nRewrite the complete file, fixing EVERY issue "
                "in the feedback while keeping all required functionality."
            )
        return "\n".join(parts)

    def generate(self, task, knowledge_bundle, feedback=None, previous_code=None):
        """Return candidate code for task. ServiceError propagates."""
        text = self._complete(
            self.system_prompt(task, knowledge_bundle),
            self.user_message(task, feedback, previous_code),
            agent_name="improver" if feedback else "generator",
        )
        return strip_fences(text)
