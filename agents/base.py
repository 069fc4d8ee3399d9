"""Base class for agents that talk to the completion service."""

from utils.llm import call_llm
from utils.timeout import call_with_timeout


class BaseAgent:
    """Holds the service client, model and ledger shared by every agent.

    `llm` is any callable with call_llm's signature; tests pass fakes.
    """

    name = "base"

    def __init__(self, llm=None, cost_tracker=None, model="", max_tokens=2000, timeout=None):
        self.llm = llm or call_llm
        self.cost_tracker = cost_tracker
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout

    def _complete(self, system_prompt, user_message, agent_name=None, max_tokens=None):
        """One completion call, raced against self.timeout and recorded in the ledger.

        Returns the response text. ServiceError propagates.
        """
        label = agent_name or self.name
        completion = call_with_timeout(
            lambda: self.llm(self.model, system_prompt, user_message, max_tokens or self.max_tokens),
            self.timeout,
            label,
        )
        if self.cost_tracker is not None:
            self.cost_tracker.track(
                self.model, completion.input_tokens, completion.output_tokens, label,
            )
        return completion.text
