"""Token and spend ledger for completion-service calls."""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

# USD per 1M tokens
PRICING = {
    "claude-opus-4-5-20251101": {"input": 5.0, "output": 25.0},
    "claude-opus-4-20250514": {"input": 15.0, "output": 75.0},
    "claude-sonnet-4-5-20250929": {"input": 3.0, "output": 15.0},
    "claude-haiku-4-5-20251001": {"input": 0.8, "output": 4.0},
}
DEFAULT_RATE = {"input": 3.0, "output": 15.0}


@dataclass(frozen=True)
class CostEntry:
    model: str
    input_tokens: int
    output_tokens: int
    cost: float
    agent_name: str
    timestamp: datetime


@dataclass
class CostSummary:
    total_cost: float
    total_tokens: dict
    by_model: dict = field(default_factory=dict)
    by_agent: dict = field(default_factory=dict)
    call_count: int = 0
    duration_seconds: float = 0.0


def compute_cost(model, input_tokens, output_tokens, pricing=PRICING):
    rate = pricing.get(model, DEFAULT_RATE)
    return (input_tokens * rate["input"] + output_tokens * rate["output"]) / 1_000_000


class CostTracker:
    """Append-only ledger. Entries are never edited; corrections are new entries.

    Safe to call from the quality gate's reviewer threads.
    """

    def __init__(self, pricing=None, clock=time.monotonic):
        self.pricing = PRICING if pricing is None else pricing
        self.clock = clock
        self._entries = []
        self._lock = threading.Lock()
        self._started = clock()

    @property
    def entries(self):
        with self._lock:
            return tuple(self._entries)

    def track(self, model, input_tokens, output_tokens, agent_name="unknown"):
        """Record one call and return its cost in USD."""
        cost = compute_cost(model, input_tokens, output_tokens, self.pricing)
        entry = CostEntry(
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=cost,
            agent_name=agent_name,
            timestamp=datetime.now(timezone.utc),
        )
        with self._lock:
            self._entries.append(entry)
        return cost

    def summary(self):
        entries = self.entries
        by_model, by_agent = {}, {}
        for e in entries:
            by_model[e.model] = by_model.get(e.model, 0.0) + e.cost
            by_agent[e.agent_name] = by_agent.get(e.agent_name, 0.0) + e.cost
        return CostSummary(
            total_cost=sum(e.cost for e in entries),
            total_tokens={
                "input": sum(e.input_tokens for e in entries),
                "output": sum(e.output_tokens for e in entries),
            },
            by_model=by_model,
            by_agent=by_agent,
            call_count=len(entries),
            duration_seconds=self.clock() - self._started,
        )

    def reset(self):
        with self._lock:
            self._entries = []
            self._started = self.clock()

    def format_summary(self):
        s = self.summary()
        lines = [
            "COST SUMMARY",
            "=" * 40,
            f"   Total Cost: ${s.total_cost:.4f}",
            f"   API Calls: {s.call_count}",
            f"   Duration: {s.duration_seconds:.1f}s",
            f"   Tokens: {s.total_tokens['input']:,} in / {s.total_tokens['output']:,} out",
        ]
        if s.by_model:
            lines.append("\n   By Model:")
            lines.extend(f"      {model}: ${cost:.4f}" for model, cost in s.by_model.items())
        if s.by_agent:
            lines.append("\n   By Agent:")
            lines.extend(f"      {agent}: ${cost:.4f}" for agent, cost in s.by_agent.items())
        return "\n".join(lines)
