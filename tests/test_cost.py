"""Tests for core.cost."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from core.cost import DEFAULT_RATE, PRICING, CostTracker, compute_cost


class Clock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


def test_single_call_summary():
    tracker = CostTracker()
    cost = tracker.track("claude-sonnet-4-5-20250929", 1000, 500, "gen")
    summary = tracker.summary()

    assert summary.total_tokens == {"input": 1000, "output": 500}
    assert summary.by_agent == {"gen": cost}
    assert summary.by_model == {"claude-sonnet-4-5-20250929": cost}
    assert summary.call_count == 1
    assert summary.total_cost == pytest.approx(0.0105)


def test_unknown_model_uses_default_rate():
    expected = (1000 * DEFAULT_RATE["input"] + 500 * DEFAULT_RATE["output"]) / 1_000_000
    assert compute_cost("some-future-model", 1000, 500) == pytest.approx(expected)


def test_known_model_rate():
    rate = PRICING["claude-opus-4-5-20251101"]
    assert compute_cost("claude-opus-4-5-20251101", 1_000_000, 0) == rate["input"]


def test_breakdown_by_agent_and_model():
    tracker = CostTracker(pricing={"a": {"input": 1.0, "output": 1.0}})
    tracker.track("a", 1_000_000, 0, "generator")
    tracker.track("a", 0, 1_000_000, "security")
    tracker.track("b", 0, 0, "security")
    summary = tracker.summary()
    assert summary.by_agent == {"generator": 1.0, "security": 1.0}
    assert summary.by_model == {"a": 2.0, "b": 0.0}
    assert summary.total_cost == 2.0


def test_entries_are_append_only():
    tracker = CostTracker()
    tracker.track("m", 1, 1, "x")
    entries = tracker.entries
    tracker.track("m", 2, 2, "y")
    assert len(entries) == 1
    assert [e.agent_name for e in tracker.entries] == ["x", "y"]


def test_duration_and_reset():
    clock = Clock()
    tracker = CostTracker(clock=clock)
    tracker.track("m", 10, 10, "x")
    clock.now = 112.5
    assert tracker.summary().duration_seconds == 12.5

    tracker.reset()
    summary = tracker.summary()
    assert summary.call_count == 0
    assert summary.duration_seconds == 0


def test_concurrent_tracking():
    tracker = CostTracker()
    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(lambda i: tracker.track("m", 1, 1, f"r{i % 4}"), range(200)))
    assert tracker.summary().call_count == 200


def test_format_summary():
    tracker = CostTracker()
    tracker.track("claude-sonnet-4-5-20250929", 1000, 500, "gen")
    text = tracker.format_summary()
    assert "Total Cost: $0.0105" in text
    assert "API Calls: 1" in text
    assert "gen: $0.0105" in text
