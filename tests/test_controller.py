"""Tests for core.controller — fake generator and quality gate, real files."""

from unittest.mock import MagicMock, patch

import pytest

from core.controller import IterationController, write_project_file
from core.errors import ServiceError
from core.state import QAReport, Task, TaskState

TASK = Task(phase="Phase 1: API", title="Routes", description="",
            file_path="backend/routes/users.js", file_type="route", action="create")


def _report(score, passed, feedback=""):
    return QAReport(overall_score=score, passed=passed, threshold=80,
                    feedback=feedback or ("" if passed else f"score {score} too low"))


def _controller(tmp_path, reports, generated=None, max_iterations=3, transitions=None):
    generator = MagicMock()
    generator.generate.side_effect = generated or [f"code v{i}" for i in range(1, 10)]
    gate = MagicMock()
    gate.review.side_effect = reports
    knowledge = MagicMock()
    knowledge.resolve.return_value = "KB"
    on_transition = (lambda i, t, s: transitions.append(s)) if transitions is not None else None
    controller = IterationController(generator, gate, knowledge, str(tmp_path),
                                     max_iterations=max_iterations, plan_excerpt="PLAN",
                                     on_transition=on_transition)
    return controller, generator, gate, knowledge


def test_accept_on_first_try_writes_file(tmp_path):
    transitions = []
    controller, generator, gate, _ = _controller(tmp_path, [_report(90, True)],
                                                 transitions=transitions)
    outcome = controller.run_task(0, TASK)

    assert outcome.state is TaskState.ACCEPTED
    assert outcome.iterations == 1
    assert (tmp_path / "backend" / "routes" / "users.js").read_text() == "code v1"
    assert transitions == [TaskState.PENDING, TaskState.GENERATING,
                           TaskState.REVIEWING, TaskState.ACCEPTED]
    gate.review.assert_called_once_with("code v1", TASK, "PLAN")


def test_revision_folds_feedback_into_next_attempt(tmp_path):
    controller, generator, _, knowledge = _controller(
        tmp_path, [_report(60, False, "fix the injection"), _report(85, True)],
    )
    outcome = controller.run_task(0, TASK)

    assert outcome.passed
    assert outcome.iterations == 2
    first, second = generator.generate.call_args_list
    assert first.kwargs["feedback"] is None
    assert second.kwargs["feedback"] == "fix the injection"
    assert second.kwargs["previous_code"] == "code v1"
    # knowledge is resolved once per task and reused
    knowledge.resolve.assert_called_once_with("api")
    assert first.args[1] == second.args[1] == "KB"


@pytest.mark.parametrize("max_iterations", [1, 2, 3, 5])
def test_never_exceeds_max_iterations(tmp_path, max_iterations):
    controller, generator, _, _ = _controller(
        tmp_path, [_report(50, False)] * 10, max_iterations=max_iterations,
    )
    outcome = controller.run_task(0, TASK)

    assert outcome.state is TaskState.EXHAUSTED
    assert generator.generate.call_count == max_iterations
    assert outcome.iterations == max_iterations
    assert not (tmp_path / "backend").exists()


def test_exhaustion_transitions(tmp_path):
    transitions = []
    controller, _, _, _ = _controller(tmp_path, [_report(50, False)] * 2,
                                      max_iterations=2, transitions=transitions)
    controller.run_task(0, TASK)
    assert transitions == [
        TaskState.PENDING, TaskState.GENERATING, TaskState.REVIEWING, TaskState.REVISING,
        TaskState.GENERATING, TaskState.REVIEWING, TaskState.EXHAUSTED,
    ]


def test_generation_failure_counts_as_an_iteration(tmp_path):
    controller, generator, gate, _ = _controller(
        tmp_path, [_report(90, True)],
        generated=[ServiceError("rate limited"), "code v2"],
    )
    outcome = controller.run_task(0, TASK)

    assert outcome.passed
    assert outcome.iterations == 2
    assert outcome.records[0].error == "rate limited"
    assert outcome.records[0].report is None
    assert gate.review.call_count == 1
    assert "rate limited" in generator.generate.call_args_list[1].kwargs["feedback"]


def test_generation_failures_until_exhausted(tmp_path):
    controller, generator, gate, _ = _controller(
        tmp_path, [], generated=[ServiceError("down")] * 3,
    )
    outcome = controller.run_task(4, TASK)
    assert outcome.state is TaskState.EXHAUSTED
    assert outcome.index == 4
    assert generator.generate.call_count == 3
    gate.review.assert_not_called()


def test_rejects_zero_iterations(tmp_path):
    with pytest.raises(ValueError):
        IterationController(MagicMock(), MagicMock(), MagicMock(), str(tmp_path), max_iterations=0)


def test_write_project_file_refuses_escape(tmp_path):
    with pytest.raises(ValueError):
        write_project_file(str(tmp_path), "../outside.js", "x")
    path = write_project_file(str(tmp_path), "a/b/c.js", "ok")
    assert open(path).read() == "ok"


def test_unwritable_target_ends_exhausted(tmp_path):
    bad = Task(phase="Phase 1: API", title="Routes", description="",
               file_path="../outside.js", file_type="javascript", action="create")
    transitions = []
    controller, generator, _, _ = _controller(tmp_path / "project", [_report(95, True)],
                                              transitions=transitions)
    outcome = controller.run_task(2, bad)

    assert outcome.state is TaskState.EXHAUSTED
    assert outcome.needs_manual_review
    assert generator.generate.call_count == 1
    assert "escapes project directory" in outcome.records[-1].error
    assert outcome.written_path == ""
    assert transitions[-1] is TaskState.EXHAUSTED
    assert not (tmp_path / "outside.js").exists()


def test_write_error_ends_exhausted(tmp_path):
    controller, _, _, _ = _controller(tmp_path, [_report(95, True)])
    with patch("core.controller.open", side_effect=OSError("read-only file system"),
               create=True):
        outcome = controller.run_task(0, TASK)
    assert outcome.state is TaskState.EXHAUSTED
    assert outcome.records[-1].error == "read-only file system"
