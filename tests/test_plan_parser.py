"""Tests for core.plan_parser."""

import pytest

from core.plan_parser import (
    FILE_ITEM, HEADING, ITEM, PHASE, PLAN_LOOKAHEAD, SECTION, TASK, TEXT,
    infer_file_type, list_phases, parse_plan, select_tasks, tokenize,
)

PLAN = """# Project Plan

## Phase 1: Database Setup

### ✅ Task 1: Create models

**Files to Create:**
- `backend/models/User.js` - user accounts
- `backend/models/Booking.js`

**Actions:**
- Define the User schema
- Add `email` uniqueness

## Phase 2: API

### Task 2: Booking routes

**Files to Create:**
- `backend/routes/bookings.js`

**Files to Modify:**
- `backend/server.js`
- `backend/routes/bookings.js`

### Task 3: Booking form

**Files to Create:**
- `frontend/src/components/BookingForm.jsx`
"""


def test_tokenize_kinds():
    kinds = [t.kind for t in tokenize(
        "## Phase 1: Setup\n### ✅ Task 1: Init\n**Files to Create:**\n"
        "- `a.js`\n- plain item\n#### Notes\nsome text"
    )]
    assert kinds == [PHASE, TASK, SECTION, FILE_ITEM, ITEM, HEADING, TEXT]


def test_tokenize_section_kinds():
    tokens = tokenize("**Files to Create:**\n**Files to Modify**:\n**Actions:**\n**Notes:**")
    assert [t.value for t in tokens] == ["create", "modify", "actions", "other"]


def test_task_header_without_marker():
    tokens = tokenize("### Task 12: Wire things")
    assert tokens[0].kind == TASK
    assert tokens[0].value == "Wire things"


def test_two_files_under_create_yield_two_tasks():
    tasks = parse_plan(PLAN)
    first = [t for t in tasks if t.title == "Create models"]
    assert len(first) == 2
    assert all(t.action == "create" for t in first)
    assert {t.phase for t in first} == {"Phase 1: Database Setup"}
    assert [t.file_path for t in first] == ["backend/models/User.js", "backend/models/Booking.js"]


def test_description_comes_from_actions():
    task = parse_plan(PLAN)[0]
    assert "Define the User schema" in task.description
    assert "`email`" in task.description


def test_duplicate_across_create_and_modify_is_one_create():
    tasks = [t for t in parse_plan(PLAN) if t.title == "Booking routes"]
    assert [(t.file_path, t.action) for t in tasks] == [
        ("backend/routes/bookings.js", "create"),
        ("backend/server.js", "modify"),
    ]


def test_tasks_keep_document_order():
    paths = [t.file_path for t in parse_plan(PLAN)]
    assert paths == [
        "backend/models/User.js",
        "backend/models/Booking.js",
        "backend/routes/bookings.js",
        "backend/server.js",
        "frontend/src/components/BookingForm.jsx",
    ]


def test_empty_and_taskless_plans():
    assert parse_plan("") == []
    assert parse_plan("# Title\n\nJust prose, no tasks.") == []


def test_lookahead_window_bounds_task_body():
    padding = "\n" * (PLAN_LOOKAHEAD + 5)
    tasks = parse_plan(f"### Task 1: Far\n{padding}**Files to Create:**\n- `late.js`\n")
    assert tasks == []


def test_heading_ends_task_body():
    plan = "### Task 1: A\n**Files to Create:**\n- `a.js`\n## Notes\n- `not-a-task.js`\n"
    assert [t.file_path for t in parse_plan(plan)] == ["a.js"]


@pytest.mark.parametrize("path,expected", [
    ("frontend/src/App.jsx", "react"),
    ("frontend/src/App.tsx", "react-typescript"),
    ("src/styles/main.css", "css"),
    ("backend/models/User.js", "model"),
    ("backend/routes/users.js", "route"),
    ("backend/controllers/users.js", "controller"),
    ("backend/server.js", "javascript"),
])
def test_infer_file_type(path, expected):
    assert infer_file_type(path) == expected


def test_list_phases():
    assert list_phases(parse_plan(PLAN)) == [
        ("Phase 1: Database Setup", 2),
        ("Phase 2: API", 3),
    ]


def test_select_tasks_modes():
    tasks = parse_plan(PLAN)
    assert select_tasks(tasks, "test") == tasks[:1]
    assert select_tasks(tasks, "all") == tasks
    api = select_tasks(tasks, "phase", "phase 2")
    assert [t.file_path for t in api] == [
        "backend/routes/bookings.js",
        "backend/server.js",
        "frontend/src/components/BookingForm.jsx",
    ]


def test_select_tasks_rejects_bad_input():
    with pytest.raises(ValueError):
        select_tasks([], "phase")
    with pytest.raises(ValueError):
        select_tasks([], "everything")
