"""Tests for the workstream state machine."""

from datetime import date, datetime

import pytest
from propflow.workflow import state
from propflow.workflow.errors import InvalidTransitionError, NotStartableError, UnknownFieldError
from propflow.workflow.models import FieldSchema, Workstream


NOW = datetime(2024, 3, 1, 12, 0)


def _workstream(**kwargs):
    fields = (
        FieldSchema(id="tenant_name", label="Tenant Name", value_type="text"),
        FieldSchema(id="credit_score", label="Credit Score", value_type="number"),
    )
    defaults = dict(
        id="w1-1",
        workflow_instance_id="w1",
        template_workstream_key="tenant_screening",
        order_index=1,
        name="Tenant Screening",
        fields=fields,
        values={"tenant_name": None, "credit_score": None},
    )
    defaults.update(kwargs)
    return Workstream(**defaults)


def test_activate_requires_can_start():
    """Test that a locked workstream cannot be activated."""
    ws = _workstream()

    with pytest.raises(NotStartableError):
        state.activate(ws, NOW)
    assert ws.status == "pending"


def test_activate_sets_start_and_due_date():
    """Test activation bookkeeping."""
    ws = _workstream(can_start=True, estimated_duration_days=5)

    state.activate(ws, NOW)

    assert ws.status == "started"
    assert ws.started_at == NOW
    assert ws.due_date == date(2024, 3, 6)


def test_activate_keeps_explicit_due_date_and_is_idempotent():
    """Test that activating twice is harmless and a set due date wins."""
    ws = _workstream(can_start=True, estimated_duration_days=5, due_date=date(2024, 4, 1))

    state.activate(ws, NOW)
    state.activate(ws, datetime(2024, 3, 2))

    assert ws.started_at == NOW
    assert ws.due_date == date(2024, 4, 1)


def test_record_progress_moves_to_in_progress():
    """Test that storing values on a started workstream marks it in progress."""
    ws = _workstream(can_start=True)
    state.activate(ws, NOW)

    changed = state.record_progress(ws, {"tenant_name": "Acme Ltd", "credit_score": "720"})

    assert ws.status == "in_progress"
    assert changed == {"tenant_name": "Acme Ltd", "credit_score": 720}
    assert state.record_progress(ws, {"credit_score": 720}) == {}


def test_record_progress_needs_an_active_workstream():
    """Test that pending workstreams cannot record progress."""
    with pytest.raises(InvalidTransitionError, match="Cannot record progress"):
        state.record_progress(_workstream(), {"tenant_name": "Acme Ltd"})


def test_merge_values_is_all_or_nothing():
    """Test that one bad value stores nothing."""
    ws = _workstream()

    with pytest.raises(UnknownFieldError):
        state.merge_values(ws, {"tenant_name": "Acme Ltd", "rent": 100})

    assert ws.values["tenant_name"] is None


def test_complete_from_started_or_in_progress():
    """Test completion timestamps and the terminal state."""
    ws = _workstream(can_start=True)
    state.activate(ws, NOW)

    state.complete(ws, NOW)

    assert ws.status == "completed"
    assert ws.completed_at == NOW
    assert ws.is_terminal
    with pytest.raises(InvalidTransitionError):
        state.complete(ws, NOW)


def test_complete_pending_workstream_fails():
    """Test that work must start before it completes."""
    with pytest.raises(InvalidTransitionError):
        state.complete(_workstream(), NOW)


def test_block_restores_previous_status():
    """Test that unblocking returns to the status held before blocking."""
    ws = _workstream(can_start=True)
    state.activate(ws, NOW)
    state.record_progress(ws, {"tenant_name": "Acme Ltd"})

    state.block(ws, "Waiting on references")
    assert ws.status == "blocked"
    assert ws.blocked_reason == "Waiting on references"

    state.unblock(ws)
    assert ws.status == "in_progress"
    assert ws.blocked_reason is None


def test_unblock_requires_blocked():
    """Test that only blocked workstreams can be unblocked."""
    with pytest.raises(InvalidTransitionError):
        state.unblock(_workstream())


def test_skip_only_from_pending():
    """Test that skip is terminal and only allowed before work starts."""
    ws = _workstream(can_start=True)

    state.skip(ws)

    assert ws.status == "skipped"
    assert ws.can_start is False
    assert ws.is_terminal

    started = _workstream(can_start=True)
    state.activate(started, NOW)
    with pytest.raises(InvalidTransitionError):
        state.skip(started)
