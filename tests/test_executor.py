"""Tests for structured command application."""

import math
from datetime import datetime, timezone

import pytest
from propflow.templates.builtin import default_repository
from propflow.workflow.engine import InstanceEngine
from propflow.workflow.executor import apply_command, run_commands


def _setup():
    engine = InstanceEngine(templates=default_repository(), clock=lambda: datetime(2024, 1, 1, tzinfo=timezone.utc))
    instance = engine.create_instance(engine.templates.get("lease_management"), "prop-7", "Unit 7 lease", instance_id="l1")
    return engine, instance


def test_edit_command_without_action():
    """Test that a bare field edit is treated as edit_field."""
    engine, instance = _setup()

    result = apply_command(engine, instance, {"workstream_id": "l1-2", "field_id": "rent_amount", "raw_value": "$1,500"})

    assert result.ok
    assert result.action == "edit_field"
    assert ("l1-2", "rent_amount") in result.changed
    assert instance.workstreams[1].values["rent_amount"] == 1500


def test_complete_command():
    """Test the complete_workstream action."""
    engine, instance = _setup()

    result = apply_command(engine, instance, {"action": "complete_workstream", "workstream_id": "l1-1"})

    assert result.ok
    assert result.to_dict()["completion_percentage"] == 50
    assert result.to_dict()["current_workstream_id"] == "l1-2"
    assert result.to_dict()["error"] is None


def test_engine_failure_becomes_result():
    """Test that engine errors are returned rather than raised."""
    engine, instance = _setup()

    result = apply_command(engine, instance, {"workstream_id": "l1-2", "field_id": "total_lease_value", "raw_value": 1})

    assert not result.ok
    assert result.error.code == "read_only_field"
    assert result.to_dict()["error"]["field"] == "total_lease_value"
    assert instance.workstreams[1].values["total_lease_value"] == 0


def test_malformed_commands_raise():
    """Test that commands the executor cannot interpret raise ValueError."""
    engine, instance = _setup()

    with pytest.raises(ValueError, match="Unsupported command"):
        apply_command(engine, instance, {"action": "delete_instance"})
    with pytest.raises(ValueError, match="missing 'workstream_id'"):
        apply_command(engine, instance, {"action": "complete_workstream"})


def test_run_commands_in_order():
    """Test a full lease run driven by commands."""
    engine, instance = _setup()
    commands = [
        {"action": "start_instance"},
        {"workstream_id": "l1-1", "field_id": "tenant_name", "raw_value": "Acme Ltd"},
        {"workstream_id": "l1-1", "field_id": "income_verified", "raw_value": "yes"},
        {"action": "complete_workstream", "workstream_id": "l1-1"},
        {"workstream_id": "l1-2", "field_id": "rent_amount", "raw_value": 1500},
        {"workstream_id": "l1-2", "field_id": "lease_term", "raw_value": 12},
        {"workstream_id": "l1-2", "field_id": "security_deposit", "raw_value": 3000},
        {"action": "complete_workstream", "workstream_id": "l1-2"},
    ]

    results = run_commands(engine, instance, commands)

    assert all(r.ok for r in results)
    assert instance.status == "completed"
    assert instance.workstreams[1].values["total_lease_value"] == 18000
    assert instance.workstreams[1].values["deposit_months"] == 2


def test_run_commands_stop_on_error():
    """Test that stop_on_error halts at the first failed command."""
    engine, instance = _setup()
    commands = [
        {"action": "complete_workstream", "workstream_id": "l1-2"},
        {"action": "complete_workstream", "workstream_id": "l1-1"},
    ]

    results = run_commands(engine, instance, commands, stop_on_error=True)

    assert len(results) == 1
    assert results[0].error.code == "out_of_sequence"
    assert instance.status == "not_started"

    results = run_commands(engine, instance, commands)
    assert [r.ok for r in results] == [False, True]


def test_block_and_unblock_commands():
    """Test the block/unblock actions and the reason they carry."""
    engine, instance = _setup()
    apply_command(engine, instance, {"action": "start_instance"})

    result = apply_command(engine, instance, {"action": "block_workstream", "workstream_id": "l1-1", "reason": "Missing ID"})
    assert result.ok
    assert instance.workstreams[0].blocked_reason == "Missing ID"

    assert apply_command(engine, instance, {"action": "unblock_workstream", "workstream_id": "l1-1"}).ok
    assert apply_command(engine, instance, {"action": "skip_workstream", "workstream_id": "l1-2"}).ok
    assert instance.workstreams[1].status == "skipped"


def test_huge_value_command_succeeds():
    """Test that an out-of-range number is stored as infinity by the command path."""
    engine, instance = _setup()
    apply_command(engine, instance, {"workstream_id": "l1-2", "field_id": "lease_term", "raw_value": 12})

    result = apply_command(engine, instance, {"workstream_id": "l1-2", "field_id": "rent_amount", "raw_value": 10 ** 400})

    assert result.ok
    assert instance.workstreams[1].values["total_lease_value"] == math.inf
    assert instance.workstreams[1].values["deposit_months"] == 0
