"""
Applies structured edit commands to an instance.

Commands come from the UI or from the chat-to-command translator:

    {"workstream_id": "...", "field_id": "...", "raw_value": ...}
    {"action": "complete_workstream", "workstream_id": "..."}
    {"action": "skip_workstream" | "block_workstream" | "unblock_workstream", "workstream_id": "..."}
    {"action": "start_instance"}

This is the boundary where engine failures become results instead of exceptions.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .engine import InstanceEngine
from .errors import WorkflowEngineError
from .models import WorkflowInstance

logger = logging.getLogger(__name__)

_ACTIONS = ("edit_field", "complete_workstream", "skip_workstream", "block_workstream", "unblock_workstream", "start_instance")


@dataclass
class CommandResult:
    action: str
    ok: bool
    instance: WorkflowInstance
    changed: Set[Tuple[str, str]] = field(default_factory=set)
    error: Optional[WorkflowEngineError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "ok": self.ok,
            "changed": sorted(self.changed),
            "completion_percentage": self.instance.completion_percentage,
            "current_workstream_id": self.instance.current_workstream_id,
            "error": self.error.to_dict() if self.error else None,
        }


def _action_of(command: Dict[str, Any]) -> str:
    action = command.get("action")
    if action is None and "field_id" in command:
        return "edit_field"
    if action not in _ACTIONS:
        raise ValueError(f"Unsupported command: {command!r}")
    return action


def _require_key(command: Dict[str, Any], key: str) -> Any:
    if key not in command:
        raise ValueError(f"Command {command!r} is missing '{key}'")
    return command[key]


def apply_command(engine: InstanceEngine, instance: WorkflowInstance, command: Dict[str, Any]) -> CommandResult:
    """
    Apply one command. Malformed commands raise ValueError; engine failures are
    returned on the result with the instance unchanged by the failed step.
    """
    action = _action_of(command)
    try:
        changed: Set[Tuple[str, str]] = set()
        if action == "edit_field":
            changed = engine.apply_edit(
                instance,
                _require_key(command, "workstream_id"),
                _require_key(command, "field_id"),
                command.get("raw_value"),
            )
        elif action == "complete_workstream":
            engine.complete_workstream(instance, _require_key(command, "workstream_id"))
        elif action == "skip_workstream":
            engine.skip_workstream(instance, _require_key(command, "workstream_id"))
        elif action == "block_workstream":
            engine.block_workstream(instance, _require_key(command, "workstream_id"), command.get("reason"))
        elif action == "unblock_workstream":
            engine.unblock_workstream(instance, _require_key(command, "workstream_id"))
        else:
            engine.start_instance(instance)
    except WorkflowEngineError as e:
        logger.info("Command %s on instance %s rejected: %s", action, instance.id, e.message)
        return CommandResult(action=action, ok=False, instance=instance, error=e)

    return CommandResult(action=action, ok=True, instance=instance, changed=changed)


def run_commands(
    engine: InstanceEngine,
    instance: WorkflowInstance,
    commands: Iterable[Dict[str, Any]],
    *,
    stop_on_error: bool = False,
) -> List[CommandResult]:
    """ Apply commands in order, one result per command applied. """
    results = []
    for command in commands:
        result = apply_command(engine, instance, command)
        results.append(result)
        if stop_on_error and not result.ok:
            break
    return results
