"""
Workstream state machine.

    pending -> started -> in_progress -> completed
                  \\          /
                   blocked             pending -> skipped

completed and skipped are terminal. These functions only touch the workstream
they are given; sequencing across workstreams is the engine's job.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from .errors import InvalidTransitionError, NotStartableError, UnknownFieldError
from .factory import make_value
from .models import Workstream

# action -> states it may fire from
_ALLOWED_FROM = {
    "record_progress": ("started", "in_progress"),
    "complete": ("started", "in_progress"),
    "block": ("started", "in_progress"),
    "unblock": ("blocked",),
    "skip": ("pending",),
}


def _require(ws: Workstream, action: str) -> None:
    allowed = _ALLOWED_FROM[action]
    if ws.status not in allowed:
        raise InvalidTransitionError(
            f"Cannot {action.replace('_', ' ')} workstream '{ws.name}' from status '{ws.status}'",
            workstream_id=ws.id,
            status=ws.status,
            action=action,
        )


def activate(ws: Workstream, now: datetime) -> None:
    if ws.status == "started":
        return
    if ws.status != "pending" or not ws.can_start:
        raise NotStartableError(
            f"Workstream '{ws.name}' cannot start (status={ws.status}, can_start={ws.can_start})",
            workstream_id=ws.id,
            status=ws.status,
        )
    ws.status = "started"
    ws.can_start = True
    ws.started_at = now
    if ws.due_date is None and ws.estimated_duration_days:
        ws.due_date = (now + timedelta(days=ws.estimated_duration_days)).date()


def merge_values(ws: Workstream, values: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate raw values against the workstream's fields and store them.
    Returns the entries whose stored value actually changed. Nothing is stored
    if any value is rejected.
    """
    coerced = {}
    for field_id, raw in values.items():
        schema = ws.get_field(field_id)
        if schema is None:
            raise UnknownFieldError(
                f"Workstream '{ws.name}' has no field '{field_id}'",
                workstream_id=ws.id,
                field=field_id,
            )
        coerced[field_id] = make_value(schema, raw).value

    changed = {k: v for k, v in coerced.items() if ws.values.get(k) != v or k not in ws.values}
    ws.values.update(coerced)
    return changed


def record_progress(ws: Workstream, values: Dict[str, Any]) -> Dict[str, Any]:
    _require(ws, "record_progress")
    changed = merge_values(ws, values)
    if ws.status == "started":
        ws.status = "in_progress"
    return changed


def complete(ws: Workstream, now: datetime) -> None:
    _require(ws, "complete")
    ws.status = "completed"
    ws.completed_at = now


def block(ws: Workstream, reason: Optional[str] = None) -> None:
    _require(ws, "block")
    ws.status_before_block = ws.status
    ws.status = "blocked"
    ws.blocked_reason = reason


def unblock(ws: Workstream) -> None:
    _require(ws, "unblock")
    ws.status = ws.status_before_block or "started"
    ws.status_before_block = None
    ws.blocked_reason = None


def skip(ws: Workstream) -> None:
    _require(ws, "skip")
    ws.status = "skipped"
    ws.can_start = False
