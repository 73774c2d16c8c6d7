""" Data models for workflow templates and their running instances """

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

VALUE_TYPES = ("text", "number", "currency", "date", "select", "textarea", "boolean", "formula")

# pending -> started -> in_progress -> completed, blocked/skipped on the side
WORKSTREAM_STATUSES = ("pending", "started", "in_progress", "completed", "blocked", "skipped")
TERMINAL_WORKSTREAM_STATUSES = ("completed", "skipped")
ACTIVE_WORKSTREAM_STATUSES = ("started", "in_progress")

INSTANCE_STATUSES = ("not_started", "started", "in_progress", "completed", "paused", "cancelled")
FINISHED_INSTANCE_STATUSES = ("completed", "cancelled")


@dataclass(frozen=True)
class FieldSchema:
    id: str
    label: str
    value_type: str = "text"
    options: Tuple[str, ...] = ()
    formula: Optional[str] = None
    required: bool = False

    @property
    def is_formula(self) -> bool:
        return self.value_type == "formula"


@dataclass(frozen=True)
class WorkstreamSchema:
    key: str
    name: str
    description: str = ""
    fields: Tuple[FieldSchema, ...] = ()
    estimated_duration_days: Optional[int] = None

    def get_field(self, field_id: str) -> Optional[FieldSchema]:
        return next((f for f in self.fields if f.id == field_id), None)


@dataclass(frozen=True)
class WorkflowTemplate:
    """ Immutable blueprint: stage labels plus the ordered workstream schemas. """
    key: str
    name: str
    description: str = ""
    category: str = ""
    stages: Tuple[str, ...] = ()
    workstreams: Tuple[WorkstreamSchema, ...] = ()
    id: Optional[str] = None

    def __post_init__(self):
        if self.id is None:
            object.__setattr__(self, "id", self.key)

    def get_workstream(self, key: str) -> Optional[WorkstreamSchema]:
        return next((ws for ws in self.workstreams if ws.key == key), None)


@dataclass
class Workstream:
    """ One ordered unit of work inside an instance, with its own lifecycle. """
    id: str
    workflow_instance_id: str
    template_workstream_key: str
    order_index: int
    name: str
    description: str = ""
    fields: Tuple[FieldSchema, ...] = ()
    estimated_duration_days: Optional[int] = None

    # Execution state
    status: str = "pending"  # pending, started, in_progress, completed, blocked, skipped
    values: Dict[str, Any] = field(default_factory=dict)
    can_start: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    due_date: Optional[date] = None
    blocked_reason: Optional[str] = None
    status_before_block: Optional[str] = None

    @property
    def key(self) -> str:
        return self.template_workstream_key

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_WORKSTREAM_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_WORKSTREAM_STATUSES

    def get_field(self, field_id: str) -> Optional[FieldSchema]:
        return next((f for f in self.fields if f.id == field_id), None)

    def formula_fields(self) -> List[FieldSchema]:
        return [f for f in self.fields if f.is_formula]


@dataclass
class WorkflowInstance:
    """ A running realization of a template for one subject (a property). """
    id: str
    template_id: str
    subject_id: str
    name: str
    status: str = "not_started"  # not_started, started, in_progress, completed, paused, cancelled
    current_workstream_id: Optional[str] = None
    completion_percentage: int = 0
    workstreams: List[Workstream] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status_before_pause: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_INSTANCE_STATUSES

    def get_workstream(self, workstream_id: str) -> Optional[Workstream]:
        return next((ws for ws in self.workstreams if ws.id == workstream_id), None)

    def workstream_by_key(self, key: str) -> Optional[Workstream]:
        return next((ws for ws in self.workstreams if ws.key == key), None)

    def current_workstream(self) -> Optional[Workstream]:
        if self.current_workstream_id is None:
            return None
        return self.get_workstream(self.current_workstream_id)

    def ordered_workstreams(self) -> List[Workstream]:
        return sorted(self.workstreams, key=lambda ws: ws.order_index)


def _plain(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def template_to_dict(template: WorkflowTemplate) -> Dict[str, Any]:
    return _plain(asdict(template))


def instance_to_dict(instance: WorkflowInstance) -> Dict[str, Any]:
    """ Plain-data snapshot of an instance for the persistence layer. """
    return _plain(asdict(instance))
