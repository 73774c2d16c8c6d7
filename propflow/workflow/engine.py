"""
Instance engine: turns templates into running instances, drives the workstream
state machine with strict sequential gating, and keeps formula fields current.

The engine is synchronous and holds no per-instance state. Callers serialize
calls that touch the same instance and persist the instance afterwards.
"""

import logging
import math
import time
import uuid
from collections import deque
from datetime import date, datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple, Union

from ..config import EngineConfig
from ..templates.repository import TemplateRepository
from . import state
from .context import FormulaContext
from .dependencies import DependencyGraph, FieldKey, build_dependency_graph, format_key
from .errors import (
    AlreadyStartedError,
    CircularFormulaError,
    EmptyTemplateError,
    FormulaSyntaxError,
    InvalidTransitionError,
    NotStartableError,
    OutOfSequenceCompletionError,
    ReadOnlyFieldError,
    RequiredFieldsMissingError,
    TemplateNotFoundError,
    UnknownFieldError,
    UnknownReferenceError,
    UnknownWorkstreamError,
)
from .factory import make_value
from .formula import evaluate
from .models import WorkflowInstance, WorkflowTemplate, Workstream

logger = logging.getLogger(__name__)

# (workstream id, field id)
ChangedField = Tuple[str, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def completion_percentage(done: int, total: int) -> int:
    """ round(100 * done / total), halves rounded up. """
    if total <= 0:
        return 0
    return int(math.floor(100 * done / total + 0.5))


def _same(a: Any, b: Any) -> bool:
    if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
        return True
    return a == b


class InstanceEngine:
    """
    Orchestrates template materialization, the workstream lifecycle and formula
    recomputation for workflow instances.
    """

    def __init__(
        self,
        templates: Optional[TemplateRepository] = None,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        """
        Args:
            templates: Read-only template repository used by create_instance_from_repository
            config: Engine settings (reference policy, sequencing mode, ...)
            clock: Source of timestamps for started_at/completed_at
            id_factory: Source of new instance ids
        """
        self.templates = templates
        self.config = config or EngineConfig()
        self.clock = clock
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self.event_log: Deque[Dict[str, Any]] = deque(maxlen=self.config.event_log_size)

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    def create_instance(
        self,
        template: WorkflowTemplate,
        subject_id: str,
        name: str,
        instance_id: Optional[str] = None,
    ) -> WorkflowInstance:
        """
        Materialize `template` for one subject. Only the first workstream may start;
        every formula field is evaluated once so the value maps are complete.
        """
        if not template.workstreams:
            raise EmptyTemplateError(
                f"Template '{template.key}' has no workstreams",
                template_key=template.key,
            )

        instance_id = instance_id or self.id_factory()
        workstreams = []
        for index, schema in enumerate(template.workstreams, start=1):
            workstreams.append(Workstream(
                id=f"{instance_id}-{index}",
                workflow_instance_id=instance_id,
                template_workstream_key=schema.key,
                order_index=index,
                name=schema.name,
                description=schema.description,
                fields=tuple(schema.fields),
                estimated_duration_days=schema.estimated_duration_days,
                status="pending",
                can_start=(index == 1),
                values={f.id: None for f in schema.fields},
            ))

        instance = WorkflowInstance(
            id=instance_id,
            template_id=template.id,
            subject_id=subject_id,
            name=name,
            workstreams=workstreams,
        )

        try:
            self._recompute(instance)
        except (CircularFormulaError, UnknownReferenceError, FormulaSyntaxError) as e:
            # The instance is still usable; formulas stay empty until the template is fixed
            logger.error("Initial formula evaluation failed for instance %s: %s", instance_id, e.message)

        self._log(f"Created instance {instance_id} from template '{template.key}' for subject {subject_id}")
        return instance

    def create_instance_from_repository(self, template_key: str, subject_id: str, name: str) -> WorkflowInstance:
        if self.templates is None:
            raise TemplateNotFoundError(
                f"No template repository configured to look up '{template_key}'",
                template_key=template_key,
            )
        return self.create_instance(self.templates.get(template_key), subject_id, name)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        """
        Activate the first open workstream. The instance becomes `started`; it
        only moves to `in_progress` on the first edit of the active workstream
        or when a completion advances to the next one.
        """
        if instance.status != "not_started":
            raise AlreadyStartedError(
                f"Instance {instance.id} is already {instance.status}",
                instance_id=instance.id,
                status=instance.status,
            )
        first = self._first_open(instance)
        if first is None:
            raise NotStartableError(f"Instance {instance.id} has no workstream left to start", instance_id=instance.id)

        now = self.clock()
        state.activate(first, now)
        instance.status = "started"
        instance.current_workstream_id = first.id
        instance.started_at = now
        self._log(f"Started instance {instance.id} at workstream '{first.name}'")
        return instance

    def complete_workstream(self, instance: WorkflowInstance, workstream_id: str) -> WorkflowInstance:
        """
        Complete the current workstream and unlock the next one. Completing the
        last workstream completes the instance.
        """
        self._ensure_open(instance)
        ws = self._get_workstream(instance, workstream_id)

        if instance.status == "not_started":
            expected = self._first_open(instance)
        else:
            expected = instance.current_workstream()
        if self.config.strict_sequencing and (expected is None or expected.id != ws.id):
            raise OutOfSequenceCompletionError(
                f"Workstream '{ws.name}' is not the current workstream of instance {instance.id}",
                instance_id=instance.id,
                workstream_id=ws.id,
                current_workstream_id=expected.id if expected else None,
            )

        if self.config.require_fields_on_complete:
            missing = [f.id for f in ws.fields if f.required and not f.is_formula and ws.values.get(f.id) is None]
            if missing:
                raise RequiredFieldsMissingError(
                    f"Workstream '{ws.name}' is missing required fields: {', '.join(missing)}",
                    workstream_id=ws.id,
                    fields=missing,
                )

        if instance.status == "not_started":
            if expected is None or expected.id != ws.id:
                raise NotStartableError(
                    f"Workstream '{ws.name}' has not started",
                    workstream_id=ws.id,
                    status=ws.status,
                )
            self.start_instance(instance)

        state.complete(ws, self.clock())
        self._log(f"Completed workstream '{ws.name}' of instance {instance.id}")
        self._advance(instance, ws)
        self._update_progress(instance)
        return instance

    def skip_workstream(self, instance: WorkflowInstance, workstream_id: str) -> WorkflowInstance:
        """ Operator skip of a workstream that has not started yet. """
        self._ensure_open(instance)
        ws = self._get_workstream(instance, workstream_id)
        state.skip(ws)
        self._log(f"Skipped workstream '{ws.name}' of instance {instance.id}")

        if instance.status == "not_started":
            # The gate moves to the next workstream that can still run
            upcoming = self._first_open(instance)
            if upcoming is not None:
                upcoming.can_start = True
        if self._first_open(instance) is None:
            self._complete_instance(instance)
        self._update_progress(instance)
        return instance

    def block_workstream(self, instance: WorkflowInstance, workstream_id: str, reason: Optional[str] = None) -> WorkflowInstance:
        self._ensure_open(instance)
        ws = self._get_workstream(instance, workstream_id)
        state.block(ws, reason)
        self._log(f"Blocked workstream '{ws.name}' of instance {instance.id}: {reason or 'no reason given'}")
        return instance

    def unblock_workstream(self, instance: WorkflowInstance, workstream_id: str) -> WorkflowInstance:
        self._ensure_open(instance)
        ws = self._get_workstream(instance, workstream_id)
        state.unblock(ws)
        self._log(f"Unblocked workstream '{ws.name}' of instance {instance.id}")
        return instance

    def pause_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        if instance.status not in ("started", "in_progress"):
            raise InvalidTransitionError(
                f"Cannot pause instance {instance.id} from status '{instance.status}'",
                instance_id=instance.id,
                status=instance.status,
            )
        instance.status_before_pause = instance.status
        instance.status = "paused"
        self._log(f"Paused instance {instance.id}")
        return instance

    def resume_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        if instance.status != "paused":
            raise InvalidTransitionError(
                f"Cannot resume instance {instance.id} from status '{instance.status}'",
                instance_id=instance.id,
                status=instance.status,
            )
        instance.status = instance.status_before_pause or "in_progress"
        instance.status_before_pause = None
        self._log(f"Resumed instance {instance.id}")
        return instance

    def cancel_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        if instance.is_finished:
            raise InvalidTransitionError(
                f"Cannot cancel instance {instance.id} from status '{instance.status}'",
                instance_id=instance.id,
                status=instance.status,
            )
        instance.status = "cancelled"
        instance.current_workstream_id = None
        self._log(f"Cancelled instance {instance.id}")
        return instance

    def set_due_date(self, instance: WorkflowInstance, workstream_id: str, due: Union[date, str, None]) -> WorkflowInstance:
        ws = self._get_workstream(instance, workstream_id)
        ws.due_date = date.fromisoformat(due) if isinstance(due, str) else due
        return instance

    # ------------------------------------------------------------------
    # Field edits and formulas
    # ------------------------------------------------------------------

    def apply_edit(self, instance: WorkflowInstance, workstream_id: str, field_id: str, raw_value: Any) -> Set[ChangedField]:
        """
        Store a raw field value and refresh every formula that depends on it.

        Returns the (workstream id, field id) pairs whose stored value changed.
        A failed edit leaves the instance untouched.
        """
        ws = self._get_workstream(instance, workstream_id)
        schema = ws.get_field(field_id)
        if schema is None:
            raise UnknownFieldError(
                f"Workstream '{ws.name}' has no field '{field_id}'",
                workstream_id=ws.id,
                field=field_id,
            )
        if schema.is_formula:
            raise ReadOnlyFieldError(
                f"Field '{field_id}' is a formula and cannot be edited",
                workstream_id=ws.id,
                field=field_id,
            )
        self._ensure_open(instance)
        if ws.is_terminal:
            raise InvalidTransitionError(
                f"Workstream '{ws.name}' is {ws.status} and no longer accepts edits",
                workstream_id=ws.id,
                status=ws.status,
            )

        value = make_value(schema, raw_value).value
        key = (ws.key, field_id)

        graph = build_dependency_graph(instance.workstreams)
        order = graph.topological_order()
        targets = graph.affected_by([key])
        self._check_references(graph, targets)

        context = FormulaContext.from_workstreams(instance.workstreams)
        context.set_many({key: value})
        computed = self._evaluate(instance, order, targets, context)

        # Everything is validated and evaluated; commit
        changed: Set[ChangedField] = set()
        previous = ws.values.get(field_id)
        if ws.is_active:
            state.record_progress(ws, {field_id: raw_value})
            if instance.status == "started":
                instance.status = "in_progress"
        else:
            state.merge_values(ws, {field_id: raw_value})
        if not _same(previous, value):
            changed.add((ws.id, field_id))
        changed |= self._commit(instance, computed)

        self._log(f"Set {ws.key}.{field_id} on instance {instance.id}; {len(changed)} field(s) changed")
        return changed

    def recompute(self, instance: WorkflowInstance) -> Set[ChangedField]:
        """ Re-evaluate every formula in the instance. """
        return self._recompute(instance)

    def resolved_values(self, instance: WorkflowInstance) -> Dict[str, Dict[str, Any]]:
        """ Raw and computed values per workstream id, for UI and reporting. """
        return {ws.id: dict(ws.values) for ws in instance.ordered_workstreams()}

    def _recompute(self, instance: WorkflowInstance) -> Set[ChangedField]:
        graph = build_dependency_graph(instance.workstreams)
        try:
            order = graph.topological_order()
        except CircularFormulaError as e:
            logger.error("Recompute of instance %s aborted: %s", instance.id, e.message)
            raise
        self._check_references(graph, None)
        context = FormulaContext.from_workstreams(instance.workstreams)
        computed = self._evaluate(instance, order, None, context)
        return self._commit(instance, computed)

    def _check_references(self, graph: DependencyGraph, targets: Optional[Set[FieldKey]]) -> None:
        if self.config.unresolved_reference_policy != "error":
            return
        for key in graph.formulas:
            if targets is not None and key not in targets:
                continue
            missing = graph.unresolved.get(key)
            if missing:
                raise UnknownReferenceError(missing[0], format_key(key))

    def _evaluate(
        self,
        instance: WorkflowInstance,
        order: List[FieldKey],
        targets: Optional[Set[FieldKey]],
        context: FormulaContext,
    ) -> Dict[FieldKey, Any]:
        computed: Dict[FieldKey, Any] = {}
        for key in order:
            if targets is not None and key not in targets:
                continue
            ws = instance.workstream_by_key(key[0])
            schema = ws.get_field(key[1])
            result = evaluate(schema.formula, context.resolver_for(key))
            context.set_many({key: result})
            computed[key] = result
        for entry in context.logs:
            self._log(f"Unknown reference '{entry['reference']}' in {entry['field']} resolved to 0")
        return computed

    def _commit(self, instance: WorkflowInstance, computed: Dict[FieldKey, Any]) -> Set[ChangedField]:
        changed: Set[ChangedField] = set()
        for (ws_key, field_id), value in computed.items():
            ws = instance.workstream_by_key(ws_key)
            if not _same(ws.values.get(field_id), value):
                changed.add((ws.id, field_id))
            ws.values[field_id] = value
        return changed

    # ------------------------------------------------------------------
    # Sequencing helpers
    # ------------------------------------------------------------------

    def _advance(self, instance: WorkflowInstance, finished: Workstream) -> None:
        ordered = instance.ordered_workstreams()
        if instance.current_workstream_id not in (None, finished.id):
            # Another workstream still holds the lane
            if all(ws.is_terminal for ws in ordered):
                self._complete_instance(instance)
            return

        upcoming = next((ws for ws in ordered if ws.order_index > finished.order_index and not ws.is_terminal), None)
        if upcoming is None:
            upcoming = self._first_open(instance)
        if upcoming is None:
            self._complete_instance(instance)
            return

        upcoming.can_start = True
        state.activate(upcoming, self.clock())
        instance.current_workstream_id = upcoming.id
        instance.status = "in_progress"
        self._log(f"Activated workstream '{upcoming.name}' of instance {instance.id}")

    def _complete_instance(self, instance: WorkflowInstance) -> None:
        instance.status = "completed"
        instance.completion_percentage = 100
        instance.current_workstream_id = None
        instance.completed_at = self.clock()
        self._log(f"Instance {instance.id} completed")

    def _update_progress(self, instance: WorkflowInstance) -> None:
        done = sum(1 for ws in instance.workstreams if ws.is_terminal)
        instance.completion_percentage = completion_percentage(done, len(instance.workstreams))

    def _first_open(self, instance: WorkflowInstance) -> Optional[Workstream]:
        return next((ws for ws in instance.ordered_workstreams() if not ws.is_terminal), None)

    def _get_workstream(self, instance: WorkflowInstance, workstream_id: str) -> Workstream:
        ws = instance.get_workstream(workstream_id)
        if ws is None:
            raise UnknownWorkstreamError(
                f"Workstream {workstream_id} does not belong to instance {instance.id}",
                instance_id=instance.id,
                workstream_id=workstream_id,
            )
        return ws

    def _ensure_open(self, instance: WorkflowInstance) -> None:
        if instance.is_finished or instance.status == "paused":
            raise InvalidTransitionError(
                f"Instance {instance.id} is {instance.status}",
                instance_id=instance.id,
                status=instance.status,
            )

    def _log(self, message: str):
        """Add a message to the event log."""
        self.event_log.append({"timestamp": time.time(), "message": message})
        logger.info(message)
