""" Typed failures raised by the workflow engine. """

from typing import Any, Dict, List, Optional


class WorkflowEngineError(Exception):
    """ Base class for all engine failures. Each subclass carries a stable code. """
    code = "workflow_engine_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class EmptyTemplateError(WorkflowEngineError):
    code = "empty_template"


class TemplateValidationError(WorkflowEngineError, ValueError):
    code = "invalid_template"


class TemplateNotFoundError(WorkflowEngineError, LookupError):
    code = "template_not_found"


class NotStartableError(WorkflowEngineError):
    code = "not_startable"


class AlreadyStartedError(WorkflowEngineError):
    code = "already_started"


class InvalidTransitionError(WorkflowEngineError):
    code = "invalid_transition"


class OutOfSequenceCompletionError(WorkflowEngineError):
    code = "out_of_sequence"


class RequiredFieldsMissingError(WorkflowEngineError):
    code = "required_fields_missing"


class UnknownWorkstreamError(WorkflowEngineError, LookupError):
    code = "unknown_workstream"


class UnknownFieldError(WorkflowEngineError, LookupError):
    code = "unknown_field"


class ReadOnlyFieldError(WorkflowEngineError):
    code = "read_only_field"


class InvalidFieldValueError(WorkflowEngineError, ValueError):
    code = "invalid_field_value"


class FormulaSyntaxError(WorkflowEngineError, ValueError):
    code = "formula_syntax"


class UnknownReferenceError(WorkflowEngineError, LookupError):
    """
    A formula names a field that exists in no workstream.

    Soft by default: the reference resolves to 0 and the error is only
    recorded. Raised when the engine runs with the "error" reference policy.
    """
    code = "unknown_reference"

    def __init__(self, reference: str, field: Optional[str] = None):
        message = f"Unknown reference '{reference}'"
        if field:
            message += f" in formula for '{field}'"
        super().__init__(message, reference=reference, field=field)
        self.reference = reference
        self.field = field


class CircularFormulaError(WorkflowEngineError):
    code = "circular_formula"

    def __init__(self, cycle: List[str]):
        super().__init__(f"Circular formula dependency: {' -> '.join(cycle)}", cycle=list(cycle))
        self.cycle = list(cycle)
