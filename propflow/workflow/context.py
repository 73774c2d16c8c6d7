""" Resolution context used while recomputing an instance's formulas. """
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Sequence

from .dependencies import FieldKey, format_key, resolve_reference
from .errors import UnknownReferenceError
from .models import Workstream

logger = logging.getLogger(__name__)


@dataclass
class FormulaContext:
    """
    Current values of every field in an instance, keyed by (workstream key, field id).
    Values written during a recompute land in `data` only; the engine copies them
    back to the workstreams once the whole pass has succeeded.
    """
    workstreams: Sequence[Workstream]
    data: Dict[FieldKey, Any] = field(default_factory=dict)
    logs: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_workstreams(cls, workstreams: Sequence[Workstream]) -> "FormulaContext":
        data = {}
        for ws in workstreams:
            for f in ws.fields:
                data[(ws.key, f.id)] = ws.values.get(f.id)
        return cls(workstreams=workstreams, data=data)

    def set_many(self, kv: Dict[FieldKey, Any]):
        self.data.update(kv)

    def resolver_for(self, key: FieldKey) -> Callable[[str], Any]:
        """ Resolver for the formula stored at `key`; unknown references read as None. """
        owner = next(ws for ws in self.workstreams if ws.key == key[0])

        def _resolve(reference: str) -> Any:
            target = resolve_reference(self.workstreams, owner, reference)
            if target is None:
                self.warn(UnknownReferenceError(reference, format_key(key)))
                return None
            return self.data.get(target)

        return _resolve

    def warn(self, error: UnknownReferenceError):
        if any(entry["reference"] == error.reference and entry["field"] == error.field for entry in self.logs):
            return
        logger.warning("%s; treated as 0", error.message)
        self.logs.append({"code": error.code, "reference": error.reference, "field": error.field})
