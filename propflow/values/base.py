from abc import ABC, abstractmethod
from typing import Any

from ..workflow.errors import InvalidFieldValueError
from ..workflow.models import FieldSchema


class FieldValue(ABC):
    """ Abstract base class for all tagged field values. """
    tag = ""

    def __init__(self, field: FieldSchema, raw: Any):
        self.field = field
        self.raw = raw
        # An empty input clears the field
        if raw is None or (isinstance(raw, str) and raw.strip() == ""):
            self.value = None
        else:
            self.value = self.coerce(raw)

    @abstractmethod
    def coerce(self, raw: Any) -> Any:
        """
        Convert raw input into the stored value. Must be implemented by subclasses.
        """
        pass

    def reject(self, reason: str) -> InvalidFieldValueError:
        return InvalidFieldValueError(
            f"Invalid {self.tag} value for '{self.field.id}': {reason}",
            field=self.field.id,
            value_type=self.field.value_type,
            raw_value=repr(self.raw),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.field.id}={self.value!r})"
