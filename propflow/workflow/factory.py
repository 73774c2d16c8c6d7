""" Factory for creating tagged field values based on the field's value type. """
from typing import Any, Dict, Type

from ..values.base import FieldValue
from ..values.boolean import BooleanValue
from ..values.date import DateValue
from ..values.number import CurrencyValue, NumberValue
from ..values.select import SelectValue
from ..values.text import TextValue
from .errors import ReadOnlyFieldError
from .models import FieldSchema

_VALUE_MAP: Dict[str, Type[FieldValue]] = {
    "text": TextValue,
    "textarea": TextValue,
    "number": NumberValue,
    "currency": CurrencyValue,
    "date": DateValue,
    "select": SelectValue,
    "boolean": BooleanValue,
}


def make_value(field: FieldSchema, raw: Any) -> FieldValue:
    """
    Validate raw input against the field's schema and wrap it in its tagged type.
    Formula fields are derived, so they never accept input.
    """
    if field.is_formula:
        raise ReadOnlyFieldError(
            f"Field '{field.id}' is a formula and cannot be edited",
            field=field.id,
        )

    cls = _VALUE_MAP.get(field.value_type)
    if not cls:
        raise ValueError(f"Unsupported value type: {field.value_type}")

    return cls(field, raw)

