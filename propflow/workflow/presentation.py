""" Display formatting for resolved field values. Rounding happens here and only here. """

import math
from datetime import date
from typing import Any, Dict, Optional

from ..config import EngineConfig
from .models import FieldSchema, Workstream


def format_value(value: Any, field: Optional[FieldSchema] = None, precision: int = 2, marker: str = "—") -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return marker
        if field is not None and field.value_type == "currency":
            return f"{value:,.2f}"
        rounded = round(value, precision)
        if float(rounded).is_integer():
            return str(int(rounded))
        return f"{rounded:.{precision}f}".rstrip("0").rstrip(".")
    return str(value)


def display_values(ws: Workstream, config: Optional[EngineConfig] = None) -> Dict[str, str]:
    """ field id -> display string for one workstream. """
    config = config or EngineConfig()
    return {
        f.id: format_value(ws.values.get(f.id), f, config.display_precision, config.non_finite_marker)
        for f in ws.fields
    }
