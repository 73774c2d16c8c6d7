from datetime import date, datetime

from .base import FieldValue


class DateValue(FieldValue):
    """ Calendar date. In formulas a date counts as its day ordinal, so differences are in days. """
    tag = "date"

    def coerce(self, raw):
        if isinstance(raw, datetime):
            return raw.date()
        if isinstance(raw, date):
            return raw
        if isinstance(raw, str):
            text = raw.strip()
            try:
                return date.fromisoformat(text[:10])
            except ValueError:
                raise self.reject("expected an ISO date (YYYY-MM-DD)")
        raise self.reject(f"expected a date, got {type(raw).__name__}")
