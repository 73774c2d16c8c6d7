import math
import re

from .base import FieldValue

_CURRENCY_NOISE = re.compile(r"[\s,$€£¥]")


def as_float(number) -> float:
    """ IEEE double for an int or float; ints too large for a double become a signed infinity. """
    try:
        return float(number)
    except OverflowError:
        return math.inf if number > 0 else -math.inf


class NumberValue(FieldValue):
    """ Stored as a double, like every number the formulas compute. """
    tag = "number"

    def coerce(self, raw):
        # bool is an int subclass, but True is not a quantity
        if isinstance(raw, bool):
            raise self.reject("expected a number, got a boolean")
        if isinstance(raw, (int, float)):
            number = as_float(raw)
        elif isinstance(raw, str):
            number = self._parse(raw)
        else:
            raise self.reject(f"expected a number, got {type(raw).__name__}")
        if math.isnan(number):
            raise self.reject("NaN is not a value")
        return number

    def _parse(self, text: str) -> float:
        try:
            return float(text.strip().replace(",", ""))
        except ValueError:
            raise self.reject("not a number")


class CurrencyValue(NumberValue):
    """ Monetary amount. Accepts symbols and thousands separators in text input. """
    tag = "currency"

    def _parse(self, text: str) -> float:
        return super()._parse(_CURRENCY_NOISE.sub("", text))
