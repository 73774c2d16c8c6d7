from .base import FieldValue


class TextValue(FieldValue):
    """ Free text, single line or multi-line (textarea). """
    tag = "text"

    def coerce(self, raw):
        if isinstance(raw, (dict, list, tuple, set)):
            raise self.reject("expected a string")
        return str(raw)
