from .base import FieldValue


class SelectValue(FieldValue):
    tag = "select"

    def coerce(self, raw):
        choice = str(raw).strip()
        options = self.field.options
        # Templates may leave options open while they are being authored
        if not options:
            return choice
        if choice in options:
            return choice
        for option in options:
            if option.lower() == choice.lower():
                return option
        raise self.reject(f"'{choice}' is not one of {list(options)}")
