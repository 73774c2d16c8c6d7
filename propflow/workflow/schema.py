from typing import List, Optional, Dict, Any, Literal
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import TemplateValidationError

ValueType = Literal["text", "number", "currency", "date", "select", "textarea", "boolean", "formula"]


class FieldSpec(BaseModel):
    id: str
    label: str
    value_type: ValueType = Field(default="text", alias="type")
    options: List[str] = Field(default_factory=list)
    formula: Optional[str] = None
    required: bool = False

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @model_validator(mode="after")
    def _formula_iff_formula_type(self):
        if self.value_type == "formula" and not (self.formula or "").strip():
            raise ValueError(f"formula field '{self.id}' needs a formula expression")
        if self.value_type != "formula" and self.formula is not None:
            raise ValueError(f"field '{self.id}' is {self.value_type} but defines a formula")
        if self.options and self.value_type != "select":
            raise ValueError(f"field '{self.id}' defines options but is not a select")
        return self


class WorkstreamSpec(BaseModel):
    key: str
    name: str
    description: str = ""
    fields: List[FieldSpec] = Field(default_factory=list)
    estimated_duration_days: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _unique_field_ids(self):
        seen = set()
        for f in self.fields:
            if f.id in seen:
                raise ValueError(f"duplicate field id '{f.id}' in workstream '{self.key}'")
            seen.add(f.id)
        return self


class TemplateSpec(BaseModel):
    id: Optional[str] = None
    key: str
    name: str
    description: str = ""
    category: str = ""
    stages: List[str] = Field(default_factory=list)
    workstreams: List[WorkstreamSpec] = Field(default_factory=list)

    # Stored template rows carry bookkeeping columns we don't model
    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="after")
    def _unique_workstream_keys(self):
        seen = set()
        for ws in self.workstreams:
            if ws.key in seen:
                raise ValueError(f"duplicate workstream key '{ws.key}'")
            seen.add(ws.key)
        return self


def validate_template(raw: Dict[str, Any]) -> TemplateSpec:
    """Validate a raw template document against TemplateSpec."""
    if not isinstance(raw, dict):
        raise TemplateValidationError("Template validation error: expected a mapping at the top level")
    try:
        return TemplateSpec.model_validate(raw)
    except ValidationError as e:
        raise TemplateValidationError(f"Template validation error: {e}", template_key=raw.get("key"))
