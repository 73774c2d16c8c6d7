"""Read-only access to workflow templates."""

from __future__ import annotations

from typing import Dict, Iterable, List, Protocol

from ..workflow.compiler import load_template
from ..workflow.errors import TemplateNotFoundError, TemplateValidationError
from ..workflow.models import WorkflowTemplate


class TemplateRepository(Protocol):
    """Protocol for template stores the engine reads from."""

    def get(self, key: str) -> WorkflowTemplate:
        """Return the template with this key or id."""

    def list_templates(self) -> List[WorkflowTemplate]:
        """Return all templates in registration order."""


class InMemoryTemplateRepository:
    """Template store backed by a dict, filled once at construction."""

    def __init__(self, templates: Iterable[WorkflowTemplate] = ()):
        self._templates: Dict[str, WorkflowTemplate] = {}
        for template in templates:
            if template.key in self._templates:
                raise TemplateValidationError(
                    f"Duplicate template key: {template.key}",
                    template_key=template.key,
                )
            self._templates[template.key] = template

    @classmethod
    def from_yaml(cls, *documents: str) -> "InMemoryTemplateRepository":
        return cls(load_template(doc) for doc in documents)

    def get(self, key: str) -> WorkflowTemplate:
        template = self._templates.get(key)
        if template is None:
            template = next((t for t in self._templates.values() if t.id == key), None)
        if template is None:
            raise TemplateNotFoundError(f"Template not found: {key}", template_key=key)
        return template

    def list_templates(self) -> List[WorkflowTemplate]:
        return list(self._templates.values())

    def __contains__(self, key: str) -> bool:
        return key in self._templates

    def __len__(self) -> int:
        return len(self._templates)
