""" Load and validate WorkflowTemplates from YAML or plain dicts. """

import keyword
import logging
from typing import Any, Dict

import yaml

from .dependencies import build_dependency_graph, format_key
from .errors import CircularFormulaError, FormulaSyntaxError, TemplateValidationError
from .formula import parse_formula
from .models import FieldSchema, WorkflowTemplate, WorkstreamSchema
from .schema import validate_template

logger = logging.getLogger(__name__)


def load_template(yaml_text: str) -> WorkflowTemplate:
    """
    Load a WorkflowTemplate from a YAML string.
    """
    try:
        data = yaml.safe_load(yaml_text)
    except yaml.YAMLError as e:
        raise TemplateValidationError(f"Template is not valid YAML: {e}")
    return compile_template(data)


def compile_template(data: Dict[str, Any]) -> WorkflowTemplate:
    """
    Build an immutable WorkflowTemplate from a raw document (YAML mapping or a stored JSON row).
    """
    spec = validate_template(data)

    workstreams = []
    for ws in spec.workstreams:
        fields = tuple(
            FieldSchema(
                id=f.id,
                label=f.label,
                value_type=f.value_type,
                options=tuple(f.options),
                formula=f.formula.strip() if f.formula else None,
                required=f.required,
            )
            for f in ws.fields
        )
        workstreams.append(WorkstreamSchema(
            key=ws.key,
            name=ws.name,
            description=ws.description,
            fields=fields,
            estimated_duration_days=ws.estimated_duration_days,
        ))

    template = WorkflowTemplate(
        id=spec.id,
        key=spec.key,
        name=spec.name,
        description=spec.description,
        category=spec.category,
        stages=tuple(spec.stages),
        workstreams=tuple(workstreams),
    )
    _validate_template(template)

    return template


def _validate_template(template: WorkflowTemplate) -> None:
    """
    Identifier, formula syntax and formula cycle checks.
    """
    for ws in template.workstreams:
        for name in [ws.key] + [f.id for f in ws.fields]:
            if not name.isidentifier() or keyword.iskeyword(name):
                raise TemplateValidationError(
                    f"'{name}' in template '{template.key}' must be an identifier and not a reserved word",
                    template_key=template.key,
                )
        for f in ws.fields:
            if not f.is_formula:
                continue
            try:
                parse_formula(f.formula)
            except FormulaSyntaxError as e:
                raise TemplateValidationError(
                    f"Invalid formula for {ws.key}.{f.id}: {e.message}",
                    template_key=template.key,
                )

    graph = build_dependency_graph(template.workstreams)
    try:
        graph.topological_order()
    except CircularFormulaError as e:
        raise TemplateValidationError(
            f"Cycle detected in formula dependencies: {' -> '.join(e.cycle)}",
            template_key=template.key,
            cycle=e.cycle,
        )

    for key, missing in graph.unresolved.items():
        logger.warning(
            "Template '%s': formula %s references unknown field(s) %s; they will resolve to 0",
            template.key, format_key(key), ", ".join(missing),
        )
