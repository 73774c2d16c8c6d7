"""Tests for template compilation (YAML loading and validation)."""

import logging

import pytest
from propflow.workflow.compiler import compile_template, load_template
from propflow.workflow.errors import TemplateValidationError
from propflow.workflow.models import WorkflowTemplate


VALID_YAML = """
key: appraisal
name: Appraisal
description: A test template
category: valuation
stages: [In Progress, Under Review, Completed]

workstreams:
  - key: intake
    name: Intake
    estimated_duration_days: 3
    fields:
      - { id: valuer_name, label: Valuer Name, type: text, required: true }
      - { id: parking, label: Free Parking, type: select, options: ["Yes", "No"] }

  - key: income
    name: Income
    fields:
      - { id: gross_rental_income, label: Gross Rental Income, type: currency }
      - { id: operating_expenses, label: Operating Expenses, type: currency }
      - id: net_operating_income
        label: Net Operating Income
        type: formula
        formula: "gross_rental_income - operating_expenses"
"""


def test_load_template_from_valid_yaml():
    """Test loading a valid template from YAML."""
    template = load_template(VALID_YAML)

    assert isinstance(template, WorkflowTemplate)
    assert template.key == "appraisal"
    assert template.id == "appraisal"
    assert template.category == "valuation"
    assert template.stages == ("In Progress", "Under Review", "Completed")
    assert [ws.key for ws in template.workstreams] == ["intake", "income"]
    assert template.workstreams[0].estimated_duration_days == 3

    intake = template.get_workstream("intake")
    assert intake.get_field("valuer_name").required is True
    assert intake.get_field("parking").options == ("Yes", "No")

    noi = template.get_workstream("income").get_field("net_operating_income")
    assert noi.is_formula
    assert noi.formula == "gross_rental_income - operating_expenses"


def test_template_is_immutable():
    """Test that compiled templates cannot be modified."""
    template = load_template(VALID_YAML)

    with pytest.raises(AttributeError):
        template.name = "Changed"
    assert isinstance(template.workstreams, tuple)


def test_compile_template_from_stored_row():
    """Test compiling a stored template row that carries bookkeeping columns."""
    row = {
        "id": "tpl-1",
        "key": "lease",
        "name": "Lease",
        "stages": ["Screening"],
        "workstreams": [{"key": "screening", "name": "Screening", "fields": []}],
        "created_at": "2023-01-01T00:00:00Z",
        "updated_at": "2023-01-01T00:00:00Z",
    }

    template = compile_template(row)

    assert template.id == "tpl-1"
    assert template.key == "lease"


def test_stage_and_workstream_counts_are_independent():
    """Test that a template may have more stages than workstreams."""
    template = compile_template({
        "key": "t",
        "name": "T",
        "stages": ["A", "B", "C", "D"],
        "workstreams": [{"key": "only", "name": "Only"}],
    })

    assert len(template.stages) == 4
    assert len(template.workstreams) == 1


def test_missing_required_fields_raise():
    """Test that a document without key/name is rejected."""
    with pytest.raises(TemplateValidationError, match="Template validation error"):
        load_template("name: nameless\n")


def test_validation_errors_are_value_errors():
    """Test that template loading failures can be caught as ValueError."""
    with pytest.raises(ValueError):
        load_template("key: [unclosed")


def test_formula_type_requires_expression():
    """Test that a formula field must carry its formula."""
    yaml_text = """
key: t
name: T
workstreams:
  - key: ws
    name: WS
    fields:
      - { id: total, label: Total, type: formula }
"""
    with pytest.raises(TemplateValidationError, match="needs a formula"):
        load_template(yaml_text)


def test_formula_only_on_formula_fields():
    """Test that non-formula fields cannot carry a formula."""
    yaml_text = """
key: t
name: T
workstreams:
  - key: ws
    name: WS
    fields:
      - { id: total, label: Total, type: number, formula: "a + b" }
"""
    with pytest.raises(TemplateValidationError, match="defines a formula"):
        load_template(yaml_text)


def test_unknown_value_type_is_rejected():
    """Test that value types outside the supported set fail validation."""
    yaml_text = """
key: t
name: T
workstreams:
  - key: ws
    name: WS
    fields:
      - { id: photos, label: Photos, type: file }
"""
    with pytest.raises(TemplateValidationError):
        load_template(yaml_text)


def test_duplicate_field_ids_are_rejected():
    """Test that field ids must be unique within a workstream."""
    yaml_text = """
key: t
name: T
workstreams:
  - key: ws
    name: WS
    fields:
      - { id: a, label: A, type: number }
      - { id: a, label: A again, type: text }
"""
    with pytest.raises(TemplateValidationError, match="duplicate field id"):
        load_template(yaml_text)


def test_duplicate_workstream_keys_are_rejected():
    """Test that workstream keys must be unique within a template."""
    yaml_text = """
key: t
name: T
workstreams:
  - { key: ws, name: One }
  - { key: ws, name: Two }
"""
    with pytest.raises(TemplateValidationError, match="duplicate workstream key"):
        load_template(yaml_text)


def test_reserved_word_field_id_is_rejected():
    """Test that field ids must be usable as formula references."""
    yaml_text = """
key: t
name: T
workstreams:
  - key: ws
    name: WS
    fields:
      - { id: class, label: Class, type: text }
"""
    with pytest.raises(TemplateValidationError, match="reserved word"):
        load_template(yaml_text)


def test_invalid_formula_syntax_is_rejected():
    """Test that formulas are parsed at load time."""
    yaml_text = """
key: t
name: T
workstreams:
  - key: ws
    name: WS
    fields:
      - { id: a, label: A, type: number }
      - { id: b, label: B, type: formula, formula: "a ** 2" }
"""
    with pytest.raises(TemplateValidationError, match="Invalid formula for ws.b"):
        load_template(yaml_text)


def test_formula_cycle_is_rejected():
    """Test that cyclic formulas are rejected when the template is loaded."""
    yaml_text = """
key: t
name: T
workstreams:
  - key: ws
    name: WS
    fields:
      - { id: a, label: A, type: formula, formula: "b + 1" }
      - { id: b, label: B, type: formula, formula: "a + 1" }
"""
    with pytest.raises(TemplateValidationError, match="Cycle detected"):
        load_template(yaml_text)


def test_unknown_reference_only_warns(caplog):
    """Test that references to missing fields load with a warning."""
    yaml_text = """
key: t
name: T
workstreams:
  - key: ws
    name: WS
    fields:
      - { id: value, label: Value, type: number }
      - { id: price_per_sqft, label: Price, type: formula, formula: "value / property_area" }
"""
    with caplog.at_level(logging.WARNING, logger="propflow.workflow.compiler"):
        template = load_template(yaml_text)

    assert template.key == "t"
    assert "property_area" in caplog.text
