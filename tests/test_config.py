"""Tests for engine configuration loading."""

import pytest
from pydantic import ValidationError
from propflow.config import EngineConfig, load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("PROPFLOW_CONFIG", "PROPFLOW_REFERENCE_POLICY", "PROPFLOW_STRICT_SEQUENCING"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_file(tmp_path):
    """Test the defaults when no config file exists."""
    config = load_config(str(tmp_path / "missing.yaml"))

    assert config.unresolved_reference_policy == "zero"
    assert config.strict_sequencing is True
    assert config.require_fields_on_complete is False
    assert config.display_precision == 2


def test_load_from_yaml(tmp_path):
    """Test reading settings from a YAML file."""
    path = tmp_path / "propflow.yaml"
    path.write_text("unresolved_reference_policy: error\ndisplay_precision: 4\nrequire_fields_on_complete: true\n")

    config = load_config(str(path))

    assert config.unresolved_reference_policy == "error"
    assert config.display_precision == 4
    assert config.require_fields_on_complete is True


def test_config_path_from_env(tmp_path, monkeypatch):
    """Test PROPFLOW_CONFIG selects the file."""
    path = tmp_path / "custom.yaml"
    path.write_text("event_log_size: 50\n")
    monkeypatch.setenv("PROPFLOW_CONFIG", str(path))

    assert load_config().event_log_size == 50


def test_env_overrides(tmp_path, monkeypatch):
    """Test that environment variables override the file."""
    path = tmp_path / "propflow.yaml"
    path.write_text("unresolved_reference_policy: zero\n")
    monkeypatch.setenv("PROPFLOW_REFERENCE_POLICY", "error")
    monkeypatch.setenv("PROPFLOW_STRICT_SEQUENCING", "no")

    config = load_config(str(path))

    assert config.unresolved_reference_policy == "error"
    assert config.strict_sequencing is False


def test_invalid_values_are_rejected(tmp_path, monkeypatch):
    """Test that bad settings fail validation."""
    with pytest.raises(ValidationError):
        EngineConfig(unresolved_reference_policy="ignore")
    with pytest.raises(ValidationError):
        EngineConfig(event_log_size=0)

    monkeypatch.setenv("PROPFLOW_REFERENCE_POLICY", "sometimes")
    with pytest.raises(ValidationError):
        load_config(str(tmp_path / "missing.yaml"))
