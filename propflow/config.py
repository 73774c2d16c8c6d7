from __future__ import annotations

import logging
import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


class EngineConfig(BaseModel):
    """Settings for the instance engine and value presentation."""

    unresolved_reference_policy: Literal["zero", "error"] = "zero"
    strict_sequencing: bool = True
    require_fields_on_complete: bool = False
    display_precision: int = Field(default=2, ge=0, le=10)
    non_finite_marker: str = "—"
    event_log_size: int = Field(default=1000, ge=1)
    log_level: str = "INFO"


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(path: Optional[str] = None) -> EngineConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to PROPFLOW_CONFIG env
            variable or 'propflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("PROPFLOW_CONFIG", "propflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = EngineConfig(**data)
    else:
        config = EngineConfig()

    policy = os.getenv("PROPFLOW_REFERENCE_POLICY")
    if policy:
        config = EngineConfig(**{**config.model_dump(), "unresolved_reference_policy": policy})
    strict = os.getenv("PROPFLOW_STRICT_SEQUENCING")
    if strict:
        config.strict_sequencing = _env_flag(strict)
    return config


def configure_logging(level: Optional[str] = None) -> None:
    """Send engine logs to stderr with a plain format."""

    logging.basicConfig(
        level=(level or os.getenv("PROPFLOW_LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
