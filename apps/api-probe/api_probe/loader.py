"""Probe suite loading utilities."""

from __future__ import annotations

import json
from pathlib import Path

import yaml

from .models import ProbeSuite


def load_suite(path: Path) -> ProbeSuite:
    """Load and validate a probe suite from YAML or JSON."""

    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError(f"Suite file {path} must contain a mapping")
    return ProbeSuite.model_validate(data)
