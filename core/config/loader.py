"""YAML loading utilities for engine configuration and template definitions."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from core.config.models import InferenceConfig, TemplateDefinition

_PRESETS_DIR = Path(__file__).with_name("presets")


def load_inference_config(path: Path | None = None) -> InferenceConfig:
    """Load and validate inference delimiter configuration from YAML."""

    if path is None:
        return _default_inference_config()
    return _load_inference_config(path)


def load_definition(path: Path) -> TemplateDefinition:
    """Load and validate a template definition from YAML."""

    raw = _read_yaml_mapping(path, kind="Definition")
    try:
        return TemplateDefinition.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid definition schema: {path}") from exc


def load_preset(name: str) -> TemplateDefinition:
    """Load one of the packaged template definitions by name."""

    path = _PRESETS_DIR / f"{name}.yaml"
    if not path.exists():
        raise ValueError(f"Unknown preset: {name}")
    return load_definition(path)


def list_presets() -> list[str]:
    return sorted(path.stem for path in _PRESETS_DIR.glob("*.yaml"))


@lru_cache(maxsize=1)
def _default_inference_config() -> InferenceConfig:
    return _load_inference_config(Path(__file__).with_name("engine.yaml"))


def _load_inference_config(path: Path) -> InferenceConfig:
    raw = _read_yaml_mapping(path, kind="Engine config")
    try:
        return InferenceConfig.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid engine config schema: {path}") from exc


def _read_yaml_mapping(path: Path, *, kind: str) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"{kind} file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {kind.lower()} file: {path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"{kind} file must contain a mapping: {path}")
    return raw
