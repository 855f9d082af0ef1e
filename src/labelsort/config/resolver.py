"""Helpers that merge configuration sources into a validated model."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Iterable, Mapping, Sequence

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import LabelsortConfig

ENV_PREFIX = "LABELSORT__"


def resolve_with_precedence(
    *,
    defaults: LabelsortConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> LabelsortConfig:
    """Layer overrides on top of ``defaults`` (file, then environment, then CLI).

    Args:
        defaults: Baseline configuration.
        file_overrides: Values read from the YAML configuration file.
        env_overrides: Nested values decoded from ``LABELSORT__`` variables.
        cli_overrides: Values supplied on the command line, keyed by dotted path.

    Returns:
        LabelsortConfig: Validated configuration.

    Raises:
        ConfigError: If a source is malformed or the merged result is invalid.
    """
    merged = defaults.model_dump(mode="python")
    layers: Iterable[tuple[str, Mapping[str, Any] | None]] = (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("cli", cli_overrides),
    )
    for label, layer in layers:
        if layer is None:
            continue
        merged = merge_mappings(merged, expand_dotted(layer, label=label))

    try:
        return LabelsortConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def flatten_for_env(config: LabelsortConfig) -> Dict[str, str]:
    """Render ``config`` as ``LABELSORT__SECTION__KEY`` environment mappings."""
    flat: Dict[str, str] = {}

    def _walk(path: list[str], value: Any) -> None:
        if isinstance(value, dict):
            for key, child in value.items():
                _walk([*path, str(key)], child)
            return
        name = ENV_PREFIX + "__".join(part.upper() for part in path)
        if isinstance(value, list):
            flat[name] = yaml.safe_dump(value, default_flow_style=True).strip()
        elif value is None:
            flat[name] = "null"
        else:
            flat[name] = str(value)

    _walk([], config.model_dump(mode="python"))
    return flat


def parse_env(env: Mapping[str, str]) -> dict[str, Any]:
    """Decode ``LABELSORT__`` variables into a nested override mapping.

    Values are parsed as YAML scalars so ``0.5`` and ``true`` keep their types.
    """
    overrides: dict[str, Any] = {}
    for key, raw in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        segments = [segment.lower() for segment in key[len(ENV_PREFIX) :].split("__") if segment]
        if not segments:
            continue
        try:
            value = yaml.safe_load(raw)
        except yaml.YAMLError:
            value = raw
        assign_path(overrides, segments, value)
    return overrides


def assign_path(target: dict[str, Any], path: Sequence[str], value: Any) -> None:
    """Set ``value`` at ``path`` inside ``target``, creating mappings as needed.

    Raises:
        ConfigError: If an intermediate segment already holds a scalar.
    """
    node = target
    for segment in path[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            raise ConfigError(f"Cannot assign {'.'.join(path)}: {segment} is not a mapping.")
        node = child
    node[path[-1]] = value


def expand_dotted(data: Mapping[str, Any], *, label: str = "override") -> dict[str, Any]:
    """Expand dotted keys (``matching.min_score``) into nested dictionaries."""
    if not isinstance(data, MappingABC):
        raise ConfigError(f"{label.capitalize()} overrides must be a mapping.")

    expanded: dict[str, Any] = {}
    for key, value in data.items():
        if not isinstance(key, str):
            raise ConfigError(f"{label.capitalize()} override keys must be strings.")
        if isinstance(value, MappingABC):
            value = expand_dotted(value, label=label)
        path = key.split(".")
        try:
            existing = _lookup(expanded, path)
        except KeyError:
            existing = None
        if isinstance(existing, dict) and isinstance(value, dict):
            value = merge_mappings(existing, value)
        assign_path(expanded, path, value)
    return expanded


def merge_mappings(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Return a deep merge of ``overrides`` onto ``base`` without mutating either."""
    merged = {key: deepcopy(value) for key, value in base.items()}
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(value, MappingABC) and isinstance(current, MappingABC):
            merged[key] = merge_mappings(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _lookup(data: Mapping[str, Any], path: Sequence[str]) -> Any:
    node: Any = data
    for segment in path:
        if not isinstance(node, MappingABC):
            raise KeyError(segment)
        node = node[segment]
    return node


__all__ = [
    "ENV_PREFIX",
    "resolve_with_precedence",
    "flatten_for_env",
    "parse_env",
    "assign_path",
    "expand_dotted",
    "merge_mappings",
]
