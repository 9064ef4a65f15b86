"""Merge configuration layers into a validated ``FilingDeskConfig``."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Mapping

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import FilingDeskConfig

ENV_PREFIX = "FILINGDESK__"


def resolve_with_precedence(
    *,
    defaults: FilingDeskConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> FilingDeskConfig:
    """Layer overrides on top of defaults (file < environment < CLI) and validate.

    Args:
        defaults: Baseline configuration.
        file_overrides: Values read from the YAML file.
        env_overrides: Values extracted from ``FILINGDESK__`` variables.
        cli_overrides: Dotted-key overrides supplied on the command line.

    Returns:
        FilingDeskConfig: Validated configuration.

    Raises:
        ConfigError: If any layer is malformed or the merged result is invalid.
    """
    merged: dict[str, Any] = defaults.model_dump(mode="python")
    layers = (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("cli", cli_overrides),
    )
    for layer_name, layer in layers:
        if layer is None:
            continue
        merged = _deep_merge(merged, _expand_dotted(layer, layer_name=layer_name))

    try:
        return FilingDeskConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def flatten_for_env(config: FilingDeskConfig) -> Dict[str, str]:
    """Render the config as ``FILINGDESK__SECTION__KEY`` environment variables."""
    flat: Dict[str, str] = {}

    def _walk(path: list[str], value: Any) -> None:
        if isinstance(value, dict):
            for key, child in value.items():
                _walk(path + [str(key)], child)
            return
        name = ENV_PREFIX + "__".join(segment.upper() for segment in path)
        if isinstance(value, list):
            flat[name] = yaml.safe_dump(value, default_flow_style=True).strip()
        elif value is None:
            flat[name] = "null"
        else:
            flat[name] = str(value)

    for section, payload in config.model_dump(mode="python").items():
        _walk([section], payload)
    return flat


def _expand_dotted(source: Mapping[str, Any], *, layer_name: str) -> dict[str, Any]:
    if not isinstance(source, MappingABC):
        raise ConfigError(f"{layer_name.capitalize()} overrides must be a mapping.")

    expanded: dict[str, Any] = {}
    for key, value in source.items():
        if not isinstance(key, str):
            raise ConfigError(f"{layer_name.capitalize()} override keys must be strings.")
        _place(expanded, key.split("."), value, layer_name=layer_name)
    return expanded


def _place(target: dict[str, Any], path: list[str], value: Any, *, layer_name: str) -> None:
    node = target
    for segment in path[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            raise ConfigError(
                f"{layer_name.capitalize()} override for {'.'.join(path)} "
                "conflicts with an existing value."
            )
        node = child

    leaf = path[-1]
    if isinstance(value, MappingABC):
        nested = _expand_dotted(value, layer_name=layer_name)
        current = node.get(leaf)
        node[leaf] = _deep_merge(current if isinstance(current, dict) else {}, nested)
    else:
        node[leaf] = value


def _deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    result = {key: deepcopy(value) for key, value in base.items()}
    for key, value in overrides.items():
        existing = result.get(key)
        if isinstance(value, MappingABC) and isinstance(existing, MappingABC):
            result[key] = _deep_merge(existing, value)
        else:
            result[key] = deepcopy(value)
    return result


__all__ = ["ENV_PREFIX", "resolve_with_precedence", "flatten_for_env"]
