# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/config/loader.py

import copy
import logging
import os
from pathlib import Path
from typing import Mapping, Optional

import yaml
from pydantic import ValidationError

from ocsgitops.errors import ConfigurationError
from .defaults import DEFAULTS, ENV_OVERRIDES, UNIT_NAMESPACE_ENV
from .models import DriverConfig

log = logging.getLogger("ocsgitops")

CONFIG_ENV = "OCSGITOPS_CONFIG"


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    data = yaml.safe_load(expanded) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top-level YAML must be a mapping", step="configuration")
    return data


def _set_path(data: dict, keys: tuple, value) -> None:
    node = data
    for k in keys[:-1]:
        node = node.setdefault(k, {})
    node[keys[-1]] = value


def _env_overrides(data: dict, env: Mapping[str, str]) -> None:
    for var, keys in ENV_OVERRIDES.items():
        value = env.get(var)
        # empty counts as unset, same as `[[ -z "$VAR" ]]`
        if value is None or value.strip() == "":
            continue
        _set_path(data, keys, value)

    units = data.get("units") or []
    for var, unit_name in UNIT_NAMESPACE_ENV.items():
        value = (env.get(var) or "").strip()
        if not value:
            continue
        for unit in units:
            if unit.get("name") == unit_name:
                unit["namespace"] = value
                operator = unit.get("operator")
                # an operator installed next to its workload follows the namespace
                if operator and operator.get("namespace") not in (None, "openshift-operators"):
                    operator["namespace"] = value


def load_config(
    path: Optional[str | Path] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> DriverConfig:
    """
    Build the driver configuration.

    Sources, later wins:
      1. baked-in defaults (``config.defaults``)
      2. YAML file: *path*, else ``$OCSGITOPS_CONFIG`` when set
      3. environment variables (GIT_TOKEN, GIT_REPO, ARGO_NAMESPACE, ...)

    A YAML ``units`` list replaces the default units entirely.
    Validation problems are raised as ConfigurationError.
    """
    env = os.environ if env is None else env
    data = copy.deepcopy(DEFAULTS)

    if path is None and env.get(CONFIG_ENV):
        path = env[CONFIG_ENV]

    if path is not None:
        path = Path(path)
        if not path.is_file():
            raise ConfigurationError(f"config file not found: {path}", step="configuration")
        log.debug("Merging config file %s", path)
        _deep_merge(data, _load_yaml(path))
    else:
        log.debug("No config file given; using defaults and environment")

    _env_overrides(data, env)

    try:
        return DriverConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}", step="configuration") from e
