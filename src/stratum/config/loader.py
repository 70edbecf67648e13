# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/stratum/config/loader.py

import logging
import os
import yaml
from pathlib import Path

from stratum.inventory.loader import load_inventory_document
from .models import StratumConfig

log = logging.getLogger("stratum")


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


def _find_secrets_file(config_path: Path) -> Path | None:
    """
    Locate secrets.yaml using this priority:

    1. STRATUM_SECRETS_FILE environment variable (explicit override)
    2. secrets.yaml in the same directory as the config
    """
    env = os.environ.get("STRATUM_SECRETS_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("STRATUM_SECRETS_FILE=%s does not exist, skipping", env)
        return None

    p = config_path.parent / "secrets.yaml"
    if p.is_file():
        return p

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def load_config(path: str | Path) -> StratumConfig:
    """
    Load and validate a stratum YAML config.

    Credentials (object store keys, catalog passwords, ...) can be kept out
    of the main file in two ways, usable together:

    **secrets.yaml**
        A file mirroring the config structure, deep-merged before validation.
        Discovery order:
          1. ``STRATUM_SECRETS_FILE`` env var
          2. ``secrets.yaml`` next to the config file

    **environment variables**
        ``${ENV_VAR}`` placeholders anywhere in either file.

    A string ``inventory`` is a path (relative to the config file) to a YAML
    or INI inventory; it is read here so the returned config is self-contained.
    """
    path = Path(path)
    data = _load_yaml(path)

    secrets_path = _find_secrets_file(path)
    if secrets_path:
        log.debug("Merging secrets from %s", secrets_path)
        _deep_merge(data, _load_yaml(secrets_path))
    else:
        log.debug("No secrets.yaml found, proceeding without secrets merge")

    inventory = data.get("inventory")
    if isinstance(inventory, str):
        inv_path = Path(inventory).expanduser()
        if not inv_path.is_absolute():
            inv_path = path.parent / inv_path
        log.debug("Reading inventory from %s", inv_path)
        data["inventory"] = load_inventory_document(inv_path)

    return StratumConfig.model_validate(data)
