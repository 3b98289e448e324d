"""
Builds an AppConfig from four layers, each overriding the one before:
schema defaults, the YAML file given with ``-c``, ``SAVOR_*`` environment
variables, then command-line flags.

Layers are merged key by key, so setting ``llm.model`` in the environment
leaves ``llm.provider`` from the YAML file in place.
"""

import os
from pathlib import Path
from typing import Any

import yaml

from .schema import AppConfig


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``base`` with ``override`` laid over it, nested dicts included."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml_config(config_path: Path | None) -> dict[str, Any]:
    """Read the YAML layer. No path means no layer; an empty file counts as ``{}``."""
    if not config_path:
        return {}

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
        return data if data else {}


def load_env_overrides() -> dict[str, Any]:
    """Collect the environment layer.

    SAVOR_MODEL and SAVOR_API_BASE feed ``llm``, SAVOR_PROVIDER too
    (lower-cased). SAVOR_DB_PATH sets ``storage.path`` and SAVOR_LOG_LEVEL
    sets ``logging.level``. Unset or empty variables contribute nothing.
    """
    overrides: dict[str, Any] = {}

    if model := os.environ.get("SAVOR_MODEL"):
        overrides.setdefault("llm", {})["model"] = model

    if provider := os.environ.get("SAVOR_PROVIDER"):
        overrides.setdefault("llm", {})["provider"] = provider.lower()

    if api_base := os.environ.get("SAVOR_API_BASE"):
        overrides.setdefault("llm", {})["api_base"] = api_base

    if db_path := os.environ.get("SAVOR_DB_PATH"):
        overrides.setdefault("storage", {})["path"] = db_path

    if log_level := os.environ.get("SAVOR_LOG_LEVEL"):
        overrides.setdefault("logging", {})["level"] = log_level.lower()

    return overrides


def apply_cli_overrides(config_dict: dict[str, Any], cli_args: dict[str, Any]) -> dict[str, Any]:
    """Lay the global flags (--model, --api-base, --db, --log-file, -v) over ``config_dict``.

    Flags left at their click default (None) do not override anything.
    """
    overrides: dict[str, Any] = {}

    if cli_args.get("model"):
        overrides.setdefault("llm", {})["model"] = cli_args["model"]

    if cli_args.get("api_base"):
        overrides.setdefault("llm", {})["api_base"] = cli_args["api_base"]

    if cli_args.get("db"):
        overrides.setdefault("storage", {})["path"] = cli_args["db"]

    if cli_args.get("log_file"):
        overrides.setdefault("logging", {})["file"] = cli_args["log_file"]

    if cli_args.get("verbose") is not None:
        overrides.setdefault("logging", {})["verbose"] = cli_args["verbose"]

    return deep_merge(config_dict, overrides)


def load_config(
    config_path: Path | None = None,
    cli_args: dict[str, Any] | None = None,
) -> AppConfig:
    """Merge every layer and validate the result.

    Raises:
        FileNotFoundError: ``config_path`` was given but does not exist
        pydantic.ValidationError: The merged settings fail the schema
    """
    cli_args = cli_args or {}

    merged = deep_merge(load_yaml_config(config_path), load_env_overrides())
    merged = apply_cli_overrides(merged, cli_args)

    # Anything still missing takes the schema default
    return AppConfig(**merged)
