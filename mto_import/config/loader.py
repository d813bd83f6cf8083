from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.component_type import ComponentTaxonomy, IdentityClass
from ..models.config_models import CsvConfig, DatabaseConfig, ImportConfig, LimitsConfig

"""Config loader.

Responsibilities:
- Load YAML config (default config/import.yml)
- Validate against config_schema.json (no unknown keys)
- Apply defaults for every missing key
"""

__all__ = [
    "ConfigError",
    "SCHEMA_PATH",
    "DEFAULT_CONFIG_PATH",
    "load_config",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against JSON schema.

    Raises:
        ConfigError: schema file missing / not JSON, or the data fails validation
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _build_config(data: dict[str, Any]) -> ImportConfig:
    limits_raw = data.get("limits", {})
    limits = LimitsConfig(
        max_file_bytes=limits_raw.get("max_file_bytes", LimitsConfig.max_file_bytes),
        max_rows=limits_raw.get("max_rows", LimitsConfig.max_rows),
    )

    csv_raw = data.get("csv", {})
    csv_cfg = CsvConfig(
        delimiter=csv_raw.get("delimiter", CsvConfig.delimiter),
        ignored_columns=(
            frozenset(c.strip().upper() for c in csv_raw["ignored_columns"])
            if "ignored_columns" in csv_raw
            else CsvConfig.ignored_columns
        ),
    )

    db_raw = data.get("database", {})
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
        max_parameters=db_raw.get("max_parameters", DatabaseConfig.max_parameters),
        statement_timeout_ms=db_raw.get("statement_timeout_ms", DatabaseConfig.statement_timeout_ms),
    )

    kwargs: dict[str, Any] = {
        "project_id": data.get("project_id"),
        "limits": limits,
        "csv": csv_cfg,
        "database": db,
    }
    if "component_types" in data:
        component_types = {
            name: IdentityClass(ic) for name, ic in data["component_types"].items()
        }
        ComponentTaxonomy.from_mapping(component_types)  # 大文字小文字違いの重複で ValueError
        kwargs["component_types"] = component_types
    if "error_log_dir" in data:
        kwargs["error_log_dir"] = data["error_log_dir"]
    return ImportConfig(**kwargs)


def load_config(path: Path | None = None) -> ImportConfig:
    """Load and validate the YAML config at ``path``.

    ``None`` returns the built-in defaults without touching the filesystem.
    """
    if path is None:
        return ImportConfig()
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")

    _validate_config_schema(data)

    try:
        return _build_config(data)
    except ValueError as e:
        raise ConfigError(f"invalid config: {e}") from e
