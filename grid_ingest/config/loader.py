from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..services.coercion import CoercionPolicy, FieldType

"""Config loader.

Responsibilities:
- Load YAML (config/ingest.yml by default)
- Validate against ingest_schema.json (shipped next to this module)
- Apply defaults and expose typed dataclasses
"""

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "TableConfig",
    "IngestConfig",
    "parse_config",
    "load_config",
    "SCHEMA_PATH",
    "DEFAULT_CONFIG_PATH",
]

SCHEMA_PATH = Path(__file__).with_name("ingest_schema.json")
DEFAULT_CONFIG_PATH = Path("config/ingest.yml")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class TableConfig:
    """Destination table settings.

    aliases map source header text -> destination column, used by
    services.header_mapping when the file headers differ from column names.
    """
    name: str
    conflict_key: str | None = None
    columns: list[str] = field(default_factory=list)
    aliases: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class IngestConfig:
    tables: dict[str, TableConfig] = field(default_factory=dict)
    field_types: dict[str, FieldType] = field(default_factory=dict)
    truth_tokens: list[str] | None = None
    null_sentinels: list[str] = field(default_factory=list)
    dayfirst: bool = False
    delimiter: str = ","
    skip_header_lines: int = 0
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    def coercion_policy(self) -> CoercionPolicy:
        """Built-in field table with this config's entries merged on top."""
        return CoercionPolicy().with_overrides(
            field_types=self.field_types,
            truth_tokens=self.truth_tokens,
            null_sentinels=self.null_sentinels,
            dayfirst=self.dayfirst,
        )

    def table(self, name: str) -> TableConfig | None:
        return self.tables.get(name)


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or unreadable, or the data violates it
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


def parse_config(data: dict[str, Any]) -> IngestConfig:
    """Validated dict -> IngestConfig."""
    _validate_config_schema(data)
    tables = {
        name: TableConfig(
            name=name,
            conflict_key=raw.get("conflict_key"),
            columns=list(raw.get("columns", [])),
            aliases=dict(raw.get("aliases", {})),
        )
        for name, raw in (data.get("tables") or {}).items()
    }
    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return IngestConfig(
        tables=tables,
        field_types={k: FieldType(v) for k, v in (data.get("field_types") or {}).items()},
        truth_tokens=data.get("truth_tokens"),
        null_sentinels=list(data.get("null_sentinels") or []),
        dayfirst=bool(data.get("dayfirst", False)),
        delimiter=data.get("delimiter", ","),
        skip_header_lines=int(data.get("skip_header_lines", 0)),
        database=db,
    )


def load_config(path: Path) -> IngestConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")
    return parse_config(data)
