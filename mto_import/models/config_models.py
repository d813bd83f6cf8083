from __future__ import annotations

from dataclasses import dataclass, field

from .component_type import DEFAULT_COMPONENT_TYPES, ComponentTaxonomy, IdentityClass

"""Config dataclasses for the takeoff import tool.

Built by mto_import.config.loader from config/import.yml; every value has a
default so ImportConfig() alone is a usable configuration.
"""

DEFAULT_MAX_FILE_BYTES = 5 * 1024 * 1024
DEFAULT_MAX_ROWS = 10_000
# PostgreSQL bind parameter ceiling (Int16 count in the wire protocol)
DEFAULT_MAX_PARAMETERS = 65_535
DEFAULT_STATEMENT_TIMEOUT_MS = 60_000


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None
    max_parameters: int = DEFAULT_MAX_PARAMETERS
    statement_timeout_ms: int = DEFAULT_STATEMENT_TIMEOUT_MS


@dataclass(frozen=True)
class LimitsConfig:
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    max_rows: int = DEFAULT_MAX_ROWS


@dataclass(frozen=True)
class CsvConfig:
    delimiter: str = ","
    # 旧フォーマットの列。存在しても黙って無視する
    ignored_columns: frozenset[str] = frozenset({"ITEM"})


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for the import process."""
    project_id: str | None = None
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    csv: CsvConfig = field(default_factory=CsvConfig)
    component_types: dict[str, IdentityClass] = field(
        default_factory=lambda: dict(DEFAULT_COMPONENT_TYPES)
    )
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    error_log_dir: str = "./logs"

    @property
    def taxonomy(self) -> ComponentTaxonomy:
        return ComponentTaxonomy.from_mapping(self.component_types)
