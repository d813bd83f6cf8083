from __future__ import annotations

import argparse
import json
import os
import sys
from contextlib import closing
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from mto_import.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from mto_import.db.store import PostgresTakeoffStore
from mto_import.logging.init import log_summary, set_debug, setup_logging
from mto_import.models.config_models import ImportConfig
from mto_import.services.orchestrator import import_file
from mto_import.services.summary import render_summary_line

"""CLI entrypoint.

    mto-import FILE [--project-id ID] [--config PATH] [--dry-run] [--debug]
                    [--error-csv PATH] [--json]

Exit codes:
    0  import committed (or dry run passed)
    2  import rejected (structure / row / duplicate / persistence failure)
    1  fatal (config, missing file, database connection)

DISABLE_DB_CONNECT=1 forces dry-run mode (no connection is attempted).
"""

EXIT_SUCCESS = 0
EXIT_REJECTED = 2
EXIT_FATAL = 1


def resolve_dsn(cfg: ImportConfig) -> str:
    """Resolve connection settings.

    優先順位:
        1. `.env` で読み込まれた環境変数 (main() 冒頭で上書き読み込み)
           - DATABASE_URL / PGDSN があれば DSN 全体をそのまま使用
           - 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        2. config/import.yml の database セクション (不足分のフォールバック)
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


def _connect(cfg: ImportConfig):  # pragma: no cover (thin wrapper; tested via integration)
    conn = psycopg2.connect(resolve_dsn(cfg))
    # BEGIN / COMMIT / ROLLBACK は store が明示的に発行する
    conn.autocommit = True
    return conn


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env so that its PostgreSQL settings take precedence."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="mto-import", description="Material takeoff -> PostgreSQL importer")
    p.add_argument("file", type=Path, help="Takeoff file (CSV or .xlsx)")
    p.add_argument("--project-id", help="Target project id (overrides config project_id)")
    p.add_argument("--config", type=Path, help=f"Config file (default: {DEFAULT_CONFIG_PATH} if present)")
    p.add_argument("--dry-run", action="store_true", help="Validate and expand only; write nothing")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--error-csv", type=Path, help="Write Row,Column,Reason CSV here when the import fails")
    p.add_argument("--json", action="store_true", help="Print the result as JSON on stdout")
    return p.parse_args(argv)


def _load(args: argparse.Namespace) -> ImportConfig:
    if args.config is not None:
        return load_config(args.config)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return load_config(None)


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None のときのみシステム引数を読む ([] は「引数なし」として扱う)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug()
        logger.debug("debug mode enabled")

    try:
        cfg = _load(args)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if not args.file.is_file():
        logger.error(f"file not found: {args.file}")
        return EXIT_FATAL

    project_id = args.project_id or cfg.project_id
    dry_run = args.dry_run or os.getenv("DISABLE_DB_CONNECT") == "1"
    if not dry_run and not project_id:
        logger.error("project id required (--project-id or project_id in config)")
        return EXIT_FATAL

    if dry_run:
        logger.debug("dry-run: no database connection")
        result = import_file(args.file, project_id=project_id, config=cfg, store=None)
    else:
        try:
            conn = _connect(cfg)
        except psycopg2.Error as e:
            logger.error(f"database connection failed: {e}")
            return EXIT_FATAL
        with closing(conn), closing(conn.cursor()) as cur:
            store = PostgresTakeoffStore(cur, max_parameters=cfg.database.max_parameters)
            result = import_file(args.file, project_id=project_id, config=cfg, store=store)

    if result.success:
        logger.info(
            f"mode={'dry-run' if result.dry_run else 'live'} components={result.components_created} "
            f"by_type={result.components_by_type}"
        )
    else:
        for err in result.errors:
            logger.error(f"row {err.row} [{err.column or '-'}] {err.reason}")
        if args.error_csv is not None:
            args.error_csv.parent.mkdir(parents=True, exist_ok=True)
            args.error_csv.write_text(result.error_csv or "", encoding="utf-8", newline="")
            logger.info(f"error report written to {args.error_csv}")

    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False))

    # log_summary が "SUMMARY " を付与する
    log_summary(render_summary_line(result)[len("SUMMARY "):])
    return EXIT_SUCCESS if result.success else EXIT_REJECTED

