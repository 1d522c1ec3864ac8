from __future__ import annotations

import argparse
import json
import os
import re
import sys
import time
from contextlib import ExitStack
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from grid_ingest.config.loader import DEFAULT_CONFIG_PATH, ConfigError, IngestConfig, load_config
from grid_ingest.db.connection import connect
from grid_ingest.db.destination import Destination, PostgresDestination
from grid_ingest.db.errors import FetchError
from grid_ingest.grid.reader import GridReadError, read_grid
from grid_ingest.logging.error_log import BatchErrorLog
from grid_ingest.logging.init import log_summary, setup_logging
from grid_ingest.models.selection import FieldMappingSpec, ItemListSpec, RangeSpec, SelectionSpec
from grid_ingest.models.table import MaterializedTable
from grid_ingest.services.field_mapping import FieldMappingError
from grid_ingest.services.header_mapping import apply_header_map, match_headers
from grid_ingest.services.materialize import extract_table
from grid_ingest.services.persistence import persist_table
from grid_ingest.services.summary import render_summary_line
from grid_ingest.services.sync import RecordAnalysis, SyncError, SyncMode, classify_records, sync_records

"""CLI entrypoint.

    grid-ingest extract FILE (--rows 2-20 --cols A-C | --items "A1,B2-B9" | --map field=A2 ...)
    grid-ingest ingest FILE --table T [--conflict-key K] [--preview | --only new|update|all] (selection flags)

--preview compares the table with existing rows by conflict key and writes
nothing; --only does the same comparison and then writes the chosen group.

Exit codes: 0 all records written (or preview done), 2 one or more records
failed, 1 fatal (config, input shape, unreadable file, destination not
available, existing rows unreadable).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

_ROW_SPAN_RE = re.compile(r"^\s*(\d+)\s*(?:-\s*(\d+)\s*)?$")
_COL_SPAN_RE = re.compile(r"^\s*([A-Za-z]+)\s*(?:-\s*([A-Za-z]+)\s*)?$")


class UsageError(Exception):
    """Bad selection flags."""


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env (values override the process environment)."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _add_selection_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("file", type=Path, help="CSV / text / xlsx input")
    p.add_argument("--sheet", help="Worksheet name for xlsx input (default: first)")
    p.add_argument("--rows", help="Range mode rows, 1-based: '2-20'")
    p.add_argument("--cols", help="Range mode columns: 'A-C'")
    p.add_argument("--items", help="Item-list mode: 'A1, B2-B9, D4'")
    p.add_argument(
        "--map",
        action="append",
        default=[],
        metavar="FIELD=CELL",
        help="Field-mapping mode, repeatable: --map sku=A2 --map total=C2",
    )


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="grid-ingest", description="Spreadsheet selection extractor and tolerant ingester")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=None, help=f"Config file (default: {DEFAULT_CONFIG_PATH})")
    sub = p.add_subparsers(dest="command", required=True)

    extract = sub.add_parser("extract", help="Print the selected cells as a JSON table")
    _add_selection_args(extract)

    ingest = sub.add_parser("ingest", help="Extract and write the table to the database")
    _add_selection_args(ingest)
    ingest.add_argument("--table", required=True, help="Destination table")
    ingest.add_argument("--conflict-key", default=None, help="Natural key for upsert (default: table config)")
    ingest.add_argument(
        "--map-headers",
        action="store_true",
        help="Rename headers to the configured table columns (aliases, then normalized names)",
    )
    ingest.add_argument("--json", action="store_true", help="Print the batch outcome (or the analysis) as JSON")
    sync = ingest.add_mutually_exclusive_group()
    sync.add_argument(
        "--preview",
        action="store_true",
        help="Compare with existing rows by conflict key and report new/update/unchanged; write nothing",
    )
    sync.add_argument(
        "--only",
        choices=[m.value for m in SyncMode],
        default=None,
        help="Compare with existing rows first, then write only new, only changed, or both",
    )
    return p.parse_args(argv)


def _split_span(pattern: re.Pattern[str], text: str, what: str) -> tuple[str, str]:
    m = pattern.match(text or "")
    if not m:
        raise UsageError(f"bad {what} span: {text!r}")
    start = m.group(1)
    return start, m.group(2) or start


def _selection_from_args(args: argparse.Namespace) -> SelectionSpec:
    modes = [bool(args.rows or args.cols), bool(args.items), bool(args.map)]
    if sum(modes) != 1:
        raise UsageError("choose exactly one selection mode: --rows/--cols, --items or --map")
    if args.items:
        return ItemListSpec(expression=args.items)
    if args.map:
        assignments: dict[str, str] = {}
        for item in args.map:
            name, sep, cell = item.partition("=")
            if not sep or not name.strip():
                raise UsageError(f"bad --map entry (expected FIELD=CELL): {item!r}")
            assignments[name.strip()] = cell.strip()
        return FieldMappingSpec(assignments=assignments)
    if not (args.rows and args.cols):
        raise UsageError("range mode needs both --rows and --cols")
    row_start, row_end = _split_span(_ROW_SPAN_RE, args.rows, "row")
    col_start, col_end = _split_span(_COL_SPAN_RE, args.cols, "column")
    return RangeSpec(
        row_start=int(row_start),
        row_end=int(row_end),
        col_start=col_start.upper(),
        col_end=col_end.upper(),
    )


def _load_settings(path: Path | None) -> IngestConfig:
    """Explicit --config must exist; the default path is optional."""
    if path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return IngestConfig()
        path = DEFAULT_CONFIG_PATH
    return load_config(path)


def _open_destination(cfg: IngestConfig, stack: ExitStack, logger) -> Destination | None:
    """Connect to PostgreSQL; None when disabled (DISABLE_DB_CONNECT=1) or unreachable."""
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1")
        return None
    try:
        conn = stack.enter_context(connect(cfg.database))
    except psycopg2.Error as e:
        logger.error(f"database connection failed: {e}")
        return None
    return PostgresDestination(conn)


def _extract(args: argparse.Namespace, cfg: IngestConfig) -> MaterializedTable:
    spec = _selection_from_args(args)
    grid = read_grid(
        args.file,
        sheet=args.sheet,
        delimiter=cfg.delimiter,
        skip_header_lines=cfg.skip_header_lines,
    )
    return extract_table(grid, spec)


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, default=str, indent=2))


def _analyze(
    args: argparse.Namespace,
    cfg: IngestConfig,
    destination: Destination | None,
    table: MaterializedTable,
    conflict_key: str | None,
    logger,
) -> RecordAnalysis | None:
    """Reconcile with existing rows; None (already logged) when it cannot run."""
    if destination is None:
        logger.error("--preview/--only need a database connection")
        return None
    try:
        return classify_records(destination, args.table, table, conflict_key, policy=cfg.coercion_policy())
    except SyncError as e:
        logger.error(f"sync: {e}")
    except FetchError as e:
        logger.error(f"sync: cannot read existing rows of {args.table}: {e.message}")
    return None


def _run_ingest(args: argparse.Namespace, cfg: IngestConfig, table: MaterializedTable, logger) -> int:
    table_cfg = cfg.table(args.table)
    conflict_key = args.conflict_key or (table_cfg.conflict_key if table_cfg else None)
    if args.map_headers:
        if table_cfg is None or not table_cfg.columns:
            logger.error(f"--map-headers needs columns for table '{args.table}' in the config")
            return EXIT_FATAL
        header_map = match_headers(table.headers, table_cfg.columns, table_cfg.aliases)
        logger.info(f"mapped {len(header_map)}/{len(table.headers)} headers to {args.table} columns")
        table = apply_header_map(table, header_map)

    error_log = BatchErrorLog(args.table, source=args.file.name)
    started = time.monotonic()
    with ExitStack() as stack:
        destination = _open_destination(cfg, stack, logger)
        if args.preview or args.only:
            analysis = _analyze(args, cfg, destination, table, conflict_key, logger)
            if analysis is None:
                return EXIT_FATAL
            if args.preview:
                if args.json:
                    _print_json(analysis.to_dict())
                return EXIT_SUCCESS_ALL
            outcome = sync_records(destination, analysis, SyncMode(args.only), error_log=error_log)
        else:
            outcome = persist_table(
                destination,
                args.table,
                table,
                conflict_key,
                policy=cfg.coercion_policy(),
                error_log=error_log,
            )
    elapsed = time.monotonic() - started

    log_path = error_log.flush()
    for err in outcome.errors:
        logger.error(f"record={err.record_identifier} {err.error_type}: {err.message}")
    if log_path is not None:
        logger.info(f"error log: {log_path}")
    if args.json:
        _print_json(outcome.to_dict())

    summary_line = render_summary_line(args.table, outcome, elapsed)
    # log_summary adds the "SUMMARY " label itself
    log_summary(summary_line[len("SUMMARY "):])

    if destination is None:
        return EXIT_FATAL
    return EXIT_SUCCESS_ALL if outcome.success else EXIT_PARTIAL_FAILURE


def main(argv: list[str] | None = None) -> int:
    # None means "read the process arguments"; an empty list is a real empty argv
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = _load_settings(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        table = _extract(args, cfg)
    except UsageError as e:
        logger.error(f"usage: {e}")
        return EXIT_FATAL
    except GridReadError as e:
        logger.error(f"input: {e}")
        return EXIT_FATAL
    except FieldMappingError as e:
        logger.error(f"mapping: {e}")
        return EXIT_FATAL

    logger.info(f"extracted rows={len(table.rows)} headers={len(table.headers)} from {args.file.name}")
    if table.is_empty:
        logger.info("no data in selection")

    if args.command == "extract":
        print(json.dumps(table.to_dict(), ensure_ascii=False, indent=2))
        return EXIT_SUCCESS_ALL

    return _run_ingest(args, cfg, table, logger)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
