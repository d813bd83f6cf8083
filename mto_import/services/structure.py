from __future__ import annotations

import logging

from ..exceptions import StructuralError
from ..models.config_models import ImportConfig
from ..models.import_result import ImportErrorRecord
from ..takeoff.columns import resolve_columns
from ..takeoff.reader import ParsedTakeoff, read_header, read_takeoff

"""Structural validation (whole-file checks).

Runs once, before any row is looked at. In order:

1. every required column is present (all missing columns in one error)
2. file size <= limits.max_file_bytes
3. data row count <= limits.max_rows

Any failure raises StructuralError and nothing downstream runs. An undecodable
byte stream fails inside the reader with the same exception.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "check_structure",
]


def _fail(reason: str, column: str = "") -> StructuralError:
    return StructuralError(reason, errors=[ImportErrorRecord(row=0, column=column, reason=reason, kind="structural")])


def _format_mb(n: int) -> str:
    return f"{n / (1024 * 1024):.2f}MB"


def check_structure(data: bytes, config: ImportConfig) -> ParsedTakeoff:
    """Validate file structure and return the parsed, typed rows.

    Raises:
        StructuralError: bad encoding, missing columns, oversize file or too many rows
    """
    delimiter = config.csv.delimiter
    header = read_header(data, delimiter)
    resolution = resolve_columns(header, config.csv.ignored_columns)
    if resolution.ignored:
        logger.debug("ignoring legacy columns: %s", resolution.ignored)

    if not resolution.complete:
        missing = ", ".join(resolution.missing_required)
        raise _fail(f"Missing required columns: {missing}", column=missing)

    limits = config.limits
    if len(data) > limits.max_file_bytes:
        raise _fail(
            f"File too large: {_format_mb(len(data))} (max {_format_mb(limits.max_file_bytes)})"
        )

    parsed = read_takeoff(data, delimiter, config.csv.ignored_columns)
    # 空行は件数に含めない
    if len(parsed.rows) > limits.max_rows:
        raise _fail(f"Too many rows: {len(parsed.rows)} (max {limits.max_rows})")

    logger.debug("structure ok: columns=%s rows=%d", parsed.columns, len(parsed.rows))
    return parsed
