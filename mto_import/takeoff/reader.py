from __future__ import annotations

import io
import zipfile
from collections.abc import Iterable
from dataclasses import dataclass

import pandas as pd

from ..exceptions import StructuralError
from ..models.import_result import ImportErrorRecord
from ..models.takeoff_row import TakeoffRow
from .columns import ColumnResolution, resolve_columns

"""Takeoff file reader.

Input is a UTF-8 delimited text export with the header as the first record
(quoted fields may contain the delimiter or newlines). An .xlsx workbook is
also accepted; its first sheet goes through the same path.

Every cell is read as a string (no NA coercion, no numeric inference); typing
happens in the row validator. This module is the only place that handles
header-keyed raw records: frame_to_rows() returns TakeoffRow objects.

Row numbers are record based: header = row 1, first data record = row 2.
Blank records are dropped but still consume their number.
"""

__all__ = [
    "ParsedTakeoff",
    "is_workbook",
    "decode_takeoff",
    "read_header",
    "read_frame",
    "frame_to_rows",
    "read_takeoff",
]

_ZIP_MAGIC = b"PK\x03\x04"

_CSV_OPTIONS = dict(
    dtype=str,
    # 行末区切り (trailing delimiter) で先頭列を index にしない
    index_col=False,
    keep_default_na=False,
    na_filter=False,
    skip_blank_lines=False,
    engine="c",
)


@dataclass
class ParsedTakeoff:
    columns: list[str]
    resolution: ColumnResolution
    rows: list[TakeoffRow]


def _structural(reason: str) -> StructuralError:
    return StructuralError(reason, errors=[ImportErrorRecord(row=0, column="", reason=reason, kind="structural")])


def is_workbook(data: bytes) -> bool:
    return data.startswith(_ZIP_MAGIC)


def decode_takeoff(data: bytes) -> str:
    """Decode UTF-8 bytes (BOM tolerated). Undecodable input is terminal."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise _structural(f"Invalid encoding (expected UTF-8 text): byte offset {e.start}") from e


def _clean_header(columns: list[object]) -> list[str]:
    cleaned = []
    for c in columns:
        name = str(c).strip()
        # pandas は空ヘッダを "Unnamed: N" にする
        if name.startswith("Unnamed:"):
            name = ""
        cleaned.append(name)
    return cleaned


def _read(data: bytes, delimiter: str, nrows: int | None) -> pd.DataFrame:
    if is_workbook(data):
        try:
            df = pd.read_excel(
                io.BytesIO(data),
                sheet_name=0,
                header=0,
                dtype=str,
                keep_default_na=False,
                nrows=nrows,
            )
        except (zipfile.BadZipFile, KeyError, ValueError) as e:
            raise _structural(f"Unreadable workbook: {e}") from e
    else:
        text = decode_takeoff(data)
        try:
            df = pd.read_csv(io.StringIO(text), sep=delimiter, nrows=nrows, **_CSV_OPTIONS)
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
        except pd.errors.ParserError as e:
            raise _structural(f"Malformed delimited text: {e}") from e
    df.columns = _clean_header(list(df.columns))
    return df.fillna("")


def read_header(data: bytes, delimiter: str = ",") -> list[str]:
    """Trimmed header names only (no data rows are parsed)."""
    return list(_read(data, delimiter, nrows=0).columns)


def read_frame(data: bytes, delimiter: str = ",") -> pd.DataFrame:
    return _read(data, delimiter, nrows=None)


def frame_to_rows(df: pd.DataFrame, resolution: ColumnResolution) -> list[TakeoffRow]:
    """Convert the raw frame into typed TakeoffRow objects.

    Ignored (legacy) columns are dropped, unmapped columns with a value are kept
    in TakeoffRow.extra.
    """
    columns = list(df.columns)
    ignored = set(resolution.ignored)
    rows: list[TakeoffRow] = []
    for idx, raw in enumerate(df.itertuples(index=False, name=None)):
        values = ["" if v is None else str(v) for v in raw]
        if all(v.strip() == "" for v in values):
            continue
        fields: dict[str, str] = {}
        extra: dict[str, str] = {}
        for col, val in zip(columns, values, strict=False):
            target = resolution.mapping.get(col)
            if target is not None:
                fields.setdefault(target, val)
            elif col and col not in ignored and val.strip():
                extra[col] = val
        rows.append(
            TakeoffRow(
                row_number=idx + 2,
                drawing=fields.get("DRAWING", ""),
                type=fields.get("TYPE", ""),
                qty=fields.get("QTY", ""),
                cmdty_code=fields.get("CMDTY CODE", ""),
                spec=fields.get("SPEC", ""),
                description=fields.get("DESCRIPTION", ""),
                size=fields.get("SIZE", ""),
                comments=fields.get("COMMENTS", ""),
                area=fields.get("AREA", ""),
                system=fields.get("SYSTEM", ""),
                test_package=fields.get("TEST_PACKAGE", ""),
                extra=extra,
            )
        )
    return rows


def read_takeoff(data: bytes, delimiter: str = ",", ignored_columns: Iterable[str] = ()) -> ParsedTakeoff:
    """Parse a takeoff into typed rows (no limit checks; see check_structure)."""
    frame = read_frame(data, delimiter)
    columns = list(frame.columns)
    resolution = resolve_columns(columns, ignored_columns)
    return ParsedTakeoff(columns=columns, resolution=resolution, rows=frame_to_rows(frame, resolution))
