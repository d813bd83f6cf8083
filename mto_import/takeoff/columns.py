from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

"""Header -> field resolution for takeoff files.

Headers are matched to the canonical field names in three tiers:
exact, case-insensitive, then a small synonym table ("DWG", "QUANTITY", ...).
A header maps to at most one field; the first matching header wins.
"""

__all__ = [
    "REQUIRED_FIELDS",
    "OPTIONAL_FIELDS",
    "COLUMN_SYNONYMS",
    "ColumnResolution",
    "resolve_columns",
]

REQUIRED_FIELDS: tuple[str, ...] = ("DRAWING", "TYPE", "QTY", "CMDTY CODE")
OPTIONAL_FIELDS: tuple[str, ...] = (
    "SPEC",
    "DESCRIPTION",
    "SIZE",
    "COMMENTS",
    "AREA",
    "SYSTEM",
    "TEST_PACKAGE",
)

COLUMN_SYNONYMS: dict[str, tuple[str, ...]] = {
    "DRAWING": ("DRAWINGS", "DRAWING NUMBER", "DWG", "DWG NO", "DWG NUM"),
    "CMDTY CODE": ("COMMODITY CODE", "CMDTY", "COMMODITY", "PART CODE"),
    "QTY": ("QUANTITY", "COUNT", "CNT"),
    "SIZE": ("NOM SIZE", "NOMINAL SIZE", "NOMSIZE"),
    "SPEC": ("SPECIFICATION", "MATERIAL SPEC", "MAT SPEC"),
    "COMMENTS": ("COMMENT", "NOTES", "NOTE", "REMARKS"),
    "AREA": ("PLANT AREA",),
    "SYSTEM": ("SYS", "SYSTEM NO"),
    "TEST_PACKAGE": ("TEST PACKAGE", "TESTPACKAGE", "TEST PKG"),
}


@dataclass(frozen=True)
class ColumnResolution:
    mapping: dict[str, str]  # ファイル上のヘッダ -> 正規フィールド名
    missing_required: list[str]
    unmapped: list[str] = field(default_factory=list)
    ignored: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing_required

    def header_for(self, field_name: str) -> str | None:
        for header, mapped in self.mapping.items():
            if mapped == field_name:
                return header
        return None


def _find_header(field_name: str, headers: Sequence[str], taken: set[str]) -> str | None:
    free = [h for h in headers if h not in taken]
    for h in free:
        if h == field_name:
            return h
    for h in free:
        if h.upper() == field_name:
            return h
    synonyms = COLUMN_SYNONYMS.get(field_name, ())
    for h in free:
        if h.upper() in synonyms:
            return h
    return None


def resolve_columns(headers: Iterable[str], ignored_columns: Iterable[str] = ()) -> ColumnResolution:
    """Resolve trimmed header names to canonical fields.

    Columns named in ``ignored_columns`` (case-insensitive) are dropped before
    matching and reported in ``ignored``.
    """
    ignored_upper = {c.strip().upper() for c in ignored_columns}
    all_headers = [h.strip() for h in headers]
    ignored = [h for h in all_headers if h.upper() in ignored_upper]
    candidates = [h for h in all_headers if h.upper() not in ignored_upper]

    mapping: dict[str, str] = {}
    taken: set[str] = set()
    missing: list[str] = []
    for field_name in REQUIRED_FIELDS + OPTIONAL_FIELDS:
        header = _find_header(field_name, candidates, taken)
        if header is None:
            if field_name in REQUIRED_FIELDS:
                missing.append(field_name)
            continue
        mapping[header] = field_name
        taken.add(header)

    unmapped = [h for h in candidates if h not in taken and h != ""]
    return ColumnResolution(mapping=mapping, missing_required=missing, unmapped=unmapped, ignored=ignored)
