from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..exceptions import RowValidationError
from ..models.component_type import ComponentTaxonomy
from ..models.import_result import ImportErrorRecord, ImportWarning
from ..models.takeoff_row import TakeoffRow, ValidatedRow
from .normalizer import normalize_commodity_code, normalize_drawing, normalize_size

"""Row-level validation.

Every row is checked independently and every violation is collected; the
outcome is returned as a value so concurrent imports never share state.

Checks per row: DRAWING non-empty, TYPE in the taxonomy (case-insensitive,
canonical casing kept), QTY a non-negative integer, CMDTY CODE non-empty.
QTY = 0 is not an error: the row is skipped with a warning.

AREA, SYSTEM and TEST_PACKAGE are optional; blank cells leave the component
unlinked.
"""

__all__ = [
    "RowValidationOutcome",
    "parse_quantity",
    "validate_row",
    "validate_rows",
    "row_metadata",
    "METADATA_KINDS",
    "INVALID_NUMBER",
    "ZERO_QTY_WARNING",
]

INVALID_NUMBER = "Invalid data type (expected number)"
ZERO_QTY_WARNING = "Quantity is 0; row skipped"

METADATA_KINDS: tuple[str, ...] = ("area", "system", "test_package")


@dataclass
class RowValidationOutcome:
    """Accumulator returned by validate_rows()."""
    valid: list[ValidatedRow] = field(default_factory=list)
    skipped: list[ImportWarning] = field(default_factory=list)
    errors: list[ImportErrorRecord] = field(default_factory=list)
    rows_seen: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise RowValidationError(
                f"{len(self.errors)} validation error(s) in {len({e.row for e in self.errors})} row(s)",
                errors=self.errors,
            )


def _error(row: int, column: str, reason: str) -> ImportErrorRecord:
    return ImportErrorRecord(row=row, column=column, reason=reason, kind="row")


def row_metadata(row: TakeoffRow) -> dict[str, str]:
    """kind -> trimmed parent-record name, blank cells omitted."""
    metadata: dict[str, str] = {}
    for kind in METADATA_KINDS:
        name = getattr(row, kind).strip()
        if name:
            metadata[kind] = name
    return metadata


def _format_number(value: float) -> str:
    return str(int(value)) if value.is_integer() else repr(value)


def parse_quantity(raw: str) -> tuple[int | None, str | None]:
    """Coerce a QTY cell to a non-negative integer.

    Returns (quantity, None) on success or (None, reason) on failure.
    """
    text = raw.strip()
    if text == "":
        return None, "Required field QTY is empty"
    try:
        value = float(text)
    except ValueError:
        return None, INVALID_NUMBER
    if not math.isfinite(value):
        return None, INVALID_NUMBER
    if value < 0 or not value.is_integer():
        return None, f"Invalid quantity (expected integer >= 0, got {_format_number(value)})"
    return int(value), None


def validate_row(
    row: TakeoffRow, taxonomy: ComponentTaxonomy
) -> tuple[ValidatedRow | None, ImportWarning | None, list[ImportErrorRecord]]:
    """Validate one row.

    Returns (validated_row, skip_warning, errors); at most one of the first two
    is set and both are None when errors is non-empty.
    """
    n = row.row_number
    errors: list[ImportErrorRecord] = []

    if row.drawing.strip() == "":
        errors.append(_error(n, "DRAWING", "Required field DRAWING is empty"))

    ctype = None
    if row.type.strip() == "":
        errors.append(_error(n, "TYPE", "Required field TYPE is empty"))
    else:
        ctype = taxonomy.match(row.type)
        if ctype is None:
            errors.append(
                _error(
                    n,
                    "TYPE",
                    f'Invalid component type "{row.type.strip()}" '
                    f"(expected one of: {', '.join(taxonomy.names)})",
                )
            )

    qty, qty_reason = parse_quantity(row.qty)
    if qty_reason is not None:
        errors.append(_error(n, "QTY", qty_reason))

    if row.cmdty_code.strip() == "":
        errors.append(_error(n, "CMDTY CODE", "Required field CMDTY CODE is empty"))

    if errors or ctype is None or qty is None:
        return None, None, errors

    if qty == 0:
        return None, ImportWarning(row=n, column="QTY", message=ZERO_QTY_WARNING), []

    cmdty = normalize_commodity_code(row.cmdty_code)
    size_norm = normalize_size(row.size)
    attributes: dict[str, object] = {
        "spec": row.spec.strip(),
        "description": row.description.strip(),
        "size": row.size.strip(),
        "size_norm": size_norm,
        "cmdty_code": cmdty,
        "comments": row.comments.strip(),
        "original_qty": qty,
    }
    for key, value in row.extra.items():
        # 既知属性は上書きしない
        attributes.setdefault(key, value)

    validated = ValidatedRow(
        row_number=n,
        drawing_raw=row.drawing,
        drawing_norm=normalize_drawing(row.drawing),
        component_type=ctype,
        quantity=qty,
        cmdty_code=cmdty,
        size_norm=size_norm,
        attributes=attributes,
        metadata=row_metadata(row),
    )
    return validated, None, []


def validate_rows(rows: Iterable[TakeoffRow], taxonomy: ComponentTaxonomy) -> RowValidationOutcome:
    """Validate all rows, never stopping at the first failure."""
    outcome = RowValidationOutcome()
    for row in rows:
        outcome.rows_seen += 1
        validated, warning, errors = validate_row(row, taxonomy)
        if errors:
            outcome.errors.extend(errors)
        elif warning is not None:
            outcome.skipped.append(warning)
        elif validated is not None:
            outcome.valid.append(validated)
    return outcome
