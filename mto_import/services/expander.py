from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from ..models.component import ExplodedComponent
from ..models.component_type import IdentityClass
from ..models.import_result import ImportWarning
from ..models.takeoff_row import ValidatedRow

"""Identity key generation and quantity expansion.

TAG types:  one component, identity = commodity code (quantity not applied).
BULK types: N components, identity = code + "-" + sequence, sequence 1..N
            zero-padded to at least 3 digits (C-001 ... C-999, C-1000).

The suffix is not fixed width once N > 999; ordering must use the integer
``seq`` attribute, not the key text.
"""

__all__ = [
    "SEQUENCE_MIN_WIDTH",
    "ExpansionResult",
    "identity_key",
    "explode_row",
    "explode_rows",
]

SEQUENCE_MIN_WIDTH = 3


@dataclass
class ExpansionResult:
    components: list[ExplodedComponent] = field(default_factory=list)
    warnings: list[ImportWarning] = field(default_factory=list)


def identity_key(cmdty_code: str, identity_class: IdentityClass, sequence: int | None = None) -> str:
    if identity_class is IdentityClass.TAG:
        return cmdty_code
    if sequence is None or sequence < 1:
        raise ValueError(f"bulk identity requires a sequence >= 1, got {sequence!r}")
    return f"{cmdty_code}-{str(sequence).zfill(SEQUENCE_MIN_WIDTH)}"


def explode_row(row: ValidatedRow) -> tuple[list[ExplodedComponent], ImportWarning | None]:
    """Expand one validated row into its components."""
    if row.identity_class is IdentityClass.TAG:
        warning = None
        if row.quantity != 1:
            warning = ImportWarning(
                row=row.row_number,
                column="QTY",
                message=(
                    f"Quantity {row.quantity} ignored for tag-identified type "
                    f"{row.component_type.name}; one component created"
                ),
            )
        component = ExplodedComponent(
            identity_key=identity_key(row.cmdty_code, IdentityClass.TAG),
            component_type=row.component_type,
            drawing_raw=row.drawing_raw,
            drawing_norm=row.drawing_norm,
            row_number=row.row_number,
            sequence=None,
            attributes=dict(row.attributes),
            metadata=row.metadata,
        )
        return [component], warning

    components = []
    for seq in range(1, row.quantity + 1):
        attributes = dict(row.attributes)
        attributes["seq"] = seq
        components.append(
            ExplodedComponent(
                identity_key=identity_key(row.cmdty_code, IdentityClass.BULK, seq),
                component_type=row.component_type,
                drawing_raw=row.drawing_raw,
                drawing_norm=row.drawing_norm,
                row_number=row.row_number,
                sequence=seq,
                attributes=attributes,
                metadata=row.metadata,
            )
        )
    return components, None


def explode_rows(rows: Iterable[ValidatedRow]) -> ExpansionResult:
    """Expand rows in input order (row order, then sequence)."""
    result = ExpansionResult()
    for row in rows:
        components, warning = explode_row(row)
        result.components.extend(components)
        if warning is not None:
            result.warnings.append(warning)
    return result
