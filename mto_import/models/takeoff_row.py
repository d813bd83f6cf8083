from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .component_type import ComponentTypeDef, IdentityClass

"""Row models for the takeoff import pipeline.

TakeoffRow is the typed form of one header-keyed record straight out of the
parser; nothing after the parser sees raw string maps. ValidatedRow is what
survives the row validator: canonical type, integer quantity and normalized
keys, ready for expansion. metadata holds the optional parent-record names
(area, system, test package) the row links to.
"""

__all__ = [
    "TakeoffRow",
    "ValidatedRow",
]


@dataclass(frozen=True)
class TakeoffRow:
    """One data record of the takeoff file (all values are raw strings).

    row_number is the 1-based record position with the header as row 1, so the
    first data record is row 2.
    """
    row_number: int
    drawing: str
    type: str
    qty: str
    cmdty_code: str
    spec: str = ""
    description: str = ""
    size: str = ""
    comments: str = ""
    area: str = ""
    system: str = ""
    test_package: str = ""
    extra: dict[str, str] = field(default_factory=dict)  # unmapped columns (non-empty only)


@dataclass(frozen=True)
class ValidatedRow:
    """A row that passed validation and has quantity >= 1."""
    row_number: int
    drawing_raw: str
    drawing_norm: str
    component_type: ComponentTypeDef
    quantity: int
    cmdty_code: str  # normalized
    size_norm: str
    attributes: dict[str, Any]  # spec/description/size/size_norm/cmdty_code/comments/original_qty
    metadata: dict[str, str] = field(default_factory=dict)  # area / system / test_package -> name

    @property
    def identity_class(self) -> IdentityClass:
        return self.component_type.identity_class
