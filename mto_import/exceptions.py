from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models.import_result import ImportErrorRecord

"""Exception taxonomy for the takeoff import pipeline.

Every stage raises one of these; the orchestrator is the only place that turns
them into a failed ImportResult. Validation failures carry the full list of
ImportErrorRecord objects collected by the stage, persistence failures carry
the internal detail that must never reach the user.
"""

__all__ = [
    "TakeoffImportError",
    "StructuralError",
    "RowValidationError",
    "DuplicateKeyError",
    "PersistenceError",
    "AccessDeniedError",
]


class TakeoffImportError(Exception):
    """Base class for all pipeline failures."""

    kind = "import"

    def __init__(self, message: str, errors: list[ImportErrorRecord] | None = None) -> None:
        super().__init__(message)
        self.errors: list[ImportErrorRecord] = list(errors or [])


class StructuralError(TakeoffImportError):
    """Whole-file rejection: encoding, missing columns, size or row ceilings."""

    kind = "structural"


class RowValidationError(TakeoffImportError):
    """One or more rows failed field level validation."""

    kind = "row"


class DuplicateKeyError(TakeoffImportError):
    """Identity key collision inside the file or against persisted components."""

    kind = "duplicate"


class PersistenceError(TakeoffImportError):
    """Database failure during the import transaction (always rolled back)."""

    kind = "persistence"

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.detail = detail or message


class AccessDeniedError(Exception):
    """Raised by a permission gate before the pipeline starts."""
