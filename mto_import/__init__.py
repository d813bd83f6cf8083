"""Material takeoff (MTO) import pipeline.

Converts a tabular takeoff export into individually trackable components in a
PostgreSQL project database. A batch either fully succeeds or leaves no trace.
"""

from .exceptions import (
    AccessDeniedError,
    DuplicateKeyError,
    PersistenceError,
    RowValidationError,
    StructuralError,
    TakeoffImportError,
)
from .models import ImportConfig, ImportResult
from .services.orchestrator import import_file, import_takeoff

__version__ = "0.1.0"

__all__ = [
    "import_takeoff",
    "import_file",
    "ImportConfig",
    "ImportResult",
    "TakeoffImportError",
    "StructuralError",
    "RowValidationError",
    "DuplicateKeyError",
    "PersistenceError",
    "AccessDeniedError",
]
