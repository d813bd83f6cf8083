"""Domain models for the material takeoff import pipeline.

This package contains the typed row, component, result and configuration models
shared by every pipeline stage.
"""

from .component import ExplodedComponent
from .component_type import ComponentTaxonomy, ComponentTypeDef, IdentityClass
from .config_models import CsvConfig, DatabaseConfig, ImportConfig, LimitsConfig
from .import_result import ImportErrorRecord, ImportResult, ImportWarning
from .takeoff_row import TakeoffRow, ValidatedRow

__all__ = [
    # Configuration models
    "CsvConfig",
    "DatabaseConfig",
    "ImportConfig",
    "LimitsConfig",
    # Taxonomy
    "ComponentTaxonomy",
    "ComponentTypeDef",
    "IdentityClass",
    # Pipeline models
    "TakeoffRow",
    "ValidatedRow",
    "ExplodedComponent",
    "ImportErrorRecord",
    "ImportWarning",
    "ImportResult",
]
