"""Command line interface (``mto-import`` / ``python -m mto_import.cli``)."""

from .app import EXIT_FATAL, EXIT_REJECTED, EXIT_SUCCESS, main

__all__ = [
    "main",
    "EXIT_SUCCESS",
    "EXIT_REJECTED",
    "EXIT_FATAL",
]
