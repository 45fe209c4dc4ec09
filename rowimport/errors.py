"""
rowimport/errors.py

Exception taxonomy for row imports.
"""

from __future__ import annotations


class RowImportError(Exception):
    """Base exception for import failures."""


class ConfigurationError(RowImportError, ValueError):
    """Raised when an importer is declared with an invalid shape."""


class MalformedCSVError(RowImportError, ValueError):
    """Raised when the source file cannot be decoded or parsed."""


class ImportAborted(RowImportError, RuntimeError):
    """
    Raised inside the transaction scope to unwind an import under the abort policy.
    """

    def __init__(self, line_number: int) -> None:
        super().__init__(f"Import aborted on line {line_number}.")
        self.line_number = line_number


class ReportStateError(RowImportError, RuntimeError):
    """Raised when a report is mutated outside the running state."""
