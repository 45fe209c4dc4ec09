"""
rowimport/validators package marker.
"""

from rowimport.validators.row_validator import GENERAL_ERROR_KEY, RowValidator

__all__ = [
    "GENERAL_ERROR_KEY",
    "RowValidator",
]
