"""
rowimport/schemas package marker.
"""

from rowimport.schemas.import_report import ImportReportResponse, ImportRowResponse

__all__ = [
    "ImportReportResponse",
    "ImportRowResponse",
]
