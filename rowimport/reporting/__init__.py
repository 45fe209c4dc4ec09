"""
rowimport/reporting package marker.
"""

from rowimport.reporting.report_message import build_report_message, build_row_error_messages

__all__ = [
    "build_report_message",
    "build_row_error_messages",
]
