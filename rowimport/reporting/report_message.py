"""
rowimport/reporting/report_message.py

Human-readable summaries of an import report.
"""

from __future__ import annotations

from rowimport.domain.report import ImportStatus, OutcomeReport, ReportBucket

_FAILED_OR_SKIPPED: tuple[ReportBucket, ...] = (
    ReportBucket.FAILED_TO_CREATE,
    ReportBucket.FAILED_TO_UPDATE,
    ReportBucket.CREATE_SKIPPED,
    ReportBucket.UPDATE_SKIPPED,
)


def build_report_message(report: OutcomeReport) -> str:
    """
    One-line summary, e.g. "Import completed: 1 created, 2 updated, 1 update skipped".
    """

    status = report.status
    if status is ImportStatus.NOT_STARTED:
        return "Import hasn't started yet"
    if status is ImportStatus.RUNNING:
        return "Import in progress"
    if status is ImportStatus.COMPLETED:
        prefix = "Preview completed" if report.preview else "Import completed"
        details = _bucket_details(report)
        return f"{prefix}: {details}" if details else prefix
    if status is ImportStatus.HEADER_INVALID:
        return f"The following columns are required: {', '.join(report.missing_columns)}"
    if status is ImportStatus.FILE_INVALID:
        return report.parser_error or "Invalid CSV file"
    return "Preview aborted" if report.preview else "Import aborted"


def _bucket_details(report: OutcomeReport) -> str:
    return ", ".join(
        f"{len(rows)} {bucket.label}"
        for bucket, rows in report.buckets.items()
        if rows
    )


def build_row_error_messages(report: OutcomeReport) -> list[str]:
    """
    "Line 3: email is invalid" lines for every failed or skipped row with errors.
    """

    rows = [row for bucket in _FAILED_OR_SKIPPED for row in report.buckets[bucket]]
    messages: list[str] = []
    for row in sorted(rows, key=lambda item: item.line_number):
        errors = row.errors
        if not errors:
            continue
        details = ", ".join(f"{key} {message}" for key, message in errors.items())
        messages.append(f"Line {row.line_number}: {details}")
    return messages
