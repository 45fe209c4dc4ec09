"""
rowimport/schemas/import_report.py

Serializable views of an import report.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from rowimport.domain.report import OutcomeReport, ReportBucket
from rowimport.reporting.report_message import build_report_message


class ImportRowResponse(BaseModel):
    """
    One classified data line.
    """

    line_number: int = Field(..., ge=2)
    outcome: ReportBucket
    csv_attributes: dict[str, str | None] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)


class ImportReportResponse(BaseModel):
    """
    Status, counts and classified rows of one run.
    """

    status: str
    message: str
    success: bool
    preview: bool = False
    missing_columns: list[str] = Field(default_factory=list)
    extra_columns: list[str] = Field(default_factory=list)
    parser_error: str | None = None
    counts: dict[str, int] = Field(default_factory=dict)
    rows: list[ImportRowResponse] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: OutcomeReport, *, include_rows: bool = True) -> ImportReportResponse:
        rows: list[ImportRowResponse] = []
        if include_rows:
            for bucket, bucket_rows in report.buckets.items():
                for row in bucket_rows:
                    rows.append(
                        ImportRowResponse(
                            line_number=row.line_number,
                            outcome=bucket,
                            csv_attributes=row.csv_attributes,
                            errors=row.errors,
                        )
                    )
            rows.sort(key=lambda item: item.line_number)

        return cls(
            status=report.status.value,
            message=build_report_message(report),
            success=report.success,
            preview=report.preview,
            missing_columns=list(report.missing_columns),
            extra_columns=list(report.extra_columns),
            parser_error=report.parser_error,
            counts=report.counts(),
            rows=rows,
        )
