"""
rowimport/domain/report.py

Outcome report of one import run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from rowimport.errors import ReportStateError

if TYPE_CHECKING:
    from rowimport.domain.import_row import ImportRow


class ImportStatus(str, Enum):
    NOT_STARTED = "not_started"
    HEADER_INVALID = "header_invalid"
    FILE_INVALID = "file_invalid"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


TERMINAL_STATUSES = frozenset(
    {
        ImportStatus.HEADER_INVALID,
        ImportStatus.FILE_INVALID,
        ImportStatus.COMPLETED,
        ImportStatus.ABORTED,
    }
)


class ReportBucket(str, Enum):
    """
    Row outcome classes, in report order.
    """

    CREATED = "created"
    UPDATED = "updated"
    FAILED_TO_CREATE = "failed_to_create"
    FAILED_TO_UPDATE = "failed_to_update"
    CREATE_SKIPPED = "create_skipped"
    UPDATE_SKIPPED = "update_skipped"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")

    @classmethod
    def classify(cls, *, existed: bool, outcome: str) -> ReportBucket:
        """
        Map prior existence and an outcome (`success`, `failure`, `skip`) to a bucket.
        """

        table = {
            (False, "success"): cls.CREATED,
            (True, "success"): cls.UPDATED,
            (False, "failure"): cls.FAILED_TO_CREATE,
            (True, "failure"): cls.FAILED_TO_UPDATE,
            (False, "skip"): cls.CREATE_SKIPPED,
            (True, "skip"): cls.UPDATE_SKIPPED,
        }
        try:
            return table[(existed, outcome)]
        except KeyError as exc:
            raise ReportStateError(f"Unknown row outcome {outcome!r}.") from exc


@dataclass
class OutcomeReport:
    """
    Status plus the six row buckets of a run.

    Only the orchestrator records rows; once a terminal status is reached the
    report no longer changes.
    """

    status: ImportStatus = ImportStatus.NOT_STARTED
    missing_columns: list[str] = field(default_factory=list)
    extra_columns: list[str] = field(default_factory=list)
    parser_error: str | None = None
    preview: bool = False
    buckets: dict[ReportBucket, list[ImportRow]] = field(
        default_factory=lambda: {bucket: [] for bucket in ReportBucket}
    )
    _recorded: set[int] = field(default_factory=set, init=False, repr=False, compare=False)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, target: ImportStatus, *allowed: ImportStatus) -> None:
        if self.status not in allowed:
            raise ReportStateError(
                f"Cannot move report from {self.status.value} to {target.value}."
            )
        self.status = target

    def start(self) -> OutcomeReport:
        self._transition(ImportStatus.RUNNING, ImportStatus.NOT_STARTED)
        return self

    def complete(self) -> OutcomeReport:
        self._transition(ImportStatus.COMPLETED, ImportStatus.NOT_STARTED, ImportStatus.RUNNING)
        return self

    def abort(self, triggering_row: ImportRow | None = None) -> OutcomeReport:
        """
        Move to `aborted`. Earlier rows were rolled back, so when the triggering
        row is given it is the only row left in the buckets.
        """

        self._transition(ImportStatus.ABORTED, ImportStatus.RUNNING)
        if triggering_row is not None:
            for rows in self.buckets.values():
                rows[:] = [row for row in rows if row is triggering_row]
            self._recorded = {id(triggering_row)}
        return self

    def mark_header_invalid(self, missing_columns: list[str], extra_columns: list[str]) -> OutcomeReport:
        self._transition(ImportStatus.HEADER_INVALID, ImportStatus.NOT_STARTED)
        self.missing_columns = list(missing_columns)
        self.extra_columns = list(extra_columns)
        return self

    def mark_file_invalid(self, parser_error: str | None) -> OutcomeReport:
        self._transition(ImportStatus.FILE_INVALID, ImportStatus.NOT_STARTED)
        self.parser_error = parser_error
        return self

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    def record(self, row: ImportRow, bucket: ReportBucket) -> None:
        if self.status is not ImportStatus.RUNNING:
            raise ReportStateError(
                f"Cannot record line {row.line_number} while report is {self.status.value}."
            )
        if id(row) in self._recorded:
            raise ReportStateError(f"Line {row.line_number} is already recorded.")
        self._recorded.add(id(row))
        self.buckets[bucket].append(row)

    def rows_in(self, bucket: ReportBucket) -> list[ImportRow]:
        return list(self.buckets[bucket])

    @property
    def created_rows(self) -> list[ImportRow]:
        return self.rows_in(ReportBucket.CREATED)

    @property
    def updated_rows(self) -> list[ImportRow]:
        return self.rows_in(ReportBucket.UPDATED)

    @property
    def failed_to_create_rows(self) -> list[ImportRow]:
        return self.rows_in(ReportBucket.FAILED_TO_CREATE)

    @property
    def failed_to_update_rows(self) -> list[ImportRow]:
        return self.rows_in(ReportBucket.FAILED_TO_UPDATE)

    @property
    def create_skipped_rows(self) -> list[ImportRow]:
        return self.rows_in(ReportBucket.CREATE_SKIPPED)

    @property
    def update_skipped_rows(self) -> list[ImportRow]:
        return self.rows_in(ReportBucket.UPDATE_SKIPPED)

    @property
    def valid_rows(self) -> list[ImportRow]:
        return self.created_rows + self.updated_rows

    @property
    def invalid_rows(self) -> list[ImportRow]:
        return self.failed_to_create_rows + self.failed_to_update_rows

    @property
    def skipped_rows(self) -> list[ImportRow]:
        return self.create_skipped_rows + self.update_skipped_rows

    @property
    def all_rows(self) -> list[ImportRow]:
        """
        Created, updated and failed rows; skipped rows are listed separately.
        """

        return self.valid_rows + self.invalid_rows

    def counts(self) -> dict[str, int]:
        return {bucket.value: len(rows) for bucket, rows in self.buckets.items()}

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def success(self) -> bool:
        return self.status is ImportStatus.COMPLETED and not self.invalid_rows

    @property
    def is_finished(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def message(self) -> str:
        from rowimport.reporting.report_message import build_report_message

        return build_report_message(self)
