"""
rowimport/services/persistence_orchestrator.py

Persists resolved rows and classifies every outcome into the run report.

Rows are processed strictly in source order inside the transaction scopes of
every distinct adapter, entered primary first. Within a row, records are saved in
the configured persist order and the first failing save fails the whole row.

Under the `abort` policy the first invalid or failed row raises
`ImportAborted` inside the transaction, so every earlier write of every entity is
rolled back. An exception from an after-save hook aborts the same way. Both
are converted to the `aborted` status before `run` returns.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from typing import Any, Mapping, Sequence

from rowimport.config import ImportSettings, get_import_settings
from rowimport.domain.import_row import ImportRow
from rowimport.domain.record_adapter import RecordAdapter
from rowimport.domain.report import OutcomeReport, ReportBucket
from rowimport.domain.run_config import FailurePolicy, RunConfig
from rowimport.errors import ConfigurationError, ImportAborted

logger = logging.getLogger(__name__)


class _PreviewFinished(Exception):
    """Unwinds the transaction scope at the end of a preview."""


class PersistenceOrchestrator:
    """
    Drives one run's state machine: not_started -> running -> completed | aborted.
    """

    def __init__(
        self,
        *,
        config: RunConfig,
        adapters: Mapping[str, RecordAdapter],
        settings: ImportSettings | None = None,
    ) -> None:
        self._config = config
        self._adapters = dict(adapters)
        self._settings = settings or get_import_settings()
        self._persist_order = config.resolved_persist_order()
        self._primary_entity = config.primary_entity
        self._logged_errors = 0
        self._aborted_row: ImportRow | None = None

    @property
    def _abort_when_invalid(self) -> bool:
        return self._config.when_invalid is FailurePolicy.ABORT

    def run(self, rows: Sequence[ImportRow], report: OutcomeReport) -> OutcomeReport:
        """
        Persist `rows` (or only classify them when `report.preview` is set).
        """

        self._logged_errors = 0
        self._aborted_row = None
        if not rows:
            report.complete()
            return report

        report.start()
        try:
            with ExitStack() as stack:
                for adapter in self._transaction_adapters():
                    stack.enter_context(adapter.transaction())
                for row in rows:
                    self._process(row, report)
                if report.preview:
                    raise _PreviewFinished()
        except _PreviewFinished:
            logger.debug("Preview finished; discarded all changes")
        except ImportAborted as exc:
            logger.warning("Import aborted on line %d; rolled back all writes", exc.line_number)
            report.abort(self._aborted_row)
            return report
        except Exception:
            logger.exception("Import failed unexpectedly; rolled back all writes")
            report.abort()
            raise

        report.complete()
        return report

    def _transaction_adapters(self) -> list[RecordAdapter]:
        """
        Distinct adapters, primary first. Adapters sharing one session share one scope.
        """

        adapters: list[RecordAdapter] = []
        owners: set[int] = set()
        for entity in [self._primary_entity, *self._config.entity_keys]:
            adapter = self._adapters[entity]
            owner = id(getattr(adapter, "session", adapter))
            if owner in owners:
                continue
            owners.add(owner)
            adapters.append(adapter)
        return adapters

    # ------------------------------------------------------------------
    # Per-row processing
    # ------------------------------------------------------------------

    def _process(self, row: ImportRow, report: OutcomeReport) -> None:
        records = row.records
        primary = records[self._primary_entity]
        existed = self._adapters[self._primary_entity].is_persisted(primary)

        if row.skipped:
            self._discard(records)
            report.record(row, ReportBucket.classify(existed=existed, outcome="skip"))
            return

        if not row.is_valid():
            self._fail(row, report, existed)
            return

        if report.preview:
            report.record(row, ReportBucket.classify(existed=existed, outcome="success"))
            return

        if not self._save_records(row, records):
            self._fail(row, report, existed)
            return

        if not self._run_after_save(row, records):
            report.record(row, ReportBucket.classify(existed=existed, outcome="failure"))
            self._log_row_failure(row)
            self._aborted_row = row
            raise ImportAborted(row.line_number)
        report.record(row, ReportBucket.classify(existed=existed, outcome="success"))

    def _fail(self, row: ImportRow, report: OutcomeReport, existed: bool) -> None:
        self._discard(row.records)
        report.record(row, ReportBucket.classify(existed=existed, outcome="failure"))
        self._log_row_failure(row)
        if self._abort_when_invalid:
            self._aborted_row = row
            raise ImportAborted(row.line_number)

    def _discard(self, records: dict[str, Any]) -> None:
        for entity, record in records.items():
            self._adapters[entity].discard(record)

    def _save_records(self, row: ImportRow, records: dict[str, Any]) -> bool:
        for entity in self._persist_order:
            try:
                saved = self._adapters[entity].save(records[entity])
            except ConfigurationError:
                raise
            except Exception as exc:
                logger.warning("Line %d: saving %s record raised %s", row.line_number, entity, exc)
                row.add_error(str(exc) or exc.__class__.__name__, entity=entity)
                saved = False
            if not saved:
                logger.debug("Line %d: %s record was not saved", row.line_number, entity)
                return False
        return True

    def _run_after_save(self, row: ImportRow, records: dict[str, Any]) -> bool:
        """
        Run after-save hooks; False when one raised, which aborts the whole run.
        """

        subject: Any = row if self._config.is_multi_entity else records[self._primary_entity]
        for hook in self._config.after_save:
            try:
                hook(subject, row.csv_attributes)
            except ConfigurationError:
                raise
            except Exception as exc:
                logger.warning(
                    "Line %d after_save hook %s failed: %s",
                    row.line_number,
                    hook.name,
                    exc,
                )
                row.add_error(str(exc) or exc.__class__.__name__)
                return False
        return True

    def _log_row_failure(self, row: ImportRow) -> None:
        if not self._settings.log_row_errors:
            return
        if self._logged_errors >= self._settings.max_logged_row_errors:
            return
        self._logged_errors += 1
        logger.warning("Line %d failed: %s", row.line_number, row.errors)
        if self._logged_errors == self._settings.max_logged_row_errors:
            logger.warning(
                "Row error log limit reached (%d); further row errors are not logged",
                self._settings.max_logged_row_errors,
            )
