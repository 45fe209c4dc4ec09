"""
rowimport/services/import_service.py

Service layer for one import: reading, header checks, row building and persistence.

A run moves through these steps and stops at the first terminal state:

    1. read and parse the source      -> file_invalid on malformed input
    2. resolve the header             -> header_invalid on missing required columns
    3. seed the datastore and run before_import hooks
    4. build rows and persist them    -> completed | aborted
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol, Sequence

from sqlalchemy.orm import Session

from rowimport.config import ImportSettings, get_import_settings
from rowimport.domain.import_row import ImportRow
from rowimport.domain.record_adapter import RecordAdapter
from rowimport.domain.report import ImportStatus, OutcomeReport
from rowimport.domain.run_config import RunConfig
from rowimport.errors import ConfigurationError, MalformedCSVError
from rowimport.logging_utils import log_event
from rowimport.mappers.header_mapping import HeaderMapping
from rowimport.services.persistence_orchestrator import PersistenceOrchestrator
from rowimport.services.row_resolver import RowResolver
from rowimport_db.adapter import SQLAlchemyRecordAdapter, is_mapped_class

logger = logging.getLogger(__name__)

# The header occupies line 1, so the first data row is line 2.
FIRST_DATA_LINE = 2


class TabularSource(Protocol):
    """
    Anything exposing a header row and data rows, such as `CSVReader`.
    """

    @property
    def header(self) -> list[str]: ...

    @property
    def rows(self) -> list[list[str]]: ...


def resolve_adapter(target: Any, *, session: Session | None = None) -> RecordAdapter:
    """
    Use `RecordAdapter` instances as-is and wrap SQLAlchemy mapped classes.
    """

    if is_mapped_class(target):
        if session is None:
            raise ConfigurationError(
                f"A session is required to import into {target.__name__}."
            )
        return SQLAlchemyRecordAdapter(target, session)
    if not isinstance(target, type) and isinstance(target, RecordAdapter):
        return target
    raise ConfigurationError(
        f"Cannot import into {target!r}: provide a RecordAdapter or a SQLAlchemy mapped class."
    )


class CSVImporter:
    """
    Coordinates one source and one run configuration.

    Every `run()` or `preview()` starts from a fresh report, a fresh datastore
    and fresh rows; calling them concurrently on one instance is not supported.
    """

    def __init__(
        self,
        config: RunConfig,
        source: TabularSource,
        *,
        session: Session | None = None,
        adapters: Mapping[str, RecordAdapter] | None = None,
        settings: ImportSettings | None = None,
    ) -> None:
        config.validate()
        self.config = config
        self.source = source
        self._session = session
        self._settings = settings or get_import_settings()
        self._adapters: dict[str, RecordAdapter] | None = dict(adapters) if adapters else None
        self._header: HeaderMapping | None = None
        self.report = OutcomeReport(preview=config.preview)

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def adapters(self) -> dict[str, RecordAdapter]:
        if self._adapters is None:
            self._adapters = {
                entity: resolve_adapter(target, session=self._session)
                for entity, target in self.config.models.items()
            }
        return dict(self._adapters)

    @property
    def header(self) -> HeaderMapping:
        """
        Header mapping of the source; raises `MalformedCSVError` for unreadable input.
        """

        if self._header is None:
            self._header = HeaderMapping(
                self.config.fields,
                self.source.header,
                primary_entity=self.config.primary_entity,
            )
        return self._header

    def rows(self, datastore: dict[str, Any] | None = None) -> list[ImportRow]:
        """
        Fresh rows sharing one datastore (seeded from the configuration by default).
        """

        shared = dict(self.config.datastore) if datastore is None else datastore
        resolver = RowResolver(config=self.config, adapters=self.adapters, header=self.header)
        return [
            resolver.new_row(line_number=index + FIRST_DATA_LINE, cells=cells, datastore=shared)
            for index, cells in enumerate(self.source.rows)
        ]

    # ------------------------------------------------------------------
    # Header checks
    # ------------------------------------------------------------------

    def is_valid_header(self) -> bool:
        """
        Check the source before any row is processed, recording a terminal
        `file_invalid` / `header_invalid` status on the current report.
        """

        return self._check_header(self.report)

    def _check_header(self, report: OutcomeReport) -> bool:
        try:
            header = self.header
        except MalformedCSVError as exc:
            if not report.is_finished:
                report.mark_file_invalid(str(exc))
            log_event(logger, logging.WARNING, "file_invalid", parser_error=str(exc))
            return False

        report.extra_columns = header.extra_columns()
        if header.is_valid():
            return True

        missing = header.missing_required_columns()
        if not report.is_finished:
            report.mark_header_invalid(missing, header.extra_columns())
        log_event(
            logger,
            logging.WARNING,
            "header_invalid",
            missing_columns=missing,
            extra_columns=header.extra_columns(),
        )
        return False

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def run(self) -> OutcomeReport:
        return self._run(preview=self.config.preview)

    def preview(self) -> OutcomeReport:
        """
        Resolve, validate and classify every row without saving anything.
        """

        return self._run(preview=True)

    def _run(self, *, preview: bool) -> OutcomeReport:
        report = OutcomeReport(preview=preview)
        self.report = report
        if not self._check_header(report):
            return report

        try:
            source_rows: Sequence[list[str]] = self.source.rows
        except MalformedCSVError as exc:
            report.mark_file_invalid(str(exc))
            log_event(logger, logging.WARNING, "file_invalid", parser_error=str(exc))
            return report

        datastore = dict(self.config.datastore)
        for hook in self.config.before_import:
            hook(datastore)

        rows = self.rows(datastore)
        log_event(
            logger,
            logging.INFO,
            "import_started",
            rows=len(source_rows),
            preview=preview,
            when_invalid=self.config.when_invalid.value,
            entities=self.config.entity_keys,
        )

        orchestrator = PersistenceOrchestrator(
            config=self.config,
            adapters=self.adapters,
            settings=self._settings,
        )
        orchestrator.run(rows, report)

        event = "import_aborted" if report.status is ImportStatus.ABORTED else "import_finished"
        log_event(
            logger,
            logging.WARNING if event == "import_aborted" else logging.INFO,
            event,
            status=report.status.value,
            preview=preview,
            success=report.success,
            **report.counts(),
        )
        return report
