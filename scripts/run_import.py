"""
Run a declared importer against a CSV file from CLI.
"""

from __future__ import annotations

import argparse
import importlib

from rowimport.domain.report import ImportStatus
from rowimport.dsl import Importer
from rowimport.errors import ConfigurationError
from rowimport.logging_utils import configure_logging
from rowimport.reporting.report_message import build_row_error_messages
from rowimport.schemas.import_report import ImportReportResponse
from rowimport_db.session import SessionLocal, create_db_engine, create_session_factory


def load_importer(reference: str) -> type[Importer]:
    """
    Resolve `package.module:ClassName` to an `Importer` subclass.
    """

    module_name, _, class_name = reference.partition(":")
    if not module_name or not class_name:
        raise ConfigurationError(f"Expected module:ClassName, got {reference!r}.")
    module = importlib.import_module(module_name)
    importer_class = getattr(module, class_name, None)
    if not isinstance(importer_class, type) or not issubclass(importer_class, Importer):
        raise ConfigurationError(f"{reference} is not an Importer subclass.")
    return importer_class


def main() -> int:
    parser = argparse.ArgumentParser(description="Import a CSV file with a declared importer.")
    parser.add_argument("importer", help="Importer class as module:ClassName.")
    parser.add_argument("path", help="Path of the CSV file to import.")
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Resolve and validate every row without saving.",
    )
    parser.add_argument(
        "--when-invalid",
        dest="when_invalid",
        choices=("skip", "abort"),
        default=None,
        help="Override the importer's failure policy.",
    )
    parser.add_argument(
        "--show-errors",
        dest="show_errors",
        action="store_true",
        help="Print one line per failed or skipped row after the report.",
    )
    parser.add_argument(
        "--database-url",
        dest="database_url",
        default=None,
        help="Target database; defaults to IMPORT_DATABASE_URL, DATABASE_URL or a local SQLite file.",
    )
    args = parser.parse_args()

    configure_logging()
    importer_class = load_importer(args.importer)

    session_factory = (
        create_session_factory(create_db_engine(args.database_url)) if args.database_url else SessionLocal
    )
    with session_factory() as db:
        importer = importer_class(path=args.path, session=db, when_invalid=args.when_invalid)
        report = importer.preview() if args.preview else importer.run()
        if report.status is ImportStatus.COMPLETED and not report.preview:
            db.commit()
        else:
            db.rollback()

        payload = ImportReportResponse.from_report(report, include_rows=False)
        print(payload.model_dump_json(indent=2))
        if args.show_errors:
            for line in build_row_error_messages(report):
                print(line)
    return 0 if report.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
