"""
rowimport/validators/row_validator.py

Row verdicts and error maps built from record validation plus custom errors.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from rowimport.domain.import_row import CustomError, ImportRow
from rowimport.domain.record_adapter import RecordAdapter
from rowimport.errors import ConfigurationError
from rowimport.mappers.header_mapping import HeaderMapping

logger = logging.getLogger(__name__)

GENERAL_ERROR_KEY = "_general"


class RowValidator:
    """
    Decides whether a built row may be persisted.

    Record validation runs at most once per row and the verdict is cached on the
    row: changing a record after validation does not change the verdict.
    Custom errors are checked on every call, so a hook adding one later still
    invalidates the row.
    """

    def __init__(
        self,
        *,
        adapters: Mapping[str, RecordAdapter],
        header: HeaderMapping,
        primary_entity: str,
    ) -> None:
        self._adapters = dict(adapters)
        self._header = header
        self._primary_entity = primary_entity

    @property
    def is_multi_entity(self) -> bool:
        return len(self._adapters) > 1

    def is_valid(self, row: ImportRow) -> bool:
        records = row.records
        if row.custom_errors:
            return False
        if row.skipped:
            return True

        cached = row.cached_validity
        if cached is None:
            # Validate every record so each one collects its errors.
            results = [self._validate_record(row, entity, record) for entity, record in records.items()]
            cached = all(results)
            row.cache_validity(cached)
        return cached

    def _validate_record(self, row: ImportRow, entity: str, record: Any) -> bool:
        try:
            return self._adapters[entity].validate(record)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.warning("Line %d %s validation failed: %s", row.line_number, entity, exc)
            row.custom_errors.append(
                CustomError(message=str(exc) or exc.__class__.__name__, entity=entity)
            )
            return False

    def error_map(self, row: ImportRow) -> dict[str, str]:
        errors: dict[str, str] = {}
        for entity, record in row.records.items():
            for attribute, message in self._adapters[entity].errors(record):
                column_name = self._header.column_name_for_target_attribute(attribute, entity=entity)
                errors[self._scoped_key(column_name or attribute, entity)] = message

        for error in row.custom_errors:
            errors[self._custom_error_key(error)] = error.message
        return errors

    def _custom_error_key(self, error: CustomError) -> str:
        if error.column_name:
            key = error.column_name
        elif error.attribute:
            key = (
                self._header.column_name_for_target_attribute(error.attribute, entity=error.entity)
                or error.attribute
            )
        else:
            key = GENERAL_ERROR_KEY
        return self._scoped_key(key, error.entity)

    def _scoped_key(self, key: str, entity: str | None) -> str:
        if not self.is_multi_entity or entity is None or entity == self._primary_entity:
            return key
        return f"{entity}.{key}"
