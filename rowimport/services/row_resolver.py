"""
rowimport/services/row_resolver.py

Builds the target record(s) of each data row.

For every entity, in declaration order, the resolver:

    1. locates an existing record through the entity's identifier strategy,
       or creates a new one,
    2. populates it from the non-virtual fields of that entity,
    3. after all entities are built, runs the post-build hooks once.

A failing transform never stops population: its exception becomes a custom
error on the row and the next field is applied.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Mapping

from rowimport.domain.import_row import CustomError, ImportRow
from rowimport.domain.record_adapter import RecordAdapter
from rowimport.domain.run_config import RunConfig
from rowimport.errors import ConfigurationError
from rowimport.mappers.header_mapping import HeaderMapping, MappedColumn
from rowimport.validators.row_validator import RowValidator

logger = logging.getLogger(__name__)


class RowResolver:
    """
    Locates, populates and post-processes the records of one run's rows.
    """

    def __init__(
        self,
        *,
        config: RunConfig,
        adapters: Mapping[str, RecordAdapter],
        header: HeaderMapping,
        validator: RowValidator | None = None,
    ) -> None:
        missing = [key for key in config.entity_keys if key not in adapters]
        if missing:
            raise ConfigurationError(f"No record adapter for entities: {', '.join(missing)}.")
        self._config = config
        self._adapters = dict(adapters)
        self._header = header
        self.primary_entity = config.primary_entity
        self.validator = validator or RowValidator(
            adapters=self._adapters,
            header=header,
            primary_entity=self.primary_entity,
        )

    @property
    def is_multi_entity(self) -> bool:
        return self._config.is_multi_entity

    def new_row(self, *, line_number: int, cells: list[str], datastore: dict[str, Any]) -> ImportRow:
        return ImportRow(
            line_number=line_number,
            cells=cells,
            header=self._header,
            datastore=datastore,
            resolver=self,
        )

    def build(self, row: ImportRow) -> dict[str, Any]:
        """
        Build every entity record for `row` and run post-build hooks.

        Called once per row through `ImportRow.records`.
        """

        records: dict[str, Any] = {}
        for entity in self._config.entity_keys:
            record = self._locate_or_create(row, entity)
            self._populate(row, entity, record)
            records[entity] = record
        row.attach_records(records)

        primary = records[self.primary_entity]
        for hook in self._config.after_build:
            try:
                hook(primary, row)
            except ConfigurationError:
                raise
            except Exception as exc:
                logger.warning(
                    "Line %d after_build hook %s failed: %s",
                    row.line_number,
                    hook.name,
                    exc,
                )
                row.add_error(str(exc) or exc.__class__.__name__)
        return records

    def resolve(self, row: ImportRow) -> bool:
        """
        Build `row` if needed and return its validity.
        """

        return self.validator.is_valid(row)

    # ------------------------------------------------------------------
    # Locate or create
    # ------------------------------------------------------------------

    def _locate_or_create(self, row: ImportRow, entity: str) -> Any:
        adapter = self._adapters[entity]
        strategy = self._config.identifiers.get(entity)
        if strategy is None:
            return adapter.new()

        try:
            found = self._find_existing(row, entity, strategy)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.warning("Line %d %s lookup failed: %s", row.line_number, entity, exc)
            row.custom_errors.append(
                CustomError(message=str(exc) or exc.__class__.__name__, entity=entity)
            )
            return adapter.new()
        if found is None:
            return adapter.new()
        return found

    def _find_existing(self, row: ImportRow, entity: str, strategy: Any) -> Any | None:
        adapter = self._adapters[entity]
        # Identifiers compare post-transform values, so populate a throwaway record first.
        scratch = adapter.new()
        self._populate(row, entity, scratch, collect_errors=False)
        try:
            return self._lookup(adapter, scratch, strategy)
        finally:
            adapter.discard(scratch)

    def _lookup(self, adapter: RecordAdapter, scratch: Any, strategy: Any) -> Any | None:
        if callable(strategy):
            resolved = strategy(scratch)
            if resolved is None:
                return None
            if isinstance(resolved, str):
                return self._find_by_attributes(adapter, scratch, (resolved,))
            if isinstance(resolved, (list, tuple)):
                return self._find_by_attributes(adapter, scratch, resolved)
            if isinstance(resolved, Mapping):
                return self._find_by_criteria(adapter, dict(resolved))
            return resolved
        return self._find_by_attributes(adapter, scratch, strategy)

    def _find_by_attributes(self, adapter: RecordAdapter, scratch: Any, attributes: Any) -> Any | None:
        names = [str(name) for name in attributes]
        if not names:
            return None
        criteria = {name: adapter.get_attribute(scratch, name) for name in names}
        return self._find_by_criteria(adapter, criteria)

    @staticmethod
    def _find_by_criteria(adapter: RecordAdapter, criteria: dict[str, Any]) -> Any | None:
        if not criteria or any(value is None for value in criteria.values()):
            return None
        return adapter.find_by(criteria)

    # ------------------------------------------------------------------
    # Populate
    # ------------------------------------------------------------------

    def _populate(self, row: ImportRow, entity: str, record: Any, *, collect_errors: bool = True) -> None:
        adapter = self._adapters[entity]
        for column in self._header.columns:
            rule = column.rule
            if rule is None or rule.virtual:
                continue
            if rule.entity_key(self.primary_entity) != entity:
                continue

            value = copy.copy(row.cell(column.index))
            try:
                self._apply(adapter, record, column, value)
            except ConfigurationError:
                raise
            except Exception as exc:
                if not collect_errors:
                    continue
                logger.debug(
                    "Line %d column %r transform failed: %s",
                    row.line_number,
                    column.name,
                    exc,
                )
                row.custom_errors.append(
                    CustomError(
                        message=str(exc) or exc.__class__.__name__,
                        column_name=self._header.column_names[column.index],
                        attribute=rule.attribute,
                        entity=entity,
                    )
                )

    @staticmethod
    def _apply(adapter: RecordAdapter, record: Any, column: MappedColumn, value: Any) -> None:
        rule = column.rule
        if rule is None:
            return
        transform = rule.transform

        if transform is None:
            if adapter.has_attribute(record, rule.attribute):
                adapter.set_attribute(record, rule.attribute, value)
            return

        if transform.arity == 1:
            result = transform(value)
            if adapter.has_attribute(record, rule.attribute):
                adapter.set_attribute(record, rule.attribute, result)
            return
        transform(value, record, column)
