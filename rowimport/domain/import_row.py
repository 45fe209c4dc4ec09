"""
rowimport/domain/import_row.py

Processing state of one source data line.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence

from rowimport.errors import ConfigurationError

if TYPE_CHECKING:
    from rowimport.mappers.header_mapping import HeaderMapping
    from rowimport.services.row_resolver import RowResolver


@dataclass(frozen=True)
class CustomError:
    """
    Error attached by a transform or a hook rather than by record validation.
    """

    message: str
    column_name: str | None = None
    attribute: str | None = None
    entity: str | None = None


class ImportRow:
    """
    One data line: raw cells, the records built from them and their verdict.

    Records are built lazily on first access and never rebuilt, so every access
    returns the same instances. The datastore is shared by reference with every
    other row of the same run.
    """

    def __init__(
        self,
        *,
        line_number: int,
        cells: Sequence[str],
        header: HeaderMapping,
        datastore: dict[str, Any],
        resolver: RowResolver,
    ) -> None:
        self.line_number = line_number
        self.cells: tuple[str, ...] = tuple(cells)
        self.header = header
        self.datastore = datastore
        self._skipped = False
        self.custom_errors: list[CustomError] = []
        self._resolver = resolver
        self._records: dict[str, Any] | None = None
        self._building = False
        self._valid: bool | None = None
        self._csv_attributes: dict[str, str | None] | None = None

    def __repr__(self) -> str:
        return f"ImportRow(line_number={self.line_number}, cells={list(self.cells)!r})"

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    @property
    def records(self) -> dict[str, Any]:
        """
        Built records keyed by entity, in declaration order.
        """

        if self._records is None:
            if self._building:
                # Hooks read records while the build is in flight.
                raise ConfigurationError("Records are not available until locating has finished.")
            self._building = True
            try:
                self._resolver.build(self)
            finally:
                self._building = False
        return dict(self._records or {})

    def attach_records(self, records: dict[str, Any]) -> None:
        """
        Store located and populated records before post-build hooks run.
        """

        if self._records is not None:
            raise ConfigurationError(f"Records for line {self.line_number} are already built.")
        self._records = records

    @property
    def is_built(self) -> bool:
        return self._records is not None

    @property
    def record(self) -> Any:
        """
        The primary entity's record.
        """

        return self.record_for(self._resolver.primary_entity)

    def record_for(self, entity: str) -> Any:
        records = self.records
        if entity not in records:
            raise ConfigurationError(f"Unknown entity {entity!r}.")
        return records[entity]

    @property
    def is_multi_entity(self) -> bool:
        return self._resolver.is_multi_entity

    # ------------------------------------------------------------------
    # Raw values
    # ------------------------------------------------------------------

    def cell(self, index: int) -> str | None:
        if 0 <= index < len(self.cells):
            return self.cells[index]
        return None

    @property
    def csv_attributes(self) -> dict[str, str | None]:
        """
        Raw values keyed by the column names of the source header.
        """

        if self._csv_attributes is None:
            self._csv_attributes = {
                name: self.cell(index) for index, name in enumerate(self.header.column_names)
            }
        return dict(self._csv_attributes)

    # ------------------------------------------------------------------
    # Errors, skipping and validity
    # ------------------------------------------------------------------

    def add_error(
        self,
        message: str,
        *,
        column_name: str | None = None,
        attribute: str | None = None,
        entity: str | None = None,
        skip_row: bool = False,
    ) -> ImportRow:
        """
        Attach an error; the row becomes invalid, and skipped when `skip_row` is set.
        """

        self.custom_errors.append(
            CustomError(
                message=str(message),
                column_name=column_name,
                attribute=attribute,
                entity=entity,
            )
        )
        if skip_row:
            self.skip()
        return self

    @property
    def skipped(self) -> bool:
        """
        Whether a hook marked the row as skipped; builds the row first.
        """

        if not self._building:
            self.records
        return self._skipped

    def skip(self) -> ImportRow:
        self._skipped = True
        return self

    def is_valid(self) -> bool:
        return self._resolver.resolve(self)

    @property
    def cached_validity(self) -> bool | None:
        return self._valid

    def cache_validity(self, valid: bool) -> None:
        self._valid = valid

    @property
    def errors(self) -> dict[str, str]:
        """
        Messages keyed by the original column name where one can be resolved.
        """

        return self._resolver.validator.error_map(self)
