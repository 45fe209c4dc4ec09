"""
rowimport_db/adapter.py

SQLAlchemy implementation of the record capability contract.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping

from sqlalchemy import String, inspect as sa_inspect, select
from sqlalchemy.exc import NoInspectionAvailable, SQLAlchemyError
from sqlalchemy.orm import ColumnProperty, Mapper, Session

from rowimport.domain.record_adapter import ErrorPair, RecordErrors, normalize_errors

logger = logging.getLogger(__name__)

BLANK_MESSAGE = "can't be blank"
SAVE_ERROR_ATTRIBUTE = "_general"


def is_mapped_class(target: Any) -> bool:
    if not isinstance(target, type):
        return False
    try:
        return isinstance(sa_inspect(target), Mapper)
    except NoInspectionAvailable:
        return False


class SQLAlchemyRecordAdapter:
    """
    Imports rows into a mapped class through one `Session`.

    Each save runs in its own savepoint so a failing flush only fails its row.
    `transaction()` wraps a whole run in an outer savepoint, commits afterwards
    when `commit` is set, and otherwise leaves committing to the caller.
    """

    def __init__(
        self,
        model: type,
        session: Session,
        *,
        validator: Callable[[Any], Any] | None = None,
        commit: bool = False,
    ) -> None:
        self.model = model
        self.session = session
        self._mapper: Mapper = sa_inspect(model)
        self._validator = validator
        self._commit = commit
        self._errors = RecordErrors()

    def new(self) -> Any:
        return self.model()

    def find_by(self, criteria: Mapping[str, Any]) -> Any | None:
        stmt = select(self.model).filter_by(**dict(criteria)).limit(1)
        return self.session.scalars(stmt).first()

    def save(self, record: Any) -> bool:
        if not self.validate(record):
            return False
        try:
            with self.session.begin_nested():
                self.session.add(record)
                self.session.flush()
        except SQLAlchemyError as exc:
            message = str(getattr(exc, "orig", None) or exc)
            logger.warning("Failed to save %s: %s", self.model.__name__, message)
            self._errors.add(record, SAVE_ERROR_ATTRIBUTE, message)
            return False
        return True

    def discard(self, record: Any) -> None:
        state = sa_inspect(record)
        if state.session is not self.session:
            return
        if state.has_identity:
            self.session.expire(record)
        else:
            # Pulled in through a relationship cascade; never flush it.
            self.session.expunge(record)

    def is_persisted(self, record: Any) -> bool:
        return sa_inspect(record).has_identity

    def validate(self, record: Any) -> bool:
        errors: list[ErrorPair] = []
        for prop in self._mapper.column_attrs:
            errors.extend(self._column_errors(record, prop))

        record_validator = getattr(record, "validate_record", None)
        if callable(record_validator):
            errors.extend(normalize_errors(record_validator()))
        if self._validator is not None:
            errors.extend(normalize_errors(self._validator(record)))

        self._errors.replace(record, errors)
        return not errors

    def _column_errors(self, record: Any, prop: ColumnProperty) -> list[ErrorPair]:
        column = prop.columns[0]
        if getattr(column, "primary_key", False):
            return []
        value = getattr(record, prop.key, None)
        if value is None:
            if (
                getattr(column, "nullable", True) is False
                and column.default is None
                and column.server_default is None
            ):
                return [(prop.key, BLANK_MESSAGE)]
            return []

        length = getattr(column.type, "length", None)
        if isinstance(column.type, String) and length and isinstance(value, str) and len(value) > length:
            return [(prop.key, f"is too long (maximum is {length} characters)")]
        return []

    def errors(self, record: Any) -> list[ErrorPair]:
        return self._errors.get(record)

    def has_attribute(self, record: Any, name: str) -> bool:
        if name in self._mapper.attrs:
            return True
        descriptor = getattr(type(record), name, None)
        return isinstance(descriptor, property) and descriptor.fset is not None

    def get_attribute(self, record: Any, name: str) -> Any:
        return getattr(record, name, None)

    def set_attribute(self, record: Any, name: str, value: Any) -> None:
        setattr(record, name, value)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        with self.session.begin_nested():
            yield self.session
        if self._commit:
            self.session.commit()
