"""
rowimport/domain/object_adapter.py

Record adapter over plain Python objects kept in an in-process store.

Useful for previews, tests and imports whose target is an application-level
collection rather than a database table.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, Mapping

from rowimport.domain.record_adapter import ErrorPair, RecordErrors, normalize_errors

logger = logging.getLogger(__name__)

Validator = Callable[[Any], Any]


def _state_of(record: Any) -> dict[str, Any] | None:
    if hasattr(record, "__dict__"):
        return dict(vars(record))
    return None


def _restore(record: Any, state: dict[str, Any] | None) -> None:
    if state is None:
        return
    vars(record).clear()
    vars(record).update(state)


class ObjectRecordAdapter:
    """
    Stores instances of `record_type` in `records`, in save order.

    Stored records are the store itself, so the state of every record handed out
    by `find_by` is remembered until it is saved or discarded.

    Validation combines an optional `validate_record()` method on the record and an
    optional `validator` callable; both may return a mapping of attribute to
    message(s) or an iterable of `(attribute, message)` pairs.
    """

    def __init__(
        self,
        record_type: Callable[[], Any],
        *,
        records: Iterable[Any] | None = None,
        validator: Validator | None = None,
    ) -> None:
        self.record_type = record_type
        self.records: list[Any] = list(records or [])
        self._validator = validator
        self._errors = RecordErrors()
        self._originals: dict[int, tuple[Any, dict[str, Any] | None]] = {}
        self.save_calls = 0

    def new(self) -> Any:
        return self.record_type()

    def find_by(self, criteria: Mapping[str, Any]) -> Any | None:
        for record in self.records:
            if all(getattr(record, key, None) == value for key, value in criteria.items()):
                self._originals.setdefault(id(record), (record, _state_of(record)))
                return record
        return None

    def save(self, record: Any) -> bool:
        self.save_calls += 1
        if not self.validate(record):
            return False
        if not self.is_persisted(record):
            self.records.append(record)
        self._originals.pop(id(record), None)
        return True

    def discard(self, record: Any) -> None:
        entry = self._originals.pop(id(record), None)
        if entry is not None and entry[0] is record:
            _restore(record, entry[1])

    def is_persisted(self, record: Any) -> bool:
        return any(stored is record for stored in self.records)

    def validate(self, record: Any) -> bool:
        errors: list[ErrorPair] = []
        record_validator = getattr(record, "validate_record", None)
        if callable(record_validator):
            errors.extend(normalize_errors(record_validator()))
        if self._validator is not None:
            errors.extend(normalize_errors(self._validator(record)))
        self._errors.replace(record, errors)
        return not errors

    def errors(self, record: Any) -> list[ErrorPair]:
        return self._errors.get(record)

    def has_attribute(self, record: Any, name: str) -> bool:
        if name.startswith("_"):
            return False
        return hasattr(record, name) and not callable(getattr(record, name))

    def get_attribute(self, record: Any, name: str) -> Any:
        return getattr(record, name, None)

    def set_attribute(self, record: Any, name: str, value: Any) -> None:
        setattr(record, name, value)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        stored = list(self.records)
        snapshot = [(record, _state_of(record)) for record in stored]
        try:
            yield
        except BaseException:
            self.records[:] = stored
            for record, state in snapshot:
                _restore(record, state)
            self._originals.clear()
            logger.debug("Rolled back %d stored %s records", len(stored), self._type_name)
            raise

    @property
    def _type_name(self) -> str:
        return getattr(self.record_type, "__name__", repr(self.record_type))
