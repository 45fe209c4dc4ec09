"""
rowimport/domain/record_adapter.py

Capability contract the import engine needs from a target record type.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Iterable, Mapping, Protocol, runtime_checkable

ErrorPair = tuple[str, str]


@runtime_checkable
class RecordAdapter(Protocol):
    """
    Persistence and attribute access for one target record type.

    The engine never touches records directly; every lookup, write and
    validation goes through an adapter so any storage layer can be imported into.
    """

    def new(self) -> Any:
        """Return a fresh, unsaved record."""
        ...

    def find_by(self, criteria: Mapping[str, Any]) -> Any | None:
        """Return the first stored record matching every criteria pair, or None."""
        ...

    def save(self, record: Any) -> bool:
        """Persist `record`; return False and keep errors when it cannot be saved."""
        ...

    def is_persisted(self, record: Any) -> bool:
        ...

    def validate(self, record: Any) -> bool:
        """Run validation, replacing any previously collected errors."""
        ...

    def errors(self, record: Any) -> list[ErrorPair]:
        """Return `(attribute, message)` pairs collected for `record`."""
        ...

    def has_attribute(self, record: Any, name: str) -> bool:
        ...

    def get_attribute(self, record: Any, name: str) -> Any:
        ...

    def set_attribute(self, record: Any, name: str, value: Any) -> None:
        ...

    def discard(self, record: Any) -> None:
        """Drop unsaved changes made to `record` during this run."""
        ...

    def transaction(self) -> AbstractContextManager[Any]:
        """Scope in which any exception unwinds every write made inside it."""
        ...


class RecordErrors:
    """
    Per-record error storage for adapters whose records carry no error list.

    Entries are keyed by object identity and keep their record alive, so a
    recycled `id()` can never surface another record's errors.
    """

    def __init__(self) -> None:
        self._entries: dict[int, tuple[Any, list[ErrorPair]]] = {}

    def replace(self, record: Any, errors: Iterable[ErrorPair]) -> None:
        collected = [(str(attribute), str(message)) for attribute, message in errors]
        if collected:
            self._entries[id(record)] = (record, collected)
        else:
            self._entries.pop(id(record), None)

    def add(self, record: Any, attribute: str, message: str) -> None:
        entry = self._entries.setdefault(id(record), (record, []))
        entry[1].append((str(attribute), str(message)))

    def get(self, record: Any) -> list[ErrorPair]:
        entry = self._entries.get(id(record))
        if entry is None or entry[0] is not record:
            return []
        return list(entry[1])


def normalize_errors(raw: Any) -> list[ErrorPair]:
    """
    Accept `None`, a mapping of attribute to message(s), or `(attribute, message)` pairs.
    """

    if not raw:
        return []
    if isinstance(raw, Mapping):
        pairs: list[ErrorPair] = []
        for attribute, messages in raw.items():
            if isinstance(messages, (list, tuple)):
                pairs.extend((str(attribute), str(message)) for message in messages)
            else:
                pairs.append((str(attribute), str(messages)))
        return pairs
    return [(str(attribute), str(message)) for attribute, message in raw]
