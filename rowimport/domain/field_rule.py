"""
rowimport/domain/field_rule.py

Declared mapping from one logical field to its header matcher and value handling.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Union

from rowimport.domain.hooks import Hook, HookKind, resolve_hook
from rowimport.errors import ConfigurationError


class FieldKey(str):
    """
    Header matcher compared against the lower-cased, underscored header.

    `FieldKey("first_name")` matches "First Name", "first name" and "first_name".
    A plain `str` matcher only matches the exact phrase, case-insensitively.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return f"FieldKey({str.__repr__(self)})"


SingleMatcher = Union[FieldKey, str, "re.Pattern[str]"]
Matcher = Union[SingleMatcher, list, tuple]


def check_matcher(matcher: Any) -> None:
    """
    Raise `ConfigurationError` unless `matcher` is a supported matcher shape.
    """

    if isinstance(matcher, (str, re.Pattern)):
        return
    if isinstance(matcher, (list, tuple)):
        for item in matcher:
            check_matcher(item)
        return
    raise ConfigurationError(
        "Invalid field matcher. Should be a FieldKey, str, compiled pattern, "
        f"or a list of those - was {matcher!r}"
    )


@dataclass(frozen=True, eq=False)
class FieldRule:
    """
    One logical field of an importer.

    `target` is either an attribute rename (`str`) or a transform callable taking
    `(value)`, `(value, record)` or `(value, record, column)`.
    """

    name: str
    target: str | Callable[..., Any] | None = None
    aliases: Matcher | None = None
    required: bool = False
    virtual: bool = False
    entity: str | None = None
    transform: Hook | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ConfigurationError(f"Field name must be a non-empty string, got {self.name!r}.")
        if self.aliases is not None:
            check_matcher(self.aliases)
        if self.target is not None and not isinstance(self.target, str):
            object.__setattr__(self, "transform", resolve_hook(self.target, HookKind.TRANSFORM))

    @property
    def attribute(self) -> str:
        """
        Record attribute written by this field.
        """

        if isinstance(self.target, str):
            return self.target
        return self.name

    @property
    def matcher(self) -> Matcher:
        if self.aliases is not None:
            return self.aliases
        return FieldKey(self.name)

    def entity_key(self, primary_entity: str) -> str:
        return self.entity or primary_entity

    def with_options(self, **changes: Any) -> FieldRule:
        """
        Return a new rule with the given declaration options replaced.
        """

        values = {
            "name": self.name,
            "target": self.target,
            "aliases": self.aliases,
            "required": self.required,
            "virtual": self.virtual,
            "entity": self.entity,
        }
        unknown = set(changes) - set(values)
        if unknown:
            raise ConfigurationError(f"Unknown field options: {', '.join(sorted(unknown))}.")
        values.update(changes)
        return FieldRule(**values)
