"""
rowimport/mappers/header_mapping.py

Pairing of the source header with declared field rules.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from rowimport.domain.field_rule import FieldRule
from rowimport.domain.run_config import DEFAULT_ENTITY
from rowimport.mappers.field_matcher import match, strip_non_printable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MappedColumn:
    """
    One source column and the rule that claims it, if any.

    Passed as the third argument of three-argument transforms.
    """

    index: int
    name: str
    rule: FieldRule | None


class HeaderMapping:
    """
    Resolves the source header against the declared rules once, then answers
    required/missing/extra questions from that resolution.
    """

    def __init__(
        self,
        rules: Sequence[FieldRule],
        column_names: Sequence[str],
        *,
        primary_entity: str = DEFAULT_ENTITY,
    ) -> None:
        self.rules: tuple[FieldRule, ...] = tuple(rules)
        self.column_names: tuple[str, ...] = tuple(str(name) for name in column_names)
        self.primary_entity = primary_entity
        self._ambiguous: dict[str, list[str]] = {}
        self.columns: tuple[MappedColumn, ...] = tuple(
            MappedColumn(index=index, name=cleaned, rule=self._claim(cleaned))
            for index, cleaned in enumerate(strip_non_printable(name) for name in self.column_names)
        )

    def _claim(self, column_name: str) -> FieldRule | None:
        matching = [rule for rule in self.rules if match(column_name, rule)]
        if len(matching) > 1:
            names = [rule.name for rule in matching]
            self._ambiguous[column_name] = names
            logger.warning(
                "Column %r matches %d fields (%s); using %r",
                column_name,
                len(matching),
                ", ".join(names),
                names[0],
            )
        return matching[0] if matching else None

    def resolve_column(self, column_name: str) -> FieldRule | None:
        """
        First rule, in declaration order, matching the cleaned column name.
        """

        cleaned = strip_non_printable(column_name)
        for rule in self.rules:
            if match(cleaned, rule):
                return rule
        return None

    def column_name_for_target_attribute(self, attribute: str, entity: str | None = None) -> str | None:
        """
        Source column feeding `attribute`, used to report record errors under the
        header text the user supplied, non-printable characters included.
        """

        for rule in self.rules:
            if entity is not None and rule.entity_key(self.primary_entity) != entity:
                continue
            if rule.attribute != attribute and rule.name != attribute:
                continue
            for column in self.columns:
                if match(column.name, rule):
                    return self.column_names[column.index]
            return None
        return None

    def required_columns(self) -> list[str]:
        return [rule.name for rule in self.rules if rule.required]

    def missing_required_columns(self) -> list[str]:
        return [rule.name for rule in self.rules if rule.required and not self._is_mapped(rule)]

    def missing_columns(self) -> list[str]:
        return [rule.name for rule in self.rules if not self._is_mapped(rule)]

    def extra_columns(self) -> list[str]:
        return [column.name for column in self.columns if column.rule is None]

    def ambiguous_columns(self) -> dict[str, list[str]]:
        return {name: list(rules) for name, rules in self._ambiguous.items()}

    def is_valid(self) -> bool:
        return not self.missing_required_columns()

    def _is_mapped(self, rule: FieldRule) -> bool:
        return any(column.rule is rule for column in self.columns)
