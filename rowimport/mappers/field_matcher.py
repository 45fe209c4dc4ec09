"""
rowimport/mappers/field_matcher.py

Header-to-field matching rules.
"""

from __future__ import annotations

import re
from typing import Any

from rowimport.domain.field_rule import FieldKey, FieldRule
from rowimport.errors import ConfigurationError

_WHITESPACE_RUN = re.compile(r"\s+")

_USE_RULE_MATCHER = object()


def normalize_header(column_name: str) -> str:
    """
    Lower-case a header and collapse whitespace runs to single underscores.
    """

    return _WHITESPACE_RUN.sub("_", column_name.lower())


def strip_non_printable(column_name: Any) -> str:
    return "".join(ch for ch in str(column_name) if ch.isprintable())


def match(column_name: str | None, rule: FieldRule, matcher: Any = _USE_RULE_MATCHER) -> bool:
    """
    Return True when `column_name` satisfies `matcher` (the rule's own matcher by default).

    - `FieldKey`: equal to the normalized header.
    - `str`: equal to the lower-cased header.
    - compiled pattern: found anywhere in the raw header.
    - list or tuple: any element matches, tried in order.
    """

    if column_name is None:
        return False
    if matcher is _USE_RULE_MATCHER or matcher is None:
        matcher = rule.matcher

    if isinstance(matcher, FieldKey):
        return normalize_header(column_name) == matcher.lower()
    if isinstance(matcher, str):
        return column_name.lower() == matcher.lower()
    if isinstance(matcher, re.Pattern):
        return matcher.search(column_name) is not None
    if isinstance(matcher, (list, tuple)):
        return any(match(column_name, rule, item) for item in matcher)
    raise ConfigurationError(
        "Invalid field matcher. Should be a FieldKey, str, compiled pattern, "
        f"or a list of those - was {matcher!r}"
    )
