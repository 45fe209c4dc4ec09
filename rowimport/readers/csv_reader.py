"""
rowimport/readers/csv_reader.py

Delimited-file reader feeding the import engine.
"""

from __future__ import annotations

import csv
import io
import logging
import re
from pathlib import Path
from typing import IO, Any

from rowimport.config import get_import_settings
from rowimport.errors import ConfigurationError, MalformedCSVError

logger = logging.getLogger(__name__)

SEPARATORS: tuple[str, ...] = (",", ";", "\t")

_LINE_BREAKS = re.compile(r"\r\r?\n?")

# Sentinel: take the quote character from import settings.
USE_SETTINGS: Any = object()


class CSVReader:
    """
    Reads one source (`content`, `file` or `path`, first given wins) into a header
    row and data rows.

    Line endings are normalized, the separator is detected among comma, semicolon
    and tab, blank lines are dropped and every cell is stripped. Parsing happens
    once, on first access.
    """

    def __init__(
        self,
        *,
        content: str | bytes | None = None,
        file: IO[Any] | None = None,
        path: str | Path | None = None,
        quote_char: str | None = USE_SETTINGS,
        encoding: str | None = None,
    ) -> None:
        settings = get_import_settings()
        self.content = content
        self.file = file
        self.path = path
        self.quote_char = settings.csv_quote_char if quote_char is USE_SETTINGS else quote_char
        self.encoding = encoding or settings.csv_encoding
        self._csv_rows: list[list[str]] | None = None

    @property
    def header(self) -> list[str]:
        rows = self.csv_rows
        return list(rows[0]) if rows else []

    @property
    def rows(self) -> list[list[str]]:
        return [list(row) for row in self.csv_rows[1:]]

    @property
    def csv_rows(self) -> list[list[str]]:
        if self._csv_rows is None:
            try:
                raw = self._read_content()
            except UnicodeDecodeError as exc:
                raise MalformedCSVError(f"Cannot decode source: {exc}") from exc
            text = self._sanitize(raw)
            separator = detect_separator(text)
            self._csv_rows = self._parse(text, separator)
            logger.debug(
                "Parsed %d rows with separator %r",
                len(self._csv_rows),
                separator,
            )
        return self._csv_rows

    def _read_content(self) -> str | bytes:
        if self.content is not None:
            return self.content
        if self.file is not None:
            return self.file.read()
        if self.path is not None:
            return Path(self.path).read_bytes()
        raise ConfigurationError("Please provide content, file, or path.")

    def _sanitize(self, raw: str | bytes) -> str:
        if isinstance(raw, bytes):
            try:
                text = raw.decode(self.encoding, errors="ignore")
            except LookupError as exc:
                raise ConfigurationError(f"Unknown encoding {self.encoding!r}.") from exc
        else:
            text = str(raw)
        text = text.lstrip("\ufeff")
        return _LINE_BREAKS.sub("\n", text)

    def _parse(self, text: str, separator: str) -> list[list[str]]:
        if self.quote_char:
            dialect_options: dict[str, Any] = {"quotechar": self.quote_char}
        else:
            dialect_options = {"quoting": csv.QUOTE_NONE}

        reader = csv.reader(io.StringIO(text), delimiter=separator, strict=True, **dialect_options)
        try:
            return [
                [cell.strip() if cell is not None else "" for cell in row]
                for row in reader
                if row
            ]
        except csv.Error as exc:
            raise MalformedCSVError(f"Malformed CSV on line {reader.line_num}: {exc}") from exc


def detect_separator(text: str) -> str:
    """
    Pick the separator whose per-line count deviates least from the first line.

    Separators absent from the first line are never chosen; empty input and ties
    fall back to the earliest candidate.
    """

    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    if not lines:
        return ","

    first_line = lines[0]
    best_separator = SEPARATORS[0]
    best_score: float | None = None
    for separator in SEPARATORS:
        base = first_line.count(separator)
        if base == 0:
            score = float("inf")
        else:
            score = sum(abs(line.count(separator) - base) for line in lines)
        if best_score is None or score < best_score:
            best_separator, best_score = separator, score
    return best_separator
