"""Variable-width tables: an identifier followed by a list of entries.

A row looks like::

    P001,Flu;Fever;12 January 2024 09:00;,Cold;3 March 2024 14:00;

Each cell after the identifier is an entry: items separated by ``;`` with the
timestamp as the last item, terminated by ``;``. Entry positions are 0-based
and do not count the identifier cell.
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from hms_tables.errors import EntryFormatError, UndefinedVariableError, UserNotFoundError
from hms_tables.record_store import RecordStore
from hms_tables.table_format import TableFormat

logger = structlog.get_logger(__name__)

NOT_FOUND = -1

ITEM_SEPARATOR = ";"
TIMESTAMP_FORMAT = "%d %B %Y %H:%M"


def format_timestamp(moment: datetime) -> str:
    """Render a timestamp as ``D MonthName YYYY HH:MM`` (no day padding)."""
    return f"{moment.day} {moment:%B %Y %H:%M}"


def parse_timestamp(text: str) -> datetime:
    try:
        return datetime.strptime(" ".join(text.split()), TIMESTAMP_FORMAT)
    except ValueError as e:
        raise EntryFormatError(f"Invalid entry timestamp '{text}'") from e


@functools.total_ordering
class Entry:
    """A dated list of items stored in one sparse table cell."""

    def __init__(self, items: Iterable[str], timestamp: datetime, timestamp_text: str | None = None) -> None:
        self.items: list[str] = list(items)
        self.timestamp = timestamp
        self._timestamp_text = timestamp_text or format_timestamp(timestamp)

    @classmethod
    def new(cls, timestamp: datetime) -> Entry:
        """An entry with no items yet."""
        return cls([], timestamp)

    @classmethod
    def parse(cls, text: str) -> Entry:
        """Parse ``item1;...;itemN;timestamp;``.

        Raises:
            EntryFormatError: If the text has no timestamp or it is malformed.
        """
        parts = text.split(ITEM_SEPARATOR)
        if parts and parts[-1] == "":
            parts.pop()
        if not parts:
            raise EntryFormatError(f"Entry '{text}' has no timestamp")
        timestamp_text = parts.pop().strip()
        return cls(parts, parse_timestamp(timestamp_text), timestamp_text)

    @classmethod
    def parse_all(cls, texts: Iterable[str]) -> list[Entry]:
        """Parse several entries, dropping those with no items."""
        entries = [cls.parse(text) for text in texts if text]
        return [entry for entry in entries if not entry.is_empty]

    @property
    def timestamp_text(self) -> str:
        return self._timestamp_text

    @property
    def is_empty(self) -> bool:
        """True when there are no items. The timestamp does not count."""
        return not self.items

    def add_item(self, item: str) -> None:
        self.items.append(item)

    def update_item(self, index: int, item: str) -> None:
        self.items[index] = item

    def remove_item(self, index: int) -> bool:
        """Remove an item and report whether the entry is now empty."""
        del self.items[index]
        return self.is_empty

    def serialize(self) -> str:
        if self.is_empty:
            return ""
        return "".join(f"{item}{ITEM_SEPARATOR}" for item in self.items) + f"{self._timestamp_text}{ITEM_SEPARATOR}"

    def __str__(self) -> str:
        return self.serialize()

    def __repr__(self) -> str:
        return f"Entry({self.items!r}, {self._timestamp_text!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entry):
            return NotImplemented
        return self.timestamp == other.timestamp

    def __lt__(self, other: Entry) -> bool:
        return self.timestamp < other.timestamp

    def __hash__(self) -> int:
        return hash(self.timestamp)


class SparseTable:
    """A table keyed by its first column whose rows hold any number of entries."""

    def __init__(self, file_path: Path, columns: Sequence[str], delimiter: str = ",") -> None:
        self.format = TableFormat(columns, id_column=0)
        self.store = RecordStore(file_path, delimiter)

    @classmethod
    def create(cls, file_path: Path, columns: Sequence[str], delimiter: str = ",") -> SparseTable:
        """Open a table, first writing a header-only file if none exists."""
        file_path = Path(file_path)
        if not file_path.exists():
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(delimiter.join(columns) + "\n")
        return cls(file_path, columns, delimiter)

    @property
    def columns(self) -> tuple[str, ...]:
        return self.format.columns

    @property
    def file_path(self) -> Path:
        return self.store.file_path

    def find_id(self, identifier: str) -> int | None:
        for i in range(1, self.store.count):
            row = self.store.row(i)
            if row and row[0] == identifier:
                return i
        return None

    def exists(self, identifier: str) -> bool:
        return self.find_id(identifier) is not None

    def ensure_row(self, identifier: str) -> None:
        """Add an identifier-only row unless one exists."""
        if not self.exists(identifier):
            self.store.append_row([identifier])
            logger.debug("sparse_row_added", table=self.file_path.name, identifier=identifier)

    def read_row(self, identifier: str) -> list[str] | None:
        """Return the row including its identifier cell, or None."""
        index = self.find_id(identifier)
        if index is None:
            return None
        return self.store.row(index)

    def entries(self, identifier: str) -> list[str] | None:
        """Return the entry cells of a row, or None if the identifier is absent."""
        row = self.read_row(identifier)
        if row is None:
            return None
        return row[1:]

    def append_entry(self, identifier: str, text: str) -> None:
        self.store.append_cell(self._require(identifier), text)

    def remove_entry(self, identifier: str, position: int) -> str:
        """Remove the entry at position and return its text."""
        index = self._require(identifier)
        self._check_position(index, position)
        return self.store.delete_cell(index, position + 1)

    def update_entry(self, identifier: str, position: int, text: str) -> None:
        index = self._require(identifier)
        self._check_position(index, position)
        self.store.set_cell(index, position + 1, text)

    def get_entry(self, identifier: str, position: int) -> str | None:
        """Read one entry. Returns None if the identifier is absent.

        Raises:
            UndefinedVariableError: If the position is out of range.
        """
        index = self.find_id(identifier)
        if index is None:
            return None
        self._check_position(index, position)
        return self.store.row(index)[position + 1]

    def find_entry_index(self, identifier: str, predicate: Callable[[str], bool]) -> int:
        """Return the position of the first entry satisfying predicate, or NOT_FOUND."""
        for position, text in enumerate(self.entries(identifier) or []):
            if predicate(text):
                return position
        return NOT_FOUND

    def _require(self, identifier: str) -> int:
        index = self.find_id(identifier)
        if index is None:
            raise UserNotFoundError(identifier)
        return index

    def _check_position(self, index: int, position: int) -> None:
        try:
            if position < 0:
                raise IndexError(position)
            self.store.row(index)[position + 1]
        except IndexError:
            raise UndefinedVariableError(
                f"No entry at position {position} in {self.file_path.name}"
            ) from None

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> SparseTable:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
