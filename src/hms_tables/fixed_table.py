"""Fixed-width tables keyed by an identifier column."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from hms_tables.errors import TableMismatchError, UserNotFoundError
from hms_tables.record_store import RecordStore
from hms_tables.table_format import TableFormat

if TYPE_CHECKING:
    from hms_tables.query import TableQuery

logger = structlog.get_logger(__name__)

LIST_SEPARATOR = ";"
EMPTY_LIST_MARKERS = ("", "NA")


def parse_list_cell(text: str) -> list[str]:
    """Split a cell holding ``a;b;c;`` into its items.

    Empty cells and the ``NA`` marker are empty lists.
    """
    if text in EMPTY_LIST_MARKERS:
        return []
    return [item for item in text.split(LIST_SEPARATOR) if item]


def format_list_cell(items: Sequence[str]) -> str:
    """Join items into a list cell, each followed by the separator."""
    return "".join(f"{item}{LIST_SEPARATOR}" for item in items)


class FixedTable:
    """A table whose data rows all have one cell per column.

    Lookups scan the identifier column from the first data row and stop at
    the first match. Duplicate identifiers may exist in the file but only
    the first is reachable.
    """

    def __init__(
        self,
        file_path: Path,
        columns: Sequence[str],
        id_column: int = 0,
        delimiter: str = ",",
    ) -> None:
        self.format = TableFormat(columns, id_column)
        self.store = RecordStore(file_path, delimiter)

    @classmethod
    def create(
        cls,
        file_path: Path,
        columns: Sequence[str],
        id_column: int = 0,
        delimiter: str = ",",
    ) -> FixedTable:
        """Open a table, first writing a header-only file if none exists."""
        file_path = Path(file_path)
        if not file_path.exists():
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(delimiter.join(columns) + "\n")
        return cls(file_path, columns, id_column, delimiter)

    @property
    def columns(self) -> tuple[str, ...]:
        return self.format.columns

    @property
    def file_path(self) -> Path:
        return self.store.file_path

    @property
    def count(self) -> int:
        """Number of data rows (header excluded)."""
        return max(self.store.count - 1, 0)

    def index_of(self, name: str) -> int:
        return self.format.index_of(name)

    def find_id(self, identifier: str) -> int | None:
        """Return the store row index of the first row with this identifier."""
        id_col = self.format.id_column
        for i in range(1, self.store.count):
            row = self.store.row(i)
            if len(row) > id_col and row[id_col] == identifier:
                return i
        return None

    def exists(self, identifier: str) -> bool:
        return self.find_id(identifier) is not None

    def check_exists(self, identifier: str) -> int:
        """Return the row index for an identifier or raise UserNotFoundError."""
        index = self.find_id(identifier)
        if index is None:
            raise UserNotFoundError(identifier)
        return index

    def read_row(self, identifier: str) -> list[str] | None:
        """Return a copy of the row, or None if the identifier is absent."""
        index = self.find_id(identifier)
        if index is None:
            return None
        return self.store.row(index)

    def read_cell(self, identifier: str, name: str, strip: bool = True) -> str | None:
        """Read one attribute of a row.

        Returns:
            The cell value, or None if the identifier is absent.

        Raises:
            UndefinedVariableError: If the attribute does not exist.
        """
        col = self.format.index_of(name)
        index = self.find_id(identifier)
        if index is None:
            return None
        return self.store.row(index, strip=strip)[col]

    def read_list_cell(self, identifier: str, name: str) -> list[str] | None:
        value = self.read_cell(identifier, name)
        if value is None:
            return None
        return parse_list_cell(value)

    def add_row(self, cells: Sequence[str]) -> None:
        """Append a row.

        Raises:
            TableMismatchError: If the row width differs from the column count
                or a cell holds the delimiter or a line break. Nothing is
                written in that case.
        """
        self.check_row(cells)
        self.store.append_row(cells)

    def update_cell(self, identifier: str, name: str, value: str) -> None:
        """Overwrite one attribute of the row with this identifier.

        Raises:
            UndefinedVariableError: If the attribute does not exist.
            UserNotFoundError: If the identifier is absent.
        """
        col = self.format.index_of(name)
        index = self.check_exists(identifier)
        self.store.set_cell(index, col, value)

    def update_list_cell(self, identifier: str, name: str, items: Sequence[str]) -> None:
        self.update_cell(identifier, name, format_list_cell(items))

    def remove_row(self, identifier: str) -> list[str] | None:
        """Remove the first row with this identifier.

        Returns:
            The removed cells, or None if nothing was removed.
        """
        index = self.find_id(identifier)
        if index is None:
            return None
        removed = self.store.remove_row(index)
        logger.debug("row_removed", table=self.file_path.name, identifier=identifier)
        return removed

    def project(self, row: Sequence[str], name: str) -> str:
        """Read an attribute from a row-shaped list."""
        self._check_width(row)
        return row[self.format.index_of(name)]

    def assign(self, row: list[str], name: str, value: str) -> list[str]:
        """Set an attribute in a row-shaped list and return the list."""
        self._check_width(row)
        row[self.format.index_of(name)] = value
        return row

    def new_row(self, values: Mapping[str, str]) -> list[str]:
        """Build a full-width row, filling unnamed columns with empty cells."""
        row = [""] * self.format.width
        for name, value in values.items():
            row[self.format.index_of(name)] = value
        return row

    def read_column(self, name: str) -> list[str]:
        return self.store.read_column(self.format.index_of(name))

    def read_two_columns(
        self,
        key_name: str,
        value_name: str,
        convert: Callable[[str], Any] | None = None,
    ) -> dict[str, Any]:
        return self.store.read_two_columns(
            self.format.index_of(key_name),
            self.format.index_of(value_name),
            convert,
        )

    def data_rows(self) -> list[tuple[str, ...]]:
        """Snapshot of the data rows, header excluded."""
        return list(self.store.rows()[1:])

    def query(self, subjects: Sequence[str] | None = None) -> TableQuery:
        """Start a query projecting the given columns (identifier by default)."""
        from hms_tables.query import TableQuery

        return TableQuery(self, subjects)

    def check_row(self, cells: Sequence[str]) -> None:
        """Raise TableMismatchError unless add_row would accept the row."""
        if len(cells) != self.format.width:
            raise TableMismatchError(
                f"Row has {len(cells)} cells, table {self.file_path.name} has {self.format.width} columns"
            )
        self.store.check_cells(cells)

    def _check_width(self, row: Sequence[str]) -> None:
        if len(row) != self.format.width:
            raise TableMismatchError(
                f"Row has {len(row)} cells, expected {self.format.width}"
            )

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> FixedTable:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
