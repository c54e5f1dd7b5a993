"""Delimited flat-file storage backing every table."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, TypeVar

import structlog

from hms_tables.errors import TableLoadError, TableMismatchError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RecordStore:
    """An in-memory copy of a delimited text file.

    Row 0 is the header. It is loaded and written back like any other row,
    but the column readers skip it. The store places no constraint on row
    width; fixed-width rules live in the tables built on top of it.

    Appends write a single line to the end of the file. Every other mutation
    rewrites the whole file, so the file always matches memory once a call
    returns.
    """

    def __init__(self, file_path: Path, delimiter: str = ",") -> None:
        """Load the file.

        Args:
            file_path: Path of the backing file. It must already exist.
            delimiter: Cell separator. There is no quoting or escaping.

        Raises:
            TableLoadError: If the file cannot be opened.
        """
        self.file_path = Path(file_path)
        self.delimiter = delimiter
        self._rows: list[list[str]] = []

        try:
            text = self.file_path.read_text()
        except OSError as e:
            raise TableLoadError(f"Cannot load table file {self.file_path}: {e}") from e

        for line in text.splitlines():
            self._rows.append(line.split(delimiter) if line else [])
        # A final line without a newline must be terminated before the next append
        self._unterminated = bool(text) and not text.endswith("\n")

        logger.debug("table_loaded", path=str(self.file_path), rows=len(self._rows))

    @property
    def count(self) -> int:
        """Number of rows, header included."""
        return len(self._rows)

    def row(self, index: int, strip: bool = True) -> list[str]:
        """Return a copy of a row.

        Args:
            index: 0-based row position (0 is the header).
            strip: Trim surrounding whitespace from each cell. Pass False for
                cells whose exact bytes matter, such as stored hashes.

        Raises:
            IndexError: If index is out of range.
        """
        if index < 0 or index >= len(self._rows):
            raise IndexError(f"Row {index} out of range [0, {len(self._rows)})")
        cells = self._rows[index]
        if strip:
            return [cell.strip() for cell in cells]
        return list(cells)

    def rows(self) -> tuple[tuple[str, ...], ...]:
        """Return an immutable snapshot of every row, cells trimmed."""
        return tuple(tuple(cell.strip() for cell in row) for row in self._rows)

    def read_column(self, col: int) -> list[str]:
        """Read one column from every data row long enough to hold it."""
        return [row[col] for row in self._data_rows() if len(row) > col]

    def read_two_columns(
        self,
        key_col: int,
        value_col: int,
        convert: Callable[[str], T] | None = None,
    ) -> dict[str, Any]:
        """Map one column onto another across the data rows.

        Args:
            key_col: Column supplying the keys.
            value_col: Column supplying the values.
            convert: Optional function applied to each value.

        Returns:
            A dict of key to (converted) value. Later rows overwrite earlier
            rows with the same key. Rows too short for either column are
            ignored.
        """
        result: dict[str, Any] = {}
        for row in self._data_rows():
            if len(row) > key_col and len(row) > value_col:
                value = row[value_col]
                result[row[key_col]] = convert(value) if convert else value
        return result

    def append_row(self, cells: Iterable[str]) -> None:
        """Append a row to memory and as one new line of the file."""
        new_row = self.check_cells(cells)
        with open(self.file_path, "a") as f:
            if self._unterminated:
                f.write("\n")
                self._unterminated = False
            f.write(self.delimiter.join(new_row) + "\n")
        self._rows.append(new_row)
        logger.debug("row_appended", path=str(self.file_path), row=len(self._rows) - 1)

    def remove_row(self, index: int) -> list[str]:
        """Delete a row and return its raw cells."""
        self._check_index(index)
        removed = self._rows.pop(index)
        self._write_all()
        return removed

    def set_cell(self, index: int, col: int, value: str) -> None:
        """Overwrite one cell."""
        self._check_index(index)
        (value,) = self.check_cells([value])
        row = self._rows[index]
        if col < 0 or col >= len(row):
            raise IndexError(f"Cell {col} out of range for row {index} of width {len(row)}")
        row[col] = value
        self._write_all()

    def append_cell(self, index: int, value: str) -> None:
        """Append one cell to the end of a row."""
        self._check_index(index)
        (value,) = self.check_cells([value])
        self._rows[index].append(value)
        self._write_all()

    def insert_cell(self, index: int, col: int, value: str) -> None:
        """Insert one cell before position col, shifting the rest right."""
        self._check_index(index)
        (value,) = self.check_cells([value])
        row = self._rows[index]
        if col < 0 or col > len(row):
            raise IndexError(f"Cell {col} out of range for row {index} of width {len(row)}")
        row.insert(col, value)
        self._write_all()

    def delete_cell(self, index: int, col: int) -> str:
        """Remove one cell from a row and return its raw value."""
        self._check_index(index)
        row = self._rows[index]
        if col < 0 or col >= len(row):
            raise IndexError(f"Cell {col} out of range for row {index} of width {len(row)}")
        removed = row.pop(col)
        self._write_all()
        return removed

    def _data_rows(self) -> list[list[str]]:
        return [[cell.strip() for cell in row] for row in self._rows[1:]]

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= len(self._rows):
            raise IndexError(f"Row {index} out of range [0, {len(self._rows)})")

    def check_cells(self, cells: Iterable[str]) -> list[str]:
        """Reject cells that would change the row's shape once written."""
        checked = []
        for cell in cells:
            cell = str(cell)
            if self.delimiter in cell or "\n" in cell or "\r" in cell:
                raise TableMismatchError(
                    f"Cell {cell!r} contains the delimiter {self.delimiter!r} or a line break"
                )
            checked.append(cell)
        return checked

    def _write_all(self) -> None:
        with open(self.file_path, "w") as f:
            for row in self._rows:
                f.write(self.delimiter.join(row) + "\n")
        self._unterminated = False
        logger.debug("table_rewritten", path=str(self.file_path), rows=len(self._rows))

    def close(self) -> None:
        """Release the store. Data is already on disk."""

    def __enter__(self) -> RecordStore:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
