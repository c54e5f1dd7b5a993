"""Column layout shared by fixed and sparse tables."""

from __future__ import annotations

from collections.abc import Sequence

from hms_tables.errors import UndefinedVariableError


class TableFormat:
    """An ordered list of distinct column names plus the identifier column."""

    def __init__(self, columns: Sequence[str], id_column: int = 0) -> None:
        if not columns:
            raise ValueError("A table needs at least one column")
        if len(set(columns)) != len(columns):
            raise ValueError(f"Duplicate column names in {list(columns)}")
        if id_column < 0 or id_column >= len(columns):
            raise IndexError(f"Identifier column {id_column} out of range [0, {len(columns)})")

        self.columns: tuple[str, ...] = tuple(columns)
        self.id_column = id_column
        self._positions = {name: i for i, name in enumerate(self.columns)}

    @property
    def width(self) -> int:
        return len(self.columns)

    @property
    def id_name(self) -> str:
        return self.columns[self.id_column]

    def index_of(self, name: str) -> int:
        """Return the position of a column.

        Raises:
            UndefinedVariableError: If the column does not exist.
        """
        try:
            return self._positions[name]
        except KeyError:
            raise UndefinedVariableError(f"Undefined variable: {name}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._positions

    def __len__(self) -> int:
        return len(self.columns)

    def __repr__(self) -> str:
        return f"TableFormat({list(self.columns)!r}, id_column={self.id_column})"
