"""Fluent predicate queries over fixed tables.

A query is a chain of clauses, each one column compared against one value::

    rows = (
        users.query(["ID", "Name"])
        .where("Role").does_not_match("Patient")
        .and_()
        .where("Age").greater_than(30)
        .yield_rows()
    )

Each clause scans the whole table once. Its matches are merged into the
running result with the combinator chosen before it: union for the first
clause and after ``or_()``, intersection after ``and_()``. Clauses combine
strictly left to right; there is no precedence between ``and_`` and ``or_``.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from hms_tables.errors import NumericCellError, TableQueryError

if TYPE_CHECKING:
    from hms_tables.fixed_table import FixedTable

COMPARISON_OPERATOR = re.compile(r"^(==|!=|<|<=|>|>=)$")

_UNION = "or"
_INTERSECTION = "and"


class TableQuery:
    """A query over one fixed table projecting a fixed list of columns."""

    def __init__(self, table: FixedTable, subjects: Sequence[str] | None = None) -> None:
        """Create a query.

        Args:
            table: Table to scan.
            subjects: Columns to project, in order. Defaults to the
                identifier column.

        Raises:
            TableQueryError: If a projected column does not exist.
        """
        self.table = table
        if subjects is None:
            subjects = [table.format.id_name]
        self.subjects: tuple[str, ...] = tuple(subjects)
        self._subject_cols = [self._column_index(name) for name in self.subjects]

        self._operand: int | None = None
        self._operand_name: str | None = None
        self._predicate: Callable[[str], bool] | None = None
        self._merger: str | None = None
        # projected row -> position of the first table row producing it
        self._results: dict[tuple[str, ...], int] = {}

    def _column_index(self, name: str) -> int:
        if name not in self.table.format:
            raise TableQueryError(f"Column '{name}' not found in {self.table.file_path.name}")
        return self.table.format.index_of(name)

    # --- Clause construction ---

    def where(self, name: str) -> TableQuery:
        """Select the column the next comparison reads."""
        self._operand = self._column_index(name)
        self._operand_name = name
        return self

    def matches(self, value: str | int) -> TableQuery:
        """Keep rows whose operand equals value.

        Integers compare numerically, anything else as exact text.
        """
        if isinstance(value, int) and not isinstance(value, bool):
            return self.equals(value)
        text = str(value)
        return self._set_predicate(lambda cell: cell == text)

    def does_not_match(self, value: str | int) -> TableQuery:
        """Keep rows whose operand differs from value."""
        if isinstance(value, int) and not isinstance(value, bool):
            return self.not_equals(value)
        text = str(value)
        return self._set_predicate(lambda cell: cell != text)

    def less_than(self, value: int) -> TableQuery:
        return self._set_numeric(lambda n: n < value)

    def less_or_equal(self, value: int) -> TableQuery:
        return self._set_numeric(lambda n: n <= value)

    def greater_than(self, value: int) -> TableQuery:
        return self._set_numeric(lambda n: n > value)

    def greater_or_equal(self, value: int) -> TableQuery:
        return self._set_numeric(lambda n: n >= value)

    def equals(self, value: int) -> TableQuery:
        return self._set_numeric(lambda n: n == value)

    def not_equals(self, value: int) -> TableQuery:
        return self._set_numeric(lambda n: n != value)

    def operation(self, token: str) -> Callable[[int], TableQuery]:
        """Return the numeric comparison named by an operator token.

        Raises:
            TableQueryError: If the token is not a comparison operator.
        """
        operations = {
            "==": self.equals,
            "!=": self.not_equals,
            "<": self.less_than,
            "<=": self.less_or_equal,
            ">": self.greater_than,
            ">=": self.greater_or_equal,
        }
        if not is_comparison_operator(token):
            raise TableQueryError(f"Unknown comparison operator: {token}")
        return operations[token]

    def _set_predicate(self, predicate: Callable[[str], bool]) -> TableQuery:
        if self._operand is None:
            raise TableQueryError("A comparison needs a column; call where() first")
        self._predicate = predicate
        return self

    def _set_numeric(self, compare: Callable[[int], bool]) -> TableQuery:
        column = self._operand_name

        def predicate(cell: str) -> bool:
            try:
                number = int(cell)
            except ValueError:
                raise NumericCellError(column or "", cell) from None
            return compare(number)

        return self._set_predicate(predicate)

    # --- Combination ---

    def and_(self) -> TableQuery:
        """Finish the pending clause; the next clause intersects."""
        self.execute()
        self._merger = _INTERSECTION
        return self

    def or_(self) -> TableQuery:
        """Finish the pending clause; the next clause unions."""
        self.execute()
        self._merger = _UNION
        return self

    def execute(self) -> TableQuery:
        """Run the pending clause and merge it into the results.

        Does nothing when no clause is pending.

        Raises:
            TableQueryError: If a column was selected without a comparison.
            NumericCellError: If a numeric comparison meets a non-integer cell.
        """
        if self._operand is None and self._predicate is None:
            return self
        if self._predicate is None or self._operand is None:
            raise TableQueryError(f"Clause on '{self._operand_name}' has no comparison")

        operand = self._operand
        predicate = self._predicate
        partial: dict[tuple[str, ...], int] = {}
        needed = max([operand, *self._subject_cols]) + 1
        for position, row in enumerate(self.table.data_rows()):
            if len(row) < needed:
                continue
            if predicate(row[operand]):
                projected = tuple(row[col] for col in self._subject_cols)
                partial.setdefault(projected, position)

        if self._merger == _INTERSECTION:
            self._results = {
                key: min(position, partial[key])
                for key, position in self._results.items()
                if key in partial
            }
        else:
            for key, position in partial.items():
                if key not in self._results or position < self._results[key]:
                    self._results[key] = position

        self._operand = None
        self._operand_name = None
        self._predicate = None
        return self

    # --- Results ---

    def yield_rows(self) -> list[list[str]]:
        """Execute any pending clause and return the projected rows.

        Duplicate projections collapse to one row. Rows are returned in the
        order of their first appearance in the table.
        """
        self.execute()
        ordered = sorted(self._results.items(), key=lambda item: item[1])
        return [list(key) for key, _ in ordered]

    def single_result(self) -> str | None:
        """Return the first projected cell of the first row, if any."""
        rows = self.yield_rows()
        if not rows:
            return None
        return rows[0][0]

    def column(self, result_row: Sequence[str], name: str) -> str:
        """Read a projected cell from a result row by column name."""
        try:
            return result_row[self.subjects.index(name)]
        except ValueError:
            raise TableQueryError(f"Column '{name}' is not projected by this query") from None

    @staticmethod
    def is_empty_result(rows: Sequence[Any]) -> bool:
        return len(rows) == 0


def is_comparison_operator(token: str) -> bool:
    """Check whether a token is one of ``== != < <= > >=``."""
    return COMPARISON_OPERATOR.match(token) is not None
