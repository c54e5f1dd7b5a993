"""Query executor for ad-hoc reads over the hospital tables."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from hms_tables.errors import TableQueryError
from hms_tables.fixed_table import FixedTable
from hms_tables.parsing.query_lexer import quote_name
from hms_tables.parsing.query_parser import (
    CompoundCondition,
    Condition,
    DescribeQuery,
    Query,
    SelectQuery,
    ShowTablesQuery,
)
from hms_tables.query import TableQuery


@dataclass
class QueryResult:
    """Result of a query execution."""

    columns: list[str]
    rows: list[dict[str, Any]]
    message: str | None = None


class QueryExecutor:
    """Executes parsed queries against a catalog of fixed tables."""

    def __init__(self, tables: Mapping[str, FixedTable]) -> None:
        self.tables = tables

    def execute(self, query: Query) -> QueryResult:
        """Execute a query and return results.

        Raises:
            TableQueryError: If a column is unknown or a comparison cannot
                be applied.
        """
        if isinstance(query, ShowTablesQuery):
            return self._execute_show_tables(query)
        elif isinstance(query, DescribeQuery):
            return self._execute_describe(query)
        elif isinstance(query, SelectQuery):
            return self._execute_select(query)
        else:
            raise ValueError(f"Unknown query type: {type(query)}")

    def _execute_show_tables(self, query: ShowTablesQuery) -> QueryResult:
        rows = [
            {"table": name, "file": table.file_path.name, "count": table.count}
            for name, table in sorted(self.tables.items())
        ]
        return QueryResult(columns=["table", "file", "count"], rows=rows)

    def _execute_describe(self, query: DescribeQuery) -> QueryResult:
        table = self.tables.get(query.table)
        if table is None:
            return QueryResult(columns=[], rows=[], message=f"Unknown table: {query.table}")
        rows = [
            {
                "column": name,
                "write as": quote_name(name),
                "key": "yes" if i == table.format.id_column else "",
            }
            for i, name in enumerate(table.columns)
        ]
        return QueryResult(columns=["column", "write as", "key"], rows=rows)

    def _execute_select(self, query: SelectQuery) -> QueryResult:
        table = self.tables.get(query.table)
        if table is None:
            return QueryResult(columns=[], rows=[], message=f"Unknown table: {query.table}")

        columns = list(query.columns) or list(table.columns)
        for name in columns:
            if name not in table.format:
                raise TableQueryError(f"Column '{name}' not found in {query.table}")

        if query.where is None:
            # Without a filter every well-formed row is listed, duplicates included
            indices = [table.index_of(name) for name in columns]
            rows = [
                {name: row[i] for name, i in zip(columns, indices)}
                for row in table.data_rows()
                if len(row) == len(table.columns)
            ]
            return QueryResult(columns=columns, rows=rows)

        table_query = table.query(columns)
        self._apply(table_query, query.where)
        rows = [dict(zip(columns, row)) for row in table_query.yield_rows()]
        return QueryResult(columns=columns, rows=rows)

    def _apply(self, table_query: TableQuery, condition: Condition | CompoundCondition) -> None:
        """Replay a condition tree as the equivalent fluent chain."""
        if isinstance(condition, CompoundCondition):
            self._apply(table_query, condition.left)
            if condition.operator == "and":
                table_query.and_()
            else:
                table_query.or_()
            self._apply(table_query, condition.right)
            return

        table_query.where(condition.column)
        value = condition.value
        if condition.operator == "=":
            table_query.matches(value)
        elif condition.operator == "!=":
            table_query.does_not_match(value)
        elif isinstance(value, str):
            raise TableQueryError(
                f"'{condition.operator}' compares numbers; got \"{value}\" for {condition.column}"
            )
        else:
            table_query.operation(condition.operator)(value)
