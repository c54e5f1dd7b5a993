"""Parsing module for the table query language."""

from hms_tables.parsing.query_lexer import QueryLexer, quote_name
from hms_tables.parsing.query_parser import (
    CompoundCondition,
    Condition,
    DescribeQuery,
    QueryParser,
    SelectQuery,
    ShowTablesQuery,
)

__all__ = [
    "CompoundCondition",
    "Condition",
    "DescribeQuery",
    "QueryLexer",
    "QueryParser",
    "SelectQuery",
    "ShowTablesQuery",
    "quote_name",
]
