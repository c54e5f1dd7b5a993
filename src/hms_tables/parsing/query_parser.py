"""Parser for the table query language."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import ply.yacc as yacc

from hms_tables.errors import QuerySyntaxError
from hms_tables.parsing.query_lexer import QueryLexer


@dataclass
class Condition:
    """A single ``column op value`` clause."""

    column: str
    operator: str  # =, !=, <, <=, >, >=
    value: str | int


@dataclass
class CompoundCondition:
    """Two conditions joined by and/or.

    Chains nest to the left, so ``a and b or c`` is ``(a and b) or c``.
    """

    left: Condition | CompoundCondition
    operator: str  # and, or
    right: Condition


@dataclass
class SelectQuery:
    """A ``from ... select ... where ...`` query."""

    table: str
    columns: list[str] = field(default_factory=list)  # empty means every column
    where: Condition | CompoundCondition | None = None


@dataclass
class ShowTablesQuery:
    """A SHOW TABLES query."""

    pass


@dataclass
class DescribeQuery:
    """A DESCRIBE query."""

    table: str


Query = SelectQuery | ShowTablesQuery | DescribeQuery


class QueryParser:
    """Parser for table queries."""

    tokens = QueryLexer.tokens

    def __init__(self) -> None:
        self.lexer = QueryLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def p_statement(self, p: yacc.YaccProduction) -> None:
        """statement : query SEMICOLON
                     | query"""
        p[0] = p[1]

    def p_query_select(self, p: yacc.YaccProduction) -> None:
        """query : select_query"""
        p[0] = p[1]

    def p_query_show_tables(self, p: yacc.YaccProduction) -> None:
        """query : SHOW TABLES"""
        p[0] = ShowTablesQuery()

    def p_query_describe(self, p: yacc.YaccProduction) -> None:
        """query : DESCRIBE IDENTIFIER"""
        p[0] = DescribeQuery(table=p[2])

    def p_select_query(self, p: yacc.YaccProduction) -> None:
        """select_query : FROM IDENTIFIER select_clause where_clause"""
        p[0] = SelectQuery(table=p[2], columns=p[3], where=p[4])

    def p_select_clause_empty(self, p: yacc.YaccProduction) -> None:
        """select_clause : """
        p[0] = []

    def p_select_clause_star(self, p: yacc.YaccProduction) -> None:
        """select_clause : SELECT STAR"""
        p[0] = []

    def p_select_clause_columns(self, p: yacc.YaccProduction) -> None:
        """select_clause : SELECT column_list"""
        p[0] = p[2]

    def p_column_list_single(self, p: yacc.YaccProduction) -> None:
        """column_list : IDENTIFIER"""
        p[0] = [p[1]]

    def p_column_list_multiple(self, p: yacc.YaccProduction) -> None:
        """column_list : column_list COMMA IDENTIFIER"""
        p[0] = p[1] + [p[3]]

    def p_where_clause_empty(self, p: yacc.YaccProduction) -> None:
        """where_clause : """
        p[0] = None

    def p_where_clause(self, p: yacc.YaccProduction) -> None:
        """where_clause : WHERE condition"""
        p[0] = p[2]

    def p_condition_single(self, p: yacc.YaccProduction) -> None:
        """condition : comparison"""
        p[0] = p[1]

    def p_condition_chain(self, p: yacc.YaccProduction) -> None:
        """condition : condition AND comparison
                     | condition OR comparison"""
        # Left recursion: combinators apply in the order written
        p[0] = CompoundCondition(left=p[1], operator=p[2].lower(), right=p[3])

    def p_comparison(self, p: yacc.YaccProduction) -> None:
        """comparison : IDENTIFIER EQ value
                      | IDENTIFIER NEQ value
                      | IDENTIFIER LT value
                      | IDENTIFIER LTE value
                      | IDENTIFIER GT value
                      | IDENTIFIER GTE value"""
        operator = "=" if p[2] == "==" else p[2]
        p[0] = Condition(column=p[1], operator=operator, value=p[3])

    def p_value_integer(self, p: yacc.YaccProduction) -> None:
        """value : INTEGER"""
        p[0] = p[1]

    def p_value_string(self, p: yacc.YaccProduction) -> None:
        """value : STRING"""
        p[0] = p[1]

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise QuerySyntaxError(f"Syntax error at '{p.value}' (position {p.lexpos})")
        else:
            raise QuerySyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, start="statement", **kwargs)

    def parse(self, data: str) -> Query:
        """Parse a query string."""
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        return self.parser.parse(data, lexer=self.lexer.lexer)
