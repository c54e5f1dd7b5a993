"""Tests for the table query lexer and parser."""

import pytest

from hms_tables.errors import QuerySyntaxError
from hms_tables.parsing.query_lexer import QueryLexer, quote_name
from hms_tables.parsing.query_parser import (
    CompoundCondition,
    Condition,
    DescribeQuery,
    QueryParser,
    SelectQuery,
    ShowTablesQuery,
)


class TestQueryLexer:
    """Tests for the query lexer."""

    def test_tokenize_select(self):
        """Test tokenizing a select query."""
        lexer = QueryLexer()
        lexer.build()

        tokens = lexer.tokenize("from users select Name, Age")
        token_types = [t.type for t in tokens]

        assert token_types == ["FROM", "IDENTIFIER", "SELECT", "IDENTIFIER", "COMMA", "IDENTIFIER"]

    def test_tokenize_where(self):
        """Test tokenizing a where clause."""
        lexer = QueryLexer()
        lexer.build()

        tokens = lexer.tokenize('from users where Age >= 18 and Role != "Patient"')
        token_types = [t.type for t in tokens]

        assert token_types == [
            "FROM", "IDENTIFIER", "WHERE",
            "IDENTIFIER", "GTE", "INTEGER",
            "AND",
            "IDENTIFIER", "NEQ", "STRING",
        ]

    def test_keywords_case_insensitive(self):
        """Test that keywords are recognized in any case."""
        lexer = QueryLexer()
        lexer.build()

        tokens = lexer.tokenize("SHOW Tables")
        assert [t.type for t in tokens] == ["SHOW", "TABLES"]

    def test_backtick_identifier(self):
        """Test that back-quoted names keep spaces and never read as keywords."""
        lexer = QueryLexer()
        lexer.build()

        tokens = lexer.tokenize("`Time Slot` `from`")
        assert [(t.type, t.value) for t in tokens] == [
            ("IDENTIFIER", "Time Slot"),
            ("IDENTIFIER", "from"),
        ]

    def test_comments_and_negative_numbers(self):
        """Test that -- starts a comment but -5 is a number."""
        lexer = QueryLexer()
        lexer.build()

        tokens = lexer.tokenize("Age > -5 -- trailing comment")
        assert [t.value for t in tokens] == ["Age", ">", -5]

    def test_illegal_character(self):
        """Test that unknown characters are syntax errors."""
        lexer = QueryLexer()
        lexer.build()

        with pytest.raises(QuerySyntaxError):
            lexer.tokenize("from users where Age ~ 3")

    def test_quote_name(self):
        """Test quoting names for display in queries."""
        assert quote_name("Age") == "Age"
        assert quote_name("Time Slot") == "`Time Slot`"
        assert quote_name("tables") == "`tables`"


class TestQueryParser:
    """Tests for the query parser."""

    def setup_method(self):
        self.parser = QueryParser()

    def test_show_tables(self):
        """Test parsing SHOW TABLES."""
        assert isinstance(self.parser.parse("show tables"), ShowTablesQuery)

    def test_describe(self):
        """Test parsing DESCRIBE."""
        query = self.parser.parse("describe appointments;")
        assert query == DescribeQuery(table="appointments")

    def test_from_only(self):
        """Test that a bare from selects every column."""
        query = self.parser.parse("from users")
        assert query == SelectQuery(table="users")

    def test_select_star(self):
        """Test that select * is the same as no select."""
        query = self.parser.parse("from users select *")
        assert query.columns == []

    def test_select_columns(self):
        """Test parsing a column list."""
        query = self.parser.parse("from schedule select ScheduleId, `Time Slot`")
        assert query.columns == ["ScheduleId", "Time Slot"]

    def test_single_condition(self):
        """Test parsing one comparison."""
        query = self.parser.parse('from users where Role = "Doctor"')
        assert query.where == Condition(column="Role", operator="=", value="Doctor")

    def test_double_equals(self):
        """Test that == is accepted as =."""
        query = self.parser.parse("from users where Age == 30")
        assert query.where == Condition(column="Age", operator="=", value=30)

    def test_left_to_right_chain(self):
        """Test that and/or nest to the left without precedence."""
        query = self.parser.parse('from users where Role = "Doctor" or Role = "Patient" and Age > 40')
        where = query.where
        assert isinstance(where, CompoundCondition)
        assert where.operator == "and"
        assert where.right == Condition(column="Age", operator=">", value=40)
        assert isinstance(where.left, CompoundCondition)
        assert where.left.operator == "or"
        assert where.left.left == Condition(column="Role", operator="=", value="Doctor")

    @pytest.mark.parametrize(
        "text",
        [
            "from",
            "from users where",
            "from users where Age >",
            "from users where (Age > 3)",
            "from users select",
            "show",
            "describe",
        ],
    )
    def test_syntax_errors(self, text):
        """Test that malformed statements raise QuerySyntaxError."""
        with pytest.raises(QuerySyntaxError):
            self.parser.parse(text)

    def test_syntax_error_is_a_syntax_error(self):
        """Test that callers can catch the built-in category."""
        with pytest.raises(SyntaxError):
            self.parser.parse("from users where")
