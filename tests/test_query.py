"""Tests for fluent table queries."""

from pathlib import Path

import pytest

from hms_tables.errors import NumericCellError, TableQueryError
from hms_tables.fixed_table import FixedTable
from hms_tables.query import TableQuery, is_comparison_operator

COLUMNS = ["ID", "Name", "Role", "Age"]


@pytest.fixture
def people(tmp_path: Path) -> FixedTable:
    table = FixedTable.create(tmp_path / "users.csv", COLUMNS)
    table.add_row(["P1", "Ann", "Patient", "30"])
    table.add_row(["D1", "Bo", "Doctor", "45"])
    table.add_row(["D2", "Cy", "Doctor", "29"])
    table.add_row(["A1", "Di", "Administrator", "52"])
    return table


class TestClauses:
    """Tests for single clauses."""

    def test_default_projection_is_identifier(self, people: FixedTable):
        """Test that queries project the identifier column by default."""
        rows = people.query().where("Role").matches("Doctor").yield_rows()
        assert rows == [["D1"], ["D2"]]

    def test_projection(self, people: FixedTable):
        """Test projecting several columns in the given order."""
        rows = people.query(["Name", "ID"]).where("Age").greater_than(40).yield_rows()
        assert rows == [["Bo", "D1"], ["Di", "A1"]]

    def test_does_not_match(self, people: FixedTable):
        """Test text inequality."""
        rows = people.query().where("Role").does_not_match("Doctor").yield_rows()
        assert rows == [["P1"], ["A1"]]

    def test_numeric_comparisons(self, people: FixedTable):
        """Test each numeric comparator."""
        assert people.query().where("Age").less_than(30).yield_rows() == [["D2"]]
        assert people.query().where("Age").less_or_equal(30).yield_rows() == [["P1"], ["D2"]]
        assert people.query().where("Age").greater_or_equal(52).yield_rows() == [["A1"]]
        assert people.query().where("Age").equals(45).yield_rows() == [["D1"]]
        assert len(people.query().where("Age").not_equals(45).yield_rows()) == 3

    def test_matches_integer_is_numeric(self, people: FixedTable):
        """Test that matches() with an int compares numbers."""
        people.update_cell("P1", "Age", "030")
        assert people.query().where("Age").matches(30).yield_rows() == [["P1"]]
        assert people.query().where("Age").matches("30").yield_rows() == []

    def test_operation_lookup(self, people: FixedTable):
        """Test resolving operator tokens."""
        query = people.query().where("Age")
        assert query.operation(">=")(45).yield_rows() == [["D1"], ["A1"]]
        with pytest.raises(TableQueryError):
            people.query().operation("=>")

    def test_is_comparison_operator(self):
        """Test the operator token check."""
        for token in ("==", "!=", "<", "<=", ">", ">="):
            assert is_comparison_operator(token)
        assert not is_comparison_operator("=")
        assert not is_comparison_operator("<>")

    def test_single_result(self, people: FixedTable):
        """Test reading the first projected cell."""
        assert people.query(["Name"]).where("ID").matches("D2").single_result() == "Cy"
        assert people.query().where("ID").matches("X").single_result() is None

    def test_column_of_result(self, people: FixedTable):
        """Test reading a result cell by name."""
        query = people.query(["ID", "Name"]).where("ID").matches("D1")
        row = query.yield_rows()[0]
        assert query.column(row, "Name") == "Bo"
        with pytest.raises(TableQueryError):
            query.column(row, "Age")

    def test_empty_result(self, people: FixedTable):
        """Test the empty result helper."""
        assert TableQuery.is_empty_result([])
        assert not TableQuery.is_empty_result([["P1"]])


class TestCombination:
    """Tests for and/or chains."""

    def test_and_is_intersection(self, people: FixedTable):
        """Test that and_() keeps rows matching both clauses."""
        rows = people.query().where("Role").matches("Doctor").and_().where("Age").greater_than(40).yield_rows()
        assert rows == [["D1"]]

    def test_or_is_union(self, people: FixedTable):
        """Test that or_() keeps rows matching either clause."""
        rows = people.query().where("Role").matches("Patient").or_().where("Age").greater_than(50).yield_rows()
        assert rows == [["P1"], ["A1"]]

    def test_strictly_left_to_right(self, people: FixedTable):
        """Test that a or b and c means (a or b) and c."""
        rows = (
            people.query()
            .where("Role").matches("Doctor")
            .or_().where("Role").matches("Patient")
            .and_().where("Age").greater_than(40)
            .yield_rows()
        )
        # Precedence-style grouping would also keep D2
        assert rows == [["D1"]]

    def test_duplicate_projections_collapse(self, people: FixedTable):
        """Test that equal projected rows are returned once."""
        rows = people.query(["Role"]).where("Age").greater_than(0).yield_rows()
        assert rows == [["Patient"], ["Doctor"], ["Administrator"]]

    def test_short_rows_are_skipped(self, people: FixedTable):
        """Test that malformed rows do not break a scan."""
        people.store.append_row(["X1"])
        assert people.query().where("Role").matches("Doctor").yield_rows() == [["D1"], ["D2"]]


class TestErrors:
    """Tests for query errors."""

    def test_unknown_column(self, people: FixedTable):
        """Test that unknown columns raise TableQueryError."""
        with pytest.raises(TableQueryError):
            people.query(["Height"])
        with pytest.raises(TableQueryError):
            people.query().where("Height")

    def test_comparison_without_where(self, people: FixedTable):
        """Test that a comparison needs a column."""
        with pytest.raises(TableQueryError):
            people.query().matches("Ann")

    def test_where_without_comparison(self, people: FixedTable):
        """Test that a dangling where() is an error."""
        with pytest.raises(TableQueryError):
            people.query().where("Name").and_()

    def test_non_numeric_cell(self, people: FixedTable):
        """Test that numeric comparison over text is recoverable."""
        with pytest.raises(NumericCellError) as exc_info:
            people.query().where("Name").greater_than(3).yield_rows()
        assert exc_info.value.column == "Name"
        assert isinstance(exc_info.value, TableQueryError)
