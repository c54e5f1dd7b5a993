"""Tests for running parsed queries against the hospital tables."""

import pytest

from hms_tables.errors import TableQueryError
from hms_tables.parsing.query_parser import QueryParser
from hms_tables.query_executor import QueryExecutor, QueryResult
from hms_tables.system import HospitalSystem


@pytest.fixture
def run(hospital: HospitalSystem):
    parser = QueryParser()
    executor = QueryExecutor(hospital.tables)

    def run(text: str) -> QueryResult:
        return executor.execute(parser.parse(text))

    return run


class TestCatalog:
    """Tests for SHOW TABLES and DESCRIBE."""

    def test_show_tables(self, run):
        """Test listing the queryable tables."""
        result = run("show tables")
        assert result.columns == ["table", "file", "count"]
        assert [row["table"] for row in result.rows] == [
            "appointments",
            "medicines",
            "permissions",
            "roles",
            "schedule",
            "users",
        ]
        users = next(row for row in result.rows if row["table"] == "users")
        assert users["file"] == "users.csv"
        assert users["count"] == 4

    def test_passwords_are_not_queryable(self, run):
        """Test that password hashes stay out of the catalog."""
        result = run("from passwords")
        assert result.rows == []
        assert result.message == "Unknown table: passwords"

    def test_describe(self, run):
        """Test describing a table's columns."""
        result = run("describe schedule")
        assert result.rows[0] == {"column": "ScheduleId", "write as": "ScheduleId", "key": "yes"}
        slot = next(row for row in result.rows if row["column"] == "Time Slot")
        assert slot == {"column": "Time Slot", "write as": "`Time Slot`", "key": ""}

    def test_describe_unknown_table(self, run):
        """Test describing a missing table."""
        assert run("describe billing").message == "Unknown table: billing"


class TestSelect:
    """Tests for SELECT queries."""

    def test_select_all(self, run):
        """Test that a bare from lists every row and column."""
        result = run("from roles")
        assert result.columns == ["ID", "Role"]
        assert result.rows == [
            {"ID": "A001", "Role": "Administrator"},
            {"ID": "D001", "Role": "Doctor"},
            {"ID": "P001", "Role": "Patient"},
            {"ID": "PH01", "Role": "Pharmacist"},
        ]

    def test_select_without_where_keeps_duplicates(self, run):
        """Test that unfiltered projections list every row."""
        result = run("from medicines select `Low Stock Level Alert`")
        assert result.rows == [{"Low Stock Level Alert": "20"}, {"Low Stock Level Alert": "20"}]

    def test_where_text(self, run):
        """Test text equality and inequality."""
        result = run('from users select ID, Name where Role = "Doctor"')
        assert result.rows == [{"ID": "D001", "Name": "Dr Grey"}]
        result = run('from roles select ID where Role != "Patient" and Role != "Administrator"')
        assert [row["ID"] for row in result.rows] == ["D001", "PH01"]

    def test_where_or(self, run):
        """Test unions."""
        result = run('from roles select ID where Role == "Doctor" or Role == "Pharmacist"')
        assert [row["ID"] for row in result.rows] == ["D001", "PH01"]

    def test_where_numeric(self, run):
        """Test numeric comparison over a stock column."""
        result = run("from medicines select `Medicine Name` where `Initial Stock` < 10")
        assert result.rows == [{"Medicine Name": "Ibuprofen"}]
        result = run("from medicines select `Medicine Name` where `Initial Stock` = 50")
        assert result.rows == [{"Medicine Name": "Paracetamol"}]

    def test_filtered_projection_collapses_duplicates(self, run):
        """Test that equal filtered projections are listed once."""
        result = run("from medicines select `Low Stock Level Alert` where `Initial Stock` >= 0")
        assert result.rows == [{"Low Stock Level Alert": "20"}]

    def test_unknown_table(self, run):
        """Test selecting from a missing table."""
        assert run("from billing").message == "Unknown table: billing"

    def test_unknown_column(self, run):
        """Test that unknown columns raise TableQueryError."""
        with pytest.raises(TableQueryError):
            run("from users select Height")
        with pytest.raises(TableQueryError):
            run("from users where Height = 3")

    def test_ordering_needs_number(self, run):
        """Test that < and friends reject text values."""
        with pytest.raises(TableQueryError):
            run('from users where Name > "M"')
