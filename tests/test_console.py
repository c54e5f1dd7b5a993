"""Tests for the command line and the interactive console."""

from datetime import date
from pathlib import Path

import pytest

from hms_tables.console import (
    collect,
    main,
    parse_date,
    parse_position,
    print_result,
    run_console,
    run_option,
    show,
    split_statements,
)
from hms_tables.errors import InvalidInputError
from hms_tables.managers.appointments import Outcome
from hms_tables.query_executor import QueryResult
from hms_tables.system import HospitalSystem

from conftest import ADMIN, PASSWORD


def feed(monkeypatch, lines: list[str], secrets: list[str] = ()) -> None:
    """Answer input() and getpass() from lists, then signal end of input."""
    answers = iter(lines)
    hidden = iter(secrets)

    def fake_input(prompt: str = "") -> str:
        try:
            return next(answers)
        except StopIteration:
            raise EOFError from None

    def fake_getpass(prompt: str = "") -> str:
        try:
            return next(hidden)
        except StopIteration:
            raise EOFError from None

    monkeypatch.setattr("builtins.input", fake_input)
    monkeypatch.setattr("hms_tables.console.getpass", fake_getpass)


class TestSplitStatements:
    """Tests for split_statements."""

    def test_semicolons_in_strings(self):
        """Test that quoted semicolons do not split."""
        content = 'from users;\n-- the doctors\nfrom roles where Role = "a;b";'
        assert split_statements(content) == ["from users", 'from roles where Role = "a;b"']

    def test_trailing_statement(self):
        """Test a final statement without a semicolon."""
        assert split_statements("show tables") == ["show tables"]
        assert split_statements(" ; ;") == []


class TestDisplay:
    """Tests for printing results."""

    def test_print_result(self, capsys):
        """Test the table layout."""
        print_result(QueryResult(columns=["ID", "Role"], rows=[{"ID": "D001", "Role": "Doctor"}]))
        out = capsys.readouterr().out.splitlines()
        assert out[0] == "ID   | Role  "
        assert out[2] == "D001 | Doctor"
        assert out[-1] == "(1 row)"

    def test_print_empty_and_message(self, capsys):
        """Test empty results and error messages."""
        print_result(QueryResult(columns=["ID"], rows=[]))
        print_result(QueryResult(columns=[], rows=[], message="Unknown table: x"))
        assert capsys.readouterr().out == "(no results)\nError: Unknown table: x\n"

    def test_show_outcome(self, capsys):
        """Test reporting an appointment outcome."""
        show("WRITE_APPOINTMENT_OUTCOME", Outcome("P001X", ["Paracetamol"], ["Ibuprofen"]))
        out = capsys.readouterr().out
        assert "Prescribed: Paracetamol" in out
        assert "Out of stock, not prescribed: Ibuprofen" in out

    def test_show_bare_rows(self, capsys):
        """Test that row lists get their column names."""
        show("READ_MEDICINE_LIST", [("Paracetamol", "50", "20", "Fulfilled")])
        out = capsys.readouterr().out
        assert out.startswith("Medicine Name")
        assert "Paracetamol" in out


class TestPrompts:
    """Tests for parameter prompts."""

    def test_parsers(self):
        """Test converting typed answers."""
        assert parse_date("2030-01-05") == date(2030, 1, 5)
        assert parse_position("1") == 0
        with pytest.raises(InvalidInputError):
            parse_date("05/01/2030")
        with pytest.raises(InvalidInputError):
            parse_position("first")

    def test_conditional_prompts(self, monkeypatch):
        """Test that prompts depend on earlier answers."""
        feed(monkeypatch, ["A1", "Diagnoses", "Delete", "2"])
        params = collect("WRITE_ANY_MEDICAL_RECORD")
        assert params == {"appointment_id": "A1", "attribute": "Diagnoses", "operation": "Delete", "index": 1}

    def test_optional_prompt_skipped(self, monkeypatch):
        """Test that blank optional answers are left out."""
        feed(monkeypatch, [""])
        assert collect("CANCEL_PATIENT_APPOINTMENT") == {}


class TestMain:
    """Tests for the command line entry point."""

    def test_init(self, tmp_path: Path, capsys):
        """Test creating a data directory."""
        assert main(["init", str(tmp_path / "data"), "--admin-id", "A100"]) == 0
        assert "A100" in (tmp_path / "data" / "users.csv").read_text()
        assert "Initialized" in capsys.readouterr().out

    def test_command(self, hospital: HospitalSystem, capsys):
        """Test running one query."""
        data_dir = str(hospital.config.data_dir)
        assert main([data_dir, "-c", 'from roles select ID where Role = "Doctor"']) == 0
        out = capsys.readouterr().out
        assert "D001" in out
        assert "(1 row)" in out

    def test_file(self, hospital: HospitalSystem, tmp_path: Path, capsys):
        """Test running a query file verbosely."""
        queries = tmp_path / "queries.hq"
        queries.write_text("-- stock\nfrom medicines select `Medicine Name`;\nshow tables;\n")
        assert main([str(hospital.config.data_dir), "-f", str(queries), "-v"]) == 0
        out = capsys.readouterr().out
        assert "-- Query 1: from medicines select `Medicine Name`" in out
        assert "Ibuprofen" in out

    def test_query_error(self, hospital: HospitalSystem, capsys):
        """Test that a bad query fails the run."""
        assert main([str(hospital.config.data_dir), "-c", "from users where"]) == 1
        assert "Error in query 1" in capsys.readouterr().err

    def test_missing_data_dir(self, tmp_path: Path, capsys):
        """Test pointing at a directory that does not exist."""
        assert main([str(tmp_path / "nowhere"), "-c", "show tables"]) == 1
        assert "Data directory not found" in capsys.readouterr().err

    def test_bad_config(self, tmp_path: Path, capsys):
        """Test that configuration errors are reported."""
        path = tmp_path / "hms.json"
        path.write_text('{"delimiter": ";"}')
        assert main(["--config", str(path), "-c", "show tables"]) == 1
        assert "reserved" in capsys.readouterr().err


class TestConsole:
    """Tests for the interactive login and menu loop."""

    def test_first_login_and_menu(self, system: HospitalSystem, monkeypatch, capsys):
        """Test changing the initial password, then using the menu."""
        feed(monkeypatch, ["A001", "help", "-vs", "", "-xx", "-lo", "exit"], [PASSWORD, "n3wpass", "n3wpass"])
        assert run_console(system) == 0

        out = capsys.readouterr().out
        assert "Please choose a new password" in out
        assert "Administrator" in out
        assert "Unknown option: -xx" in out
        assert "Logged out." in out
        assert system.login("A001", "n3wpass") is not None

    def test_invalid_login(self, system: HospitalSystem, monkeypatch, capsys):
        """Test refusing bad credentials."""
        feed(monkeypatch, ["A001", "exit"], ["wrong"])
        run_console(system)
        assert "Invalid hospital ID or password." in capsys.readouterr().out

    def test_errors_are_shown(self, hospital: HospitalSystem, monkeypatch, capsys):
        """Test that a failing action reports and keeps the session."""
        hospital.passwords.passwords.update_cell("P001", "IsNew", "FALSE")
        feed(monkeypatch, ["P001", "-sa", "NOPE", "-vsa"], [PASSWORD])
        run_console(hospital)

        out = capsys.readouterr().out
        assert "Error: Schedule slot not found: NOPE" in out
        assert "(no results)" in out
        assert hospital.session is None

    def test_option_without_action(self, system: HospitalSystem):
        """Test that the log out option cannot be run as an action."""
        session = system.login(ADMIN, PASSWORD)
        with pytest.raises(InvalidInputError):
            run_option(session, session.option("-lo"))
