"""Interactive hospital console and ad-hoc table queries."""

from __future__ import annotations

import argparse
import readline  # noqa: F401 - enables line editing in input()
import sys
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from getpass import getpass
from pathlib import Path
from typing import Any

import structlog

from hms_tables.config import Config
from hms_tables.errors import HmsError, InvalidInputError
from hms_tables.logging import configure_logging
from hms_tables.managers.appointments import Outcome
from hms_tables.managers.records import MedicalHistory
from hms_tables.managers.stock import MEDICINE_COLUMNS
from hms_tables.managers.users import AGE, USER_COLUMNS
from hms_tables.parsing.query_parser import QueryParser
from hms_tables.query_executor import QueryExecutor, QueryResult
from hms_tables.system import HospitalSystem, MenuOption, Session, init_data_dir

logger = structlog.get_logger(__name__)


# --- Result display ---


def format_value(value: Any, max_width: int = 40) -> str:
    """Format a cell for display, truncating long text."""
    if value is None:
        return "NULL"
    s = str(value)
    if len(s) > max_width:
        return s[: max_width - 3] + "..."
    return s


def print_result(result: QueryResult) -> None:
    """Print query results in a formatted table."""
    if result.message:
        print(f"Error: {result.message}")
        return

    if not result.rows:
        print("(no results)")
        return

    # Calculate column widths
    col_widths = {col: len(col) for col in result.columns}
    for row in result.rows:
        for col in result.columns:
            col_widths[col] = max(col_widths[col], len(format_value(row.get(col))))

    # Cap column widths
    max_col_width = 40
    for col in col_widths:
        col_widths[col] = min(col_widths[col], max_col_width)

    header = " | ".join(col.ljust(col_widths[col])[: col_widths[col]] for col in result.columns)
    print(header)
    print("-" * len(header))

    for row in result.rows:
        values = []
        for col in result.columns:
            val = format_value(row.get(col))
            if len(val) > col_widths[col]:
                val = val[: col_widths[col] - 3] + "..."
            values.append(val.ljust(col_widths[col]))
        print(" | ".join(values))

    print(f"\n({len(result.rows)} row{'s' if len(result.rows) != 1 else ''})")


# Column names for actions that return bare rows
RESULT_COLUMNS: dict[str, list[str]] = {
    "READ_STAFF_LIST": USER_COLUMNS,
    "READ_MEDICINE_LIST": MEDICINE_COLUMNS,
    "REVIEW_REPLENISHMENT_REQUEST": MEDICINE_COLUMNS,
}


def print_history(history: MedicalHistory) -> None:
    for name, value in history.profile.items():
        print(f"{name}: {value}")
    for attribute, entries in history.records.items():
        print(f"\n{attribute}:")
        if not entries:
            print("  (none)")
        for entry in entries:
            print(f"  {entry.timestamp_text}: {', '.join(entry.items)}")


def show(action: str, value: Any) -> None:
    """Print whatever an action returned."""
    if value is None:
        print("Done.")
    elif isinstance(value, MedicalHistory):
        print_history(value)
    elif isinstance(value, Outcome):
        print(f"Recorded outcome of {value.appointment_id}.")
        if value.prescribed:
            print(f"Prescribed: {', '.join(value.prescribed)}")
        if value.unavailable:
            print(f"Out of stock, not prescribed: {', '.join(value.unavailable)}")
    elif isinstance(value, dict):
        for name, cell in value.items():
            print(f"{name}: {cell}")
    elif isinstance(value, list) and value and isinstance(value[0], dict):
        print_result(QueryResult(columns=list(value[0]), rows=value))
    elif isinstance(value, list) and action in RESULT_COLUMNS:
        columns = RESULT_COLUMNS[action]
        print_result(QueryResult(columns=columns, rows=[dict(zip(columns, row)) for row in value]))
    elif isinstance(value, list):
        print(", ".join(str(item) for item in value) if value else "(no results)")
    else:
        print(value)


# --- Parameter prompts ---


def parse_date(text: str) -> date:
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise InvalidInputError(f"Dates are written YYYY-MM-DD, got '{text}'") from None


def parse_yes(text: str) -> bool:
    return text.strip().lower() in ("y", "yes")


def parse_position(text: str) -> int:
    """Menus count from 1; commands count from 0."""
    try:
        return int(text) - 1
    except ValueError:
        raise InvalidInputError(f"Expected a number, got '{text}'") from None


def parse_int(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise InvalidInputError(f"Expected a number, got '{text}'") from None


@dataclass
class Prompt:
    """One parameter the console asks for before dispatching an action."""

    name: str
    text: str
    convert: Callable[[str], Any] = str
    optional: bool = False
    secret: bool = False
    # Asked only when this holds for the answers collected so far
    when: Callable[[dict[str, Any]], bool] | None = None


def _is(name: str, *values: str) -> Callable[[dict[str, Any]], bool]:
    return lambda answers: answers.get(name) in values


def _given(name: str) -> Callable[[dict[str, Any]], bool]:
    return lambda answers: name in answers


PROMPTS: dict[str, list[Prompt]] = {
    "WRITE_PERSONAL_PROFILE": [
        Prompt("field", "Field to change (Email/Phone)"),
        Prompt("value", "New value"),
    ],
    "WRITE_PERSONAL_PASSWORD": [
        Prompt("new_password", "New password", secret=True),
        Prompt("confirm", "Confirm new password", secret=True),
    ],
    "READ_ANY_MEDICAL_RECORD": [Prompt("patient_id", "Patient ID")],
    "READ_AVAILABLE_APPOINTMENT": [
        Prompt("date", "Date (YYYY-MM-DD, blank for all)", parse_date, optional=True)
    ],
    "PATIENT_SCHEDULE_APPOINTMENT": [Prompt("schedule_id", "Slot ID")],
    "RESCHEDULE_PATIENT_APPOINTMENT": [
        Prompt("appointment_id", "Appointment to move"),
        Prompt("schedule_id", "New slot ID"),
    ],
    "CANCEL_PATIENT_APPOINTMENT": [
        Prompt("appointment_id", "Appointment to cancel (blank to list)", optional=True)
    ],
    "READ_PERSONAL_APPOINTMENT_OUTCOME": [
        Prompt("date", "Date (YYYY-MM-DD, blank for all)", parse_date, optional=True)
    ],
    "READ_PERSONAL_APPOINTMENT": [
        Prompt("date", "Date (YYYY-MM-DD, blank for all)", parse_date, optional=True)
    ],
    "WRITE_PERSONAL_APPOINTMENT": [
        Prompt("date", "Date (YYYY-MM-DD)", parse_date),
        Prompt("time_slot", "Time slot (08:00 to 17:00)"),
        Prompt("details", "Purpose (blank for consultation)", optional=True),
    ],
    "WRITE_APPOINTMENT_REQUESTS": [
        Prompt("appointment_id", "Request to answer (blank to list)", optional=True),
        Prompt("approve", "Accept? (y/n)", parse_yes, when=_given("appointment_id")),
    ],
    "WRITE_APPOINTMENT_OUTCOME": [
        Prompt("schedule_id", "Confirmed slot ID"),
        Prompt("services", "Type of service (separate with ;)"),
        Prompt("diagnoses", "Diagnoses (separate with ;)"),
        Prompt("treatments", "Treatments (separate with ;)", optional=True),
        Prompt("medications", "Medications (separate with ;)", optional=True),
    ],
    "WRITE_ANY_MEDICAL_RECORD": [
        Prompt("appointment_id", "Completed appointment ID"),
        Prompt("attribute", "Diagnoses, Medications or Treatments"),
        Prompt("operation", "Add, Update or Delete"),
        Prompt("index", "Item number", parse_position, when=_is("operation", "Update", "Delete")),
        Prompt("value", "Value", when=_is("operation", "Add", "Update")),
    ],
    "WRITE_PRESCRIPTION_STATUS": [Prompt("appointment_id", "Appointment ID")],
    "WRITE_MEDICATION_STOCK_REPLENISHMENT_REQUEST": [Prompt("medicine", "Medicine")],
    "READ_STAFF_LIST": [
        Prompt("field", "Filter on column (blank for all staff)", optional=True),
        Prompt("operator", "Operator (== != < <= > >=)", when=_is("field", AGE)),
        Prompt("value", "Value", when=_given("field")),
    ],
    "WRITE_STAFF_LIST": [
        Prompt("operation", "add, update or delete"),
        Prompt("staff_id", "Staff ID", when=_is("operation", "update", "delete")),
        Prompt("password", "Your password", secret=True, when=_is("operation", "delete")),
        Prompt("field", "Field to change", when=_is("operation", "update")),
        Prompt("value", "New value", when=_is("operation", "update")),
    ],
    "WRITE_MEDICINE_LIST": [
        Prompt("operation", "add, remove or update"),
        Prompt("medicine", "Medicine"),
        Prompt("stock", "Stock", parse_int, when=_is("operation", "add", "update")),
    ],
    "REVIEW_REPLENISHMENT_REQUEST": [
        Prompt("medicine", "Medicine (blank to list pending requests)", optional=True),
        Prompt("approve", "Approve? (y/n)", parse_yes, when=_given("medicine")),
    ],
}


def ask(text: str, secret: bool = False) -> str:
    if secret:
        return getpass(f"{text}: ")
    return input(f"{text}: ").strip()


def collect(action: str) -> dict[str, Any]:
    """Ask for every parameter an action needs."""
    answers: dict[str, Any] = {}
    for prompt in PROMPTS.get(action, []):
        if prompt.when is not None and not prompt.when(answers):
            continue
        text = ask(prompt.text, prompt.secret)
        if not text and prompt.optional:
            continue
        answers[prompt.name] = prompt.convert(text)
    if action == "WRITE_STAFF_LIST" and answers.get("operation") == "add":
        answers["profile"] = {name: ask(name) for name in USER_COLUMNS}
    return answers


# --- Session loop ---


def print_menu(session: Session) -> None:
    print(f"\nLogged in as {session.hospital_id} ({session.role.value})")
    for option in session.menu:
        print(f"  {option.flag:<6} {option.label}")
    print("  help   Show this menu")


def run_option(session: Session, option: MenuOption) -> None:
    if option.manager is None or option.action is None:
        raise InvalidInputError(f"{option.flag} does not run an action")
    params = collect(option.action)
    show(option.action, session.dispatch(option.manager, option.action, **params))


def change_initial_password(session: Session) -> bool:
    """Make a first-time user pick a password. False if they gave up."""
    print("Please choose a new password before continuing.")
    while session.must_change_password:
        try:
            params = collect("WRITE_PERSONAL_PASSWORD")
        except EOFError:
            return False
        try:
            session.dispatch("passwords", "WRITE_PERSONAL_PASSWORD", **params)
        except HmsError as e:
            print(f"Error: {e}")
    return True


def run_session(system: HospitalSystem, session: Session) -> None:
    if session.must_change_password and not change_initial_password(session):
        system.logout()
        return

    print_menu(session)
    while True:
        try:
            line = input(f"{system.stack.path}> ").strip()
        except EOFError:
            print()
            break

        if not line:
            continue
        if line.lower() == "help":
            print_menu(session)
            continue

        option = session.option(line)
        if option is None:
            print(f"Unknown option: {line}. Type 'help' for the menu.")
            continue
        if option.action is None:
            break

        try:
            run_option(session, option)
        except EOFError:
            print()
            break
        except HmsError as e:
            print(f"Error: {e}")
    system.logout()
    print("Logged out.")


def run_console(system: HospitalSystem) -> int:
    """Run the interactive login and menu loop."""
    print("Hospital Management System")
    print("Type 'exit' at the login prompt to quit.\n")
    while True:
        try:
            hospital_id = input("Hospital ID: ").strip()
            if hospital_id.lower() in ("exit", "quit"):
                break
            if not hospital_id:
                continue
            password = getpass("Password: ")
        except EOFError:
            print()
            break

        try:
            session = system.login(hospital_id, password)
        except HmsError as e:
            print(f"Error: {e}")
            continue
        if session is None:
            print("Invalid hospital ID or password.")
            continue
        run_session(system, session)
    return 0


# --- Queries ---


def split_statements(content: str) -> list[str]:
    """Split content on semicolons outside string literals, dropping comment lines."""
    lines = [line for line in content.split("\n") if not line.strip().startswith("--")]
    content = "\n".join(lines)

    statements = []
    current: list[str] = []
    in_string = False
    escape_next = False
    for ch in content:
        if escape_next:
            escape_next = False
        elif ch == "\\" and in_string:
            escape_next = True
        elif ch == '"':
            in_string = not in_string
        elif ch == ";" and not in_string:
            stmt = "".join(current).strip()
            if stmt:
                statements.append(stmt)
            current = []
            continue
        current.append(ch)

    stmt = "".join(current).strip()
    if stmt:
        statements.append(stmt)
    return statements


def run_queries(system: HospitalSystem, statements: list[str], verbose: bool = False) -> int:
    """Execute query statements, stopping at the first error.

    Returns:
        0 on success, 1 on error
    """
    parser = QueryParser()
    executor = QueryExecutor(system.tables)
    for i, statement in enumerate(statements, 1):
        if verbose:
            print(f"-- Query {i}: {statement}")
        try:
            result = executor.execute(parser.parse(statement))
        except HmsError as e:
            print(f"Error in query {i}: {e}", file=sys.stderr)
            return 1
        print_result(result)
        if result.message:
            return 1
        if verbose:
            print()
    return 0


# --- Entry point ---


def load_config(args: argparse.Namespace) -> Config:
    config = Config.load(args.config) if args.config else Config()
    return config.with_overrides(
        data_dir=args.data_dir,
        log_level=args.log_level,
        log_json=True if args.log_json else None,
    )


def _add_common_arguments(arg_parser: argparse.ArgumentParser) -> None:
    arg_parser.add_argument(
        "--config",
        type=Path,
        help="YAML configuration file",
    )
    arg_parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default WARNING, or the configured level)",
    )
    arg_parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit logs as JSON lines on stderr",
    )


def init_main(argv: list[str]) -> int:
    arg_parser = argparse.ArgumentParser(
        prog="hms-tables init",
        description="Create the table files and a first administrator account",
    )
    arg_parser.add_argument("data_dir", type=Path, help="Directory to hold the table files")
    arg_parser.add_argument("--admin-id", default="A001", help="Administrator hospital ID")
    _add_common_arguments(arg_parser)
    args = arg_parser.parse_args(argv)

    try:
        config = load_config(args)
        configure_logging(json_output=config.log_json, level=config.log_level)
        init_data_dir(config, admin_id=args.admin_id)
    except HmsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"Initialized {config.data_dir}")
    print(f"Log in as {args.admin_id} with the default password to finish setting up.")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    if argv is None:
        argv = sys.argv[1:]
    if argv and argv[0] == "init":
        return init_main(argv[1:])

    arg_parser = argparse.ArgumentParser(
        prog="hms-tables",
        description="Hospital management console over plain-text tables. "
        "Run 'hms-tables init DATA_DIR' once to create a data directory.",
    )
    arg_parser.add_argument(
        "data_dir",
        type=Path,
        nargs="?",
        default=None,
        help="Path to the data directory containing the table files",
    )
    arg_parser.add_argument(
        "-c", "--command",
        type=str,
        help="Execute a single query and exit",
    )
    arg_parser.add_argument(
        "-f", "--file",
        type=Path,
        help="Execute queries from a file and exit",
    )
    arg_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print each query before executing (for -f/--file)",
    )
    _add_common_arguments(arg_parser)
    args = arg_parser.parse_args(argv)

    try:
        config = load_config(args)
    except HmsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    configure_logging(json_output=config.log_json, level=config.log_level)

    if not config.data_dir.exists():
        print(f"Error: Data directory not found: {config.data_dir}", file=sys.stderr)
        return 1

    statements: list[str] | None = None
    if args.file:
        try:
            statements = split_statements(args.file.read_text())
        except OSError as e:
            print(f"Error reading file: {e}", file=sys.stderr)
            return 1
        if not statements:
            print("No queries found in file", file=sys.stderr)
            return 1
    elif args.command:
        statements = split_statements(args.command)

    try:
        system = HospitalSystem(config)
    except HmsError as e:
        print(f"Error loading data: {e}", file=sys.stderr)
        return 1

    with system:
        logger.debug("system_loaded", data_dir=str(config.data_dir))
        if statements is not None:
            return run_queries(system, statements, verbose=args.verbose)
        return run_console(system)


if __name__ == "__main__":
    sys.exit(main())
