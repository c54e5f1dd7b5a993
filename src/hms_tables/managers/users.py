"""User profiles and the staff list."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import structlog

from hms_tables.commands import Command
from hms_tables.errors import (
    AccessDeniedError,
    InvalidInputError,
    RoleNotFoundError,
    UserNotFoundError,
)
from hms_tables.fixed_table import FixedTable
from hms_tables.managers.base import HospitalResourceManager
from hms_tables.targets import NewUserInfo

if TYPE_CHECKING:
    from hms_tables.system import HospitalSystem

logger = structlog.get_logger(__name__)

ID = "ID"
NAME = "Name"
ROLE = "Role"
BIRTH_DATE = "BirthDate"
GENDER = "Gender"
AGE = "Age"
BLOOD_TYPE = "BloodType"
EMAIL = "Email"
PHONE = "Phone"

USER_COLUMNS = [ID, NAME, ROLE, BIRTH_DATE, GENDER, AGE, BLOOD_TYPE, EMAIL, PHONE]
PERSONAL_FIELDS = (EMAIL, PHONE)
MUTABLE_FIELDS = (NAME, ROLE, BIRTH_DATE, GENDER, AGE, BLOOD_TYPE, EMAIL, PHONE)

PATIENT = "Patient"
ALL_STAFF = "All Staff"


def _check_age(value: str) -> str:
    try:
        age = int(value)
    except ValueError:
        raise InvalidInputError(f"Age must be a number, got '{value}'") from None
    if age < 0:
        raise InvalidInputError("Age must not be negative")
    return str(age)


class UserManager(HospitalResourceManager):
    tag = "Profiles"

    def __init__(self, system: HospitalSystem) -> None:
        super().__init__(system)
        config = system.config
        self.users = FixedTable(config.table_path("users"), USER_COLUMNS, delimiter=config.delimiter)
        self.handlers = {
            "ADD_USER": self._add_user,
            "READ_PERSONAL_PROFILE": self._read_personal_profile,
            "WRITE_PERSONAL_PROFILE": self._write_personal_profile,
            "READ_STAFF_LIST": self._read_staff_list,
            "WRITE_STAFF_LIST": self._write_staff_list,
        }

    # --- Queries used by other managers ---

    def exists(self, hospital_id: str) -> bool:
        return self.users.exists(hospital_id)

    def name_of(self, hospital_id: str) -> str | None:
        return self.users.read_cell(hospital_id, NAME)

    def is_patient(self, hospital_id: str) -> bool:
        return self.users.read_cell(hospital_id, ROLE) == PATIENT

    def is_staff(self, hospital_id: str) -> bool:
        role = self.users.read_cell(hospital_id, ROLE)
        return role is not None and role != PATIENT

    def profile(self, hospital_id: str) -> dict[str, str]:
        """Return a user's profile keyed by column name.

        Raises:
            UserNotFoundError: If the user is missing.
        """
        row = self.users.read_row(hospital_id)
        if row is None or len(row) != len(USER_COLUMNS):
            raise UserNotFoundError(hospital_id)
        return dict(zip(USER_COLUMNS, row))

    # --- Handlers ---

    def _read_personal_profile(self, command: Command) -> dict[str, str]:
        return self.profile(command.issuer_id or "")

    def _write_personal_profile(self, command: Command) -> str:
        field = command.param("field")
        value = command.param("value")
        if field not in PERSONAL_FIELDS:
            raise InvalidInputError(f"Only {' or '.join(PERSONAL_FIELDS)} can be changed here")
        self.users.update_cell(command.issuer_id or "", field, value)
        return value

    def _add_user(self, command: Command) -> str:
        profile: Mapping[str, str] = command.param("profile")
        hospital_id = profile.get(ID, "").strip()
        role = profile.get(ROLE, "").strip()
        if not hospital_id:
            raise InvalidInputError("A new user needs an ID")
        if self.users.exists(hospital_id):
            raise InvalidInputError(f"User {hospital_id} already exists")
        if not self.system.roles.is_valid_role(role):
            raise RoleNotFoundError(
                f"Not a valid role: {role}. Choose from {', '.join(self.system.roles.role_names)}"
            )

        row = self.users.new_row(profile)
        self.users.assign(row, ID, hospital_id)
        if profile.get(AGE):
            self.users.assign(row, AGE, _check_age(profile[AGE]))
        self.users.assign(row, ROLE, role)
        self.users.check_row(row)

        self.stack.set_target(command.issuer_id, NewUserInfo(hospital_id, role))
        self.system.passwords.dispatch("ADD_USER")
        self.system.roles.dispatch("ADD_USER")

        self.users.assign(row, ROLE, self.system.roles.role_of(hospital_id) or role)
        self.users.add_row(row)
        logger.info("user_added", hospital_id=hospital_id, role=role, by=command.issuer_id)
        return hospital_id

    def _read_staff_list(self, command: Command) -> list[list[str]]:
        """Staff rows, optionally filtered on one column.

        Age filters take an operator (``== != < <= > >=``) and a number;
        any other column is matched as text.
        """
        field = command.param("field", None)
        query = self.users.query(USER_COLUMNS).where(ROLE).does_not_match(PATIENT)

        if field is None or field == ALL_STAFF:
            return query.yield_rows()

        if field == AGE:
            operator = command.param("operator")
            try:
                value = int(command.param("value"))
            except ValueError:
                raise InvalidInputError("Age filters need a number") from None
            query.and_().where(AGE)
            return query.operation(operator)(value).yield_rows()

        return query.and_().where(field).matches(str(command.param("value"))).yield_rows()

    def _write_staff_list(self, command: Command) -> Any:
        operation = command.param("operation")
        if operation == "add":
            return self._add_user(command)

        staff_id = command.param("staff_id")
        if not self.is_staff(staff_id):
            raise InvalidInputError(f"{staff_id} is not an existing staff member")

        if operation == "delete":
            return self._remove_user(command, staff_id)
        if operation == "update":
            return self._update_staff(command, staff_id)
        raise InvalidInputError(f"Unknown staff list operation: {operation}")

    def _remove_user(self, command: Command, removal_id: str) -> str:
        admin_id = command.issuer_id or ""
        if not self.system.passwords.check_password(admin_id, command.param("password")):
            raise AccessDeniedError(admin_id, command.action, "Password incorrect")

        self.stack.set_target(admin_id, removal_id)
        if self.system.roles.is_appointable(removal_id):
            self.system.appointments.dispatch("REMOVE_USER")
        self.system.passwords.dispatch("REMOVE_USER")
        self.system.roles.dispatch("REMOVE_USER")

        self.users.remove_row(removal_id)
        logger.info("user_removed", hospital_id=removal_id, by=admin_id)
        return removal_id

    def _update_staff(self, command: Command, staff_id: str) -> str:
        field = command.param("field")
        value = str(command.param("value"))
        if field not in MUTABLE_FIELDS:
            raise InvalidInputError(f"{field} cannot be changed")

        if field == ROLE:
            self.stack.set_target(command.issuer_id, staff_id)
            self.system.roles.dispatch("WRITE_ROLE", role=value)
            value = self.system.roles.role_of(staff_id) or value
        elif field == AGE:
            value = _check_age(value)

        self.users.update_cell(staff_id, field, value)
        return value

    def close(self) -> None:
        self.users.close()
