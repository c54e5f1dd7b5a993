"""Hashed login credentials."""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

import structlog

from hms_tables.commands import Command
from hms_tables.errors import AccountAccessViolationError, InvalidInputError
from hms_tables.fixed_table import FixedTable
from hms_tables.managers.base import HospitalResourceManager
from hms_tables.targets import NewUserInfo

if TYPE_CHECKING:
    from hms_tables.system import HospitalSystem

logger = structlog.get_logger(__name__)

ID = "ID"
PASSWORD = "Password"
IS_NEW = "IsNew"

PASSWORD_COLUMNS = [ID, PASSWORD, IS_NEW]


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


class PasswordManager(HospitalResourceManager):
    tag = "Passwords"

    def __init__(self, system: HospitalSystem) -> None:
        super().__init__(system)
        config = system.config
        self.passwords = FixedTable(
            config.table_path("passwords"), PASSWORD_COLUMNS, delimiter=config.delimiter
        )
        self.handlers = {
            "WRITE_PERSONAL_PASSWORD": self._write_personal_password,
            "ADD_USER": self._add_user,
            "REMOVE_USER": self._remove_user,
        }

    def check_password(self, hospital_id: str, password: str) -> bool:
        # Hashes are compared byte for byte, so read the cell unstripped
        stored = self.passwords.read_cell(hospital_id, PASSWORD, strip=False)
        if stored is None:
            return False
        return stored == hash_password(password)

    def is_new_user(self, hospital_id: str) -> bool:
        return self.passwords.read_cell(hospital_id, IS_NEW) == "TRUE"

    def _write_personal_password(self, command: Command) -> None:
        hospital_id = command.issuer_id
        if hospital_id is None or not self.stack.is_logged_in(hospital_id):
            raise AccountAccessViolationError("Illegal password modification: user not logged in")

        new_password = command.param("new_password")
        confirm = command.param("confirm", new_password)
        if not new_password:
            raise InvalidInputError("Password must not be empty")
        hashed = hash_password(new_password)
        if self.passwords.read_cell(hospital_id, PASSWORD, strip=False) == hashed:
            raise InvalidInputError("You cannot reuse the same password")
        if new_password != confirm:
            raise InvalidInputError("Passwords do not match")

        self.passwords.update_cell(hospital_id, PASSWORD, hashed)
        if self.is_new_user(hospital_id):
            self.passwords.update_cell(hospital_id, IS_NEW, "FALSE")
        logger.info("password_changed", hospital_id=hospital_id)

    def _add_user(self, command: Command) -> None:
        info = self.stack.get_parent_target_as(NewUserInfo)
        self.passwords.add_row(
            [info.hospital_id, hash_password(self.system.config.default_password), "TRUE"]
        )

    def _remove_user(self, command: Command) -> None:
        self.passwords.remove_row(self.stack.get_parent_target())

    def close(self) -> None:
        self.passwords.close()
