"""Role assignments and per-role permissions."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from hms_tables.commands import Command
from hms_tables.errors import RoleNotFoundError, UserNotFoundError
from hms_tables.fixed_table import FixedTable, parse_list_cell
from hms_tables.managers.base import HospitalResourceManager
from hms_tables.targets import NewUserInfo

if TYPE_CHECKING:
    from hms_tables.system import HospitalSystem

logger = structlog.get_logger(__name__)

ID = "ID"
ROLE = "Role"
PERMISSIONS = "Permissions"

ROLE_COLUMNS = [ID, ROLE]
PERMISSION_COLUMNS = [ROLE, PERMISSIONS]

# Actions granted to every role
COMMON_ACCESS = "CommonAccess"
APPOINTABLE_ROLES = ("Doctor",)


class RoleManager(HospitalResourceManager):
    """Answers who holds which role and what each role may do.

    Permissions are read once at startup from the permissions table, one row
    per role with ``;``-separated action names.
    """

    tag = "Roles"

    def __init__(self, system: HospitalSystem) -> None:
        super().__init__(system)
        config = system.config
        self.roles = FixedTable(config.table_path("roles"), ROLE_COLUMNS, delimiter=config.delimiter)
        self.permissions = FixedTable(
            config.table_path("permissions"), PERMISSION_COLUMNS, delimiter=config.delimiter
        )
        self._allowed: dict[str, frozenset[str]] = self.permissions.read_two_columns(
            ROLE, PERMISSIONS, lambda cell: frozenset(parse_list_cell(cell))
        )
        self.handlers = {
            "ADD_USER": self._add_user,
            "REMOVE_USER": self._remove_user,
            "WRITE_ROLE": self._write_role,
        }

    @property
    def role_names(self) -> list[str]:
        return [name for name in self._allowed if name != COMMON_ACCESS]

    def is_valid_role(self, role: str) -> bool:
        return role != COMMON_ACCESS and role in self._allowed

    def role_of(self, hospital_id: str | None) -> str | None:
        if hospital_id is None:
            return None
        return self.roles.read_cell(hospital_id, ROLE)

    def is_appointable(self, hospital_id: str) -> bool:
        return self.role_of(hospital_id) in APPOINTABLE_ROLES

    def has_permission(self, hospital_id: str | None, action: str) -> bool:
        if action in self._allowed.get(COMMON_ACCESS, frozenset()):
            return True
        role = self.role_of(hospital_id)
        if role is None:
            return False
        return action in self._allowed.get(role, frozenset())

    def _check_role(self, role: str) -> None:
        if not self.is_valid_role(role):
            raise RoleNotFoundError(
                f"Not a valid role: {role}. Choose from {', '.join(self.role_names)}"
            )

    def _add_user(self, command: Command) -> None:
        info = self.stack.get_parent_target_as(NewUserInfo)
        self._check_role(info.role_name)
        self.roles.add_row([info.hospital_id, info.role_name])

    def _remove_user(self, command: Command) -> None:
        self.roles.remove_row(self.stack.get_parent_target())

    def _write_role(self, command: Command) -> str:
        affected_id = self.stack.get_parent_target()
        new_role = command.param("role")
        self._check_role(new_role)
        if not self.roles.exists(affected_id):
            raise UserNotFoundError(affected_id)

        if self.is_appointable(affected_id) and new_role not in APPOINTABLE_ROLES:
            # Demoted doctors give up their schedule first
            self.stack.set_target(command.issuer_id, affected_id)
            self.system.appointments.dispatch("REMOVE_USER")

        self.roles.update_cell(affected_id, ROLE, new_role)
        logger.info("role_changed", hospital_id=affected_id, role=new_role, by=command.issuer_id)
        return new_role

    def close(self) -> None:
        self.roles.close()
        self.permissions.close()
