"""The hospital system context: managers, sessions and role menus."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from hms_tables.commands import CommandStack
from hms_tables.config import Config
from hms_tables.errors import RoleNotFoundError
from hms_tables.fixed_table import FixedTable, format_list_cell
from hms_tables.managers import (
    AppointmentManager,
    MedicalRecordManager,
    MedicationStockManager,
    PasswordManager,
    RoleManager,
    UserManager,
)
from hms_tables.managers import appointments, passwords, roles, stock, users
from hms_tables.managers.records import ID as RECORD_ID
from hms_tables.managers.records import RECORD_ATTRIBUTES
from hms_tables.sparse_table import SparseTable

logger = structlog.get_logger(__name__)


class Role(enum.Enum):
    PATIENT = "Patient"
    DOCTOR = "Doctor"
    ADMINISTRATOR = "Administrator"
    PHARMACIST = "Pharmacist"

    @classmethod
    def from_name(cls, name: str | None) -> Role:
        """Resolve a stored role name.

        Raises:
            RoleNotFoundError: If the name is not one of the known roles.
        """
        for role in cls:
            if role.value == name:
                return role
        raise RoleNotFoundError(f"Unknown role: {name}")


@dataclass(frozen=True)
class MenuOption:
    flag: str
    label: str
    manager: str | None
    action: str | None


COMMON_OPTIONS = [
    MenuOption("-vp", "View personal profile", "users", "READ_PERSONAL_PROFILE"),
    MenuOption("-up", "Update contact information", "users", "WRITE_PERSONAL_PROFILE"),
    MenuOption("-cp", "Change password", "passwords", "WRITE_PERSONAL_PASSWORD"),
    MenuOption("-lo", "Log out", None, None),
]

MENUS: dict[Role, list[MenuOption]] = {
    Role.PATIENT: [
        MenuOption("-vmr", "View medical record", "records", "READ_PERSONAL_MEDICAL_RECORD"),
        MenuOption("-vaa", "View available appointment slots", "appointments", "READ_AVAILABLE_APPOINTMENT"),
        MenuOption("-sa", "Schedule an appointment", "appointments", "PATIENT_SCHEDULE_APPOINTMENT"),
        MenuOption("-ra", "Reschedule an appointment", "appointments", "RESCHEDULE_PATIENT_APPOINTMENT"),
        MenuOption("-ca", "Cancel an appointment", "appointments", "CANCEL_PATIENT_APPOINTMENT"),
        MenuOption("-vsa", "View scheduled appointments", "appointments", "VIEW_PATIENT_APPOINTMENT"),
        MenuOption("-vpa", "View past appointment outcomes", "appointments", "READ_PERSONAL_APPOINTMENT_OUTCOME"),
    ],
    Role.DOCTOR: [
        MenuOption("-vmr", "View patient medical record", "records", "READ_ANY_MEDICAL_RECORD"),
        MenuOption("-umr", "Update patient medical record", "appointments", "WRITE_ANY_MEDICAL_RECORD"),
        MenuOption("-vps", "View personal schedule", "appointments", "READ_PERSONAL_APPOINTMENT"),
        MenuOption("-sa", "Set availability", "appointments", "WRITE_PERSONAL_APPOINTMENT"),
        MenuOption("-ada", "Accept or decline appointment requests", "appointments", "WRITE_APPOINTMENT_REQUESTS"),
        MenuOption("-vua", "View upcoming appointments", "appointments", "READ_UPCOMING_APPOINTMENTS"),
        MenuOption("-rao", "Record appointment outcome", "appointments", "WRITE_APPOINTMENT_OUTCOME"),
    ],
    Role.PHARMACIST: [
        MenuOption("-vao", "View appointment outcome records", "appointments", "READ_APPOINTMENT_OUTCOME"),
        MenuOption("-ups", "Dispense a prescription", "appointments", "WRITE_PRESCRIPTION_STATUS"),
        MenuOption("-vmi", "View medicine inventory", "stock", "READ_MEDICINE_LIST"),
        MenuOption(
            "-srr",
            "Submit replenishment request",
            "stock",
            "WRITE_MEDICATION_STOCK_REPLENISHMENT_REQUEST",
        ),
    ],
    Role.ADMINISTRATOR: [
        MenuOption("-vs", "View hospital staff", "users", "READ_STAFF_LIST"),
        MenuOption("-ms", "Manage hospital staff", "users", "WRITE_STAFF_LIST"),
        MenuOption("-vao", "View appointment details", "appointments", "READ_APPOINTMENT_OUTCOME"),
        MenuOption("-vmi", "View medicine inventory", "stock", "READ_MEDICINE_LIST"),
        MenuOption("-mi", "Manage medicine inventory", "stock", "WRITE_MEDICINE_LIST"),
        MenuOption("-arr", "Review replenishment requests", "stock", "REVIEW_REPLENISHMENT_REQUEST"),
    ],
}

DEFAULT_PERMISSIONS: dict[str, list[str]] = {
    roles.COMMON_ACCESS: [
        "READ_PERSONAL_PROFILE",
        "WRITE_PERSONAL_PROFILE",
        "WRITE_PERSONAL_PASSWORD",
    ],
    Role.PATIENT.value: [
        "READ_PERSONAL_MEDICAL_RECORD",
        "READ_AVAILABLE_APPOINTMENT",
        "PATIENT_SCHEDULE_APPOINTMENT",
        "RESCHEDULE_PATIENT_APPOINTMENT",
        "CANCEL_PATIENT_APPOINTMENT",
        "VIEW_PATIENT_APPOINTMENT",
        "READ_PERSONAL_APPOINTMENT_OUTCOME",
    ],
    Role.DOCTOR.value: [
        "READ_ANY_MEDICAL_RECORD",
        "WRITE_ANY_MEDICAL_RECORD",
        "READ_PERSONAL_APPOINTMENT",
        "WRITE_PERSONAL_APPOINTMENT",
        "WRITE_APPOINTMENT_REQUESTS",
        "READ_UPCOMING_APPOINTMENTS",
        "WRITE_APPOINTMENT_OUTCOME",
        "CHECK_FOR_MEDICINE",
    ],
    Role.PHARMACIST.value: [
        "READ_APPOINTMENT_OUTCOME",
        "WRITE_PRESCRIPTION_STATUS",
        "READ_MEDICINE_LIST",
        "WRITE_MEDICATION_STOCK_REPLENISHMENT_REQUEST",
        "CHECK_FOR_MEDICINE",
        "UPDATE_STOCK_VALUE",
    ],
    Role.ADMINISTRATOR.value: [
        "READ_STAFF_LIST",
        "WRITE_STAFF_LIST",
        "ADD_USER",
        "REMOVE_USER",
        "WRITE_ROLE",
        "READ_APPOINTMENT_OUTCOME",
        "READ_MEDICINE_LIST",
        "WRITE_MEDICINE_LIST",
        "REVIEW_REPLENISHMENT_REQUEST",
    ],
}

# Logical table name -> columns, for every fixed-width table
FIXED_TABLES: dict[str, list[str]] = {
    "users": users.USER_COLUMNS,
    "passwords": passwords.PASSWORD_COLUMNS,
    "roles": roles.ROLE_COLUMNS,
    "permissions": roles.PERMISSION_COLUMNS,
    "medicines": stock.MEDICINE_COLUMNS,
    "appointments": appointments.APPOINTMENT_COLUMNS,
    "schedule": appointments.SCHEDULE_COLUMNS,
}


def init_data_dir(config: Config, admin_id: str = "A001", admin_name: str = "Administrator") -> Path:
    """Create any missing table files and a bootstrap administrator.

    Existing files are left as they are. The administrator logs in with the
    configured default password and is asked to change it.
    """
    data_dir = config.data_dir
    for name, columns in FIXED_TABLES.items():
        FixedTable.create(config.table_path(name), columns, delimiter=config.delimiter).close()
    for attribute in RECORD_ATTRIBUTES:
        SparseTable.create(
            config.table_path(attribute.lower()), [RECORD_ID, attribute], delimiter=config.delimiter
        ).close()

    with FixedTable(config.table_path("permissions"), roles.PERMISSION_COLUMNS, delimiter=config.delimiter) as table:
        for role_name, actions in DEFAULT_PERMISSIONS.items():
            if not table.exists(role_name):
                table.add_row([role_name, format_list_cell(actions)])

    with FixedTable(config.table_path("users"), users.USER_COLUMNS, delimiter=config.delimiter) as table:
        if table.exists(admin_id):
            return data_dir
        row = table.new_row(
            {users.ID: admin_id, users.NAME: admin_name, users.ROLE: Role.ADMINISTRATOR.value}
        )
        table.add_row(row)
    with FixedTable(config.table_path("passwords"), passwords.PASSWORD_COLUMNS, delimiter=config.delimiter) as table:
        table.add_row([admin_id, passwords.hash_password(config.default_password), "TRUE"])
    with FixedTable(config.table_path("roles"), roles.ROLE_COLUMNS, delimiter=config.delimiter) as table:
        table.add_row([admin_id, Role.ADMINISTRATOR.value])

    logger.info("data_dir_initialized", data_dir=str(data_dir), admin_id=admin_id)
    return data_dir


class HospitalSystem:
    """Owns every manager and the command stack of the current session.

    Example:
        with HospitalSystem(Config(data_dir=Path("data"))) as system:
            session = system.login("A001", "password")
            if session is not None:
                staff = session.dispatch("users", "READ_STAFF_LIST")
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self.stack = CommandStack()
        self.session: Session | None = None
        # Roles first: every other manager authorizes through it
        self.roles = RoleManager(self)
        self.passwords = PasswordManager(self)
        self.users = UserManager(self)
        self.records = MedicalRecordManager(self)
        self.stock = MedicationStockManager(self)
        self.appointments = AppointmentManager(self)

    @property
    def managers(self) -> list[Any]:
        return [self.roles, self.passwords, self.users, self.records, self.stock, self.appointments]

    @property
    def tables(self) -> dict[str, FixedTable]:
        """The fixed-width tables by logical name, for ad-hoc queries.

        Password hashes are not queryable.
        """
        return {
            "users": self.users.users,
            "roles": self.roles.roles,
            "permissions": self.roles.permissions,
            "medicines": self.stock.medicines,
            "appointments": self.appointments.appointments,
            "schedule": self.appointments.schedule,
        }

    def login(self, hospital_id: str, password: str) -> Session | None:
        """Start a session for valid credentials, otherwise return None.

        Raises:
            RoleNotFoundError: If the user's stored role is not a known role.
        """
        if self.session is not None:
            self.logout()
        if not self.passwords.check_password(hospital_id, password):
            logger.warning("login_failed", hospital_id=hospital_id)
            return None
        role = Role.from_name(self.roles.role_of(hospital_id))
        self.session = Session(self, hospital_id, role)
        logger.info("login", hospital_id=hospital_id, role=role.value)
        return self.session

    def logout(self) -> None:
        if self.session is None:
            return
        self.session.end()
        logger.info("logout", hospital_id=self.session.hospital_id)
        self.session = None

    def close(self) -> None:
        self.logout()
        for manager in self.managers:
            manager.close()

    def __enter__(self) -> HospitalSystem:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class Session:
    """A logged-in user. Commands dispatched here run as that user."""

    def __init__(self, system: HospitalSystem, hospital_id: str, role: Role) -> None:
        self.system = system
        self.hospital_id = hospital_id
        self.role = role
        system.stack.active_user_id = hospital_id
        system.stack.push_path(f"{hospital_id}@{role.value}")

    @property
    def menu(self) -> list[MenuOption]:
        return MENUS[self.role] + COMMON_OPTIONS

    @property
    def must_change_password(self) -> bool:
        return self.system.passwords.is_new_user(self.hospital_id)

    def option(self, flag: str) -> MenuOption | None:
        for option in self.menu:
            if option.flag == flag:
                return option
        return None

    def dispatch(self, manager: str, action: str, **params: Any) -> Any:
        """Dispatch an action on the named manager attribute of the system."""
        return getattr(self.system, manager).dispatch(action, **params)

    def end(self) -> None:
        stack = self.system.stack
        if stack.active_user_id == self.hospital_id:
            stack.pop_path()
            stack.active_user_id = None
