"""Managers that own the hospital tables and expose their actions as commands."""

from hms_tables.managers.appointments import AppointmentManager
from hms_tables.managers.base import HospitalResourceManager
from hms_tables.managers.passwords import PasswordManager
from hms_tables.managers.records import MedicalRecordManager
from hms_tables.managers.roles import RoleManager
from hms_tables.managers.stock import MedicationStockManager
from hms_tables.managers.users import UserManager

__all__ = [
    "HospitalResourceManager",
    "RoleManager",
    "PasswordManager",
    "UserManager",
    "MedicalRecordManager",
    "MedicationStockManager",
    "AppointmentManager",
]
