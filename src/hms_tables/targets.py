"""Payloads a command can leave on its stack frame for the child it dispatches."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union

# A plain hospital identifier, e.g. the user a child command should remove
UserId = str


@dataclass(frozen=True)
class NewUserInfo:
    """A user being created, passed to the password and role managers."""

    hospital_id: str
    role_name: str


@dataclass(frozen=True)
class MedicalRecordModifier:
    """One change to a patient's dated medical record entry.

    operation is "Add", "Update" or "Delete". item_index is ignored by Add.
    """

    operation: str
    attribute: str
    record_owner: str
    record_date: datetime
    new_value: str = ""
    item_index: int = 0


@dataclass
class MedicationStockModifier:
    """A stock check or deduction. The check writes its answer to available."""

    medicine_name: str
    deduction: int
    available: bool = False


Target = Union[UserId, NewUserInfo, MedicalRecordModifier, MedicationStockModifier]
