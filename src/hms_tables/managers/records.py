"""Patients' dated medical records: diagnoses, medications and treatments."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from hms_tables.commands import Command
from hms_tables.errors import InvalidInputError
from hms_tables.joint_table import JointTable
from hms_tables.managers.base import HospitalResourceManager
from hms_tables.sparse_table import NOT_FOUND, Entry, SparseTable
from hms_tables.targets import MedicalRecordModifier

if TYPE_CHECKING:
    from hms_tables.system import HospitalSystem

logger = structlog.get_logger(__name__)

ID = "ID"
DIAGNOSES = "Diagnoses"
MEDICATIONS = "Medications"
TREATMENTS = "Treatments"

RECORD_ATTRIBUTES = (DIAGNOSES, MEDICATIONS, TREATMENTS)

ADD = "Add"
UPDATE = "Update"
DELETE = "Delete"


@dataclass
class MedicalHistory:
    """Everything recorded for one patient, entries sorted oldest first."""

    patient_id: str
    profile: dict[str, str] = field(default_factory=dict)
    records: dict[str, list[Entry]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not any(self.records.values())


class MedicalRecordManager(HospitalResourceManager):
    tag = "Library"

    def __init__(self, system: HospitalSystem) -> None:
        super().__init__(system)
        config = system.config
        self.components = {
            name: SparseTable(config.table_path(name.lower()), [ID, name], delimiter=config.delimiter)
            for name in RECORD_ATTRIBUTES
        }
        self.records = JointTable(list(self.components.values()))
        self.handlers = {
            "READ_PERSONAL_MEDICAL_RECORD": self._read_personal_medical_record,
            "READ_ANY_MEDICAL_RECORD": self._read_any_medical_record,
            "WRITE_ANY_MEDICAL_RECORD": self._write_any_medical_record,
        }

    def history(self, patient_id: str) -> MedicalHistory:
        history = MedicalHistory(patient_id)
        if not self.records.exists_any(patient_id):
            history.records = {name: [] for name in self.records.attributes}
            return history
        history.records = {
            name: sorted(Entry.parse_all(entries))
            for name, entries in self.records.read_row(patient_id).items()
        }
        return history

    def _read_personal_medical_record(self, command: Command) -> MedicalHistory:
        profile = self.system.users.dispatch("READ_PERSONAL_PROFILE")
        history = self.history(command.issuer_id or "")
        history.profile = profile
        return history

    def _read_any_medical_record(self, command: Command) -> MedicalHistory:
        patient_id = command.param("patient_id")
        if not self.system.users.is_patient(patient_id):
            raise InvalidInputError(f"Patient not found: {patient_id}")
        if not self.records.exists_any(patient_id):
            self.records.add_row(patient_id)
        history = self.history(patient_id)
        history.profile = self.system.users.profile(patient_id)
        return history

    def _write_any_medical_record(self, command: Command) -> None:
        """Apply a MedicalRecordModifier left on the parent frame.

        The entry is located by the exact time of record_date, so two
        appointments on one day keep separate entries. Add creates the entry
        when there is none; Update and Delete need an existing one. Deleting the last item removes the whole entry.
        """
        change = self.stack.get_parent_target_as(MedicalRecordModifier)
        owner = change.record_owner
        name = change.attribute

        if not self.records.exists_in(owner, name):
            self.records.add_row(owner)

        recorded_at = change.record_date.replace(second=0, microsecond=0)
        position = self.records.find_index_of_value(
            owner, name, lambda text: bool(text) and Entry.parse(text).timestamp == recorded_at
        )
        if position == NOT_FOUND:
            if change.operation != ADD:
                raise InvalidInputError(
                    f"No {name} recorded for {owner} at {change.record_date:%d %B %Y %H:%M}"
                )
            entry = Entry.new(change.record_date)
            entry.add_item(change.new_value)
            self.records.add_value(owner, name, entry.serialize())
            self._log_write(command, change)
            return

        entry = Entry.parse(self.records.get_value(owner, name, position) or "")
        try:
            if change.operation == ADD:
                entry.add_item(change.new_value)
            elif change.operation == UPDATE:
                entry.update_item(change.item_index, change.new_value)
            elif change.operation == DELETE:
                if entry.remove_item(change.item_index):
                    self.records.remove_value(owner, name, position)
                    self._log_write(command, change)
                    return
            else:
                raise InvalidInputError(f"Unknown record operation: {change.operation}")
        except IndexError:
            raise InvalidInputError(
                f"No {name} item {change.item_index + 1} in the entry dated {entry.timestamp_text}"
            ) from None

        self.records.overwrite_value(owner, name, position, entry.serialize())
        self._log_write(command, change)

    def _log_write(self, command: Command, change: MedicalRecordModifier) -> None:
        logger.info(
            "medical_record_written",
            operation=change.operation,
            attribute=change.attribute,
            patient=change.record_owner,
            by=command.issuer_id,
        )

    def close(self) -> None:
        self.records.close()
