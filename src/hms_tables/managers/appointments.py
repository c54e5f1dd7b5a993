"""Doctor schedules, patient appointments and their outcomes."""

from __future__ import annotations

import calendar
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

import structlog

from hms_tables.commands import Command
from hms_tables.errors import InvalidInputError
from hms_tables.fixed_table import LIST_SEPARATOR, FixedTable, format_list_cell, parse_list_cell
from hms_tables.managers.base import HospitalResourceManager
from hms_tables.managers.records import ADD, DELETE, RECORD_ATTRIBUTES, UPDATE
from hms_tables.sparse_table import parse_timestamp
from hms_tables.targets import MedicalRecordModifier, MedicationStockModifier

if TYPE_CHECKING:
    from hms_tables.system import HospitalSystem

logger = structlog.get_logger(__name__)

APPOINTMENT_ID = "AppointmentId"
SCHEDULE_ID = "ScheduleId"
PATIENT_ID = "PatientId"
DOCTOR_ID = "DoctorId"
DAY = "Day"
MONTH = "Month"
YEAR = "Year"
TIME_SLOT = "Time Slot"
STATUS = "Status"
APPOINTMENT = "Appointment"
DIAGNOSES = "Diagnoses"
TREATMENTS = "Treatments"
TYPE_OF_SERVICE = "Type Of Service"
MEDICATIONS = "Medications"
PRESCRIPTION_STATUS = "Prescription Status"
PRESCRIPTION_QUANTITY = "Prescription Quantity"

APPOINTMENT_COLUMNS = [
    APPOINTMENT_ID,
    PATIENT_ID,
    DAY,
    MONTH,
    YEAR,
    TIME_SLOT,
    STATUS,
    DOCTOR_ID,
    DIAGNOSES,
    TREATMENTS,
    TYPE_OF_SERVICE,
    MEDICATIONS,
    PRESCRIPTION_STATUS,
    PRESCRIPTION_QUANTITY,
]
SCHEDULE_COLUMNS = [
    SCHEDULE_ID,
    DOCTOR_ID,
    DAY,
    MONTH,
    YEAR,
    TIME_SLOT,
    STATUS,
    APPOINTMENT,
    PATIENT_ID,
    APPOINTMENT_ID,
]

AVAILABLE = "Available"
PENDING = "Pending"
CONFIRMED = "Confirmed"
CANCELLED = "Cancelled"
COMPLETED = "Completed"
DISPENSED = "Dispensed"
CONSULTATION = "consultation"
NOT_APPLICABLE = "NA"

TIME_SLOTS = tuple(f"{hour:02d}:00" for hour in range(8, 18))


def date_cells(day: date) -> tuple[str, str, str]:
    """Day, month name and year as stored in the schedule tables."""
    return str(day.day), calendar.month_name[day.month], str(day.year)


def slot_time(row: dict[str, str]) -> datetime:
    return parse_timestamp(f"{row[DAY]} {row[MONTH]} {row[YEAR]} {row[TIME_SLOT]}")


def _check_time_slot(time_slot: str) -> str:
    if time_slot not in TIME_SLOTS:
        raise InvalidInputError(f"Not a time slot: {time_slot}. Choose from {', '.join(TIME_SLOTS)}")
    return time_slot


def _items(value: Any) -> list[str]:
    if isinstance(value, str):
        return parse_list_cell(value)
    items = [str(item).strip() for item in value if str(item).strip()]
    for item in items:
        if LIST_SEPARATOR in item:
            raise InvalidInputError(f"Item {item!r} contains the list separator {LIST_SEPARATOR!r}")
    return items


@dataclass
class Outcome:
    """What WRITE_APPOINTMENT_OUTCOME recorded."""

    appointment_id: str
    prescribed: list[str] = field(default_factory=list)
    unavailable: list[str] = field(default_factory=list)


class AppointmentManager(HospitalResourceManager):
    """Schedules doctors' slots and patients' appointments.

    A doctor opens slots in the schedule table. Patients request an open slot,
    which creates a Pending appointment; the doctor confirms or declines it.
    Cancelled appointments are kept for the record under a renamed identifier
    so that the same patient can request the same slot again.
    """

    tag = "Appointments"

    def __init__(self, system: HospitalSystem) -> None:
        super().__init__(system)
        config = system.config
        self.appointments = FixedTable(
            config.table_path("appointments"), APPOINTMENT_COLUMNS, delimiter=config.delimiter
        )
        self.schedule = FixedTable(
            config.table_path("schedule"), SCHEDULE_COLUMNS, delimiter=config.delimiter
        )
        self.handlers = {
            "REMOVE_USER": self._remove_user,
            "READ_AVAILABLE_APPOINTMENT": self._read_available_appointment,
            "PATIENT_SCHEDULE_APPOINTMENT": self._patient_schedule_appointment,
            "VIEW_PATIENT_APPOINTMENT": self._view_patient_appointment,
            "CANCEL_PATIENT_APPOINTMENT": self._cancel_patient_appointment,
            "RESCHEDULE_PATIENT_APPOINTMENT": self._reschedule_patient_appointment,
            "READ_PERSONAL_APPOINTMENT_OUTCOME": self._read_personal_appointment_outcome,
            "READ_PERSONAL_APPOINTMENT": self._read_personal_appointment,
            "WRITE_PERSONAL_APPOINTMENT": self._write_personal_appointment,
            "WRITE_APPOINTMENT_REQUESTS": self._write_appointment_requests,
            "READ_UPCOMING_APPOINTMENTS": self._read_upcoming_appointments,
            "WRITE_APPOINTMENT_OUTCOME": self._write_appointment_outcome,
            "WRITE_ANY_MEDICAL_RECORD": self._write_any_medical_record,
            "READ_APPOINTMENT_OUTCOME": self._read_appointment_outcome,
            "WRITE_PRESCRIPTION_STATUS": self._write_prescription_status,
        }

    # --- Row helpers ---

    def _rows(self, table: FixedTable, rows: Sequence[Sequence[str]]) -> list[dict[str, str]]:
        records = [dict(zip(table.columns, row)) for row in rows]
        return sorted(records, key=slot_time)

    def _where_date(self, query: Any, day: date) -> Any:
        d, m, y = date_cells(day)
        return query.and_().where(DAY).matches(d).and_().where(MONTH).matches(m).and_().where(YEAR).matches(y)

    def _appointment(self, appointment_id: str) -> dict[str, str]:
        row = self.appointments.read_row(appointment_id)
        if row is None:
            raise InvalidInputError(f"Appointment not found: {appointment_id}")
        return dict(zip(APPOINTMENT_COLUMNS, row))

    def _schedule_slot(self, schedule_id: str) -> dict[str, str]:
        row = self.schedule.read_row(schedule_id)
        if row is None:
            raise InvalidInputError(f"Schedule slot not found: {schedule_id}")
        return dict(zip(SCHEDULE_COLUMNS, row))

    def _slot_of(self, appointment: dict[str, str]) -> str | None:
        """Find the schedule slot an appointment was made for."""
        return (
            self.schedule.query()
            .where(DOCTOR_ID).matches(appointment[DOCTOR_ID])
            .and_().where(DAY).matches(appointment[DAY])
            .and_().where(MONTH).matches(appointment[MONTH])
            .and_().where(YEAR).matches(appointment[YEAR])
            .and_().where(TIME_SLOT).matches(appointment[TIME_SLOT])
            .and_().where(STATUS).does_not_match(COMPLETED)
            .single_result()
        )

    def _lapse(self, appointment_id: str) -> str:
        """Cancel an appointment and move it out of the way of new requests."""
        lapsed_id = f"{appointment_id}C{time.time_ns()}"
        self.appointments.update_cell(appointment_id, STATUS, CANCELLED)
        self.appointments.update_cell(appointment_id, APPOINTMENT_ID, lapsed_id)
        logger.info("appointment_cancelled", appointment_id=appointment_id, lapsed_id=lapsed_id)
        return lapsed_id

    def _patient_clash(
        self, patient_id: str, slot: dict[str, str], moving: str | None = None
    ) -> str | None:
        """The patient's open appointment at the slot's time, other than the one being moved."""
        clashes = (
            self.appointments.query()
            .where(PATIENT_ID).matches(patient_id)
            .and_().where(STATUS).does_not_match(CANCELLED)
            .and_().where(STATUS).does_not_match(COMPLETED)
            .and_().where(DAY).matches(slot[DAY])
            .and_().where(MONTH).matches(slot[MONTH])
            .and_().where(YEAR).matches(slot[YEAR])
            .and_().where(TIME_SLOT).matches(slot[TIME_SLOT])
            .yield_rows()
        )
        for (appointment_id,) in clashes:
            if appointment_id != moving:
                return appointment_id
        return None

    # --- Shared ---

    def _remove_user(self, command: Command) -> None:
        doctor_id = self.stack.get_parent_target()
        slots = self.schedule.query().where(DOCTOR_ID).matches(doctor_id).yield_rows()
        for (schedule_id,) in slots:
            self.schedule.remove_row(schedule_id)

        unfinished = (
            self.appointments.query()
            .where(DOCTOR_ID).matches(doctor_id)
            .and_().where(STATUS).does_not_match(COMPLETED)
            .and_().where(STATUS).does_not_match(CANCELLED)
            .yield_rows()
        )
        for (appointment_id,) in unfinished:
            self._lapse(appointment_id)
        logger.info(
            "doctor_schedule_removed",
            doctor_id=doctor_id,
            slots=len(slots),
            cancelled=len(unfinished),
        )

    # --- Patient actions ---

    def _read_available_appointment(self, command: Command) -> list[dict[str, str]]:
        query = self.schedule.query(SCHEDULE_COLUMNS).where(STATUS).matches(AVAILABLE)
        day = command.param("date", None)
        if day is not None:
            query = self._where_date(query, day)
        return self._rows(self.schedule, query.yield_rows())

    def _patient_schedule_appointment(self, command: Command) -> str:
        patient_id = command.issuer_id or ""
        schedule_id = command.param("schedule_id")
        slot = self._schedule_slot(schedule_id)
        if slot[STATUS] != AVAILABLE:
            raise InvalidInputError(f"Slot {schedule_id} is not available")

        clash = self._patient_clash(patient_id, slot)
        if clash is not None:
            raise InvalidInputError(f"You already have appointment {clash} at this time")

        appointment_id = patient_id + schedule_id
        row = self.appointments.new_row(
            {
                APPOINTMENT_ID: appointment_id,
                PATIENT_ID: patient_id,
                DAY: slot[DAY],
                MONTH: slot[MONTH],
                YEAR: slot[YEAR],
                TIME_SLOT: slot[TIME_SLOT],
                STATUS: PENDING,
                DOCTOR_ID: slot[DOCTOR_ID],
            }
        )
        for name in APPOINTMENT_COLUMNS[8:]:
            self.appointments.assign(row, name, NOT_APPLICABLE)
        self.appointments.add_row(row)
        logger.info("appointment_requested", appointment_id=appointment_id, schedule_id=schedule_id)
        return appointment_id

    def _view_patient_appointment(self, command: Command) -> list[dict[str, str]]:
        rows = (
            self.appointments.query(APPOINTMENT_COLUMNS)
            .where(STATUS).matches(CONFIRMED)
            .or_().where(STATUS).matches(PENDING)
            .and_().where(PATIENT_ID).matches(command.issuer_id or "")
            .yield_rows()
        )
        return self._rows(self.appointments, rows)

    def _cancel_patient_appointment(self, command: Command) -> Any:
        appointment_id = command.param("appointment_id", None)
        if appointment_id is None:
            return self._view_patient_appointment(command)

        appointment = self._appointment(appointment_id)
        if appointment[PATIENT_ID] != command.issuer_id:
            raise InvalidInputError(f"Appointment {appointment_id} is not yours")
        if appointment[STATUS] not in (CONFIRMED, PENDING):
            raise InvalidInputError(f"Appointment {appointment_id} is {appointment[STATUS]}")

        if appointment[STATUS] == CONFIRMED:
            schedule_id = self._slot_of(appointment)
            if schedule_id is not None:
                self.schedule.update_cell(schedule_id, STATUS, AVAILABLE)
                self.schedule.update_cell(schedule_id, PATIENT_ID, NOT_APPLICABLE)
                self.schedule.update_cell(schedule_id, APPOINTMENT_ID, NOT_APPLICABLE)
        return self._lapse(appointment_id)

    def _reschedule_patient_appointment(self, command: Command) -> str:
        schedule_id = command.param("schedule_id")
        slot = self._schedule_slot(schedule_id)
        if slot[STATUS] != AVAILABLE:
            raise InvalidInputError(f"Slot {schedule_id} is not available")
        appointment_id = command.param("appointment_id", None)
        if appointment_id is None:
            raise InvalidInputError("Choose the appointment to reschedule")
        clash = self._patient_clash(command.issuer_id or "", slot, moving=appointment_id)
        if clash is not None:
            raise InvalidInputError(f"You already have appointment {clash} at this time")
        self._cancel_patient_appointment(command)
        return self._patient_schedule_appointment(command)

    def _read_personal_appointment_outcome(self, command: Command) -> list[dict[str, str]]:
        query = (
            self.appointments.query(APPOINTMENT_COLUMNS)
            .where(PATIENT_ID).matches(command.issuer_id or "")
            .and_().where(STATUS).matches(COMPLETED)
        )
        day = command.param("date", None)
        if day is not None:
            query = self._where_date(query, day)
        return self._rows(self.appointments, query.yield_rows())

    # --- Doctor actions ---

    def _read_personal_appointment(self, command: Command) -> list[dict[str, str]]:
        query = self.schedule.query(SCHEDULE_COLUMNS).where(DOCTOR_ID).matches(command.issuer_id or "")
        day = command.param("date", None)
        if day is not None:
            query = self._where_date(query, day)
        return self._rows(self.schedule, query.yield_rows())

    def _write_personal_appointment(self, command: Command) -> str:
        """Open a slot, or block it out for anything other than a consultation."""
        doctor_id = command.issuer_id or ""
        day: date = command.param("date")
        time_slot = _check_time_slot(command.param("time_slot"))
        details = str(command.param("details", CONSULTATION)).strip() or CONSULTATION
        d, m, y = date_cells(day)

        clash = (
            self.schedule.query()
            .where(DOCTOR_ID).matches(doctor_id)
            .and_().where(DAY).matches(d)
            .and_().where(MONTH).matches(m)
            .and_().where(YEAR).matches(y)
            .and_().where(TIME_SLOT).matches(time_slot)
            .single_result()
        )
        if clash is not None:
            raise InvalidInputError(f"Slot {clash} already covers {d} {m} {y} {time_slot}")

        status = AVAILABLE if details == CONSULTATION else CONFIRMED
        schedule_id = f"{doctor_id}{y}{day.month - 1}{d}{time_slot.replace(':', '')}"
        self.schedule.add_row(
            [schedule_id, doctor_id, d, m, y, time_slot, status, details, NOT_APPLICABLE, NOT_APPLICABLE]
        )
        logger.info("slot_opened", schedule_id=schedule_id, status=status)
        return schedule_id

    def _write_appointment_requests(self, command: Command) -> Any:
        doctor_id = command.issuer_id or ""
        appointment_id = command.param("appointment_id", None)
        if appointment_id is None:
            rows = (
                self.appointments.query(APPOINTMENT_COLUMNS)
                .where(DOCTOR_ID).matches(doctor_id)
                .and_().where(STATUS).matches(PENDING)
                .yield_rows()
            )
            return self._rows(self.appointments, rows)

        appointment = self._appointment(appointment_id)
        if appointment[DOCTOR_ID] != doctor_id or appointment[STATUS] != PENDING:
            raise InvalidInputError(f"{appointment_id} is not one of your pending requests")

        if not command.param("approve"):
            return self._lapse(appointment_id)

        schedule_id = self._slot_of(appointment)
        if schedule_id is None or self.schedule.read_cell(schedule_id, STATUS) != AVAILABLE:
            raise InvalidInputError(f"The slot requested by {appointment_id} is no longer available")

        self.schedule.update_cell(schedule_id, STATUS, CONFIRMED)
        self.schedule.update_cell(schedule_id, PATIENT_ID, appointment[PATIENT_ID])
        self.schedule.update_cell(schedule_id, APPOINTMENT_ID, appointment_id)
        self.appointments.update_cell(appointment_id, STATUS, CONFIRMED)

        competing = (
            self.appointments.query()
            .where(DOCTOR_ID).matches(doctor_id)
            .and_().where(STATUS).matches(PENDING)
            .and_().where(DAY).matches(appointment[DAY])
            .and_().where(MONTH).matches(appointment[MONTH])
            .and_().where(YEAR).matches(appointment[YEAR])
            .and_().where(TIME_SLOT).matches(appointment[TIME_SLOT])
            .yield_rows()
        )
        for (other_id,) in competing:
            self._lapse(other_id)
        logger.info("appointment_confirmed", appointment_id=appointment_id, schedule_id=schedule_id)
        return appointment_id

    def _read_upcoming_appointments(self, command: Command) -> list[dict[str, str]]:
        rows = (
            self.appointments.query(APPOINTMENT_COLUMNS)
            .where(DOCTOR_ID).matches(command.issuer_id or "")
            .and_().where(STATUS).matches(CONFIRMED)
            .yield_rows()
        )
        return self._rows(self.appointments, rows)

    def _record(self, command: Command, change: MedicalRecordModifier) -> None:
        self.stack.set_target(command.issuer_id, change)
        self.system.records.dispatch("WRITE_ANY_MEDICAL_RECORD")

    def _medicine_available(self, command: Command, medicine: str, quantity: int) -> bool:
        check = MedicationStockModifier(medicine, quantity)
        self.stack.set_target(command.issuer_id, check)
        self.system.stock.dispatch("CHECK_FOR_MEDICINE")
        return check.available

    def _write_appointment_outcome(self, command: Command) -> Outcome:
        """Record the outcome of a confirmed consultation.

        Diagnoses, treatments and prescribed medications are written to the
        patient's medical record under the appointment's date. Medicines that
        are out of stock are left off the prescription and reported back.
        """
        doctor_id = command.issuer_id or ""
        slot = self._schedule_slot(command.param("schedule_id"))
        if slot[DOCTOR_ID] != doctor_id or slot[STATUS] != CONFIRMED or slot[APPOINTMENT_ID] == NOT_APPLICABLE:
            raise InvalidInputError(f"{slot[SCHEDULE_ID]} is not a confirmed appointment of yours")

        diagnoses = _items(command.param("diagnoses"))
        treatments = _items(command.param("treatments", []))
        medications = _items(command.param("medications", []))
        services = _items(command.param("services"))
        if not diagnoses:
            raise InvalidInputError("At least one diagnosis is required")
        if not services:
            raise InvalidInputError("At least one type of service is required")

        def cell(items: list[str]) -> str:
            return format_list_cell(items) if items else NOT_APPLICABLE

        # Nothing is written unless every cell fits the tables
        self.appointments.store.check_cells(
            cell(items) for items in (diagnoses, treatments, medications, services)
        )

        patient_id = slot[PATIENT_ID]
        appointment_id = slot[APPOINTMENT_ID]
        when = slot_time(slot)
        outcome = Outcome(appointment_id)

        for name, items in ((DIAGNOSES, diagnoses), (TREATMENTS, treatments)):
            for item in items:
                self._record(command, MedicalRecordModifier(ADD, name, patient_id, when, item))
        for medicine in medications:
            if not self._medicine_available(command, medicine, 1):
                outcome.unavailable.append(medicine)
                continue
            outcome.prescribed.append(medicine)
            self._record(command, MedicalRecordModifier(ADD, MEDICATIONS, patient_id, when, medicine))

        self.appointments.update_cell(appointment_id, DIAGNOSES, cell(diagnoses))
        self.appointments.update_cell(appointment_id, TREATMENTS, cell(treatments))
        self.appointments.update_cell(appointment_id, TYPE_OF_SERVICE, cell(services))
        self.appointments.update_cell(appointment_id, MEDICATIONS, cell(outcome.prescribed))
        if outcome.prescribed:
            self.appointments.update_cell(appointment_id, PRESCRIPTION_STATUS, PENDING)
            self.appointments.update_cell(appointment_id, PRESCRIPTION_QUANTITY, "1")
        self.appointments.update_cell(appointment_id, STATUS, COMPLETED)
        self.schedule.update_cell(slot[SCHEDULE_ID], STATUS, COMPLETED)

        logger.info(
            "appointment_completed",
            appointment_id=appointment_id,
            prescribed=len(outcome.prescribed),
            unavailable=len(outcome.unavailable),
        )
        return outcome

    def _write_any_medical_record(self, command: Command) -> list[str]:
        """Change one item of a completed appointment and the matching record."""
        appointment = self._appointment(command.param("appointment_id"))
        if appointment[DOCTOR_ID] != command.issuer_id or appointment[STATUS] != COMPLETED:
            raise InvalidInputError(
                f"{appointment[APPOINTMENT_ID]} is not a completed appointment of yours"
            )

        attribute = command.param("attribute")
        if attribute not in RECORD_ATTRIBUTES:
            raise InvalidInputError(f"Choose one of {', '.join(RECORD_ATTRIBUTES)}")
        operation = command.param("operation")
        index = int(command.param("index", 0))
        value = str(command.param("value", "")).strip()
        if operation in (ADD, UPDATE) and not value:
            raise InvalidInputError("A value is required")
        if LIST_SEPARATOR in value:
            raise InvalidInputError(f"Value {value!r} contains the list separator {LIST_SEPARATOR!r}")
        self.appointments.store.check_cells([value])

        items = parse_list_cell(appointment[attribute])
        if operation == ADD:
            items.append(value)
        elif operation in (UPDATE, DELETE):
            if not 0 <= index < len(items):
                raise InvalidInputError(f"No {attribute} item {index + 1} in this appointment")
            if operation == UPDATE:
                items[index] = value
            else:
                del items[index]
        else:
            raise InvalidInputError(f"Unknown record operation: {operation}")

        self._record(
            command,
            MedicalRecordModifier(
                operation, attribute, appointment[PATIENT_ID], slot_time(appointment), value, index
            ),
        )
        self.appointments.update_cell(
            appointment[APPOINTMENT_ID],
            attribute,
            format_list_cell(items) if items else NOT_APPLICABLE,
        )
        return items

    # --- Pharmacist actions ---

    def _read_appointment_outcome(self, command: Command) -> list[dict[str, str]]:
        rows = self.appointments.query(APPOINTMENT_COLUMNS).where(STATUS).matches(COMPLETED).yield_rows()
        return self._rows(self.appointments, rows)

    def _write_prescription_status(self, command: Command) -> list[str]:
        appointment = self._appointment(command.param("appointment_id"))
        appointment_id = appointment[APPOINTMENT_ID]
        if appointment[PRESCRIPTION_STATUS] == DISPENSED:
            raise InvalidInputError(f"The prescription of {appointment_id} was already dispensed")
        medicines = parse_list_cell(appointment[MEDICATIONS])
        if appointment[STATUS] != COMPLETED or not medicines:
            raise InvalidInputError(f"{appointment_id} has no prescription to dispense")

        quantity = int(appointment[PRESCRIPTION_QUANTITY])
        missing = [m for m in medicines if not self._medicine_available(command, m, quantity)]
        if missing:
            raise InvalidInputError(f"Not enough stock for: {', '.join(missing)}")

        for medicine in medicines:
            self.stack.set_target(command.issuer_id, MedicationStockModifier(medicine, quantity))
            self.system.stock.dispatch("UPDATE_STOCK_VALUE")
        self.appointments.update_cell(appointment_id, PRESCRIPTION_STATUS, DISPENSED)
        logger.info("prescription_dispensed", appointment_id=appointment_id, medicines=medicines)
        return medicines

    def close(self) -> None:
        self.appointments.close()
        self.schedule.close()
