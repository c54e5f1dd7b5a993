"""Medicine inventory and replenishment requests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from hms_tables.commands import Command
from hms_tables.errors import InvalidInputError
from hms_tables.fixed_table import FixedTable
from hms_tables.managers.base import HospitalResourceManager
from hms_tables.targets import MedicationStockModifier

if TYPE_CHECKING:
    from hms_tables.system import HospitalSystem

logger = structlog.get_logger(__name__)

MEDICINE_NAME = "Medicine Name"
STOCK = "Initial Stock"
LOW_STOCK_ALERT = "Low Stock Level Alert"
REPLENISHMENT_REQUEST = "Replenishment Request"

MEDICINE_COLUMNS = [MEDICINE_NAME, STOCK, LOW_STOCK_ALERT, REPLENISHMENT_REQUEST]

PENDING = "Pending"
FULFILLED = "Fulfilled"
REJECTED = "Rejected"


def _check_quantity(value: object) -> int:
    try:
        quantity = int(str(value))
    except ValueError:
        raise InvalidInputError(f"Stock must be a whole number, got '{value}'") from None
    if quantity < 0:
        raise InvalidInputError("Stock must not be negative")
    return quantity


class MedicationStockManager(HospitalResourceManager):
    tag = "Dispensary"

    def __init__(self, system: HospitalSystem) -> None:
        super().__init__(system)
        config = system.config
        self.medicines = FixedTable(
            config.table_path("medicines"), MEDICINE_COLUMNS, delimiter=config.delimiter
        )
        self.handlers = {
            "READ_MEDICINE_LIST": self._read_medicine_list,
            "WRITE_MEDICINE_LIST": self._write_medicine_list,
            "WRITE_MEDICATION_STOCK_REPLENISHMENT_REQUEST": self._request_replenishment,
            "REVIEW_REPLENISHMENT_REQUEST": self._review_replenishment_request,
            "CHECK_FOR_MEDICINE": self._check_for_medicine,
            "UPDATE_STOCK_VALUE": self._update_stock_value,
        }

    def stock_of(self, medicine: str) -> int | None:
        cell = self.medicines.read_cell(medicine, STOCK)
        if cell is None:
            return None
        return int(cell)

    def _require_medicine(self, medicine: str) -> None:
        if not self.medicines.exists(medicine):
            raise InvalidInputError(f"Medicine not found: {medicine}")

    def _read_medicine_list(self, command: Command) -> list[tuple[str, ...]]:
        return self.medicines.data_rows()

    def _write_medicine_list(self, command: Command) -> None:
        operation = command.param("operation")
        medicine = str(command.param("medicine")).strip()
        if not medicine:
            raise InvalidInputError("A medicine name is required")

        if operation == "add":
            if self.medicines.exists(medicine):
                raise InvalidInputError(f"{medicine} is already in the inventory")
            stock = _check_quantity(command.param("stock"))
            self.medicines.add_row(
                [medicine, str(stock), str(self.system.config.low_stock_alert), FULFILLED]
            )
        elif operation == "remove":
            self._require_medicine(medicine)
            self.medicines.remove_row(medicine)
        elif operation == "update":
            self._require_medicine(medicine)
            stock = _check_quantity(command.param("stock"))
            self.medicines.update_cell(medicine, STOCK, str(stock))
        else:
            raise InvalidInputError(f"Unknown medicine list operation: {operation}")
        logger.info("medicine_list_changed", operation=operation, medicine=medicine)

    def _request_replenishment(self, command: Command) -> None:
        medicine = command.param("medicine")
        self._require_medicine(medicine)
        self.medicines.update_cell(medicine, REPLENISHMENT_REQUEST, PENDING)
        logger.info("replenishment_requested", medicine=medicine, by=command.issuer_id)

    def _review_replenishment_request(self, command: Command) -> list[list[str]] | None:
        """List pending requests, or approve/reject the one for ``medicine``.

        An approved request tops the stock up by the configured
        replenishment quantity.
        """
        medicine = command.param("medicine", None)
        if medicine is None:
            return (
                self.medicines.query(MEDICINE_COLUMNS)
                .where(REPLENISHMENT_REQUEST)
                .matches(PENDING)
                .yield_rows()
            )

        if self.medicines.read_cell(medicine, REPLENISHMENT_REQUEST) != PENDING:
            raise InvalidInputError(f"There is no pending request for {medicine}")

        if command.param("approve"):
            stock = (self.stock_of(medicine) or 0) + self.system.config.replenishment_quantity
            self.medicines.update_cell(medicine, STOCK, str(stock))
            self.medicines.update_cell(medicine, REPLENISHMENT_REQUEST, FULFILLED)
            logger.info("replenishment_approved", medicine=medicine, stock=stock)
        else:
            self.medicines.update_cell(medicine, REPLENISHMENT_REQUEST, REJECTED)
            logger.info("replenishment_rejected", medicine=medicine)
        return None

    def _check_for_medicine(self, command: Command) -> bool:
        check = self.stack.get_parent_target_as(MedicationStockModifier)
        stock = self.stock_of(check.medicine_name)
        check.available = stock is not None and stock > check.deduction
        return check.available

    def _update_stock_value(self, command: Command) -> int:
        change = self.stack.get_parent_target_as(MedicationStockModifier)
        self.medicines.check_exists(change.medicine_name)
        stock = (self.stock_of(change.medicine_name) or 0) - change.deduction
        self.medicines.update_cell(change.medicine_name, STOCK, str(stock))
        if stock <= int(self.medicines.read_cell(change.medicine_name, LOW_STOCK_ALERT) or 0):
            logger.warning("low_stock", medicine=change.medicine_name, stock=stock)
        return stock

    def close(self) -> None:
        self.medicines.close()
