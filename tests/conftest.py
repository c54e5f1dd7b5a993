"""Shared fixtures: a fresh data directory and a populated hospital."""

from pathlib import Path

import pytest

from hms_tables.config import Config
from hms_tables.system import HospitalSystem, init_data_dir

ADMIN = "A001"
DOCTOR = "D001"
PATIENT = "P001"
PHARMACIST = "PH01"
PASSWORD = "password"


def profile(hospital_id: str, name: str, role: str, age: str = "40") -> dict[str, str]:
    return {
        "ID": hospital_id,
        "Name": name,
        "Role": role,
        "BirthDate": "1985-01-01",
        "Gender": "F",
        "Age": age,
        "BloodType": "O+",
        "Email": f"{hospital_id.lower()}@hospital.test",
        "Phone": "5550100",
    }


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """A configuration pointing at an initialized, empty data directory."""
    config = Config(data_dir=tmp_path / "data")
    init_data_dir(config, admin_id=ADMIN)
    return config


@pytest.fixture
def system(config: Config):
    """A system over the bare data directory (administrator only)."""
    with HospitalSystem(config) as system:
        yield system


@pytest.fixture
def hospital(system: HospitalSystem) -> HospitalSystem:
    """A system with one user per role and two medicines, logged out."""
    admin = system.login(ADMIN, PASSWORD)
    assert admin is not None
    admin.dispatch("users", "WRITE_STAFF_LIST", operation="add", profile=profile(DOCTOR, "Dr Grey", "Doctor"))
    admin.dispatch(
        "users", "WRITE_STAFF_LIST", operation="add", profile=profile(PATIENT, "Sam Lee", "Patient", age="30")
    )
    admin.dispatch(
        "users", "WRITE_STAFF_LIST", operation="add", profile=profile(PHARMACIST, "Kim Park", "Pharmacist")
    )
    admin.dispatch("stock", "WRITE_MEDICINE_LIST", operation="add", medicine="Paracetamol", stock=50)
    admin.dispatch("stock", "WRITE_MEDICINE_LIST", operation="add", medicine="Ibuprofen", stock=1)
    system.logout()
    return system
