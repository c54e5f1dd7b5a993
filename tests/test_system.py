"""Tests for data directory setup, login and sessions."""

from pathlib import Path

import pytest

from hms_tables.config import TABLE_FILES, Config
from hms_tables.errors import RoleNotFoundError
from hms_tables.fixed_table import parse_list_cell
from hms_tables.system import DEFAULT_PERMISSIONS, MENUS, HospitalSystem, Role, init_data_dir

from conftest import ADMIN, DOCTOR, PASSWORD, PATIENT


class TestInit:
    """Tests for init_data_dir."""

    def test_creates_every_table(self, tmp_path: Path):
        """Test that every table file gets a header."""
        config = Config(data_dir=tmp_path / "hms")
        init_data_dir(config)
        for file_name in TABLE_FILES.values():
            assert (tmp_path / "hms" / file_name).exists()
        assert (tmp_path / "hms" / "userRoles.csv").read_text() == "ID,Role\nA001,Administrator\n"

    def test_permissions_table(self, config: Config):
        """Test the default permissions rows."""
        with HospitalSystem(config) as system:
            table = system.roles.permissions
            assert table.count == len(DEFAULT_PERMISSIONS)
            assert parse_list_cell(table.read_cell("Patient", "Permissions")) == DEFAULT_PERMISSIONS["Patient"]

    def test_is_idempotent(self, config: Config):
        """Test that a second run adds nothing."""
        before = {name: config.table_path(name).read_text() for name in TABLE_FILES}
        init_data_dir(config, admin_id=ADMIN)
        after = {name: config.table_path(name).read_text() for name in TABLE_FILES}
        assert before == after

    def test_other_delimiter(self, tmp_path: Path):
        """Test that the configured delimiter is used throughout."""
        config = Config(data_dir=tmp_path, delimiter="|")
        init_data_dir(config)
        assert (tmp_path / "users.csv").read_text().startswith("ID|Name|Role|")
        with HospitalSystem(config) as system:
            assert system.login(ADMIN, PASSWORD) is not None


class TestLogin:
    """Tests for logging in and out."""

    def test_login(self, system: HospitalSystem):
        """Test a successful login."""
        session = system.login(ADMIN, PASSWORD)
        assert session is not None
        assert session.role is Role.ADMINISTRATOR
        assert system.stack.active_user_id == ADMIN
        assert system.stack.path == "A001@Administrator"

    def test_bad_credentials(self, system: HospitalSystem):
        """Test that wrong passwords and unknown users are refused."""
        assert system.login(ADMIN, "wrong") is None
        assert system.login("Z999", PASSWORD) is None
        assert system.session is None

    def test_logout(self, system: HospitalSystem):
        """Test that logging out clears the active user."""
        system.login(ADMIN, PASSWORD)
        system.logout()
        assert system.session is None
        assert system.stack.active_user_id is None
        assert system.stack.path == ""

    def test_login_replaces_session(self, hospital: HospitalSystem):
        """Test that a new login ends the previous session."""
        hospital.login(ADMIN, PASSWORD)
        session = hospital.login(DOCTOR, PASSWORD)
        assert session is not None
        assert hospital.stack.path == "D001@Doctor"

    def test_unknown_stored_role(self, hospital: HospitalSystem):
        """Test that a corrupted role is reported."""
        hospital.roles.roles.update_cell(PATIENT, "Role", "Visitor")
        with pytest.raises(RoleNotFoundError):
            hospital.login(PATIENT, PASSWORD)


class TestSession:
    """Tests for menus."""

    def test_menu_per_role(self, hospital: HospitalSystem):
        """Test that each role sees its options and the common ones."""
        session = hospital.login(PATIENT, PASSWORD)
        flags = [option.flag for option in session.menu]
        assert flags[: len(MENUS[Role.PATIENT])] == [option.flag for option in MENUS[Role.PATIENT]]
        assert flags[-4:] == ["-vp", "-up", "-cp", "-lo"]

    def test_option(self, hospital: HospitalSystem):
        """Test looking up an option by flag."""
        session = hospital.login(DOCTOR, PASSWORD)
        assert session.option("-rao").action == "WRITE_APPOINTMENT_OUTCOME"
        assert session.option("-lo").action is None
        assert session.option("-mi") is None

    def test_menu_actions_are_permitted(self, hospital: HospitalSystem):
        """Test that every menu action is granted to its role."""
        for role, options in MENUS.items():
            for option in options:
                granted = DEFAULT_PERMISSIONS[role.value] + DEFAULT_PERMISSIONS["CommonAccess"]
                assert option.action in granted, (role, option.flag)

    def test_role_from_name(self):
        """Test resolving role names."""
        assert Role.from_name("Pharmacist") is Role.PHARMACIST
        with pytest.raises(RoleNotFoundError):
            Role.from_name("Nurse")
