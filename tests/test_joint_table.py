"""Tests for joint tables."""

from pathlib import Path

import pytest

from hms_tables.errors import TableMismatchError, UndefinedVariableError
from hms_tables.joint_table import JointTable
from hms_tables.sparse_table import NOT_FOUND, SparseTable


@pytest.fixture
def joint(tmp_path: Path) -> JointTable:
    return JointTable(
        [
            SparseTable.create(tmp_path / "diagnoses.csv", ["ID", "Diagnoses"]),
            SparseTable.create(tmp_path / "treatments.csv", ["ID", "Treatments"]),
        ]
    )


class TestJointTable:
    """Tests for the per-identifier view over sparse tables."""

    def test_components_need_two_columns(self, tmp_path: Path):
        """Test that wide components are rejected."""
        wide = SparseTable.create(tmp_path / "wide.csv", ["ID", "A", "B"])
        with pytest.raises(TableMismatchError):
            JointTable([wide])

    def test_attributes(self, joint: JointTable):
        """Test that components are addressed by their attribute column."""
        assert joint.attributes == ["Diagnoses", "Treatments"]
        with pytest.raises(UndefinedVariableError):
            joint.component("Medications")

    def test_add_row_everywhere(self, joint: JointTable):
        """Test that add_row reaches every component."""
        assert not joint.exists_any("P1")
        joint.add_row("P1")
        assert joint.exists_all("P1")
        assert joint.read_row("P1") == {"Diagnoses": [], "Treatments": []}

    def test_read_row_of_absent_identifier(self, joint: JointTable):
        """Test that absent identifiers read as empty lists."""
        assert joint.read_row("P9") == {"Diagnoses": [], "Treatments": []}

    def test_values(self, joint: JointTable):
        """Test per-attribute value edits."""
        joint.add_row("P1")
        joint.add_value("P1", "Diagnoses", "Flu;5 January 2024 09:00;")
        joint.add_value("P1", "Diagnoses", "Cold;6 January 2024 09:00;")
        assert joint.exists_in("P1", "Treatments")
        assert joint.read_attribute("P1", "Treatments") == []

        position = joint.find_index_of_value("P1", "Diagnoses", lambda t: t.startswith("Cold"))
        assert position == 1
        joint.overwrite_value("P1", "Diagnoses", position, "Cough;6 January 2024 09:00;")
        assert joint.get_value("P1", "Diagnoses", 1) == "Cough;6 January 2024 09:00;"
        assert joint.find_entry("P1", "Diagnoses", lambda t: t.startswith("Cough")) is not None
        assert joint.find_entry("P1", "Diagnoses", lambda t: False) is None
        assert joint.find_index_of_value("P1", "Treatments", lambda t: True) == NOT_FOUND

        joint.remove_value("P1", "Diagnoses", 0)
        assert joint.read_attribute("P1", "Diagnoses") == ["Cough;6 January 2024 09:00;"]
