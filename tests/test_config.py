"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from hms_tables.config import Config
from hms_tables.errors import ConfigError


class TestConfig:
    """Tests for Config."""

    def test_defaults(self):
        """Test the default settings."""
        config = Config()
        assert config.data_dir == Path("data")
        assert config.delimiter == ","
        assert config.log_level == "WARNING"
        assert config.replenishment_quantity == 100

    def test_table_path(self, tmp_path: Path):
        """Test mapping logical names to files."""
        config = Config(data_dir=tmp_path)
        assert config.table_path("roles") == tmp_path / "userRoles.csv"
        assert config.table_path("schedule") == tmp_path / "doctorSchedule.csv"
        with pytest.raises(ConfigError):
            config.table_path("billing")

    def test_overrides_skip_none(self):
        """Test that None overrides keep the current value."""
        config = Config(log_level="INFO").with_overrides(log_level=None, log_json=True)
        assert config.log_level == "INFO"
        assert config.log_json is True

    def test_from_dict(self):
        """Test building a config from parsed settings."""
        config = Config.from_dict({"data_dir": "/srv/hms", "low_stock_alert": 5})
        assert config.data_dir == Path("/srv/hms")
        assert config.low_stock_alert == 5

    @pytest.mark.parametrize(
        "data",
        [
            {"colour": "blue"},
            {"low_stock_alert": "5"},
            {"log_json": 1},
            {"delimiter": "::"},
            {"delimiter": ";"},
            {"log_level": "LOUD"},
            {"data_dir": 3},
        ],
    )
    def test_from_dict_rejects(self, data):
        """Test that bad keys, types and values raise ConfigError."""
        with pytest.raises(ConfigError):
            Config.from_dict(data)

    def test_load_resolves_relative_data_dir(self, tmp_path: Path):
        """Test that a relative data_dir is relative to the config file."""
        path = tmp_path / "hms.json"
        path.write_text(json.dumps({"data_dir": "tables", "log_level": "DEBUG"}))
        config = Config.load(path)
        assert config.data_dir == tmp_path / "tables"
        assert config.log_level == "DEBUG"

    def test_load_errors(self, tmp_path: Path):
        """Test unreadable and malformed files."""
        with pytest.raises(ConfigError):
            Config.load(tmp_path / "missing.json")
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        with pytest.raises(ConfigError):
            Config.load(bad)
        listed = tmp_path / "list.json"
        listed.write_text("[]")
        with pytest.raises(ConfigError):
            Config.load(listed)

    def test_load_yaml(self, tmp_path: Path):
        """Test reading settings written as YAML."""
        path = tmp_path / "hms.yaml"
        path.write_text("data_dir: /srv/hms\ndelimiter: '|'\nlog_json: true\n")
        config = Config.load(path)
        assert config.data_dir == Path("/srv/hms")
        assert config.delimiter == "|"
        assert config.log_json is True

    def test_frozen(self):
        """Test that settings cannot change after construction."""
        config = Config()
        with pytest.raises(ValidationError):
            config.delimiter = "|"
