"""Runtime configuration for hms-tables.

Settings are validated with Pydantic and frozen after construction. Files are
YAML (so plain JSON works too); command line flags override file values.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from hms_tables.errors import ConfigError

# Logical table name -> file name inside the data directory
TABLE_FILES: dict[str, str] = {
    "users": "users.csv",
    "passwords": "passwords.csv",
    "roles": "userRoles.csv",
    "permissions": "permissions.csv",
    "diagnoses": "diagnoses.csv",
    "treatments": "treatments.csv",
    "medications": "medications.csv",
    "medicines": "medicineList.csv",
    "appointments": "patientAppointments.csv",
    "schedule": "doctorSchedule.csv",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Config(BaseModel):
    """Settings shared by the system context and the console."""

    model_config = {"frozen": True, "extra": "forbid", "strict": True}

    data_dir: Path = Field(
        default=Path("data"),
        strict=False,
        description="Directory holding the table files",
    )
    delimiter: str = Field(default=",", description="Cell separator of every table file")
    log_level: str = Field(default="WARNING", description="Minimum level written to stderr")
    log_json: bool = Field(default=False, description="Emit logs as JSON lines")
    default_password: str = Field(
        default="password",
        min_length=1,
        description="Password given to new accounts, changed at first login",
    )
    replenishment_quantity: int = Field(
        default=100,
        gt=0,
        description="Units added when a replenishment request is approved",
    )
    low_stock_alert: int = Field(
        default=20,
        ge=0,
        description="Alert level stored with newly added medicines",
    )

    @field_validator("delimiter")
    @classmethod
    def validate_delimiter(cls, v: str) -> str:
        if len(v) != 1:
            raise ValueError("delimiter must be a single character")
        # ";" separates items inside list cells and entries
        if v in (";", "\n", "\r"):
            raise ValueError(f"delimiter {v!r} is reserved")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        if v.upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return v.upper()

    def table_path(self, name: str) -> Path:
        """Return the backing file for a logical table name."""
        try:
            return self.data_dir / TABLE_FILES[name]
        except KeyError:
            raise ConfigError(f"Unknown table: {name}") from None

    def with_overrides(self, **overrides: Any) -> Config:
        """Return a copy with every non-None override applied."""
        return self.model_copy(update={k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        """Validate parsed settings.

        Raises:
            ConfigError: On unknown keys, wrong types or invalid values.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def load(cls, path: Path) -> Config:
        """Load settings from a YAML file.

        Relative data directories resolve against the file's location.
        """
        path = Path(path)
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping of settings")

        config = cls.from_dict(data)
        if "data_dir" in data and not config.data_dir.is_absolute():
            config = config.model_copy(update={"data_dir": path.parent / config.data_dir})
        return config
