"""Exception hierarchy for hms-tables.

Every error derives from HmsError and from the closest built-in exception, so
callers can catch either the library-wide base or a generic category.
"""

from __future__ import annotations


class HmsError(Exception):
    """Base class for all hms-tables errors."""


class ConfigError(HmsError, ValueError):
    """Invalid configuration file or value."""


class TableLoadError(HmsError, OSError):
    """A backing file could not be opened at table construction."""


class TableMismatchError(HmsError, ValueError):
    """A row, or a joint table component, does not match the expected width."""


class UndefinedVariableError(HmsError, LookupError):
    """An attribute name or entry position does not exist."""


class UserNotFoundError(HmsError, LookupError):
    """An id-keyed write addressed an identifier that is not in the table."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"Identifier not found: {identifier}")
        self.identifier = identifier


class TableQueryError(HmsError, ValueError):
    """A query referenced an unknown column or was used out of order."""


class NumericCellError(TableQueryError):
    """A cell compared numerically does not hold an integer."""

    def __init__(self, column: str, value: str) -> None:
        super().__init__(f"Column '{column}' holds non-numeric value '{value}'")
        self.column = column
        self.value = value


class EntryFormatError(HmsError, ValueError):
    """A sparse table entry could not be parsed."""


class QuerySyntaxError(HmsError, SyntaxError):
    """A query statement could not be tokenized or parsed."""


class AccessDeniedError(HmsError, PermissionError):
    """The issuing user is not allowed to run a command."""

    def __init__(self, issuer_id: str | None, action: str, reason: str | None = None) -> None:
        super().__init__(reason or f"Access denied: {issuer_id} may not run {action}")
        self.issuer_id = issuer_id
        self.action = action


class AccountAccessViolationError(HmsError, PermissionError):
    """A credential change was attempted for a user who is not logged in."""


class UndefinedCommandError(HmsError, LookupError):
    """A manager received an action it has no handler for."""

    def __init__(self, manager_tag: str, action: str) -> None:
        super().__init__(f"{manager_tag} has no command {action}")
        self.manager_tag = manager_tag
        self.action = action


class RoleNotFoundError(HmsError, LookupError):
    """A role name is not one of the known roles."""


class InvalidInputError(HmsError, ValueError):
    """A workflow rejected its input (reused password, clashing slot, ...)."""


class CommandStackViolationError(HmsError, RuntimeError):
    """The command stack protocol was misused."""


class NoParentCommandError(CommandStackViolationError):
    """A parent target was requested with fewer than two frames on the stack."""


class TargetNotSetError(CommandStackViolationError):
    """A target was read before any payload was set."""


class TargetTypeError(CommandStackViolationError, TypeError):
    """A target holds a different payload variant than the one requested."""


class IssuerMismatchError(CommandStackViolationError):
    """A caller other than the issuer tried to set a command target."""
