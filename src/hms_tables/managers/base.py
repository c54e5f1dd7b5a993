"""Shared behaviour of the hospital resource managers."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from hms_tables.commands import Command, CommandStack
from hms_tables.errors import UndefinedCommandError

if TYPE_CHECKING:
    from hms_tables.system import HospitalSystem


class HospitalResourceManager:
    """Owns a group of tables and exposes actions on them as commands.

    Subclasses set ``tag`` (the name shown in the prompt path) and register
    one handler per action name in ``self.handlers``. A handler receives the
    running command and returns whatever the caller should see.
    """

    tag = "Manager"

    def __init__(self, system: HospitalSystem) -> None:
        self.system = system
        self.handlers: dict[str, Callable[[Command], Any]] = {}

    @property
    def stack(self) -> CommandStack:
        return self.system.stack

    @property
    def actions(self) -> list[str]:
        return list(self.handlers)

    def command(self, action: str, **params: Any) -> Command:
        return Command(action, self, **params)

    def dispatch(self, action: str, **params: Any) -> Any:
        """Create a command for this manager and dispatch it."""
        return self.stack.dispatch(self.command(action, **params))

    def authorize(self, command: Command) -> None:
        if not self.system.roles.has_permission(command.issuer_id, command.action):
            command.reject()

    def run(self, command: Command) -> Any:
        handler = self.handlers.get(command.action)
        if handler is None:
            raise UndefinedCommandError(self.tag, command.action)
        return handler(command)

    def close(self) -> None:
        """Close the tables this manager owns."""
