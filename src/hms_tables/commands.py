"""Commands and the stack that runs them.

A command is created with an action name and the manager that implements it,
then dispatched on the CommandStack. Dispatch binds the active user as the
command's issuer, checks the issuer's permission for the action and runs the
manager's handler. A running command may leave a payload (its target) on its
own frame and dispatch a child command; the child reads the payload from the
frame below its own. Only the issuer of a command may set its target.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, TypeVar

import structlog

from hms_tables.errors import (
    AccessDeniedError,
    CommandStackViolationError,
    IssuerMismatchError,
    NoParentCommandError,
    TargetNotSetError,
    TargetTypeError,
)

if TYPE_CHECKING:
    from hms_tables.targets import Target

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_UNSET: Any = object()


class CommandHandler(Protocol):
    """What a command needs from the manager that implements it."""

    tag: str

    def authorize(self, command: Command) -> None:
        """Raise AccessDeniedError if the command's issuer may not run it."""

    def run(self, command: Command) -> Any:
        """Execute the command and return its result."""


class Command:
    """One invocation of a manager action."""

    def __init__(self, action: str, manager: CommandHandler, **params: Any) -> None:
        self.action = action
        self.manager = manager
        self.params = params
        self.issuer_id: str | None = None
        self._target: Any = _UNSET

    @property
    def manager_tag(self) -> str:
        return self.manager.tag

    def invoke(self, issuer_id: str | None) -> Any:
        """Bind the issuer, authorize and run the action."""
        self.issuer_id = issuer_id
        self.manager.authorize(self)
        return self.manager.run(self)

    def param(self, name: str, default: Any = _UNSET) -> Any:
        """Read a dispatch parameter.

        Raises:
            KeyError: If the parameter is missing and no default is given.
        """
        if name in self.params:
            return self.params[name]
        if default is _UNSET:
            raise KeyError(f"{self.manager_tag}/{self.action} needs parameter '{name}'")
        return default

    @property
    def has_target(self) -> bool:
        return self._target is not _UNSET

    def set_target(self, issuer_id: str | None, payload: Target) -> None:
        """Set the payload for child commands.

        Raises:
            IssuerMismatchError: If issuer_id is not this command's issuer.
                The target is left unchanged.
        """
        if issuer_id != self.issuer_id:
            raise IssuerMismatchError(
                f"Command dispatched by {issuer_id} attempted to modify the target of "
                f"{self.manager_tag}/{self.action} issued by {self.issuer_id}"
            )
        self._target = payload

    def get_target_as(self, expected: type[T]) -> T:
        """Return the target if it is an instance of expected.

        Raises:
            TargetNotSetError: If no target has been set.
            TargetTypeError: If the target is a different payload variant.
        """
        if self._target is _UNSET:
            raise TargetNotSetError(f"{self.manager_tag}/{self.action} did not specify a target")
        if not isinstance(self._target, expected):
            raise TargetTypeError(
                f"Expected a {expected.__name__} target from {self.manager_tag}/{self.action}, "
                f"got {type(self._target).__name__}"
            )
        return self._target

    def get_target(self) -> str:
        return self.get_target_as(str)

    def reject(self, reason: str | None = None) -> None:
        raise AccessDeniedError(self.issuer_id, self.action, reason)

    def __repr__(self) -> str:
        return f"Command({self.manager_tag}/{self.action}, issuer={self.issuer_id!r})"


class CommandStack:
    """The stack of in-flight commands for one session.

    Alongside the commands it keeps a stack of display names (the manager
    tags plus whatever the session pushes) used to render the prompt path.
    """

    def __init__(self) -> None:
        self._frames: list[Command] = []
        self._path: list[str] = []
        self.active_user_id: str | None = None

    @property
    def depth(self) -> int:
        return len(self._frames)

    @property
    def current(self) -> Command:
        if not self._frames:
            raise CommandStackViolationError("The command stack is empty")
        return self._frames[-1]

    @property
    def path(self) -> str:
        return "/".join(self._path)

    def push_path(self, name: str) -> None:
        self._path.append(name)

    def pop_path(self) -> str:
        return self._path.pop()

    def is_logged_in(self, hospital_id: str) -> bool:
        return self.active_user_id is not None and hospital_id == self.active_user_id

    def dispatch(self, command: Command) -> Any:
        """Run a command on top of the stack and return its result.

        The frame is popped whether the command completes or raises.
        Errors propagate to the caller after the stack has unwound.
        """
        self._frames.append(command)
        self._path.append(command.manager_tag)
        logger.debug(
            "command_dispatched",
            manager=command.manager_tag,
            action=command.action,
            issuer=self.active_user_id,
            depth=len(self._frames),
        )
        try:
            return command.invoke(self.active_user_id)
        except AccessDeniedError as e:
            logger.warning(
                "command_rejected",
                manager=command.manager_tag,
                action=command.action,
                issuer=command.issuer_id,
                reason=str(e),
            )
            raise
        except CommandStackViolationError as e:
            logger.error(
                "command_stack_violation",
                manager=command.manager_tag,
                action=command.action,
                error=type(e).__name__,
                reason=str(e),
            )
            raise
        finally:
            self._frames.pop()
            self._path.pop()

    def set_target(self, issuer_id: str | None, payload: Target) -> None:
        """Set the target of the command on top of the stack."""
        self.current.set_target(issuer_id, payload)

    def get_target_as(self, expected: type[T]) -> T:
        return self.current.get_target_as(expected)

    def get_parent_target_as(self, expected: type[T]) -> T:
        """Read the target of the command directly below the top.

        Raises:
            NoParentCommandError: If the stack holds fewer than two commands.
            TargetNotSetError: If the parent set no target.
            TargetTypeError: If the parent's target is another variant.
        """
        if len(self._frames) <= 1:
            raise NoParentCommandError(
                f"{self.current.manager_tag}/{self.current.action} has no parent command"
                if self._frames
                else "The command stack is empty"
            )
        return self._frames[-2].get_target_as(expected)

    def get_parent_target(self) -> str:
        return self.get_parent_target_as(str)
