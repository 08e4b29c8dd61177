"""A small command-line dispatcher of named commands and command groups."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

__all__ = [
    "CommandOption",
    "CommandNotFoundError",
    "InvalidArgumentsError",
    "Command",
    "CommandFork",
]


def _quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class CommandNotFoundError(LookupError):
    """Raised when no command of the given name exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"command {_quote(name)} not found")


class InvalidArgumentsError(ValueError):
    """Raised when a command is called with the wrong arguments or options."""

    def __init__(self, expected: str):
        self.expected = expected
        super().__init__(f"invalid arguments: {expected}")


@dataclass(frozen=True)
class CommandOption:
    """An option given as --name or --name=value."""

    name: str
    description: str = ""
    has_value: bool = False


@dataclass
class Command:
    """A command with positional arguments and options that runs a method."""

    name: str
    description: str
    arguments: Sequence[str] = ()
    options: Sequence[CommandOption] = ()
    method: Callable[[list[str], dict[str, str]], Any] = field(
        default=lambda args, options: None
    )

    def call(self, *args: str) -> Any:
        """Parse the arguments and options, check them and run the method."""
        arguments: list[str] = []
        options: dict[str, str] = {}
        for arg in args:
            if arg.startswith("--"):
                key, _, value = arg[2:].partition("=")
                options[key] = value
            else:
                arguments.append(arg)
        self._check_arguments(arguments)
        self._check_options(options)
        return self.method(arguments, options)

    def _check_arguments(self, arguments: list[str]) -> None:
        expected = list(self.arguments or ())
        if len(arguments) == len(expected):
            return
        if not expected:
            raise InvalidArgumentsError("expected no arguments")
        names = " ".join(f"<{name}>" for name in expected)
        raise InvalidArgumentsError(f"expected {len(expected)} arguments: {names}")

    def _check_options(self, options: dict[str, str]) -> None:
        known = {option.name: option for option in (self.options or ())}
        for key, value in options.items():
            option = known.get(key)
            if option is None:
                raise InvalidArgumentsError(f"unknown option {key}")
            if not option.has_value and value != "":
                raise InvalidArgumentsError(f"option {key} does not take a value")


class CommandFork:
    """A group of sub-commands selected by the first argument."""

    def __init__(self, name: str, description: str, *commands: Command | CommandFork):
        self.name = name
        self.description = description
        self.commands = commands

    def call(self, *args: str) -> Any:
        """Dispatch to the sub-command named by the first argument."""
        if not args:
            raise CommandNotFoundError("")
        name, rest = args[0], args[1:]
        for command in self.commands:
            if command.name == name:
                return command.call(*rest)
        raise CommandNotFoundError(name)