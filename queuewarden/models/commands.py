"""Supported run commands.

Every command is submitted as the same ``Run`` resource; the command name
selects the entrypoint executed in the pod.  ``SUPPORTED_COMMANDS`` is the
capability set checked at admission time.
"""

from __future__ import annotations

import shlex
from enum import StrEnum


class RunCommand(StrEnum):
    INIT = "init"
    PLAN = "plan"
    APPLY = "apply"
    DESTROY = "destroy"
    REFRESH = "refresh"
    VALIDATE = "validate"
    OUTPUT = "output"
    SHOW = "show"
    STATE = "state"
    IMPORT = "import"
    CONSOLE = "console"
    FORCE_UNLOCK = "force-unlock"
    SH = "sh"


SUPPORTED_COMMANDS: frozenset[str] = frozenset(c.value for c in RunCommand)

TOOL_BINARY = "terraform"


class UnsupportedCommandError(ValueError):
    """Raised when a command is not in the supported set."""


def parse_command(name: str) -> RunCommand:
    """Validate *name* against the capability set."""
    if name not in SUPPORTED_COMMANDS:
        msg = f"Unsupported command '{name}' (supported: {', '.join(sorted(SUPPORTED_COMMANDS))})"
        raise UnsupportedCommandError(msg)
    return RunCommand(name)


def entrypoint(command: RunCommand, args: list[str]) -> list[str]:
    """Argv executed by the runner container for *command*.

    ``sh`` joins its arguments into a single ``-c`` script; every other
    command is a subcommand of the tool binary.
    """
    if command == RunCommand.SH:
        if not args:
            return ["sh"]
        return ["sh", "-c", " ".join(args)]
    return [TOOL_BINARY, command.value, *args]


def entrypoint_line(command: RunCommand, args: list[str]) -> str:
    return shlex.join(entrypoint(command, args))
