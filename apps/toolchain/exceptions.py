"""Exceptions raised by the toolchain layer."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from apps.toolchain.runner import CommandResult


class ToolError(Exception):
    """Base class for every failure of an external tool invocation."""


class ToolNotFoundError(ToolError):
    """The tool binary is not installed / not on PATH."""

    def __init__(self, binary: str):
        self.binary = binary
        super().__init__(f"Tool not found: {binary}")


class CommandFailedError(ToolError):
    """A command exited with a non-zero status."""

    def __init__(self, result: "CommandResult"):
        self.result = result
        super().__init__(
            f"Command failed with exit code {result.returncode}: {result.display}"
        )


class CommandTimeoutError(ToolError):
    """A command did not finish within its timeout."""

    def __init__(self, display: str, timeout: float | None):
        self.display = display
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout}s: {display}")


class MissingSecretError(ToolError):
    """One or more secrets required by a stage are not available."""

    def __init__(self, names: list[str], stage: str = ""):
        self.names = names
        self.stage = stage
        scope = f" for stage {stage}" if stage else ""
        super().__init__(f"Missing secret(s){scope}: {', '.join(names)}")
