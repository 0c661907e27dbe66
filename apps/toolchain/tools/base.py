"""Base class for external tool wrappers."""

from __future__ import annotations

import shutil
from pathlib import Path

from apps.toolchain.runner import CommandResult, CommandRunner


class BaseTool:
    """
    Abstract wrapper around one command-line tool.

    Subclasses define ``name`` and ``binary`` and expose one method per
    sub-command the pipeline uses. All calls go through the stage's
    CommandRunner so output is redacted and recorded.

    Attributes:
        name: Registry name of the tool.
        binary: Executable name or path.
    """

    name: str = "base"
    binary: str = ""

    def __init__(
        self,
        runner: CommandRunner,
        env: dict[str, str] | None = None,
        binary: str | None = None,
    ) -> None:
        self.runner = runner
        self.env = env
        if binary:
            self.binary = binary

    def run(
        self,
        args: list[str],
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
        stdin: str | None = None,
        check: bool = True,
    ) -> CommandResult:
        return self.runner.run(
            args,
            cwd=cwd,
            env=env if env is not None else self.env,
            stdin=stdin,
            check=check,
        )

    def is_available(self) -> bool:
        """Return True if the binary can be found on the stage PATH."""
        path = (self.env or {}).get("PATH")
        return shutil.which(self.binary, path=path) is not None
