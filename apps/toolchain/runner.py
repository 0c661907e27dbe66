"""
Subprocess runner shared by every tool wrapper.

Commands are executed with an explicit environment (never the worker's own),
their output is captured, and any secret value is replaced with ``***``
before the output leaves this module.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from apps.toolchain.exceptions import (
    CommandFailedError,
    CommandTimeoutError,
    ToolNotFoundError,
)

logger = logging.getLogger(__name__)

REDACTED = "***"


def redact(text: str, secrets: Iterable[str]) -> str:
    """Replace every secret value found in ``text`` with ``***``."""
    if not text:
        return text
    # Longest first so a secret containing another secret is masked whole.
    for value in sorted({s for s in secrets if s}, key=len, reverse=True):
        text = text.replace(value, REDACTED)
    return text


@dataclass
class CommandResult:
    """Captured result of a single command (already redacted)."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def display(self) -> str:
        return " ".join(shlex.quote(a) for a in self.args)

    def tail(self, lines: int = 20) -> str:
        """Last lines of combined output, for error messages."""
        combined = "\n".join(part for part in (self.stdout, self.stderr) if part)
        return "\n".join(combined.splitlines()[-lines:])


@dataclass
class CommandRunner:
    """
    Runs commands for one stage and keeps a redacted transcript.

    Args:
        secrets: Secret values that must never appear in logs or results.
        timeout: Default timeout in seconds (None for no limit).
    """

    secrets: list[str] = field(default_factory=list)
    timeout: float | None = None
    history: list[CommandResult] = field(default_factory=list)

    def run(
        self,
        args: list[str],
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
        stdin: str | None = None,
        timeout: float | None = None,
        check: bool = True,
    ) -> CommandResult:
        """
        Run a command and return its redacted result.

        Raises:
            ToolNotFoundError: The binary does not exist.
            CommandTimeoutError: The command exceeded its timeout.
            CommandFailedError: Non-zero exit and ``check`` is True.
        """
        safe_args = [redact(str(a), self.secrets) for a in args]
        display = " ".join(shlex.quote(a) for a in safe_args)
        effective_timeout = timeout if timeout is not None else self.timeout

        logger.info("Running: %s", display, extra={"cwd": str(cwd or "")})
        start = time.perf_counter()
        try:
            completed = subprocess.run(
                [str(a) for a in args],
                cwd=str(cwd) if cwd is not None else None,
                env=env,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=effective_timeout,
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError(str(args[0])) from e
        except subprocess.TimeoutExpired as e:
            raise CommandTimeoutError(display, effective_timeout) from e

        result = CommandResult(
            args=safe_args,
            returncode=completed.returncode,
            stdout=redact(completed.stdout or "", self.secrets),
            stderr=redact(completed.stderr or "", self.secrets),
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        self.history.append(result)

        if result.ok:
            logger.debug("Command succeeded in %.0fms: %s", result.duration_ms, display)
        else:
            logger.warning("Command exited with %s: %s", result.returncode, display)
            if check:
                raise CommandFailedError(result)
        return result

    def transcript(self, max_chars: int = 8000) -> str:
        """Redacted log of every command run so far, truncated from the front."""
        parts = []
        for result in self.history:
            parts.append(f"$ {result.display}  (exit {result.returncode})")
            if result.stdout:
                parts.append(result.stdout.rstrip())
            if result.stderr:
                parts.append(result.stderr.rstrip())
        text = "\n".join(parts)
        if len(text) > max_chars:
            text = "...\n" + text[-max_chars:]
        return text
