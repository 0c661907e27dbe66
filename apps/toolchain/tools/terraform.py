"""Infrastructure provisioning with terraform."""

from __future__ import annotations

import re
from pathlib import Path

from apps.toolchain.runner import CommandResult
from apps.toolchain.tools.base import BaseTool

PLAN_FILE = "tfplan"

_PLAN_SUMMARY = re.compile(
    r"Plan:\s+(?P<add>\d+)\s+to add,\s+(?P<change>\d+)\s+to change,\s+(?P<destroy>\d+)\s+to destroy"
)


class TerraformTool(BaseTool):
    """init → plan → show → apply, non-interactive."""

    name = "terraform"
    binary = "terraform"

    def _env(self) -> dict[str, str] | None:
        if self.env is None:
            return None
        return {**self.env, "TF_IN_AUTOMATION": "1", "TF_INPUT": "0"}

    def init(self, cwd: str | Path) -> CommandResult:
        return self.run([self.binary, "init", "-input=false", "-no-color"], cwd=cwd, env=self._env())

    def plan(self, cwd: str | Path, plan_file: str = PLAN_FILE) -> CommandResult:
        return self.run(
            [self.binary, "plan", "-input=false", "-no-color", f"-out={plan_file}"],
            cwd=cwd,
            env=self._env(),
        )

    def show(self, cwd: str | Path, plan_file: str = PLAN_FILE) -> CommandResult:
        return self.run([self.binary, "show", "-no-color", plan_file], cwd=cwd, env=self._env())

    def apply(self, cwd: str | Path, plan_file: str = PLAN_FILE) -> CommandResult:
        """Apply the saved plan. No approval gate."""
        return self.run(
            [self.binary, "apply", "-input=false", "-no-color", "-auto-approve", plan_file],
            cwd=cwd,
            env=self._env(),
        )


def parse_plan_summary(output: str) -> dict[str, int]:
    """
    Extract resource counts from ``terraform plan``/``show`` output.

    Returns zeros for "No changes." and for output without a summary line.
    """
    match = _PLAN_SUMMARY.search(output or "")
    if not match:
        return {"add": 0, "change": 0, "destroy": 0}
    return {key: int(value) for key, value in match.groupdict().items()}
