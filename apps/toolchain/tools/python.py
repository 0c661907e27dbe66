"""Dependency installation and the test suite with coverage."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

from apps.toolchain.runner import CommandResult
from apps.toolchain.tools.base import BaseTool


class PythonTool(BaseTool):
    """
    Wraps the interpreter used to install the project and run pytest.

    The test stage creates a virtualenv inside its workspace and drives it
    through the returned interpreter path, so nothing is installed into the
    worker's own environment.
    """

    name = "python"
    binary = "python3"

    def create_venv(self, path: str | Path) -> str:
        """Create a virtualenv and return the path of its interpreter."""
        path = Path(path)
        self.run([self.binary, "-m", "venv", str(path)])
        return str(path / "bin" / "python")

    def upgrade_pip(self, python: str) -> CommandResult:
        return self.run([python, "-m", "pip", "install", "--quiet", "--upgrade", "pip"])

    def install_requirements(
        self, python: str, requirements: str | Path, cwd: str | Path
    ) -> CommandResult:
        return self.run(
            [python, "-m", "pip", "install", "--quiet", "-r", str(requirements)],
            cwd=cwd,
        )

    def run_pytest(
        self,
        python: str,
        cwd: str | Path,
        coverage_target: str,
        report_path: str,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """
        Run the suite with coverage and an XML report.

        Does not raise on test failures; the caller inspects ``returncode``.
        """
        return self.run(
            [
                python,
                "-m",
                "pytest",
                f"--cov={coverage_target}",
                f"--cov-report=xml:{report_path}",
            ],
            cwd=cwd,
            env=env,
            check=False,
        )


def parse_coverage_report(path: str | Path) -> dict[str, Any]:
    """
    Read the headline numbers from a Cobertura coverage.xml.

    Returns:
        Dict with line_rate, branch_rate, lines_valid, lines_covered and
        coverage_percent.

    Raises:
        ValueError: The file is not a Cobertura report.
    """
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        raise ValueError(f"Invalid coverage report: {e}") from e

    if root.tag != "coverage":
        raise ValueError(f"Invalid coverage report: unexpected root element <{root.tag}>")

    line_rate = float(root.get("line-rate", 0.0))
    return {
        "line_rate": line_rate,
        "branch_rate": float(root.get("branch-rate", 0.0)),
        "lines_valid": int(root.get("lines-valid", 0)),
        "lines_covered": int(root.get("lines-covered", 0)),
        "coverage_percent": round(line_rate * 100, 2),
    }
