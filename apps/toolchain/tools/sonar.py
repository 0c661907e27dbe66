"""Static-analysis scan uploaded to SonarCloud / SonarQube."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import urllib.request
import zipfile
from pathlib import Path

from django.conf import settings

from apps.toolchain.exceptions import ToolNotFoundError
from apps.toolchain.runner import CommandResult
from apps.toolchain.tools.base import BaseTool

logger = logging.getLogger(__name__)


class SonarScanner(BaseTool):
    """
    Wraps sonar-scanner.

    Uses a scanner already on PATH when there is one; otherwise downloads the
    pinned CLI distribution into PIPELINE_TOOLS_DIR once and reuses it.
    The token is read by the scanner from SONAR_TOKEN in the environment and
    is never put on the command line.
    """

    name = "sonar-scanner"
    binary = "sonar-scanner"

    def __init__(
        self,
        runner,
        env: dict[str, str] | None = None,
        binary: str | None = None,
        version: str | None = None,
        tools_dir: str | Path | None = None,
        download_url: str | None = None,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(runner, env=env, binary=binary)
        self.version = version or getattr(settings, "SONAR_SCANNER_VERSION", "7.0.2.4839")
        self.tools_dir = Path(tools_dir or getattr(settings, "PIPELINE_TOOLS_DIR", "var/tools"))
        self.download_url = download_url or getattr(settings, "SONAR_SCANNER_DOWNLOAD_URL", "")
        self.timeout = timeout

    @property
    def install_dir(self) -> Path:
        return self.tools_dir / f"sonar-scanner-{self.version}-linux-x64"

    def ensure_installed(self) -> str:
        """
        Return the path of a usable scanner executable, downloading it if needed.

        Raises:
            ToolNotFoundError: Not on PATH and no download URL is configured,
                or the archive did not contain the expected executable.
        """
        found = shutil.which(self.binary, path=(self.env or {}).get("PATH"))
        if found:
            return found

        executable = self.install_dir / "bin" / "sonar-scanner"
        if executable.exists():
            return str(executable)

        if not self.download_url:
            raise ToolNotFoundError(self.binary)

        url = self.download_url.format(version=self.version)
        self.tools_dir.mkdir(parents=True, exist_ok=True)
        archive = self.tools_dir / f"sonar-scanner-{self.version}.zip"

        logger.info("Downloading sonar-scanner %s from %s", self.version, url)
        with urllib.request.urlopen(url, timeout=self.timeout) as response, open(
            archive, "wb"
        ) as fh:
            shutil.copyfileobj(response, fh)

        with zipfile.ZipFile(archive) as zf:
            zf.extractall(self.tools_dir)
        archive.unlink()

        if not executable.exists():
            raise ToolNotFoundError(str(executable))

        # zipfile drops the executable bit.
        for bin_dir in (self.install_dir / "bin", self.install_dir / "jre" / "bin"):
            if bin_dir.is_dir():
                for entry in bin_dir.iterdir():
                    mode = os.stat(entry).st_mode
                    os.chmod(entry, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

        return str(executable)

    def scan(
        self,
        cwd: str | Path,
        project_key: str,
        sources: str,
        coverage_report: str,
        host_url: str,
        organization: str = "",
        executable: str | None = None,
    ) -> CommandResult:
        args = [
            executable or self.ensure_installed(),
            f"-Dsonar.projectKey={project_key}",
            f"-Dsonar.sources={sources}",
            f"-Dsonar.python.coverage.reportPaths={coverage_report}",
            f"-Dsonar.host.url={host_url}",
        ]
        if organization:
            args.insert(1, f"-Dsonar.organization={organization}")
        return self.run(args, cwd=cwd)


def dashboard_url(host_url: str, project_key: str) -> str:
    return f"{host_url.rstrip('/')}/dashboard?id={project_key}"
