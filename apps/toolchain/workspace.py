"""Ephemeral, isolated execution environment for a single stage."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from django.conf import settings

from apps.toolchain.runner import CommandRunner

logger = logging.getLogger(__name__)

# Host variables a stage may inherit; everything else is dropped.
PASSTHROUGH_ENV = (
    "PATH",
    "LANG",
    "LC_ALL",
    "TZ",
    "DOCKER_HOST",
    "SSL_CERT_FILE",
    "REQUESTS_CA_BUNDLE",
    "HTTP_PROXY",
    "HTTPS_PROXY",
    "NO_PROXY",
    "http_proxy",
    "https_proxy",
    "no_proxy",
)


class StageWorkspace:
    """
    Context manager providing a throwaway directory, environment and runner.

    The environment starts from a small allow-list of host variables, points
    HOME/TMPDIR/DOCKER_CONFIG inside the workspace (so credentials written by
    one stage never reach another) and adds the stage's secrets.

    Usage:
        with StageWorkspace("test", run_id, secrets) as ws:
            ws.runner.run(["git", "clone", repo, str(ws.source_dir)], env=ws.env)
    """

    def __init__(
        self,
        stage: str,
        run_id: str,
        secrets: dict[str, str] | None = None,
        root: str | Path | None = None,
        timeout: float | None = None,
        keep: bool = False,
    ):
        self.stage = stage
        self.run_id = run_id
        self.secrets = dict(secrets or {})
        self.root = Path(root or getattr(settings, "PIPELINE_WORKSPACE_ROOT", tempfile.gettempdir()))
        self.timeout = (
            timeout
            if timeout is not None
            else getattr(settings, "PIPELINE_COMMAND_TIMEOUT_SECONDS", None)
        )
        self.keep = keep
        self.path: Path | None = None
        self.env: dict[str, str] = {}
        self.runner = CommandRunner(secrets=list(self.secrets.values()), timeout=self.timeout)

    @property
    def source_dir(self) -> Path:
        """Where the repository is checked out."""
        if self.path is None:
            raise RuntimeError("Workspace is not open")
        return self.path / "src"

    def environ(self, **extra: str) -> dict[str, str]:
        """Stage environment with additional variables layered on top."""
        env = dict(self.env)
        env.update({k: v for k, v in extra.items() if v is not None})
        return env

    def __enter__(self) -> "StageWorkspace":
        self.root.mkdir(parents=True, exist_ok=True)
        self.path = Path(tempfile.mkdtemp(prefix=f"{self.run_id[:8]}-{self.stage}-", dir=self.root))
        home = self.path / "home"
        tmp = self.path / "tmp"
        home.mkdir()
        tmp.mkdir()

        env = {name: os.environ[name] for name in PASSTHROUGH_ENV if os.environ.get(name)}
        env.setdefault("PATH", os.defpath)
        env["HOME"] = str(home)
        env["TMPDIR"] = str(tmp)
        env["DOCKER_CONFIG"] = str(home / ".docker")
        env["CI"] = "true"
        env.update(self.secrets)
        self.env = env

        logger.debug("Opened workspace %s for stage %s", self.path, self.stage)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.path is not None and not self.keep:
            shutil.rmtree(self.path, ignore_errors=True)
            logger.debug("Removed workspace %s", self.path)
        return False
