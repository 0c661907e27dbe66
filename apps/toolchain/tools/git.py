"""Source checkout."""

from __future__ import annotations

from pathlib import Path

from apps.toolchain.tools.base import BaseTool


class GitTool(BaseTool):
    """Clones the repository under test into a stage workspace."""

    name = "git"
    binary = "git"

    def checkout(
        self,
        repository: str,
        destination: str | Path,
        commit_sha: str = "",
        branch: str = "",
    ) -> str:
        """
        Clone ``repository`` into ``destination`` and check out the commit.

        Without a commit SHA, a shallow clone of ``branch`` (or the default
        branch) is made.

        Returns:
            The resolved HEAD commit SHA.
        """
        destination = Path(destination)
        args = [self.binary, "clone", "--quiet"]
        if branch and not commit_sha:
            args += ["--depth", "1", "--branch", branch]
        args += [repository, str(destination)]
        self.run(args, cwd=destination.parent)

        if commit_sha:
            present = self.run(
                [self.binary, "cat-file", "-e", f"{commit_sha}^{{commit}}"],
                cwd=destination,
                check=False,
            )
            if not present.ok:
                # Pull request heads are not part of the default clone.
                self.run([self.binary, "fetch", "--quiet", "origin", commit_sha], cwd=destination)
            self.run([self.binary, "checkout", "--quiet", commit_sha], cwd=destination)

        head = self.run([self.binary, "rev-parse", "HEAD"], cwd=destination)
        return head.stdout.strip()
