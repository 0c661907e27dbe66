"""Tests for the tool wrappers."""

import io
import tempfile
import zipfile
from pathlib import Path
from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase, override_settings

from apps.toolchain.exceptions import ToolNotFoundError
from apps.toolchain.runner import CommandResult, CommandRunner
from apps.toolchain.tools import (
    DockerTool,
    GitTool,
    PythonTool,
    SonarScanner,
    TerraformTool,
    aws_environment,
    get_tool,
    parse_coverage_report,
    parse_plan_summary,
    registry_repository,
)


def make_runner(*results):
    """A CommandRunner double returning the given results in order."""
    runner = MagicMock(spec=CommandRunner)
    if results:
        runner.run.side_effect = list(results)
    else:
        runner.run.return_value = CommandResult(args=[], returncode=0)
    return runner


def ok(stdout=""):
    return CommandResult(args=[], returncode=0, stdout=stdout)


def argv(runner, index):
    return runner.run.call_args_list[index][0][0]


class GitToolTests(SimpleTestCase):
    def test_checkout_commit_already_in_clone(self):
        runner = make_runner(ok(), ok(), ok(), ok("abc123\n"))
        git = GitTool(runner, env={"PATH": "/usr/bin"})

        sha = git.checkout("https://example.com/repo.git", "/ws/src", commit_sha="abc123")

        self.assertEqual(sha, "abc123")
        self.assertEqual(argv(runner, 0), ["git", "clone", "--quiet", "https://example.com/repo.git", "/ws/src"])
        self.assertEqual(argv(runner, 2), ["git", "checkout", "--quiet", "abc123"])
        self.assertEqual(runner.run.call_count, 4)

    def test_checkout_fetches_missing_commit(self):
        missing = CommandResult(args=[], returncode=1)
        runner = make_runner(ok(), missing, ok(), ok(), ok("def456\n"))
        git = GitTool(runner)

        git.checkout("repo", "/ws/src", commit_sha="def456")

        self.assertEqual(argv(runner, 2), ["git", "fetch", "--quiet", "origin", "def456"])

    def test_shallow_clone_of_branch_without_sha(self):
        runner = make_runner(ok(), ok("head\n"))
        git = GitTool(runner)

        git.checkout("repo", "/ws/src", branch="main")

        self.assertIn("--depth", argv(runner, 0))
        self.assertIn("main", argv(runner, 0))


class PythonToolTests(SimpleTestCase):
    def test_create_venv_returns_interpreter(self):
        runner = make_runner()
        python = PythonTool(runner, binary="python3.11")

        interpreter = python.create_venv("/ws/venv")

        self.assertEqual(interpreter, "/ws/venv/bin/python")
        self.assertEqual(argv(runner, 0), ["python3.11", "-m", "venv", "/ws/venv"])

    def test_run_pytest_does_not_check(self):
        runner = make_runner()
        python = PythonTool(runner)

        python.run_pytest("py", "/ws/src", "api", "/ws/coverage.xml", env={"PYTHONPATH": "/ws/src"})

        args, kwargs = runner.run.call_args
        self.assertEqual(args[0], ["py", "-m", "pytest", "--cov=api", "--cov-report=xml:/ws/coverage.xml"])
        self.assertFalse(kwargs["check"])
        self.assertEqual(kwargs["env"], {"PYTHONPATH": "/ws/src"})


class ParseCoverageReportTests(SimpleTestCase):
    def _write(self, content):
        tmp = tempfile.NamedTemporaryFile("w", suffix=".xml", delete=False)
        tmp.write(content)
        tmp.close()
        self.addCleanup(Path(tmp.name).unlink)
        return tmp.name

    def test_parses_cobertura(self):
        path = self._write(
            '<?xml version="1.0" ?>'
            '<coverage line-rate="0.8125" branch-rate="0.5" lines-valid="160" lines-covered="130">'
            "</coverage>"
        )

        report = parse_coverage_report(path)

        self.assertEqual(report["coverage_percent"], 81.25)
        self.assertEqual(report["lines_covered"], 130)

    def test_rejects_non_cobertura(self):
        with self.assertRaises(ValueError):
            parse_coverage_report(self._write("<html></html>"))

    def test_rejects_invalid_xml(self):
        with self.assertRaises(ValueError):
            parse_coverage_report(self._write("not xml"))


class SonarScannerTests(SimpleTestCase):
    def setUp(self):
        self._tools = tempfile.TemporaryDirectory()
        self.addCleanup(self._tools.cleanup)

    def test_scan_arguments(self):
        runner = make_runner()
        scanner = SonarScanner(runner, tools_dir=self._tools.name)

        scanner.scan(
            "/ws/src",
            project_key="org_project",
            sources="api",
            coverage_report="coverage.xml",
            host_url="https://sonarcloud.io",
            organization="org",
            executable="/opt/sonar-scanner",
        )

        self.assertEqual(
            argv(runner, 0),
            [
                "/opt/sonar-scanner",
                "-Dsonar.organization=org",
                "-Dsonar.projectKey=org_project",
                "-Dsonar.sources=api",
                "-Dsonar.python.coverage.reportPaths=coverage.xml",
                "-Dsonar.host.url=https://sonarcloud.io",
            ],
        )

    def test_token_never_on_command_line(self):
        runner = make_runner()
        scanner = SonarScanner(runner, env={"SONAR_TOKEN": "tok"}, tools_dir=self._tools.name)

        scanner.scan("/ws", "k", "api", "coverage.xml", "https://sonarcloud.io", executable="s")

        self.assertNotIn("tok", " ".join(argv(runner, 0)))
        self.assertEqual(runner.run.call_args[1]["env"], {"SONAR_TOKEN": "tok"})

    @patch("apps.toolchain.tools.sonar.shutil.which", return_value=None)
    def test_ensure_installed_without_download_url(self, _which):
        scanner = SonarScanner(make_runner(), tools_dir=self._tools.name, download_url="")
        scanner.download_url = ""

        with self.assertRaises(ToolNotFoundError):
            scanner.ensure_installed()

    @patch("apps.toolchain.tools.sonar.shutil.which", return_value=None)
    @patch("apps.toolchain.tools.sonar.urllib.request.urlopen")
    def test_ensure_installed_downloads_and_extracts(self, mock_urlopen, _which):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr("sonar-scanner-1.0-linux-x64/bin/sonar-scanner", "#!/bin/sh\n")
        buffer.seek(0)
        mock_urlopen.return_value.__enter__.return_value = buffer

        scanner = SonarScanner(
            make_runner(),
            version="1.0",
            tools_dir=self._tools.name,
            download_url="https://example.com/sonar-{version}.zip",
        )
        executable = scanner.ensure_installed()

        mock_urlopen.assert_called_once()
        self.assertEqual(mock_urlopen.call_args[0][0], "https://example.com/sonar-1.0.zip")
        self.assertTrue(Path(executable).exists())
        self.assertTrue(Path(executable).stat().st_mode & 0o100)


class TerraformToolTests(SimpleTestCase):
    def test_plan_writes_plan_file(self):
        runner = make_runner()
        terraform = TerraformTool(runner, env={"PATH": "/usr/bin"})

        terraform.plan("/ws/src/terraform")

        args, kwargs = runner.run.call_args
        self.assertIn("-out=tfplan", args[0])
        self.assertEqual(kwargs["env"]["TF_IN_AUTOMATION"], "1")

    def test_apply_uses_saved_plan(self):
        runner = make_runner()
        TerraformTool(runner).apply("/ws")

        self.assertEqual(argv(runner, 0)[-2:], ["-auto-approve", "tfplan"])

    def test_parse_plan_summary(self):
        output = "...\nPlan: 3 to add, 1 to change, 0 to destroy.\n"
        self.assertEqual(parse_plan_summary(output), {"add": 3, "change": 1, "destroy": 0})

    def test_parse_plan_summary_no_changes(self):
        output = "No changes. Your infrastructure matches the configuration."
        self.assertEqual(parse_plan_summary(output), {"add": 0, "change": 0, "destroy": 0})


class DockerToolTests(SimpleTestCase):
    def test_build_with_secret_mount(self):
        runner = make_runner()
        docker = DockerTool(runner, env={"DATABASE_URL": "postgres://x"})

        docker.build("/ws/src", "ledschallenge:latest", secret_name="DATABASE_URL")

        args, kwargs = runner.run.call_args
        self.assertIn("--secret", args[0])
        self.assertIn("id=DATABASE_URL,env=DATABASE_URL", args[0])
        self.assertEqual(kwargs["env"]["DOCKER_BUILDKIT"], "1")
        self.assertNotIn("postgres://x", " ".join(args[0]))

    def test_build_with_build_arg_passes_name_only(self):
        runner = make_runner()
        docker = DockerTool(runner, env={"DATABASE_URL": "postgres://x"})

        docker.build("/ws/src", "img:latest", secret_name="DATABASE_URL", secret_mode="build-arg")

        args = argv(runner, 0)
        self.assertEqual(args[args.index("--build-arg") + 1], "DATABASE_URL")
        self.assertNotIn("postgres://x", " ".join(args))

    def test_build_rejects_unknown_mode(self):
        with self.assertRaises(ValueError):
            DockerTool(make_runner()).build("/ws", "img", secret_name="X", secret_mode="inline")

    def test_load_returns_image(self):
        runner = make_runner(ok("Loaded image: ledschallenge:latest\n"))
        self.assertEqual(DockerTool(runner).load("/ws/img.tar"), "ledschallenge:latest")

    def test_push_returns_digest(self):
        digest = "sha256:" + "a" * 64
        runner = make_runner(ok(f"latest: digest: {digest} size: 1234\n"))
        self.assertEqual(DockerTool(runner).push("docker.io/u/img:latest"), digest)

    def test_login_reads_token_from_stdin(self):
        runner = make_runner()
        DockerTool(runner).login("docker.io", "user", "token")

        args, kwargs = runner.run.call_args
        self.assertIn("--password-stdin", args[0])
        self.assertNotIn("token", args[0])
        self.assertEqual(kwargs["stdin"], "token")

    def test_registry_repository(self):
        self.assertEqual(
            registry_repository("docker.io", "filipe", "ledschallenge"),
            "docker.io/filipe/ledschallenge",
        )


class AwsEnvironmentTests(SimpleTestCase):
    def test_region_mirrored(self):
        env = aws_environment(
            {"AWS_ACCESS_KEY_ID": "a", "AWS_SECRET_ACCESS_KEY": "b", "AWS_REGION": "eu-west-1"}
        )
        self.assertEqual(env["AWS_DEFAULT_REGION"], "eu-west-1")
        self.assertNotIn("AWS_SESSION_TOKEN", env)


class GetToolTests(SimpleTestCase):
    @override_settings(PIPELINE_DOCKER_BINARY="podman")
    def test_binary_from_settings(self):
        tool = get_tool("docker", make_runner())
        self.assertEqual(tool.binary, "podman")

    def test_unknown_tool(self):
        with self.assertRaises(KeyError):
            get_tool("kubectl", make_runner())
